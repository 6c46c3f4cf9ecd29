"""FastAPI app for waste report intake, dispatch and collection tracking."""
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from loguru import logger

from api.schemas import BinFillRequest, CompletionRequest, ReportRequest
from api.workers_api import get_service, router as workers_router
from configurations.config import Config
from core.errors import ConflictError, DispatchError, ExternalServiceError, NotFoundError, ValidationError
from services.dispatch_service import DispatchService, build_dispatch_service
from visualization.export_to_geojson import DispatchExporter
from visualization.folium_map import FoliumMapGenerator

ERROR_STATUS = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ExternalServiceError, 502),
]


def create_app(service: DispatchService = None, start_scheduler: bool = Config.SWEEP_ENABLED) -> FastAPI:
    app = FastAPI(
        title="Waste Collection Dispatch",
        description="Report grouping, worker dispatch, routing and collection progress tracking",
        version="1.0.0"
    )
    app.state.dispatch_service = service or build_dispatch_service()

    app.include_router(workers_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        status_code = next((code for error_type, code in ERROR_STATUS if isinstance(exc, error_type)), 500)
        return JSONResponse(status_code=status_code, content={"status": "error", "detail": str(exc)})

    @app.on_event("startup")
    async def startup_event():
        logger.info("🚀 Starting dispatch engine...")
        if start_scheduler:
            app.state.dispatch_service.scheduler.start_scheduler()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("🛑 Shutting down dispatch engine...")
        app.state.dispatch_service.shutdown()

    @app.get("/")
    def root():
        return {"status": "success", "message": "Waste collection dispatch is running"}

    @app.post("/reports", status_code=201)
    def submit_report(body: ReportRequest, service: DispatchService = Depends(get_service)):
        report = service.submit_report(body.reporter_id, body.latitude, body.longitude,
                                       waste_type=body.waste_type, image_url=body.image_url,
                                       comments=body.comments)
        return {
            "status": "success",
            "message": "Report submitted successfully",
            "report_id": report.id,
            "group_id": report.group_id,
            "report_status": report.status.value
        }

    @app.post("/reports/bin-fill", status_code=201)
    def submit_bin_fill(body: BinFillRequest, service: DispatchService = Depends(get_service)):
        report = service.submit_bin_request(body.reporter_id, body.latitude, body.longitude, body.fill_level)
        return {
            "status": "success",
            "message": "Bin fill report submitted successfully",
            "report_id": report.id,
            "group_id": report.group_id,
            "report_status": report.status.value
        }

    @app.get("/reports/pending-route")
    def pending_route(latitude: float, longitude: float, service: DispatchService = Depends(get_service)):
        """Visiting order over reports that are not yet dispatched, from the given depot."""
        route = service.pending_route(latitude, longitude)
        return {
            "status": "success",
            "route": [{"id": stop.id, "lat": stop.lat, "lng": stop.lng} for stop in route],
            "count": len(route) - 1
        }

    @app.get("/users/{user_id}/progress")
    def fetch_progress(user_id: str, service: DispatchService = Depends(get_service)):
        progress = service.fetch_progress(user_id)
        return {"status": "success", "data": progress, "count": len(progress)}

    @app.post("/collections/complete")
    def complete_collection(body: CompletionRequest, service: DispatchService = Depends(get_service)):
        task = service.complete_collection(body.group_id, body.worker_id)
        return {
            "status": "success",
            "message": "Collection completed successfully",
            "task_id": task.id
        }

    @app.get("/groups")
    def list_groups(status: str = None, service: DispatchService = Depends(get_service)):
        groups = service.list_groups(status)
        return {"status": "success", "data": [g.to_dict() for g in groups], "count": len(groups)}

    @app.get("/groups/geojson")
    def groups_geojson(status: str = None, service: DispatchService = Depends(get_service)):
        exporter = DispatchExporter()
        return exporter.to_geojson_dict(exporter.prepare_groups_geojson(service.list_groups(status)))

    @app.post("/groups/sweep")
    def run_sweep(service: DispatchService = Depends(get_service)):
        tasks = service.run_maturity_sweep()
        return {"status": "success", "dispatched": [task.id for task in tasks], "count": len(tasks)}

    @app.post("/groups/{group_id}/dispatch")
    def dispatch_group(group_id: str, service: DispatchService = Depends(get_service)):
        task = service.dispatch_group(group_id)
        if task is None:
            return JSONResponse(status_code=202, content={
                "status": "warning",
                "message": f"No available worker for group {group_id}; it stays Scheduled"
            })
        return {"status": "success", "data": task.to_dict()}

    @app.get("/tasks/{task_id}/route")
    def task_route(task_id: str, service: DispatchService = Depends(get_service)):
        task = service.get_task(task_id)
        return {
            "status": "success",
            "task_id": task.id,
            "stops": [
                {"id": stop_id, "lat": point.latitude, "lng": point.longitude}
                for stop_id, point in zip(task.stop_ids, task.route)
            ],
            "path": [[p.longitude, p.latitude] for p in task.path],
            "progress": task.progress,
            "eta": task.eta
        }

    @app.get("/tasks/{task_id}/map", response_class=HTMLResponse)
    def task_map(task_id: str, service: DispatchService = Depends(get_service)):
        task = service.get_task(task_id)
        worker = service.store.get("worker", task.assigned_worker_id)
        generator = FoliumMapGenerator()
        route_map = generator.create_task_map(task, worker.location if worker else None)
        return HTMLResponse(content=generator.render_html(route_map))

    return app
