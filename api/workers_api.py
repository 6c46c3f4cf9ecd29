"""Worker API endpoints: registration, location pings and task lists."""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.schemas import LocationPing, WorkerRequest
from services.dispatch_service import DispatchService

router = APIRouter(prefix="/workers", tags=["workers"])


def get_service(request: Request) -> DispatchService:
    return request.app.state.dispatch_service


@router.put("/{worker_id}")
def register_worker(worker_id: str, body: WorkerRequest, service: DispatchService = Depends(get_service)):
    """Register a worker or update name, e-mail and location."""
    worker = service.register_worker(worker_id, name=body.name, email=body.email,
                                     latitude=body.latitude, longitude=body.longitude)
    return JSONResponse({"status": "success", "data": worker.to_dict()})


@router.post("/{worker_id}/location")
def update_location(worker_id: str, body: LocationPing, service: DispatchService = Depends(get_service)):
    """Record a location ping and return refreshed progress for active tasks."""
    updates = service.update_worker_location(worker_id, body.latitude, body.longitude)
    return JSONResponse({
        "status": "success",
        "data": updates,
        "count": len(updates)
    })


@router.get("/{worker_id}/tasks")
def list_tasks(worker_id: str, state: str = "active", service: DispatchService = Depends(get_service)):
    tasks = service.worker_tasks(worker_id, state)
    return JSONResponse({
        "status": "success",
        "data": [task.to_dict() for task in tasks],
        "count": len(tasks)
    })
