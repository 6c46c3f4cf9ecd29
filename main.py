"""Entry point for the waste collection dispatch engine."""
import argparse
import sys

from loguru import logger

from configurations.config import Config
from services.dispatch_service import build_dispatch_service, build_store
from visualization.export_to_geojson import DispatchExporter


def configure_logging(level: str = Config.LOG_LEVEL):
    logger.remove()
    logger.add(sys.stderr, level=level)


def export_snapshot(output_dir: str) -> dict:
    """Write groups, task routes and a task summary from the configured store."""
    store = build_store()
    exporter = DispatchExporter(output_dir)
    tasks = store.find("task")

    groups_path = exporter.export_geojson(exporter.prepare_groups_geojson(store.find("group")), "groups.geojson")
    routes_path = exporter.export_geojson(exporter.prepare_routes_geojson(tasks), "routes.geojson")
    exporter.prepare_summary_csv(tasks, store.find("worker"))
    summary_path = exporter.export_summary_csv()

    return {'groups_geojson': groups_path, 'routes_geojson': routes_path, 'summary_csv': summary_path}


def main():
    """Command line interface for the dispatch engine."""
    parser = argparse.ArgumentParser(description="Waste Collection Dispatch Engine")
    parser.add_argument("--api", action="store_true", help="Start FastAPI server")
    parser.add_argument("--port", type=int, default=Config.API_PORT, help=f"Port for FastAPI server (default: {Config.API_PORT})")
    parser.add_argument("--host", default=Config.API_HOST, help="Host for FastAPI server")
    parser.add_argument("--sweep", action="store_true", help="Run one maturity sweep against DATABASE_URL")
    parser.add_argument("--export", metavar="DIR", help="Export groups, routes and task summary to DIR")

    args = parser.parse_args()
    configure_logging()

    if args.api:
        import uvicorn
        from api.dispatch_routes import create_app
        logger.info(f"🚀 Starting FastAPI server on port {args.port}...")
        try:
            uvicorn.run(create_app(), host=args.host, port=args.port)
        except OSError as e:
            if "Address already in use" in str(e) or "10048" in str(e):
                logger.error(f"❌ Port {args.port} is already in use. Try a different port with --port <number>")
            else:
                logger.error(f"❌ Server startup failed: {e}")
            sys.exit(1)
    elif args.sweep:
        if not Config.DATABASE_URL:
            parser.error("--sweep needs DATABASE_URL; the in-memory store has no groups")
        service = build_dispatch_service()
        try:
            tasks = service.run_maturity_sweep()
        finally:
            service.shutdown()
        print(f"Dispatched {len(tasks)} task(s)")
    elif args.export:
        if not Config.DATABASE_URL:
            parser.error("--export needs DATABASE_URL; the in-memory store is empty")
        results = export_snapshot(args.export)
        for name, path in results.items():
            print(f"{name}: {path}")
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
