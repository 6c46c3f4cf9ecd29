"""Caller-facing operations of the waste collection dispatch engine."""
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from clustering.grouping_engine import GroupingEngine
from configurations.config import Config
from core.dispatch_store import DispatchStore, InMemoryDispatchStore
from core.errors import ConflictError, DispatchError, NotFoundError, ValidationError
from models.dispatch_entities import (
    CollectionGroup, GroupStatus, Report, ReportStatus, Task, TaskStatus, Worker,
)
from routing.geo_math import validate_point
from routing.osrm_trip_optimizer import OSRMTripOptimizer
from routing.progress_tracker import ProgressTracker
from routing.route_builder import RouteBuilder, RouteStop, Stop
from services.dispatch_coordinator import DispatchCoordinator
from services.notification_service import LogSender, NotificationService, SMTPSender, WebhookSender
from services.scheduler_service import SchedulerService

BIN_FILL_LEVELS = (80, 100)


class DispatchService:
    def __init__(self, store: DispatchStore, grouping: GroupingEngine = None,
                 coordinator: DispatchCoordinator = None, tracker: ProgressTracker = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock
        self.grouping = grouping or GroupingEngine(store, clock=clock)
        self.coordinator = coordinator or DispatchCoordinator(store, clock=clock)
        self.tracker = tracker or ProgressTracker()
        self.route_builder = self.coordinator.route_builder
        self.scheduler = SchedulerService(self.run_maturity_sweep)

    # Reports

    def submit_report(self, reporter_id: str, latitude: Any, longitude: Any,
                      waste_type: str = "unknown", image_url: str = None,
                      comments: str = None) -> Report:
        if not reporter_id or not str(reporter_id).strip():
            raise ValidationError("Reporter id is required")
        location = validate_point(latitude, longitude)

        report = Report(
            id=f"report_{uuid.uuid4().hex[:12]}",
            reporter_id=str(reporter_id),
            location=location,
            waste_type=waste_type or "unknown",
            created_at=self.clock(),
            image_url=image_url,
            comments=comments,
        )
        self.store.put("report", report)

        try:
            group_id = self.grouping.submit_report(report)
        except Exception:
            self.store.delete("report", report.id)
            raise

        def attach(current: Report) -> Report:
            current.group_id = group_id
            if current.status == ReportStatus.PENDING:
                current.status = ReportStatus.AWAITING_APPROVAL
            return current

        report = self.store.update("report", report.id, attach)
        logger.info(f"Report {report.id} from {reporter_id} submitted to group {group_id}")
        return report

    def submit_bin_request(self, reporter_id: str, latitude: Any, longitude: Any,
                           fill_level: Any) -> Report:
        try:
            level = int(fill_level)
        except (TypeError, ValueError):
            raise ValidationError("Fill level must be 80 or 100")
        if level not in BIN_FILL_LEVELS:
            raise ValidationError("Fill level must be 80 or 100")

        return self.submit_report(reporter_id, latitude, longitude, waste_type="home",
                                  comments=f"Bin fill level: {level}%")

    def pending_route(self, latitude: Any, longitude: Any) -> List[RouteStop]:
        """Nearest-neighbour route from a depot over every report not yet dispatched."""
        depot = validate_point(latitude, longitude)
        waiting = (ReportStatus.PENDING, ReportStatus.AWAITING_APPROVAL)
        reports = sorted((r for r in self.store.find("report") if r.status in waiting),
                         key=lambda r: r.created_at)
        return self.route_builder.build_route(depot, [Stop(r.id, r.location) for r in reports])

    def fetch_progress(self, user_id: str) -> List[Dict[str, Any]]:
        reports = sorted(self.store.find("report", reporter_id=str(user_id)), key=lambda r: r.created_at)
        results = []
        for report in reports:
            entry = {
                "report_id": report.id,
                "group_id": report.group_id,
                "status": report.status.value,
                "progress": 100.0 if report.status == ReportStatus.COLLECTED else 0.0,
                "eta": "N/A",
                "worker_location": None,
            }
            task = self._task_for_group(report.group_id)
            if task is not None:
                entry["task_id"] = task.id
                entry["progress"] = task.progress
                entry["eta"] = task.eta
                worker = self.store.get("worker", task.assigned_worker_id)
                if worker is not None and worker.location is not None:
                    entry["worker_location"] = worker.location.to_dict()
            results.append(entry)
        return results

    def _task_for_group(self, group_id: Optional[str]) -> Optional[Task]:
        if not group_id:
            return None
        group = self.store.get("group", group_id)
        if group is None or not group.task_id:
            return None
        # None while a dispatch is still writing the task
        return self.store.get("task", group.task_id)

    # Workers

    def register_worker(self, worker_id: str, name: str = None, email: str = None,
                        latitude: Any = None, longitude: Any = None) -> Worker:
        if not worker_id or not str(worker_id).strip():
            raise ValidationError("Worker id is required")
        location = None
        if latitude is not None or longitude is not None:
            location = validate_point(latitude, longitude)

        existing = self.store.get("worker", worker_id)
        if existing is None:
            worker = Worker(id=worker_id, name=name, email=email, location=location)
            self.store.put("worker", worker)
            logger.info(f"Registered worker {worker_id}")
            return worker

        def merge(current: Worker) -> Worker:
            current.name = name if name is not None else current.name
            current.email = email if email is not None else current.email
            current.location = location if location is not None else current.location
            return current

        return self.store.update("worker", worker_id, merge)

    def update_worker_location(self, worker_id: str, latitude: Any, longitude: Any) -> List[Dict[str, Any]]:
        """Record a location ping and recompute progress for the worker's active tasks."""
        location = validate_point(latitude, longitude)

        def move(worker: Worker) -> Worker:
            worker.location = location
            return worker

        self.store.update("worker", worker_id, move)

        updates = []
        for task in self.store.find("task", assigned_worker_id=worker_id, status=TaskStatus.COLLECTING):
            def track(current: Task) -> Optional[Task]:
                if current.status != TaskStatus.COLLECTING:
                    return None
                estimate = self.tracker.compute_progress(current.route, location, current.progress)
                current.progress = estimate.progress_percent
                current.eta = estimate.eta
                return current

            tracked = self.store.update("task", task.id, track)
            if tracked is not None:
                updates.append({
                    "task_id": tracked.id,
                    "group_id": tracked.group_id,
                    "progress": tracked.progress,
                    "eta": tracked.eta,
                })
        return updates

    def worker_tasks(self, worker_id: str, state: str = "active") -> List[Task]:
        statuses = {"active": TaskStatus.COLLECTING, "completed": TaskStatus.NOT_COLLECTING}
        if state not in statuses:
            raise ValidationError(f"Unknown task state: {state}")
        tasks = self.store.find("task", assigned_worker_id=worker_id, status=statuses[state])
        return sorted(tasks, key=lambda t: t.start_time)

    def get_task(self, task_id: str) -> Task:
        task = self.store.get("task", task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def complete_collection(self, group_id: str, worker_id: str) -> Task:
        return self.coordinator.complete_collection(group_id, worker_id)

    # Groups

    def list_groups(self, status: str = None) -> List[CollectionGroup]:
        if status is None:
            groups = self.store.find("group")
        else:
            try:
                groups = self.store.find("group", status=GroupStatus(status))
            except ValueError:
                raise ValidationError(f"Unknown group status: {status}")
        return sorted(groups, key=lambda g: g.created_at)

    def dispatch_group(self, group_id: str) -> Optional[Task]:
        """Operator retry for a Scheduled group that is still waiting for a worker."""
        group = self.store.get("group", group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        return self.coordinator.dispatch(group)

    def run_maturity_sweep(self) -> List[Task]:
        tasks = []
        for group in self.grouping.sweep():
            try:
                task = self.coordinator.dispatch(group)
            except ConflictError as e:
                logger.info(f"Skipping group {group.id}: {e}")
                continue
            except DispatchError as e:
                logger.error(f"Dispatch of group {group.id} failed: {e}")
                continue
            if task is not None:
                tasks.append(task)
        logger.info(f"Maturity sweep dispatched {len(tasks)} task(s)")
        return tasks

    def shutdown(self):
        if self.scheduler.is_running:
            self.scheduler.stop_scheduler()
        self.coordinator.notifier.shutdown()


def build_store(database_url: str = None) -> DispatchStore:
    database_url = database_url if database_url is not None else Config.DATABASE_URL
    if not database_url:
        logger.warning("DATABASE_URL not set, using in-memory store")
        return InMemoryDispatchStore()

    from storage.sql_store import SQLDispatchStore
    return SQLDispatchStore(database_url)


def build_sender():
    if Config.SMTP_HOST:
        return SMTPSender()
    if Config.WEBHOOK_URL:
        return WebhookSender()
    return LogSender()


def build_dispatch_service(store: DispatchStore = None) -> DispatchService:
    """Wire the engine from Config."""
    store = store or build_store()
    optimizer = OSRMTripOptimizer() if Config.OSRM_ENABLED else None
    notifier = NotificationService(
        sender=build_sender(),
        executor=ThreadPoolExecutor(max_workers=Config.NOTIFICATION_WORKERS, thread_name_prefix="notify"),
    )
    coordinator = DispatchCoordinator(store, optimizer=optimizer, notifier=notifier)
    return DispatchService(store, coordinator=coordinator)
