"""Worker assignment, route construction and task lifecycle for scheduled groups."""
import uuid
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import numpy as np
from loguru import logger

from core.dispatch_store import DispatchStore
from core.errors import ConflictError, ExternalServiceError, NotFoundError
from models.dispatch_entities import (
    CollectionGroup, GeoPoint, GroupStatus, Report, ReportStatus, Task, TaskStatus,
    Worker, WorkerAvailability,
)
from routing.geo_math import distance_km
from routing.osrm_trip_optimizer import OSRMTripOptimizer
from routing.route_builder import DEPOT_ID, RouteBuilder, Stop
from services.notification_service import NotificationService


class DispatchCoordinator:
    """Turns a Scheduled group into a Collecting task.

    Dispatch order: reserve the group (task_id None -> new id), claim the
    nearest available worker, build the route, write the task, mark the
    reports assigned. Each step is a compare-and-set, so a group is never
    dispatched twice and a worker is never claimed twice. Any failure after
    the reservation undoes the earlier steps in reverse.
    """

    def __init__(self, store: DispatchStore, route_builder: RouteBuilder = None,
                 optimizer: Optional[OSRMTripOptimizer] = None,
                 notifier: NotificationService = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.route_builder = route_builder or RouteBuilder()
        self.optimizer = optimizer
        self.notifier = notifier or NotificationService()
        self.clock = clock

    def rank_workers(self, centroid: GeoPoint, workers: List[Worker]) -> List[Worker]:
        """Available workers with a known location, nearest first."""
        candidates = [w for w in workers
                      if w.availability == WorkerAvailability.AVAILABLE and w.location is not None]
        if not candidates:
            return []
        distances = np.array([distance_km(centroid, w.location) for w in candidates])
        return [candidates[i] for i in np.argsort(distances, kind="stable")]

    def dispatch(self, group: CollectionGroup) -> Optional[Task]:
        """Assign the group to the nearest worker.

        Returns None (group stays Scheduled) when no worker is available.
        Raises ConflictError when the group is not Scheduled or already has a task.
        """
        task_id = f"task_{uuid.uuid4().hex[:12]}"
        reserved = self.store.compare_and_set(
            "group", group.id,
            expected={"status": GroupStatus.SCHEDULED, "task_id": None},
            changes={"task_id": task_id},
        )
        if reserved is None:
            raise ConflictError(f"Group {group.id} is not awaiting dispatch")

        try:
            worker = self._claim_nearest_worker(reserved.centroid)
        except Exception as e:
            logger.error(f"Worker claim for group {group.id} failed, releasing group: {e}")
            self._release_group(group.id, task_id)
            raise
        if worker is None:
            self._release_group(group.id, task_id)
            logger.warning(f"No available worker for group {group.id}; it stays Scheduled")
            return None

        assigned: List[str] = []
        try:
            reports = self._member_reports(reserved)
            task = self._build_task(task_id, reserved, worker, reports)
            self.store.put("task", task)
            for report in reports:
                self.store.update("report", report.id, self._mark_assigned)
                assigned.append(report.id)
        except Exception as e:
            logger.error(f"Dispatch of group {group.id} failed, rolling back: {e}")
            for report_id in assigned:
                self.store.compare_and_set("report", report_id,
                                           expected={"status": ReportStatus.ASSIGNED},
                                           changes={"status": ReportStatus.AWAITING_APPROVAL})
            self.store.delete("task", task_id)
            self._release_worker(worker.id)
            self._release_group(group.id, task_id)
            raise

        logger.success(f"🚛 Group {group.id} dispatched to worker {worker.id} as {task.id} "
                       f"({len(task.route) - 1} stops)")
        self._notify(reserved, worker, task, reports)
        return task

    def complete_collection(self, group_id: str, worker_id: str) -> Task:
        active = self.store.find("task", group_id=group_id, assigned_worker_id=worker_id,
                                 status=TaskStatus.COLLECTING)
        if not active:
            raise NotFoundError(f"No active collection task for group {group_id} and worker {worker_id}")

        task = active[0]
        finished = self.store.compare_and_set(
            "task", task.id,
            expected={"status": TaskStatus.COLLECTING},
            changes={"status": TaskStatus.NOT_COLLECTING, "end_time": self.clock(),
                     "progress": 100.0, "eta": "arriving"},
        )
        if finished is None:
            raise ConflictError(f"Task {task.id} was already completed")

        group = None
        try:
            group = self.store.compare_and_set(
                "group", group_id,
                expected={"status": GroupStatus.SCHEDULED},
                changes={"status": GroupStatus.COLLECTED},
            )
            if group is None:
                raise ConflictError(f"Group {group_id} is not Scheduled")
            self._release_worker(worker_id)
        except Exception:
            if group is not None:
                self.store.compare_and_set("group", group_id,
                                           expected={"status": GroupStatus.COLLECTED},
                                           changes={"status": GroupStatus.SCHEDULED})
            self.store.update("task", task.id, lambda t: self._reopen(t, task))
            raise

        for report_id in group.member_report_ids:
            self.store.compare_and_set("report", report_id,
                                       expected={"status": ReportStatus.ASSIGNED},
                                       changes={"status": ReportStatus.COLLECTED})

        logger.success(f"✅ Group {group_id} collected by worker {worker_id}")
        return finished

    def _claim_nearest_worker(self, centroid: GeoPoint) -> Optional[Worker]:
        """Claim the nearest worker; a lost claim falls through to the next nearest."""
        for candidate in self.rank_workers(centroid, self.store.find("worker")):
            claimed = self.store.compare_and_set(
                "worker", candidate.id,
                expected={"availability": WorkerAvailability.AVAILABLE},
                changes={"availability": WorkerAvailability.COLLECTING},
            )
            if claimed is None:
                continue
            if claimed.location is None:
                self._release_worker(claimed.id)
                continue
            return claimed
        return None

    def _member_reports(self, group: CollectionGroup) -> List[Report]:
        reports = []
        for report_id in group.member_report_ids:
            report = self.store.get("report", report_id)
            if report is None:
                raise NotFoundError(f"Report {report_id} of group {group.id} not found")
            reports.append(report)
        return reports

    def _build_task(self, task_id: str, group: CollectionGroup, worker: Worker,
                    reports: List[Report]) -> Task:
        route, stop_ids, path = self._plan_route(worker.location, reports)
        return Task(
            id=task_id,
            group_id=group.id,
            assigned_worker_id=worker.id,
            route=route,
            stop_ids=stop_ids,
            path=path,
            start_time=self.clock(),
        )

    def _plan_route(self, depot: GeoPoint,
                    reports: List[Report]) -> Tuple[List[GeoPoint], List[str], List[GeoPoint]]:
        if self.optimizer is not None:
            waypoints = [depot] + [report.location for report in reports]
            try:
                trip = self.optimizer.optimize(waypoints)
                stop_ids = [DEPOT_ID] + [reports[i - 1].id for i in trip.order[1:]]
                return [waypoints[i] for i in trip.order], stop_ids, trip.path
            except ExternalServiceError as e:
                logger.warning(f"Route optimizer unavailable, using nearest-neighbour route: {e}")

        stops = [Stop(report.id, report.location) for report in reports]
        route = self.route_builder.build_route(depot, stops)
        return [stop.location for stop in route], [stop.id for stop in route], []

    def _notify(self, group: CollectionGroup, worker: Worker, task: Task, reports: List[Report]):
        # Dispatch is already committed; delivery problems are only logged
        try:
            self.notifier.notify_reporters(group, reports)
            self.notifier.notify_worker(worker, group, task)
        except Exception as e:
            logger.error(f"Could not queue notifications for group {group.id}: {e}")

    @staticmethod
    def _mark_assigned(report: Report) -> Report:
        report.status = ReportStatus.ASSIGNED
        return report

    @staticmethod
    def _reopen(current: Task, original: Task) -> Task:
        current.status = original.status
        current.end_time = original.end_time
        current.progress = original.progress
        current.eta = original.eta
        return current

    def _release_worker(self, worker_id: str):
        self.store.compare_and_set(
            "worker", worker_id,
            expected={"availability": WorkerAvailability.COLLECTING},
            changes={"availability": WorkerAvailability.AVAILABLE},
        )

    def _release_group(self, group_id: str, task_id: str):
        self.store.compare_and_set("group", group_id, expected={"task_id": task_id},
                                   changes={"task_id": None})
