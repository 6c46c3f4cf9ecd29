"""Cluster incoming reports into collection groups and decide group maturity."""
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from loguru import logger

from configurations.config import Config
from core.dispatch_store import DispatchStore
from models.dispatch_entities import CollectionGroup, GroupStatus, Report
from routing.geo_math import distance_km


class GroupingEngine:
    """Owns the Open -> Scheduled transition of collection groups.

    A report joins the first Open group (oldest first) whose centroid lies
    within the proximity radius; there is no search for the nearest group.
    A group matures when it reaches the report threshold or the time limit,
    whichever comes first.
    """

    def __init__(self, store: DispatchStore,
                 proximity_radius_km: float = Config.PROXIMITY_RADIUS_KM,
                 report_threshold: int = Config.REPORT_THRESHOLD,
                 time_limit: timedelta = timedelta(days=Config.TIME_LIMIT_DAYS),
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.proximity_radius_km = proximity_radius_km
        self.report_threshold = report_threshold
        self.time_limit = time_limit
        self.clock = clock

    def open_groups(self) -> List[CollectionGroup]:
        groups = self.store.find("group", status=GroupStatus.OPEN)
        return sorted(groups, key=lambda g: g.created_at)

    def submit_report(self, report: Report) -> str:
        """Place a report in a group and return the group id."""
        for group in self.open_groups():
            if distance_km(group.centroid, report.location) > self.proximity_radius_km:
                continue

            joined = self.store.update("group", group.id, lambda g: self._append(g, report.id))
            if joined is not None:
                logger.info(f"Report {report.id} joined group {group.id} ({joined.report_count} reports)")
                return group.id
            # Group was scheduled between the scan and the append; keep looking

        group = CollectionGroup(
            id=f"group_{uuid.uuid4().hex[:12]}",
            centroid=report.location,
            created_at=self.clock(),
            member_report_ids=[report.id],
            report_count=1,
        )
        self.store.put("group", group)
        logger.info(f"Report {report.id} opened new group {group.id}")
        return group.id

    @staticmethod
    def _append(group: CollectionGroup, report_id: str) -> Optional[CollectionGroup]:
        if group.status != GroupStatus.OPEN:
            return None
        if report_id not in group.member_report_ids:
            group.member_report_ids.append(report_id)
        group.report_count = len(group.member_report_ids)
        return group

    def check_maturity(self, group: CollectionGroup, now: datetime = None) -> bool:
        now = now or self.clock()
        return (group.report_count >= self.report_threshold
                or now - group.created_at >= self.time_limit)

    def schedule(self, group_id: str) -> Optional[CollectionGroup]:
        """Atomically flip an Open group to Scheduled. Returns None if another sweep won."""
        scheduled = self.store.compare_and_set(
            "group", group_id,
            expected={"status": GroupStatus.OPEN},
            changes={"status": GroupStatus.SCHEDULED, "scheduled_at": self.clock()},
        )
        if scheduled is None:
            logger.info(f"Group {group_id} already left Open, skipping")
        return scheduled

    def sweep(self) -> List[CollectionGroup]:
        """Schedule every mature Open group and return the ones this call scheduled."""
        now = self.clock()
        scheduled = []
        for group in self.open_groups():
            if not self.check_maturity(group, now):
                continue
            result = self.schedule(group.id)
            if result is not None:
                logger.success(f"Group {group.id} scheduled with {result.report_count} reports")
                scheduled.append(result)
        return scheduled
