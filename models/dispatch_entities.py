"""Data models for reports, collection groups, tasks and workers."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any, Union


class ReportStatus(str, Enum):
    PENDING = "pending"
    AWAITING_APPROVAL = "awaiting_approval"
    ASSIGNED = "assigned"
    COLLECTED = "collected"


class GroupStatus(str, Enum):
    OPEN = "Open"
    SCHEDULED = "Scheduled"
    COLLECTED = "Collected"


class TaskStatus(str, Enum):
    COLLECTING = "Collecting"
    NOT_COLLECTING = "NotCollecting"


class WorkerAvailability(str, Enum):
    AVAILABLE = "available"
    COLLECTING = "collecting"


# Eta is whole minutes, or "arriving" / "N/A"
Eta = Union[int, str]


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "GeoPoint":
        return cls(float(data["latitude"]), float(data["longitude"]))


def _point(data: Optional[Dict[str, float]]) -> Optional[GeoPoint]:
    return GeoPoint.from_dict(data) if data else None


@dataclass
class Report:
    id: str
    reporter_id: str
    location: GeoPoint
    waste_type: str
    created_at: datetime
    status: ReportStatus = ReportStatus.PENDING
    group_id: Optional[str] = None
    image_url: Optional[str] = None
    comments: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reporter_id": self.reporter_id,
            "location": self.location.to_dict(),
            "waste_type": self.waste_type,
            "created_at": _iso(self.created_at),
            "status": self.status.value,
            "group_id": self.group_id,
            "image_url": self.image_url,
            "comments": self.comments,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Report":
        return cls(
            id=data["id"],
            reporter_id=data["reporter_id"],
            location=GeoPoint.from_dict(data["location"]),
            waste_type=data["waste_type"],
            created_at=_dt(data["created_at"]),
            status=ReportStatus(data["status"]),
            group_id=data.get("group_id"),
            image_url=data.get("image_url"),
            comments=data.get("comments"),
        )


@dataclass
class CollectionGroup:
    """Reports clustered around the location of the group's first report.

    The centroid is never recomputed; report_count always equals
    len(member_report_ids).
    """
    id: str
    centroid: GeoPoint
    created_at: datetime
    status: GroupStatus = GroupStatus.OPEN
    member_report_ids: List[str] = field(default_factory=list)
    report_count: int = 0
    scheduled_at: Optional[datetime] = None
    task_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "centroid": self.centroid.to_dict(),
            "created_at": _iso(self.created_at),
            "status": self.status.value,
            "member_report_ids": list(self.member_report_ids),
            "report_count": self.report_count,
            "scheduled_at": _iso(self.scheduled_at),
            "task_id": self.task_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CollectionGroup":
        return cls(
            id=data["id"],
            centroid=GeoPoint.from_dict(data["centroid"]),
            created_at=_dt(data["created_at"]),
            status=GroupStatus(data["status"]),
            member_report_ids=list(data.get("member_report_ids", [])),
            report_count=int(data.get("report_count", 0)),
            scheduled_at=_dt(data.get("scheduled_at")),
            task_id=data.get("task_id"),
        )


@dataclass
class Task:
    """A worker's collection run over one group.

    route[0] is the worker's position at assignment time; stop_ids runs
    parallel to route with the depot sentinel at index 0.
    """
    id: str
    group_id: str
    assigned_worker_id: str
    route: List[GeoPoint]
    stop_ids: List[str]
    start_time: datetime
    status: TaskStatus = TaskStatus.COLLECTING
    progress: float = 0.0
    eta: Eta = "N/A"
    path: List[GeoPoint] = field(default_factory=list)
    end_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "assigned_worker_id": self.assigned_worker_id,
            "route": [p.to_dict() for p in self.route],
            "stop_ids": list(self.stop_ids),
            "start_time": _iso(self.start_time),
            "status": self.status.value,
            "progress": self.progress,
            "eta": self.eta,
            "path": [p.to_dict() for p in self.path],
            "end_time": _iso(self.end_time),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            group_id=data["group_id"],
            assigned_worker_id=data["assigned_worker_id"],
            route=[GeoPoint.from_dict(p) for p in data.get("route", [])],
            stop_ids=list(data.get("stop_ids", [])),
            start_time=_dt(data["start_time"]),
            status=TaskStatus(data["status"]),
            progress=float(data.get("progress", 0.0)),
            eta=data.get("eta", "N/A"),
            path=[GeoPoint.from_dict(p) for p in data.get("path", [])],
            end_time=_dt(data.get("end_time")),
        )


@dataclass
class Worker:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    location: Optional[GeoPoint] = None
    availability: WorkerAvailability = WorkerAvailability.AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "location": self.location.to_dict() if self.location else None,
            "availability": self.availability.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Worker":
        return cls(
            id=data["id"],
            name=data.get("name"),
            email=data.get("email"),
            location=_point(data.get("location")),
            availability=WorkerAvailability(data.get("availability", "available")),
        )


ENTITY_TYPES = {
    "report": Report,
    "group": CollectionGroup,
    "task": Task,
    "worker": Worker,
}
