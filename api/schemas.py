"""Request bodies for the dispatch API."""
from typing import Optional

from pydantic import BaseModel


class ReportRequest(BaseModel):
    reporter_id: str
    latitude: float
    longitude: float
    waste_type: str = "unknown"
    image_url: Optional[str] = None
    comments: Optional[str] = None


class BinFillRequest(BaseModel):
    reporter_id: str
    latitude: float
    longitude: float
    fill_level: int


class WorkerRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class LocationPing(BaseModel):
    latitude: float
    longitude: float


class CompletionRequest(BaseModel):
    group_id: str
    worker_id: str
