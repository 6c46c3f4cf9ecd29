"""Shared fixtures for dispatch engine tests."""
from datetime import datetime, timedelta

import pytest

from core.dispatch_store import InMemoryDispatchStore
from models.dispatch_entities import GeoPoint, Worker
from storage.sql_store import SQLDispatchStore


class FakeClock:
    def __init__(self, start: datetime = datetime(2024, 6, 1, 8, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingSender:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, recipient, subject, body):
        if self.fail:
            raise ConnectionError("mail server down")
        self.sent.append((recipient, subject, body))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryDispatchStore()
    return SQLDispatchStore("sqlite://")


def add_worker(store, worker_id, lat, lng, **kwargs):
    worker = Worker(id=worker_id, location=GeoPoint(lat, lng), **kwargs)
    store.put("worker", worker)
    return worker
