"""Contract tests shared by the in-memory and SQL stores."""
import threading
from datetime import datetime

import pytest

from core.dispatch_store import InMemoryDispatchStore
from core.errors import NotFoundError, ValidationError
from models.dispatch_entities import (
    CollectionGroup, GeoPoint, GroupStatus, Report, Task, Worker, WorkerAvailability,
)
from storage.sql_store import SQLDispatchStore, create_store_engine, process_lock

CREATED = datetime(2024, 6, 1, 8, 0)


def make_group(group_id="g1", status=GroupStatus.OPEN):
    return CollectionGroup(id=group_id, centroid=GeoPoint(12.97, 77.59), created_at=CREATED, status=status,
                           member_report_ids=["r1"], report_count=1)


def test_put_get_round_trip(store):
    report = Report(id="r1", reporter_id="u1", location=GeoPoint(1.5, 2.5), waste_type="glass",
                    created_at=CREATED, image_url="http://img/1.png")
    store.put("report", report)

    assert store.get("report", "r1") == report
    assert store.get("report", "missing") is None


def test_task_round_trip_keeps_eta_and_path(store):
    task = Task(id="t1", group_id="g1", assigned_worker_id="w1",
                route=[GeoPoint(0, 0), GeoPoint(0, 1)], stop_ids=["depot", "r1"],
                start_time=CREATED, progress=12.5, eta=34, path=[GeoPoint(0, 0.5)])
    store.put("task", task)

    assert store.get("task", "t1") == task
    assert store.get("task", "t1").eta == 34


def test_put_overwrites(store):
    store.put("group", make_group())
    store.put("group", make_group(status=GroupStatus.SCHEDULED))
    assert store.get("group", "g1").status == GroupStatus.SCHEDULED
    assert len(store.find("group")) == 1


def test_returned_entities_are_copies(store):
    store.put("group", make_group())
    group = store.get("group", "g1")
    group.member_report_ids.append("r2")
    assert store.get("group", "g1").member_report_ids == ["r1"]


def test_find_filters_on_fields(store):
    store.put("group", make_group("g1"))
    store.put("group", make_group("g2", status=GroupStatus.SCHEDULED))

    assert [g.id for g in store.find("group", status=GroupStatus.SCHEDULED)] == ["g2"]
    assert store.find("group", status=GroupStatus.COLLECTED) == []


def test_delete(store):
    store.put("worker", Worker(id="w1"))
    store.delete("worker", "w1")
    store.delete("worker", "w1")
    assert store.get("worker", "w1") is None


def test_unknown_kind_is_rejected(store):
    with pytest.raises(ValidationError):
        store.get("vehicle", "v1")


def test_update_missing_entity(store):
    with pytest.raises(NotFoundError):
        store.update("group", "nope", lambda g: g)


def test_update_returning_none_leaves_entity(store):
    store.put("group", make_group())
    assert store.update("group", "g1", lambda g: None) is None
    assert store.get("group", "g1") == make_group()


def test_compare_and_set(store):
    store.put("worker", Worker(id="w1", location=GeoPoint(0, 0)))

    claimed = store.compare_and_set("worker", "w1", {"availability": WorkerAvailability.AVAILABLE},
                                    {"availability": WorkerAvailability.COLLECTING})
    assert claimed.availability == WorkerAvailability.COLLECTING

    again = store.compare_and_set("worker", "w1", {"availability": WorkerAvailability.AVAILABLE},
                                  {"availability": WorkerAvailability.COLLECTING})
    assert again is None


def test_concurrent_claims_have_one_winner(store):
    store.put("worker", Worker(id="w1", location=GeoPoint(0, 0)))
    winners = []
    barrier = threading.Barrier(8)

    def claim():
        barrier.wait()
        result = store.compare_and_set("worker", "w1", {"availability": WorkerAvailability.AVAILABLE},
                                       {"availability": WorkerAvailability.COLLECTING})
        if result is not None:
            winners.append(result)

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1


def test_concurrent_updates_are_serialized(store):
    store.put("group", make_group())

    def bump(group):
        group.report_count += 1
        return group

    def worker():
        for _ in range(25):
            store.update("group", "g1", bump)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get("group", "g1").report_count == 101


def test_sql_store_persists_across_instances(tmp_path):
    url = f"sqlite:///{tmp_path / 'dispatch.db'}"
    SQLDispatchStore(url).put("group", make_group())

    assert SQLDispatchStore(engine=create_store_engine(url)).get("group", "g1") == make_group()


def test_postgres_writes_do_not_share_a_process_lock():
    lock = process_lock("postgresql")
    barrier = threading.Barrier(2, timeout=5)
    entered = []

    def write():
        with lock:
            # Both writers must be inside at once for the barrier to release
            barrier.wait()
            entered.append(1)

    threads = [threading.Thread(target=write) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(entered) == 2


def test_sqlite_store_serializes_reads_and_writes():
    store = SQLDispatchStore("sqlite://")
    assert store._write_lock is store._read_lock
    assert isinstance(process_lock("sqlite"), type(threading.RLock()))


def test_memory_store_drops_entity_locks_after_use():
    store = InMemoryDispatchStore()
    store.put("task", Task(id="t1", group_id="g1", assigned_worker_id="w1", route=[], stop_ids=[],
                           start_time=CREATED))
    store.update("task", "t1", lambda t: t)
    store.delete("task", "t1")
    with pytest.raises(NotFoundError):
        store.update("task", "t1", lambda t: t)

    assert store._entity_locks == {}


def test_memory_store_keeps_shared_lock_while_contended():
    store = InMemoryDispatchStore()
    store.put("group", make_group())
    inside = threading.Event()
    release = threading.Event()

    def slow_bump(group):
        inside.set()
        release.wait(timeout=5)
        group.report_count += 1
        return group

    holder = threading.Thread(target=store.update, args=("group", "g1", slow_bump))
    holder.start()
    assert inside.wait(timeout=5)

    # Deleting while another writer holds the lock must wait for it and reuse the same lock
    deleter = threading.Thread(target=store.delete, args=("group", "g1"))
    deleter.start()
    deleter.join(timeout=0.2)
    assert deleter.is_alive()
    assert len(store._entity_locks) == 1

    release.set()
    holder.join()
    deleter.join()

    assert store.get("group", "g1") is None
    assert store._entity_locks == {}
