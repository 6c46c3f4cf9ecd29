"""SQL storage for dispatch entities (PostgreSQL in production, SQLite in tests)."""
import contextlib
import logging
import threading
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, MetaData, String, Table, create_engine, delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from core.dispatch_store import DispatchStore, UpdateFn
from core.errors import NotFoundError
from models.dispatch_entities import ENTITY_TYPES
from configurations.config import Config

logger = logging.getLogger(__name__)

metadata = MetaData()

TABLES: Dict[str, Table] = {
    kind: Table(
        f"dispatch_{kind}s",
        metadata,
        Column("id", String(64), primary_key=True),
        Column("payload", JSON, nullable=False),
    )
    for kind in ENTITY_TYPES
}


def create_store_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url)


def process_lock(dialect_name: str):
    """In-process lock for a dialect.

    SQLite ignores FOR UPDATE and in-memory SQLite shares one connection, so
    every statement goes through one RLock. Other databases rely on row locks
    and writes to different rows never wait on each other.
    """
    if dialect_name == "sqlite":
        return threading.RLock()
    return contextlib.nullcontext()


class SQLDispatchStore(DispatchStore):
    def __init__(self, database_url: str = None, engine: Engine = None):
        self.engine = engine or create_store_engine(database_url or Config.DATABASE_URL)
        self._write_lock = self._read_lock = process_lock(self.engine.dialect.name)
        self._create_tables()

    def _create_tables(self):
        """Create necessary tables if they don't exist."""
        metadata.create_all(self.engine)
        logger.info(f"Dispatch tables ready on {self.engine.url.get_backend_name()}")

    def _load(self, kind: str, payload: Dict[str, Any]) -> Any:
        return ENTITY_TYPES[kind].from_dict(payload)

    def get(self, kind: str, entity_id: str) -> Optional[Any]:
        self._check_kind(kind)
        table = TABLES[kind]
        with self._read_lock, self.engine.connect() as conn:
            row = conn.execute(select(table.c.payload).where(table.c.id == entity_id)).first()
        return self._load(kind, row.payload) if row else None

    def put(self, kind: str, entity: Any) -> None:
        self._check_kind(kind)
        table = TABLES[kind]
        payload = entity.to_dict()
        with self._write_lock, self.engine.begin() as conn:
            exists = conn.execute(
                select(table.c.id).where(table.c.id == entity.id).with_for_update()
            ).first()
            if exists:
                conn.execute(update(table).where(table.c.id == entity.id).values(payload=payload))
            else:
                conn.execute(insert(table).values(id=entity.id, payload=payload))
        logger.debug(f"Stored {kind} {entity.id}")

    def delete(self, kind: str, entity_id: str) -> None:
        self._check_kind(kind)
        table = TABLES[kind]
        with self._write_lock, self.engine.begin() as conn:
            conn.execute(delete(table).where(table.c.id == entity_id))
        logger.debug(f"Deleted {kind} {entity_id}")

    def find(self, kind: str, **filters: Any) -> List[Any]:
        self._check_kind(kind)
        table = TABLES[kind]
        with self._read_lock, self.engine.connect() as conn:
            rows = conn.execute(select(table.c.payload)).all()
        entities = [self._load(kind, row.payload) for row in rows]
        # TODO: push status filters down into indexed columns once groups grow past a few thousand
        return [e for e in entities if self._matches(e, filters)]

    def update(self, kind: str, entity_id: str, fn: UpdateFn) -> Optional[Any]:
        self._check_kind(kind)
        table = TABLES[kind]
        with self._write_lock, self.engine.begin() as conn:
            row = conn.execute(
                select(table.c.payload).where(table.c.id == entity_id).with_for_update()
            ).first()
            if row is None:
                raise NotFoundError(f"{kind} {entity_id} not found")

            updated = fn(self._load(kind, row.payload))
            if updated is None:
                return None

            conn.execute(update(table).where(table.c.id == entity_id).values(payload=updated.to_dict()))
            return updated
