"""Entity store contract and the in-memory implementation."""
import contextlib
import copy
import dataclasses
import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from core.errors import NotFoundError, ValidationError
from models.dispatch_entities import ENTITY_TYPES

logger = logging.getLogger(__name__)

UpdateFn = Callable[[Any], Optional[Any]]


class DispatchStore:
    """Get/put/update by entity kind and id.

    ``update`` is the atomic primitive: the callback sees the current entity
    and returns the replacement, or ``None`` to leave it untouched. Concurrent
    updates to the same entity are serialized; different entities never
    block each other.
    """

    def get(self, kind: str, entity_id: str) -> Optional[Any]:
        raise NotImplementedError

    def put(self, kind: str, entity: Any) -> None:
        raise NotImplementedError

    def delete(self, kind: str, entity_id: str) -> None:
        raise NotImplementedError

    def find(self, kind: str, **filters: Any) -> List[Any]:
        raise NotImplementedError

    def update(self, kind: str, entity_id: str, fn: UpdateFn) -> Optional[Any]:
        raise NotImplementedError

    def compare_and_set(self, kind: str, entity_id: str,
                        expected: Dict[str, Any], changes: Dict[str, Any]) -> Optional[Any]:
        """Apply ``changes`` only if every field in ``expected`` still matches."""
        def apply(entity):
            for name, value in expected.items():
                if getattr(entity, name) != value:
                    return None
            return dataclasses.replace(entity, **changes)

        return self.update(kind, entity_id, apply)

    @staticmethod
    def _check_kind(kind: str) -> None:
        if kind not in ENTITY_TYPES:
            raise ValidationError(f"Unknown entity kind: {kind}")

    @staticmethod
    def _matches(entity: Any, filters: Dict[str, Any]) -> bool:
        return all(getattr(entity, name) == value for name, value in filters.items())


class InMemoryDispatchStore(DispatchStore):
    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {kind: {} for kind in ENTITY_TYPES}
        self._lock = threading.Lock()
        # (kind, id) -> [lock, holders and waiters]; dropped when the count reaches zero
        self._entity_locks: Dict[Tuple[str, str], List[Any]] = {}

    @contextlib.contextmanager
    def _entity_lock(self, kind: str, entity_id: str) -> Iterator[None]:
        key = (kind, entity_id)
        with self._lock:
            entry = self._entity_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entity_locks[key]

    def get(self, kind: str, entity_id: str) -> Optional[Any]:
        self._check_kind(kind)
        with self._lock:
            return copy.deepcopy(self._data[kind].get(entity_id))

    def put(self, kind: str, entity: Any) -> None:
        self._check_kind(kind)
        with self._entity_lock(kind, entity.id):
            with self._lock:
                self._data[kind][entity.id] = copy.deepcopy(entity)
        logger.debug(f"Stored {kind} {entity.id}")

    def delete(self, kind: str, entity_id: str) -> None:
        self._check_kind(kind)
        with self._entity_lock(kind, entity_id):
            with self._lock:
                self._data[kind].pop(entity_id, None)
        logger.debug(f"Deleted {kind} {entity_id}")

    def find(self, kind: str, **filters: Any) -> List[Any]:
        self._check_kind(kind)
        with self._lock:
            entities = list(self._data[kind].values())
        return [copy.deepcopy(e) for e in entities if self._matches(e, filters)]

    def update(self, kind: str, entity_id: str, fn: UpdateFn) -> Optional[Any]:
        self._check_kind(kind)
        with self._entity_lock(kind, entity_id):
            with self._lock:
                current = self._data[kind].get(entity_id)
            if current is None:
                raise NotFoundError(f"{kind} {entity_id} not found")

            updated = fn(copy.deepcopy(current))
            if updated is None:
                return None

            with self._lock:
                self._data[kind][entity_id] = copy.deepcopy(updated)
            return updated
