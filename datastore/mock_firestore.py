from __future__ import annotations
import json
import operator
import os
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Generic, Iterable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from app.schemas import BinAssignment, EmptyingEvent, Notification, TrashLevelSample, User
from settings import get_settings


DocumentT = TypeVar("DocumentT", bound=BaseModel)

Filter = Tuple[str, str, Any]

TRASH_LEVELS = "trashLevels"
NOTIFICATIONS = "notifications"
TRASH_EMPTYING = "trashEmptying"
BIN_ASSIGNMENTS = "binAssignments"
USERS = "users"

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "array_contains": lambda field, value: value in (field or ()),
}


class StoreUnavailableError(RuntimeError):
    """Raised when a collection cannot accept or serve a request."""


class MockCollection(Generic[DocumentT]):
    """Thread-safe document collection keyed by each document's ``id``."""

    def __init__(
        self,
        name: str,
        model: Type[DocumentT],
        persistence_path: Optional[Path] = None,
    ) -> None:
        self.name = name
        self.model = model
        self._items: Dict[str, DocumentT] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def add(self, item: DocumentT) -> None:
        """Append a new document; existing ids are never overwritten."""
        key = self._key(item)
        with self._lock:
            if key in self._items:
                raise ValueError(f"Document {key!r} already exists in {self.name!r}.")
            self._items[key] = item.model_copy(deep=True)
            try:
                self._persist()
            except StoreUnavailableError:
                del self._items[key]
                raise

    def put_item(self, item: DocumentT) -> None:
        key = self._key(item)
        with self._lock:
            previous = self._items.get(key)
            self._items[key] = item.model_copy(deep=True)
            try:
                self._persist()
            except StoreUnavailableError:
                self._restore(key, previous)
                raise

    def update_item(self, key: str, **changes: Any) -> DocumentT:
        """Replace whole fields of a stored document, last writer wins."""
        with self._lock:
            current = self._items.get(key)
            if current is None:
                raise KeyError(f"Document {key!r} not found in {self.name!r}.")
            payload = current.model_dump()
            payload.update(changes)
            updated = self.model.model_validate(payload)
            self._items[key] = updated
            try:
                self._persist()
            except StoreUnavailableError:
                self._items[key] = current
                raise
            return updated.model_copy(deep=True)

    def get_item(self, key: str) -> Optional[DocumentT]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def scan(self) -> list[DocumentT]:
        """Return deep copies of all stored documents."""

        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def query(self, filters: Iterable[Filter] = ()) -> list[DocumentT]:
        """Return documents whose fields satisfy every ``(field, op, value)``."""
        checks = []
        for field, op, value in filters:
            try:
                checks.append((field, _OPERATORS[op], value))
            except KeyError as exc:
                raise ValueError(f"Unsupported query operator {op!r}.") from exc

        with self._lock:
            return [
                item.model_copy(deep=True)
                for item in self._items.values()
                if all(compare(getattr(item, field), value) for field, compare, value in checks)
            ]

    def _restore(self, key: str, previous: Optional[DocumentT]) -> None:
        if previous is None:
            self._items.pop(key, None)
        else:
            self._items[key] = previous

    @staticmethod
    def _key(item: BaseModel) -> str:
        key = getattr(item, "id", None)
        if not key:
            raise ValueError("Documents require a non-empty 'id'.")
        return key

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            key: item.model_dump(mode="json", by_alias=True) for key, item in self._items.items()
        }
        temp_path = self.persistence_path.with_suffix(".tmp")
        try:
            temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
            os.replace(temp_path, self.persistence_path)
        except OSError as exc:
            raise StoreUnavailableError(f"Could not persist collection {self.name!r}.") from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for key, payload in data.items():
            self._items[key] = self.model.model_validate(payload)


class MockDocumentStore:
    """The five collections the pipeline reads and writes."""

    def __init__(self, root_path: Optional[Path] = None) -> None:
        self.root_path = root_path
        self.trash_levels: MockCollection[TrashLevelSample] = self._collection(
            TRASH_LEVELS, TrashLevelSample
        )
        self.notifications: MockCollection[Notification] = self._collection(
            NOTIFICATIONS, Notification
        )
        self.emptying_events: MockCollection[EmptyingEvent] = self._collection(
            TRASH_EMPTYING, EmptyingEvent
        )
        self.bin_assignments: MockCollection[BinAssignment] = self._collection(
            BIN_ASSIGNMENTS, BinAssignment
        )
        self.users: MockCollection[User] = self._collection(USERS, User)

    def _collection(self, name: str, model: Type[DocumentT]) -> MockCollection[DocumentT]:
        path = self.root_path / f"{name}.json" if self.root_path else None
        return MockCollection(name=name, model=model, persistence_path=path)


def between(field: str, start: Optional[datetime], end: Optional[datetime] = None) -> list[Filter]:
    """Build an inclusive date-range filter; open ends are omitted."""
    filters: list[Filter] = []
    if start is not None:
        filters.append((field, ">=", start))
    if end is not None:
        filters.append((field, "<=", end))
    return filters


@lru_cache
def build_default_store(root_path: Optional[str] = None) -> MockDocumentStore:
    settings = get_settings()
    store_root = settings.store_root_path if root_path is None else root_path
    return MockDocumentStore(root_path=Path(store_root) if store_root else None)
