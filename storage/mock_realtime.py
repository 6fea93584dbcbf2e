from __future__ import annotations
import copy
from collections import defaultdict
from functools import lru_cache
from threading import Lock, RLock
from typing import Any, Callable, DefaultDict, Dict, Generic, List, Optional, TypeVar


EventT = TypeVar("EventT")
Listener = Callable[[str, EventT], None]


class Subscription:
    """Handle returned by ``subscribe``; the owner must call ``unsubscribe``."""

    def __init__(self, key: str, release: Callable[["Subscription"], None]) -> None:
        self.key = key
        self._release = release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._release(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.unsubscribe()


class ListenerRegistry(Generic[EventT]):
    """Per-key listener fan-out.

    Events for one key are dispatched one at a time in publish order. Once
    ``unsubscribe`` returns, the listener is never invoked again, even from a
    dispatch already running on another thread.
    """

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[tuple[Subscription, Listener[EventT]]]] = (
            defaultdict(list)
        )
        self._key_locks: DefaultDict[str, RLock] = defaultdict(RLock)
        self._lock = Lock()

    def subscribe(self, key: str, listener: Listener[EventT]) -> Subscription:
        subscription = Subscription(key, self._remove)
        with self._lock:
            self._listeners[key].append((subscription, listener))
        return subscription

    def publish(self, key: str, event: EventT) -> None:
        with self._key_lock(key):
            with self._lock:
                targets = list(self._listeners.get(key, ()))
            for subscription, listener in targets:
                if subscription.active:
                    listener(key, event)

    def listener_count(self, key: str) -> int:
        with self._lock:
            return len(self._listeners.get(key, ()))

    def _key_lock(self, key: str) -> RLock:
        with self._lock:
            return self._key_locks[key]

    def _remove(self, subscription: Subscription) -> None:
        # Waits for an in-flight dispatch on this key to finish.
        with self._key_lock(subscription.key):
            with self._lock:
                remaining = [
                    entry for entry in self._listeners.get(subscription.key, ())
                    if entry[0] is not subscription
                ]
                if remaining:
                    self._listeners[subscription.key] = remaining
                else:
                    self._listeners.pop(subscription.key, None)


class MockRealtimeDatabase:
    """Key-value telemetry store that pushes every write to its subscribers."""

    def __init__(self, name: str = "telemetry") -> None:
        self.name = name
        self._values: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()
        self._registry: ListenerRegistry[Dict[str, Any]] = ListenerRegistry()

    def set_value(self, key: str, payload: Dict[str, Any]) -> None:
        snapshot = copy.deepcopy(payload)
        with self._lock:
            self._values[key] = snapshot
        self._registry.publish(key, copy.deepcopy(snapshot))

    def get_value(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._values.get(key)
            return copy.deepcopy(value) if value is not None else None

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._values)

    def subscribe(self, key: str, listener: Listener[Dict[str, Any]]) -> Subscription:
        return self._registry.subscribe(key, listener)

    def listener_count(self, key: str) -> int:
        return self._registry.listener_count(key)


@lru_cache
def build_default_realtime_db(name: Optional[str] = None) -> MockRealtimeDatabase:
    return MockRealtimeDatabase(name=name or "telemetry")
