"""Explicit per-bin pipeline state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock, RLock
from typing import Dict, Iterator, Optional, Set


@dataclass
class BinSessionState:
    """Everything the pipeline remembers about one bin between pushes."""

    bin_id: str
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)
    last_level: Optional[int] = None
    last_observed_at: Optional[datetime] = None
    notified_tiers: Set[int] = field(default_factory=set)
    last_sample_attempt_at: Optional[datetime] = None
    sample_pending: bool = False

    def sample_due(self, now: datetime, interval_seconds: float) -> bool:
        if self.last_sample_attempt_at is None:
            return True
        return (now - self.last_sample_attempt_at).total_seconds() >= interval_seconds


class BinStateArena:
    """Owns one ``BinSessionState`` per bin id."""

    def __init__(self) -> None:
        self._states: Dict[str, BinSessionState] = {}
        self._lock = Lock()

    def get_or_create(self, bin_id: str) -> BinSessionState:
        with self._lock:
            state = self._states.get(bin_id)
            if state is None:
                state = BinSessionState(bin_id=bin_id)
                self._states[bin_id] = state
            return state

    def get(self, bin_id: str) -> Optional[BinSessionState]:
        with self._lock:
            return self._states.get(bin_id)

    def expire(self, bin_id: str) -> Optional[BinSessionState]:
        with self._lock:
            return self._states.pop(bin_id, None)

    def bin_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._states)

    def __iter__(self) -> Iterator[BinSessionState]:
        with self._lock:
            states = list(self._states.values())
        return iter(states)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
