"""Emptying sessions: before/after level capture and event recording."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Event, Lock, Timer
from typing import Dict, Optional
from uuid import uuid4

from app.schemas import EmptyingEvent, EmptyingOutcome, EmptyingState, EmptyingStatus
from datastore.mock_firestore import MockCollection
from models.records import LevelUpdate, SessionContext
from services.errors import EmptyingInProgressError, NoActiveEmptyingError
from services.ingestor import Clock, TelemetryIngestor
from services.level import TankGeometry
from services.windows import utc_now
from storage.mock_realtime import Subscription

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "No level change detected before the confirmation timeout."


@dataclass
class EmptyingSession:
    """One pass through Idle -> AwaitingConfirmation -> Idle for a bin."""

    bin_id: str
    collector: SessionContext
    level_before: int
    started_at: datetime
    state: EmptyingState = EmptyingState.awaiting_confirmation
    level_after: Optional[int] = None
    volume: Optional[float] = None
    outcome: Optional[EmptyingOutcome] = None
    reason: Optional[str] = None
    event: Optional[EmptyingEvent] = None
    finished_at: Optional[datetime] = None
    subscription: Optional[Subscription] = field(default=None, repr=False)
    timer: Optional[Timer] = field(default=None, repr=False)
    _done: Event = field(default_factory=Event, repr=False)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[EmptyingOutcome]:
        """Block until the session ends; returns ``None`` if still awaiting."""
        self._done.wait(timeout)
        return self.outcome

    def to_status(self) -> EmptyingStatus:
        return EmptyingStatus(
            bin=self.bin_id,
            state=self.state,
            collector_id=self.collector.user_id,
            level_before=self.level_before,
            level_after=self.level_after,
            volume=self.volume,
            outcome=self.outcome,
            reason=self.reason,
            event_id=self.event.id if self.event else None,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )


class EmptyingEventRecorder:
    """Records one EmptyingEvent per confirmed emptying session.

    Only one session may await confirmation per bin. The first level that
    differs from ``level_before`` confirms the session; otherwise it ends on
    timeout or cancellation without writing anything. The level subscription
    and timer are released on every exit path.
    """

    def __init__(
        self,
        levels: TelemetryIngestor,
        events: MockCollection[EmptyingEvent],
        geometry: TankGeometry,
        timeout_seconds: float = 10.0,
        clock: Clock = utc_now,
    ) -> None:
        self.levels = levels
        self.events = events
        self.geometry = geometry
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self._active: Dict[str, EmptyingSession] = {}
        self._last: Dict[str, EmptyingSession] = {}
        self._lock = Lock()

    def start(
        self, bin_id: str, collector: SessionContext, level_before: int
    ) -> EmptyingSession:
        session = EmptyingSession(
            bin_id=bin_id,
            collector=collector,
            level_before=level_before,
            started_at=self.clock(),
        )
        with self._lock:
            if bin_id in self._active:
                raise EmptyingInProgressError(bin_id)
            session.subscription = self.levels.subscribe_levels(
                bin_id, lambda _key, update: self._on_level(session, update)
            )
            session.timer = Timer(self.timeout_seconds, self._on_timeout, args=(session,))
            session.timer.daemon = True
            self._active[bin_id] = session
            session.timer.start()

        logger.info(
            "Emptying started; awaiting level change.",
            extra={"bin_id": bin_id, "level": level_before, "collector_id": collector.user_id},
        )
        return session

    def cancel(self, bin_id: str) -> EmptyingSession:
        with self._lock:
            session = self._active.pop(bin_id, None)
            if session is not None:
                self._last[bin_id] = session
        if session is None:
            raise NoActiveEmptyingError(bin_id)
        self._finish(session, EmptyingOutcome.cancelled, reason="Cancelled by collector.")
        return session

    def is_awaiting(self, bin_id: str) -> bool:
        with self._lock:
            return bin_id in self._active

    def session_for(self, bin_id: str) -> Optional[EmptyingSession]:
        """The awaiting or finishing session for a bin, else the last finished one."""
        with self._lock:
            return self._active.get(bin_id) or self._last.get(bin_id)

    def shutdown(self) -> None:
        with self._lock:
            sessions = list(self._active.values())
            self._active.clear()
            self._last.update((session.bin_id, session) for session in sessions)
        for session in sessions:
            self._finish(session, EmptyingOutcome.cancelled, reason="Service shutting down.")

    def _claim(self, session: EmptyingSession) -> bool:
        with self._lock:
            if self._active.get(session.bin_id) is not session:
                return False
            del self._active[session.bin_id]
            self._last[session.bin_id] = session
            return True

    def _on_level(self, session: EmptyingSession, update: LevelUpdate) -> None:
        if update.level == session.level_before or not self._claim(session):
            return

        volume = self.geometry.volume_liters(session.level_before, update.level)
        event = EmptyingEvent(
            id=str(uuid4()),
            bin=session.bin_id,
            volume=volume,
            collector=session.collector.display_name,
            user_id=session.collector.user_id,
            emptied_at=self.clock(),
        )
        try:
            self.events.add(event)
        except Exception as exc:  # noqa: BLE001 - surfaced as a failed outcome
            logger.warning(
                "Failed to store emptying event.",
                extra={"bin_id": session.bin_id, "volume": volume, "reason": str(exc)},
            )
            self._finish(
                session,
                EmptyingOutcome.failed,
                level_after=update.level,
                volume=volume,
                reason=str(exc),
            )
            return

        self._finish(
            session,
            EmptyingOutcome.confirmed,
            level_after=update.level,
            volume=volume,
            event=event,
        )

    def _on_timeout(self, session: EmptyingSession) -> None:
        if self._claim(session):
            self._finish(session, EmptyingOutcome.timed_out, reason=TIMEOUT_REASON)

    def _finish(
        self,
        session: EmptyingSession,
        outcome: EmptyingOutcome,
        *,
        level_after: Optional[int] = None,
        volume: Optional[float] = None,
        event: Optional[EmptyingEvent] = None,
        reason: Optional[str] = None,
    ) -> None:
        # Must not hold self._lock: unsubscribe waits for in-flight level dispatch.
        if session.timer is not None:
            session.timer.cancel()
        if session.subscription is not None:
            session.subscription.unsubscribe()

        session.level_after = level_after
        session.volume = volume
        session.event = event
        session.reason = reason
        session.outcome = outcome
        session.finished_at = self.clock()
        session.state = EmptyingState.idle
        session._done.set()

        logger.info(
            "Emptying session finished.",
            extra={
                "bin_id": session.bin_id,
                "outcome": outcome.value,
                "volume": volume,
                "collector_id": session.collector.user_id,
            },
        )
