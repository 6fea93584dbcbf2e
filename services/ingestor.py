"""Telemetry ingestion: push feed to levels, notifications and samples."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Mapping, Optional
from uuid import uuid4

from app.schemas import TrashLevelSample
from datastore.mock_firestore import MockCollection
from models.records import BinReading, LevelUpdate
from services.errors import UnknownBinError
from services.level import LevelCalculator, clamp_level
from services.notifier import ThresholdNotifier
from services.state import BinSessionState
from services.windows import utc_now
from storage.mock_realtime import ListenerRegistry, MockRealtimeDatabase, Subscription

logger = logging.getLogger(__name__)

DISTANCE_KEY = "distance(cm)"
LEVEL_KEY = "trashLevel"
GPS_KEY = "gps"

Clock = Callable[[], datetime]
LevelListener = Callable[[str, LevelUpdate], None]


class TelemetryIngestor:
    """Turns per-bin telemetry pushes into levels, notifications and samples.

    Pushes for one bin are handled one at a time under that bin's state lock;
    different bins do not share any lock. Level samples are rate limited to
    one write attempt per bin per ``sample_interval_seconds``.
    """

    def __init__(
        self,
        realtime_db: MockRealtimeDatabase,
        samples: MockCollection[TrashLevelSample],
        notifier: ThresholdNotifier,
        calculator: LevelCalculator,
        sample_interval_seconds: float = 60.0,
        clock: Clock = utc_now,
    ) -> None:
        self.realtime_db = realtime_db
        self.samples = samples
        self.notifier = notifier
        self.calculator = calculator
        self.arena = notifier.arena
        self.sample_interval_seconds = sample_interval_seconds
        self.clock = clock
        self._attachments: Dict[str, Subscription] = {}
        self._attachments_lock = Lock()
        self._level_listeners: ListenerRegistry[LevelUpdate] = ListenerRegistry()

    def attach(self, bin_id: str) -> None:
        """Start following a bin's telemetry key."""
        with self._attachments_lock:
            if bin_id in self._attachments:
                return
            self._attachments[bin_id] = self.realtime_db.subscribe(bin_id, self._on_push)
        logger.info("Attached to bin telemetry.", extra={"bin_id": bin_id})

    def attach_all(self) -> list[str]:
        bin_ids = self.realtime_db.keys()
        for bin_id in bin_ids:
            self.attach(bin_id)
        return bin_ids

    def detach(self, bin_id: str) -> None:
        """Stop following a bin and forget its level, tiers and sample state."""
        with self._attachments_lock:
            subscription = self._attachments.pop(bin_id, None)
        if subscription is not None:
            subscription.unsubscribe()
        self.arena.expire(bin_id)

    def close(self) -> None:
        with self._attachments_lock:
            subscriptions = list(self._attachments.values())
            self._attachments.clear()
        for subscription in subscriptions:
            subscription.unsubscribe()

    def attached_bins(self) -> list[str]:
        with self._attachments_lock:
            return sorted(self._attachments)

    def subscribe_levels(self, bin_id: str, listener: LevelListener) -> Subscription:
        """Receive every level derived for ``bin_id`` until unsubscribed."""
        return self._level_listeners.subscribe(bin_id, listener)

    def current_level(self, bin_id: str) -> LevelUpdate:
        state = self.arena.get(bin_id)
        if state is None:
            raise UnknownBinError(bin_id)
        with state.lock:
            if state.last_level is None or state.last_observed_at is None:
                raise UnknownBinError(bin_id)
            return LevelUpdate(bin_id, state.last_level, state.last_observed_at)

    def handle_push(
        self, bin_id: str, payload: Mapping[str, Any], now: Optional[datetime] = None
    ) -> Optional[LevelUpdate]:
        observed_at = now or self.clock()
        reading = parse_reading(bin_id, payload, observed_at)
        if reading is None:
            logger.warning(
                "Skipping telemetry without distance or level.",
                extra={"bin_id": bin_id, "reason": "missing distance"},
            )
            return None

        level = self.derive_level(reading)
        update = LevelUpdate(bin_id=bin_id, level=level, observed_at=observed_at)
        state = self.arena.get_or_create(bin_id)
        with state.lock:
            state.last_level = level
            state.last_observed_at = observed_at
            self._notify(bin_id, level, observed_at)
            if state.sample_due(observed_at, self.sample_interval_seconds):
                self._write_sample(state, level, observed_at)
            self._level_listeners.publish(bin_id, update)
        return update

    def derive_level(self, reading: BinReading) -> int:
        if reading.trash_level is not None:
            return clamp_level(reading.trash_level)
        return self.calculator.level_percent(reading.distance_cm)

    def tick(self, now: Optional[datetime] = None) -> int:
        """Retry sample writes that failed once their interval has elapsed."""
        moment = now or self.clock()
        written = 0
        for state in self.arena:
            with state.lock:
                if not state.sample_pending or state.last_level is None:
                    continue
                if not state.sample_due(moment, self.sample_interval_seconds):
                    continue
                if self._write_sample(state, state.last_level, moment):
                    written += 1
        return written

    def _on_push(self, bin_id: str, payload: Dict[str, Any]) -> None:
        self.handle_push(bin_id, payload)

    def _notify(self, bin_id: str, level: int, now: datetime) -> None:
        try:
            self.notifier.on_level_update(bin_id, level, now)
        except Exception as exc:  # noqa: BLE001 - retried on the next push
            logger.warning(
                "Failed to store threshold notification.",
                extra={"bin_id": bin_id, "level": level, "reason": str(exc)},
            )

    def _write_sample(self, state: BinSessionState, level: int, now: datetime) -> bool:
        state.last_sample_attempt_at = now
        sample = TrashLevelSample(
            id=str(uuid4()), bin=state.bin_id, trash_level=level, created_at=now
        )
        try:
            self.samples.add(sample)
        except Exception as exc:  # noqa: BLE001 - retried on the next interval
            state.sample_pending = True
            logger.warning(
                "Failed to store trash level sample.",
                extra={"bin_id": state.bin_id, "level": level, "reason": str(exc)},
            )
            return False
        state.sample_pending = False
        return True


def parse_reading(
    bin_id: str, payload: Mapping[str, Any], observed_at: datetime
) -> Optional[BinReading]:
    """Normalize a raw push; ``None`` when no level can be derived."""
    if not isinstance(payload, Mapping):
        return None

    trash_level = _optional_float(payload.get(LEVEL_KEY))
    if DISTANCE_KEY not in payload and trash_level is None:
        return None

    distance = _optional_float(payload.get(DISTANCE_KEY))
    gps = payload.get(GPS_KEY)
    if not isinstance(gps, Mapping):
        gps = {}

    return BinReading(
        bin_id=bin_id,
        distance_cm=math.nan if distance is None else distance,
        observed_at=observed_at,
        trash_level=trash_level,
        altitude=_optional_float(gps.get("altitude")),
        latitude=_optional_float(gps.get("latitude")),
        longitude=_optional_float(gps.get("longitude")),
    )


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number
