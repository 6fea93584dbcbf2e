"""Pipeline orchestration for bin telemetry."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable, List, Mapping, Optional
from zoneinfo import ZoneInfo

from datastore.mock_firestore import MockDocumentStore, build_default_store
from models.records import LevelUpdate
from services.analytics import AnalyticsService
from services.directory import BinDirectory
from services.emptying import EmptyingEventRecorder, EmptyingSession
from services.errors import NoActiveEmptyingError
from services.ingestor import Clock, TelemetryIngestor
from services.level import LevelCalculator, TankGeometry
from services.notifier import ThresholdNotifier
from services.state import BinStateArena
from services.windows import utc_now
from settings import DEFAULT_TIERS, get_settings
from storage.mock_realtime import MockRealtimeDatabase, build_default_realtime_db


class MonitorService:
    """Coordinates telemetry, the pipeline components and the document store."""

    def __init__(
        self,
        realtime_db: MockRealtimeDatabase,
        store: MockDocumentStore,
        calculator: Optional[LevelCalculator] = None,
        geometry: Optional[TankGeometry] = None,
        tiers: Iterable[int] = DEFAULT_TIERS,
        sample_interval_seconds: float = 60.0,
        emptying_timeout_seconds: float = 10.0,
        timezone_name: str = "Asia/Manila",
        clock: Clock = utc_now,
    ) -> None:
        self.realtime_db = realtime_db
        self.store = store
        self.zone = ZoneInfo(timezone_name)
        self.arena = BinStateArena()
        self.notifier = ThresholdNotifier(
            store.notifications, tiers=tiers, timezone_name=timezone_name, arena=self.arena
        )
        self.ingestor = TelemetryIngestor(
            realtime_db,
            store.trash_levels,
            self.notifier,
            calculator or LevelCalculator(),
            sample_interval_seconds=sample_interval_seconds,
            clock=clock,
        )
        self.recorder = EmptyingEventRecorder(
            self.ingestor,
            store.emptying_events,
            geometry or TankGeometry(),
            timeout_seconds=emptying_timeout_seconds,
            clock=clock,
        )
        self.directory = BinDirectory(store.users, store.bin_assignments, store.notifications)
        self.analytics = AnalyticsService(
            store.emptying_events, store.trash_levels, store.users, self.zone, clock=clock
        )
        self.ingestor.attach_all()

    def push_telemetry(self, bin_id: str, payload: Mapping[str, Any]) -> LevelUpdate:
        """Write a reading to the telemetry store and return the resulting level."""
        self.ingestor.attach(bin_id)
        self.realtime_db.set_value(bin_id, dict(payload))
        return self.ingestor.current_level(bin_id)

    def current_level(self, bin_id: str) -> LevelUpdate:
        return self.ingestor.current_level(bin_id)

    def visible_bins(self, user_id: str) -> List[str]:
        session = self.directory.resolve_session(user_id)
        return self.directory.visible_bins(session, self.realtime_db.keys())

    def start_emptying(self, bin_id: str, user_id: str) -> EmptyingSession:
        collector = self.directory.resolve_session(user_id)
        level_before = self.ingestor.current_level(bin_id).level
        return self.recorder.start(bin_id, collector, level_before)

    def emptying_status(self, bin_id: str) -> EmptyingSession:
        session = self.recorder.session_for(bin_id)
        if session is None:
            raise NoActiveEmptyingError(bin_id)
        return session

    def cancel_emptying(self, bin_id: str) -> EmptyingSession:
        return self.recorder.cancel(bin_id)

    def shutdown(self) -> None:
        """Cancel awaiting sessions and drop every telemetry subscription."""
        self.recorder.shutdown()
        self.ingestor.close()


@lru_cache
def build_default_monitor() -> MonitorService:
    """Factory that wires the pipeline with the default mocks and settings."""
    settings = get_settings()
    return MonitorService(
        realtime_db=build_default_realtime_db(),
        store=build_default_store(),
        calculator=LevelCalculator(settings.min_distance_cm, settings.max_distance_cm),
        geometry=TankGeometry(settings.tank_radius_in, settings.tank_height_in),
        tiers=settings.notification_tiers,
        sample_interval_seconds=settings.sample_interval_seconds,
        emptying_timeout_seconds=settings.emptying_timeout_seconds,
        timezone_name=settings.timezone,
    )
