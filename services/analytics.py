"""Store-backed analytics queries for the dashboards."""

from __future__ import annotations

from datetime import date, tzinfo
from typing import List, Optional

from app.schemas import (
    DailyHistory,
    EmptyingEvent,
    LeaderboardResponse,
    TimeWindow,
    TrashLevelSample,
    User,
    UserBuckets,
    VolumeByBinResponse,
)
from datastore.mock_firestore import MockCollection, between
from services.aggregator import Aggregator
from services.ingestor import Clock
from services.windows import day_bounds, utc_now, window_start


class AnalyticsService:
    def __init__(
        self,
        events: MockCollection[EmptyingEvent],
        samples: MockCollection[TrashLevelSample],
        users: MockCollection[User],
        zone: tzinfo,
        clock: Clock = utc_now,
    ) -> None:
        self.events = events
        self.samples = samples
        self.users = users
        self.zone = zone
        self.clock = clock
        self.aggregator = Aggregator(zone)

    def _events_since(self, window: TimeWindow) -> List[EmptyingEvent]:
        start = window_start(window, self.clock(), self.zone)
        return self.events.query(between("emptied_at", start))

    def volume_by_bin(self, window: TimeWindow) -> VolumeByBinResponse:
        now = self.clock()
        events = self._events_since(window)
        return VolumeByBinResponse(
            window=window,
            total=self.aggregator.total_volume(events, window, now),
            bins=self.aggregator.volume_by_bin(events, window, now),
        )

    def leaderboard(self, window: TimeWindow) -> LeaderboardResponse:
        entries = self.aggregator.leaderboard(
            self._events_since(window), self.users.scan(), window, self.clock()
        )
        return LeaderboardResponse(
            window=window,
            entries=entries,
            top_performer=self.aggregator.top_performer(entries),
        )

    def user_buckets(self, user_id: str, newest_first: bool = False) -> UserBuckets:
        events = self.events.query([("user_id", "==", user_id)])
        return self.aggregator.per_user_buckets(events, user_id, self.clock(), newest_first)

    def daily_history(
        self, day: date, collector: Optional[str] = None, bin_id: Optional[str] = None
    ) -> DailyHistory:
        start, end = day_bounds(day, self.zone)
        return self.aggregator.daily_history(
            self.events.query(between("emptied_at", start, end)), day, collector, bin_id
        )

    def level_series(self, bin_id: str, day: date) -> List[TrashLevelSample]:
        """One day's level samples for a bin, oldest first."""
        start, end = day_bounds(day, self.zone)
        samples = self.samples.query([("bin", "==", bin_id), *between("created_at", start, end)])
        return sorted(samples, key=lambda sample: sample.created_at)
