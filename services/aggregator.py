"""Aggregation logic over the emptying event log."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, tzinfo
from typing import Dict, Iterable, List, Optional

from app.schemas import (
    BinVolume,
    CollectorVolume,
    DailyHistory,
    EmptyingEvent,
    LeaderboardEntry,
    MonthBucket,
    TimeWindow,
    User,
    UserBuckets,
)
from models.records import Role
from services.windows import day_bounds, month_key, month_label, rolling_start, window_start


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation.

    Every method takes the events to aggregate and the reference ``now``;
    nothing here reads a store or the clock.
    """

    def __init__(self, zone: tzinfo) -> None:
        self.zone = zone

    def in_window(
        self, events: Iterable[EmptyingEvent], window: TimeWindow, now: datetime
    ) -> List[EmptyingEvent]:
        start = window_start(window, now, self.zone)
        if start is None:
            return list(events)
        return [event for event in events if event.emptied_at >= start]

    def volume_by_bin(
        self, events: Iterable[EmptyingEvent], window: TimeWindow, now: datetime
    ) -> List[BinVolume]:
        totals: Dict[str, float] = defaultdict(float)
        for event in self.in_window(events, window, now):
            totals[event.bin] += event.volume
        return _ranked_bins(totals)

    def total_volume(
        self, events: Iterable[EmptyingEvent], window: TimeWindow, now: datetime
    ) -> float:
        return sum(event.volume for event in self.in_window(events, window, now))

    def leaderboard(
        self,
        events: Iterable[EmptyingEvent],
        users: Iterable[User],
        window: TimeWindow,
        now: datetime,
    ) -> List[LeaderboardEntry]:
        """Collectors (role ``user``) ranked by emptied volume.

        Soft-deleted collectors are listed only while they have volume in
        the window.
        """
        collectors = {user.id: user for user in users if user.role is Role.user}
        totals: Dict[str, float] = {
            user_id: 0.0 for user_id, user in collectors.items() if not user.is_deleted
        }
        for event in self.in_window(events, window, now):
            if event.user_id in collectors:
                totals[event.user_id] = totals.get(event.user_id, 0.0) + event.volume

        entries = [
            LeaderboardEntry(
                user_id=user_id,
                name=collectors[user_id].display_name,
                volume=volume,
            )
            for user_id, volume in totals.items()
            if volume > 0 or not collectors[user_id].is_deleted
        ]
        entries.sort(key=lambda entry: (-entry.volume, entry.name))
        return entries

    def per_user_buckets(
        self,
        events: Iterable[EmptyingEvent],
        user_id: str,
        now: datetime,
        newest_first: bool = False,
    ) -> UserBuckets:
        buckets = UserBuckets(user_id=user_id)
        last_30 = rolling_start(now, 30)
        last_7 = rolling_start(now, 7)
        last_24h = rolling_start(now, 1)
        monthly: Dict[str, float] = defaultdict(float)

        for event in events:
            if event.user_id != user_id:
                continue
            volume = event.volume
            buckets.all_time += volume
            if event.emptied_at > last_30:
                buckets.last_30_days += volume
            if event.emptied_at > last_7:
                buckets.last_7_days += volume
            if event.emptied_at > last_24h:
                buckets.last_24_hours += volume
            monthly[month_label(event.emptied_at, self.zone)] += volume

        current = month_label(now, self.zone)
        labels = sorted(monthly, key=month_key, reverse=newest_first)
        buckets.monthly = [
            MonthBucket(month=label, volume=monthly[label], is_current_month=label == current)
            for label in labels
        ]
        return buckets

    def daily_history(
        self,
        events: Iterable[EmptyingEvent],
        day: date,
        collector: Optional[str] = None,
        bin_id: Optional[str] = None,
    ) -> DailyHistory:
        """One local day of events, optionally narrowed to a collector name or bin."""
        start, end = day_bounds(day, self.zone)
        entries = sorted(
            (
                event
                for event in events
                if start <= event.emptied_at <= end
                and (collector is None or event.collector == collector)
                and (bin_id is None or event.bin == bin_id)
            ),
            key=lambda event: event.emptied_at,
            reverse=True,
        )
        by_collector: Dict[str, float] = defaultdict(float)
        by_bin: Dict[str, float] = defaultdict(float)
        for event in entries:
            by_collector[event.collector] += event.volume
            by_bin[event.bin] += event.volume

        return DailyHistory(
            day=day,
            total=sum(event.volume for event in entries),
            entries=entries,
            by_collector=[
                CollectorVolume(collector=name, volume=volume)
                for name, volume in sorted(by_collector.items(), key=lambda item: (-item[1], item[0]))
            ],
            by_bin=_ranked_bins(by_bin),
        )

    @staticmethod
    def top_performer(entries: List[LeaderboardEntry]) -> Optional[LeaderboardEntry]:
        return entries[0] if entries else None


def _ranked_bins(totals: Dict[str, float]) -> List[BinVolume]:
    return [
        BinVolume(bin=bin_id, volume=volume)
        for bin_id, volume in sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    ]
