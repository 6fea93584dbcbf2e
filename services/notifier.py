"""Deduplicated threshold notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

from app.schemas import Notification
from datastore.mock_firestore import MockCollection
from services.state import BinStateArena
from settings import DEFAULT_TIERS

logger = logging.getLogger(__name__)

NOTIFICATION_DATETIME_FORMAT = "%Y-%m-%d %I:%M:%S %p"


class ThresholdNotifier:
    """Emits one notification per bin, tier and crossing episode.

    A tier's flag is committed only after the notification has been stored,
    so a failed write is retried by the next push at that tier. An episode
    ends when the level falls below the lowest tier.
    """

    def __init__(
        self,
        collection: MockCollection[Notification],
        tiers: Iterable[int] = DEFAULT_TIERS,
        timezone_name: str = "Asia/Manila",
        arena: Optional[BinStateArena] = None,
    ) -> None:
        self.collection = collection
        self.tiers = tuple(sorted(set(tiers)))
        if not self.tiers:
            raise ValueError("At least one notification tier is required.")
        self.zone = ZoneInfo(timezone_name)
        self.arena = arena if arena is not None else BinStateArena()

    def on_level_update(
        self, bin_id: str, level: int, now: Optional[datetime] = None
    ) -> Optional[Notification]:
        state = self.arena.get_or_create(bin_id)
        with state.lock:
            if level < self.tiers[0]:
                if state.notified_tiers:
                    logger.debug(
                        "Level dropped below lowest tier; episode reset.",
                        extra={"bin_id": bin_id, "level": level},
                    )
                    state.notified_tiers.clear()
                return None

            if level not in self.tiers or level in state.notified_tiers:
                return None

            notification = self._build(bin_id, level, now or datetime.now(timezone.utc))
            self.collection.add(notification)
            state.notified_tiers.add(level)

        logger.info(
            "Threshold notification raised.",
            extra={
                "bin_id": bin_id,
                "tier": level,
                "notification_id": notification.notification_id,
            },
        )
        return notification

    def notified_tiers(self, bin_id: str) -> frozenset[int]:
        state = self.arena.get(bin_id)
        if state is None:
            return frozenset()
        with state.lock:
            return frozenset(state.notified_tiers)

    def _build(self, bin_id: str, level: int, now: datetime) -> Notification:
        formatted = now.astimezone(self.zone).strftime(NOTIFICATION_DATETIME_FORMAT)
        return Notification(
            id=str(uuid4()),
            notification_id=f"{formatted}-{level}",
            bin=bin_id,
            trash_level=level,
            formatted_datetime=formatted,
            occurred_at=now,
            is_read=False,
        )
