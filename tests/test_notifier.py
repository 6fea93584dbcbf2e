"""Unit tests for threshold notification deduplication."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

import pytest

from app.schemas import Notification
from datastore.mock_firestore import MockCollection, StoreUnavailableError
from services.notifier import ThresholdNotifier

NOW = datetime(2024, 3, 1, 4, 30, tzinfo=timezone.utc)


class FlakyCollection(MockCollection[Notification]):
    def __init__(self, failures: int) -> None:
        super().__init__("notifications", Notification)
        self.failures = failures

    def add(self, item: Notification) -> None:
        if self.failures:
            self.failures -= 1
            raise StoreUnavailableError("store offline")
        super().add(item)


def _notifier(collection: MockCollection[Notification] | None = None) -> ThresholdNotifier:
    return ThresholdNotifier(collection or MockCollection("notifications", Notification))


def _feed(notifier: ThresholdNotifier, levels: Iterable[int], bin_id: str = "bin-a") -> list[int]:
    emitted = []
    for level in levels:
        notification = notifier.on_level_update(bin_id, level, NOW)
        if notification is not None:
            emitted.append(notification.trash_level)
    return emitted


def test_monotonic_rise_notifies_each_tier_once() -> None:
    notifier = _notifier()

    emitted = _feed(notifier, [50, 89, 90, 92, 95, 97, 100, 100, 100])

    assert emitted == [90, 95, 100]
    assert len(notifier.collection.scan()) == 3


def test_replayed_rise_without_drop_is_idempotent() -> None:
    notifier = _notifier()

    emitted = _feed(notifier, [90, 95, 100, 90, 95, 100, 95, 90])

    assert emitted == [90, 95, 100]


def test_drop_below_lowest_tier_starts_new_episode() -> None:
    notifier = _notifier()

    emitted = _feed(notifier, [90, 95, 80, 90, 95])

    assert emitted == [90, 95, 90, 95]


def test_drop_between_tiers_keeps_episode() -> None:
    notifier = _notifier()

    emitted = _feed(notifier, [90, 95, 91, 95, 90])

    assert emitted == [90, 95]


def test_levels_between_tiers_do_not_notify() -> None:
    assert _feed(_notifier(), [91, 93, 99]) == []


def test_bins_are_tracked_independently() -> None:
    notifier = _notifier()

    assert _feed(notifier, [90], bin_id="bin-a") == [90]
    assert _feed(notifier, [90], bin_id="bin-b") == [90]
    assert notifier.notified_tiers("bin-a") == frozenset({90})
    assert notifier.notified_tiers("missing") == frozenset()


def test_notification_document_uses_bin_local_time() -> None:
    notifier = _notifier()

    notification = notifier.on_level_update("bin-a", 95, NOW)

    assert notification is not None
    assert notification.formatted_datetime == "2024-03-01 12:30:00 PM"
    assert notification.notification_id == "2024-03-01 12:30:00 PM-95"
    assert notification.bin == "bin-a"
    assert notification.is_read is False
    assert notification.occurred_at == NOW
    assert notifier.collection.get_item(notification.id) == notification


def test_failed_write_leaves_tier_unflagged_for_retry() -> None:
    collection = FlakyCollection(failures=1)
    notifier = _notifier(collection)

    with pytest.raises(StoreUnavailableError):
        notifier.on_level_update("bin-a", 90, NOW)

    assert notifier.notified_tiers("bin-a") == frozenset()
    assert collection.scan() == []

    retried = notifier.on_level_update("bin-a", 90, NOW)
    assert retried is not None
    assert len(collection.scan()) == 1
    assert notifier.on_level_update("bin-a", 90, NOW) is None


def test_custom_tiers_are_sorted_and_deduplicated() -> None:
    notifier = ThresholdNotifier(MockCollection("notifications", Notification), tiers=[80, 70, 80])

    assert notifier.tiers == (70, 80)
    assert _feed(notifier, [69, 70, 75, 80, 60, 70]) == [70, 80, 70]


def test_empty_tier_list_is_rejected() -> None:
    with pytest.raises(ValueError):
        ThresholdNotifier(MockCollection("notifications", Notification), tiers=[])
