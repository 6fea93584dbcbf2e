from __future__ import annotations

from typing import Iterable

from datastore.mock_firestore import build_default_store
from services.monitor import build_default_monitor
from settings import DEFAULT_TIERS, get_settings
from storage.mock_realtime import build_default_realtime_db


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


CACHES = (get_settings, build_default_store, build_default_realtime_db, build_default_monitor)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    store_root = tmp_path / "firestore"

    monkeypatch.setenv("MOCK_FIRESTORE_ROOT_PATH", str(store_root))
    monkeypatch.setenv("LEVEL_MIN_DISTANCE_CM", "10")
    monkeypatch.setenv("LEVEL_MAX_DISTANCE_CM", "60")
    monkeypatch.setenv("TANK_RADIUS_IN", "5")
    monkeypatch.setenv("NOTIFICATION_TIERS", "95, 80,95")
    monkeypatch.setenv("SAMPLE_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("EMPTYING_TIMEOUT_SECONDS", "3")
    monkeypatch.setenv("BIN_TIMEZONE", "UTC")
    _clear_caches(CACHES)

    monitor = build_default_monitor()

    try:
        assert monitor.store.root_path == store_root
        assert monitor.ingestor.calculator.level_percent(35) == 50
        assert monitor.recorder.geometry.radius_in == 5
        assert monitor.notifier.tiers == (80, 95)
        assert monitor.ingestor.sample_interval_seconds == 5
        assert monitor.recorder.timeout_seconds == 3
        assert str(monitor.zone) == "UTC"
    finally:
        monitor.shutdown()
        _clear_caches(CACHES)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("LEVEL_MIN_DISTANCE_CM", "80")
    monkeypatch.setenv("LEVEL_MAX_DISTANCE_CM", "20")
    monkeypatch.setenv("NOTIFICATION_TIERS", "90,150")
    monkeypatch.setenv("SAMPLE_INTERVAL_SECONDS", "-1")
    monkeypatch.setenv("EMPTYING_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("BIN_TIMEZONE", "Mars/Olympus_Mons")
    monkeypatch.setenv("LOG_LEVEL", " debug ")
    get_settings.cache_clear()

    try:
        settings = get_settings()

        assert (settings.min_distance_cm, settings.max_distance_cm) == (2.0, 100.0)
        assert settings.notification_tiers == DEFAULT_TIERS
        assert settings.sample_interval_seconds == 60.0
        assert settings.emptying_timeout_seconds == 10.0
        assert settings.timezone == "Asia/Manila"
        assert settings.log_level == "DEBUG"
    finally:
        get_settings.cache_clear()


def test_empty_store_root_keeps_documents_in_memory(monkeypatch) -> None:
    monkeypatch.setenv("MOCK_FIRESTORE_ROOT_PATH", "")
    _clear_caches(CACHES)

    try:
        assert get_settings().store_root_path is None
        assert build_default_store().root_path is None
    finally:
        _clear_caches(CACHES)
