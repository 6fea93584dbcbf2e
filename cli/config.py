from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_TIMEOUT = 15.0

_BASE_URL_ENV = "API_BASE_URL"
_POLL_INTERVAL_ENV = "BINS_POLL_INTERVAL"
_TIMEOUT_ENV = "BINS_POLL_TIMEOUT"
_USER_ENV = "BINS_USER_ID"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_timeout: float = DEFAULT_TIMEOUT
    user_id: Optional[str] = None


def _positive_or_default(raw: Optional[str], default: float) -> float:
    try:
        parsed = float((raw or "").strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    poll_interval: Optional[float] = None,
    poll_timeout: Optional[float] = None,
    user_id: Optional[str] = None,
) -> CLIConfig:
    """Merge explicit options over environment variables over defaults."""
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if poll_interval is None:
        poll_interval = _positive_or_default(os.getenv(_POLL_INTERVAL_ENV), DEFAULT_POLL_INTERVAL)
    if poll_timeout is None:
        poll_timeout = _positive_or_default(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    collector = user_id or (os.getenv(_USER_ENV) or "").strip() or None
    return CLIConfig(
        base_url=url.rstrip("/"),
        poll_interval=poll_interval,
        poll_timeout=poll_timeout,
        user_id=collector,
    )
