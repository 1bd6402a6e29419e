"""Human-friendly renderings of timestamps."""

from __future__ import annotations

import time
from typing import Optional

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS
MONTH_MS = 30 * DAY_MS


def now_ms() -> int:
    return int(time.time() * 1000)


def time_ago(created_at_ms: int, now: Optional[int] = None) -> str:
    """Describe how long ago ``created_at_ms`` was, e.g. ``"3 days ago"``."""
    current = now_ms() if now is None else now
    diff = max(0, current - int(created_at_ms))

    if diff < MINUTE_MS:
        return "just now"
    if diff < HOUR_MS:
        return f"{diff // MINUTE_MS} minutes ago"
    if diff < DAY_MS:
        return f"{diff // HOUR_MS} hours ago"
    if diff < WEEK_MS:
        return f"{diff // DAY_MS} days ago"
    if diff < MONTH_MS:
        return f"{diff // WEEK_MS} weeks ago"
    return f"{diff // MONTH_MS} months ago"
