"""Time-related helpers for jobrelay."""

from __future__ import annotations

import datetime
import time


def utc_now_iso() -> str:
    """Return current UTC time in ISO format with millisecond precision."""
    return datetime.datetime.now(datetime.UTC).isoformat(timespec="milliseconds")


def epoch_millis() -> int:
    """Return the current wall-clock time in whole milliseconds."""
    return int(time.time() * 1000)
