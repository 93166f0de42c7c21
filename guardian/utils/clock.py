"""Horodatage / Timestamps.

Les services travaillent en secondes epoch (horloge injectable), la base en ISO 8601.
Services work in epoch seconds (injectable clock), the database in ISO 8601.
"""

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]

system_clock: Clock = time.time


def to_iso(ts: float) -> str:
    """Epoch -> ISO 8601 UTC."""
    return datetime.fromtimestamp(ts, timezone.utc).isoformat(timespec="seconds")


def from_iso(value: str) -> float:
    """ISO 8601 -> epoch. Les dates naives sont supposees UTC / Naive dates are assumed UTC."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
