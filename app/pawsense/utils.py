"""Common utility helpers."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from time import perf_counter
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> float:
    return perf_counter() * 1000.0


def elapsed_ms(start_ms: float) -> int:
    return int(perf_counter() * 1000.0 - start_ms)


def clamp_confidence(value: Any) -> float:
    """Clamp an upstream confidence into [0, 100]; anything non-numeric is 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if math.isnan(value):
        return 0.0
    return float(min(max(value, 0.0), 100.0))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
