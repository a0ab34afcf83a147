from __future__ import annotations

import time

def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()

def ms_to_s(ms: int | float) -> float:
    return float(ms) / 1000.0

def seconds_until(ts_target: float, now: float | None = None) -> float:
    """Non-negative time until target (clamped at 0)."""
    if now is None:
        now = utc_now_s()
    return max(0.0, ts_target - now)
