from __future__ import annotations

from typing import Callable

from pricewatch.alerts.state import SuppressionState
from pricewatch.utils.time import seconds_until, utc_now_s

class AlertSuppressor:
    """
    Cool-down based alert de-duplication.

    An alert for `symbol` goes out when no suppression window is open, or when
    the window was opened by a different symbol. Every alert that goes out
    (re)starts the window. The clock is injectable for tests.
    """
    def __init__(self, cooldown_s: float = 60.0, clock: Callable[[], float] | None = None):
        self.cooldown_s = float(cooldown_s)
        self._clock = clock or utc_now_s
        self.state = SuppressionState()

    def active(self) -> bool:
        until = self.state.suppressed_until
        return until is not None and self._clock() < until

    def allow(self, symbol: str) -> bool:
        return not self.active() or symbol != self.state.last_symbol

    def arm(self, symbol: str) -> None:
        self.state.suppressed_until = self._clock() + self.cooldown_s
        self.state.last_symbol = symbol

    def refresh(self) -> None:
        """Drop an expired window; cheap enough to call on every tick."""
        if self.state.suppressed_until is not None and not self.active():
            self.state.clear()

    def remaining_s(self) -> float:
        if self.state.suppressed_until is None:
            return 0.0
        return seconds_until(self.state.suppressed_until, now=self._clock())
