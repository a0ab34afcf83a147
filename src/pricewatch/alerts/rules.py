# src/pricewatch/alerts/rules.py
from __future__ import annotations
from dataclasses import dataclass

DEFAULT_TOLERANCE = 0.01  # ±1%

def is_within_threshold(price: float, target: float, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """Inclusive band [target*(1-tol), target*(1+tol)], measured against the target."""
    lower = target * (1.0 - tolerance)
    upper = target * (1.0 + tolerance)
    return lower <= price <= upper

@dataclass(slots=True, frozen=True)
class TargetBandRule:
    """
    Fire when the trade price is inside the tolerance band of a configured target.
    Each target is tested on its own; several targets may match one tick.
    """
    name: str = "target_band_1pct"
    tolerance: float = DEFAULT_TOLERANCE

    def matches(self, price: float, target: float) -> bool:
        return is_within_threshold(price, target, self.tolerance)
