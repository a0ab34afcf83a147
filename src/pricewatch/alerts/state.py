from __future__ import annotations
from dataclasses import dataclass

@dataclass(slots=True)
class SuppressionState:
    """
    Process-wide alert suppression: one deadline and the symbol that armed it.
    Not per symbol; a second symbol is never held back by the first one's window.
    """
    suppressed_until: float | None = None
    last_symbol: str | None = None

    def clear(self) -> None:
        self.suppressed_until = None
