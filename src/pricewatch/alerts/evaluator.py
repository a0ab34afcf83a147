from __future__ import annotations

from typing import Callable, Optional, Sequence

import structlog

from pricewatch.alerts.dedup import AlertSuppressor
from pricewatch.alerts.notifiers import Notifier
from pricewatch.alerts.rules import TargetBandRule
from pricewatch.config import TargetTable
from pricewatch.utils.time import utc_now_s
from pricewatch.utils.types import PriceAlert, TradeTick


class TargetEvaluator:
    """
    Checks every trade against the configured targets for its symbol.

    Inputs:
      - targets:    read-only {symbol: (target, ...)}
      - notifiers:  each gets every emitted PriceAlert, in order
      - suppressor: optional AlertSuppressor; None disables de-duplication
    Called inline from the feed task, so the suppression state has one owner.
    """
    def __init__(
        self,
        targets: TargetTable,
        notifiers: Sequence[Notifier] = (),
        suppressor: Optional[AlertSuppressor] = None,
        rule: Optional[TargetBandRule] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.targets = targets
        self.notifiers = list(notifiers)
        self.suppressor = suppressor
        self.rule = rule or TargetBandRule()
        self._clock = clock or utc_now_s
        self._log = structlog.get_logger("evaluator")

    # --- core evaluation ---

    def matches(self, tick: TradeTick) -> list[float]:
        """Targets whose band contains the tick price, in configured order."""
        targets = self.targets.get(tick.symbol)
        if not targets:
            return []
        return [t for t in targets if self.rule.matches(tick.price, t)]

    async def on_tick(self, tick: TradeTick) -> list[PriceAlert]:
        if tick.symbol not in self.targets:
            self._log.info("price_update", symbol=tick.symbol, price=f"{tick.price:.2f}")
            return []

        emitted: list[PriceAlert] = []
        for target in self.matches(tick):
            if self.suppressor is not None:
                if not self.suppressor.allow(tick.symbol):
                    self._log.debug("alert_suppressed", symbol=tick.symbol, target=target,
                                    remaining_s=round(self.suppressor.remaining_s(), 1))
                    continue
                self.suppressor.arm(tick.symbol)

            alert = PriceAlert(symbol=tick.symbol, price=tick.price, target=target, ts=self._clock())
            self._log.info("price_alert", symbol=alert.symbol, price=alert.price, target=alert.target)
            await self._emit(alert)
            emitted.append(alert)

        if self.suppressor is not None:
            self.suppressor.refresh()
        return emitted

    async def _emit(self, alert: PriceAlert) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.send(alert)
            except Exception as e:
                self._log.error("notifier_failed", notifier=type(notifier).__name__,
                                symbol=alert.symbol, err=str(e))
