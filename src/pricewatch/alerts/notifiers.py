# src/pricewatch/alerts/notifiers.py
from __future__ import annotations
from typing import Callable, Optional, Protocol

import structlog

from pricewatch.alerts.formatting import format_alert_log
from pricewatch.utils.types import PriceAlert

log = structlog.get_logger("notifier")

class Notifier(Protocol):
    async def send(self, alert: PriceAlert): ...

class ConsoleNotifier:
    def __init__(self, format_fn: Optional[Callable[[PriceAlert], str]] = None):
        self._format_fn = format_fn or format_alert_log

    async def send(self, alert: PriceAlert):
        try:
            text = self._format_fn(alert)
        except Exception as e:
            log.warning("console_format_failed", err=str(e))
            # fallback (raw)
            text = f"[ALERT] {alert.symbol} price={alert.price} target={alert.target}"
        print(text, flush=True)
