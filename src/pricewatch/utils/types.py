from __future__ import annotations

from dataclasses import dataclass

from pricewatch.utils.time import ms_to_s

# ---- ingest-level primitives ----

@dataclass(slots=True)
class TradeTick:
    """
    One decoded Binance trade event (`<symbol>@trade` stream).
    Short wire names: e, E, s, t, p, q, T, m.
    """
    symbol: str
    price: float
    qty: str               # kept as the raw decimal string from the feed
    trade_id: int
    event_time_ms: int
    trade_time_ms: int
    is_market_maker: bool = False
    event_type: str = "trade"

    @property
    def ts(self) -> float:
        """Trade time, epoch seconds."""
        return ms_to_s(self.trade_time_ms)

# ---- alerting domain ----

@dataclass(slots=True)
class PriceAlert:
    symbol: str
    price: float
    target: float
    ts: float  # epoch seconds when the alert was raised

@dataclass(slots=True)
class AlertNotification:
    chat_id: int
    symbol: str
    price: float
    target: float
