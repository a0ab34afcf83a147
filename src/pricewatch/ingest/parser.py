from __future__ import annotations

import math
from typing import Any, Optional

from pricewatch.utils.types import TradeTick


class TickDecodeError(ValueError):
    """A trade frame that cannot be turned into a TradeTick."""


class PriceParseError(TickDecodeError):
    """The trade's `p` field is not a usable price."""


def parse_price(raw: Any) -> float:
    """
    Binance sends prices as decimal strings ("205.00"). Returns a finite,
    non-negative float or raises PriceParseError.
    """
    if isinstance(raw, bool) or raw is None:
        raise PriceParseError(f"invalid price {raw!r}")
    try:
        px = float(raw)
    except (TypeError, ValueError):
        raise PriceParseError(f"invalid price {raw!r}") from None
    if not math.isfinite(px) or px < 0.0:
        raise PriceParseError(f"price out of range {raw!r}")
    return px


def _int_field(m: dict, key: str) -> int:
    v = m.get(key, 0)
    if isinstance(v, bool) or not isinstance(v, int):
        raise TickDecodeError(f"field {key!r} must be an integer, got {v!r}")
    return v


def _bool_field(m: dict, key: str) -> bool:
    v = m.get(key, False)
    if not isinstance(v, bool):
        raise TickDecodeError(f"field {key!r} must be a boolean, got {v!r}")
    return v


def parse_trade_msg(m: Any) -> Optional[TradeTick]:
    """
    Return TradeTick if `m` is a trade event; else None.

    Binance `<symbol>@trade` payload:
      - "e": "trade"          (event type)
      - "E": 1672515782136    (event time, ms)
      - "s": "BNBBTC"         (symbol)
      - "t": 12345            (trade id)
      - "p": "0.001"          (price, string)
      - "q": "100"            (quantity, string)
      - "T": 1672515782136    (trade time, ms)
      - "m": true             (buyer is the market maker)
      - "M": true             (ignore)
    """
    if not isinstance(m, dict):
        return None
    ev = m.get("e")
    if not isinstance(ev, str) or ev.strip() != "trade":
        return None

    sym = m.get("s")
    if not isinstance(sym, str) or not sym.strip():
        raise TickDecodeError(f"trade without symbol: {m!r}"[:200])

    return TradeTick(
        symbol=sym.strip(),
        price=parse_price(m.get("p")),
        qty=str(m.get("q") or "0"),
        trade_id=_int_field(m, "t"),
        event_time_ms=_int_field(m, "E"),
        trade_time_ms=_int_field(m, "T"),
        is_market_maker=_bool_field(m, "m"),
        event_type=ev.strip(),
    )
