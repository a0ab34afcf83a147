from __future__ import annotations

from pricewatch.utils.types import AlertNotification, PriceAlert

def format_alert_text(n: AlertNotification | PriceAlert) -> str:
    """Chat message body: two decimals, meant for people."""
    return f"ALERT: {n.symbol} reached price ${n.price:.2f}, near target ${n.target:.2f}"

def format_alert_log(a: PriceAlert) -> str:
    """Console line: prices as received, no rounding."""
    return f"[ALERT] {a.symbol} reached price ${a.price}, near target ${a.target}"
