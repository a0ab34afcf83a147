import pytest
from structlog.testing import capture_logs

from pricewatch.alerts.dedup import AlertSuppressor
from pricewatch.alerts.evaluator import TargetEvaluator
from pricewatch.config import build_target_table
from pricewatch.utils.types import TradeTick


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def send(self, alert):
        self.sent.append(alert)


class BrokenNotifier:
    async def send(self, alert):
        raise RuntimeError("boom")


TARGETS = build_target_table({
    "SOLUSDT": [210, 200, 190],
    "LINKUSDT": [21.7, 20.8],
    # two overlapping bands: 100.5 is inside both
    "OVERUSDT": [100, 101, 150],
})


def tick(symbol: str, price: float) -> TradeTick:
    return TradeTick(symbol=symbol, price=price, qty="1", trade_id=1, event_time_ms=1, trade_time_ms=1)


def make(dedupe=True, clock=None):
    clock = clock or FakeClock()
    rec = RecordingNotifier()
    sup = AlertSuppressor(cooldown_s=60, clock=clock) if dedupe else None
    ev = TargetEvaluator(TARGETS, [rec], suppressor=sup, clock=clock)
    return ev, rec, clock


@pytest.mark.asyncio
async def test_price_outside_every_band_no_alert():
    ev, rec, _ = make()
    assert await ev.on_tick(tick("SOLUSDT", 205.0)) == []
    assert rec.sent == []

@pytest.mark.asyncio
async def test_price_inside_band_alerts_against_matching_target():
    ev, rec, _ = make()
    out = await ev.on_tick(tick("SOLUSDT", 208.9))
    assert len(out) == 1
    assert out[0].target == 210.0 and out[0].price == 208.9 and out[0].symbol == "SOLUSDT"
    assert rec.sent == out

@pytest.mark.asyncio
async def test_unconfigured_symbol_only_logs():
    ev, rec, _ = make()
    with capture_logs() as logs:
        out = await ev.on_tick(tick("BTCUSDT", 65000.123))
    assert out == [] and rec.sent == []
    assert ev.matches(tick("BTCUSDT", 65000.123)) == []
    assert [l["event"] for l in logs] == ["price_update"]
    assert logs[0]["price"] == "65000.12" and logs[0]["log_level"] == "info"

@pytest.mark.asyncio
async def test_k_candidates_before_dedupe():
    ev, rec, _ = make(dedupe=False)
    assert ev.matches(tick("OVERUSDT", 100.5)) == [100.0, 101.0]
    out = await ev.on_tick(tick("OVERUSDT", 100.5))
    assert [a.target for a in out] == [100.0, 101.0]
    assert len(rec.sent) == 2

@pytest.mark.asyncio
async def test_dedupe_same_symbol_second_target_suppressed_on_same_tick():
    ev, rec, _ = make()
    out = await ev.on_tick(tick("OVERUSDT", 100.5))
    assert [a.target for a in out] == [100.0]

@pytest.mark.asyncio
async def test_dedupe_window_then_realert_after_cooldown():
    ev, rec, clock = make()
    assert len(await ev.on_tick(tick("SOLUSDT", 208.9))) == 1
    clock.t += 10
    assert await ev.on_tick(tick("SOLUSDT", 209.0)) == []
    # different target, same symbol: still suppressed
    clock.t += 10
    assert await ev.on_tick(tick("SOLUSDT", 200.0)) == []
    clock.t += 41
    out = await ev.on_tick(tick("SOLUSDT", 200.0))
    assert [a.target for a in out] == [200.0]
    assert len(rec.sent) == 2

@pytest.mark.asyncio
async def test_dedupe_does_not_block_other_symbol():
    ev, rec, clock = make()
    await ev.on_tick(tick("SOLUSDT", 208.9))
    clock.t += 1
    out = await ev.on_tick(tick("LINKUSDT", 21.6))
    assert [a.symbol for a in out] == ["LINKUSDT"]
    assert [a.symbol for a in rec.sent] == ["SOLUSDT", "LINKUSDT"]

@pytest.mark.asyncio
async def test_without_dedupe_every_match_notifies():
    ev, rec, _ = make(dedupe=False)
    for _ in range(3):
        await ev.on_tick(tick("SOLUSDT", 208.9))
    assert len(rec.sent) == 3

@pytest.mark.asyncio
async def test_failing_notifier_does_not_block_others():
    rec = RecordingNotifier()
    ev = TargetEvaluator(TARGETS, [BrokenNotifier(), rec])
    with capture_logs() as logs:
        out = await ev.on_tick(tick("SOLUSDT", 208.9))
    assert len(out) == 1 and len(rec.sent) == 1
    assert any(l["event"] == "notifier_failed" for l in logs)

@pytest.mark.asyncio
async def test_alert_logged_unrounded():
    ev, _, _ = make()
    with capture_logs() as logs:
        await ev.on_tick(tick("LINKUSDT", 21.654321))
    alert_logs = [l for l in logs if l["event"] == "price_alert"]
    assert alert_logs and alert_logs[0]["price"] == 21.654321 and alert_logs[0]["target"] == 21.7
