import asyncio
import os
import signal

import pytest
from structlog.testing import capture_logs

import pricewatch.main as main_mod
from pricewatch.config import AppConfig, ConfigError, build_target_table
from pricewatch.ingest.binance_ws import FeedConnectError
from tests.helpers import fake_ws
from tests.helpers.fake_ws import FakeWS


def _cfg(**kw):
    return AppConfig(targets=build_target_table({"SOLUSDT": [210, 200, 190]}), **kw)


def trade(price):
    return {"e": "trade", "E": 1, "s": "SOLUSDT", "t": 1, "p": price, "q": "1", "T": 1, "m": False, "M": False}


@pytest.mark.asyncio
async def test_feed_end_shuts_down(monkeypatch, capsys):
    """End-to-end: 205.00 is quiet, 208.9 alerts against 210; socket close ends run()."""
    fake_ws.install(monkeypatch, FakeWS(scripted=[trade("205.00"), trade("208.9")], close_when_drained=True))
    with capture_logs() as logs:
        rc = await asyncio.wait_for(main_mod.run(_cfg()), timeout=3.0)
    assert rc == 0
    events = [l["event"] for l in logs]
    assert "feed_ended" in events and "shutdown_complete" in events
    alerts = [l for l in logs if l["event"] == "price_alert"]
    assert len(alerts) == 1 and alerts[0]["target"] == 210.0
    assert "[ALERT] SOLUSDT reached price $208.9, near target $210.0" in capsys.readouterr().out

@pytest.mark.asyncio
async def test_stop_signal_shuts_down(monkeypatch):
    ws = FakeWS()
    fake_ws.install(monkeypatch, ws)
    stop = asyncio.Event()
    task = asyncio.create_task(main_mod.run(_cfg(), stop=stop))
    await asyncio.sleep(0.05)
    with capture_logs() as logs:
        stop.set()
        rc = await asyncio.wait_for(task, timeout=3.0)
    assert rc == 0
    assert "shutdown_signal_received" in [l["event"] for l in logs]
    assert ws._closed is True

@pytest.mark.asyncio
@pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
async def test_os_signal_shuts_down(monkeypatch, sig):
    ws = FakeWS()
    fake_ws.install(monkeypatch, ws)
    with capture_logs() as logs:
        task = asyncio.create_task(main_mod.run(_cfg()))
        await asyncio.sleep(0.05)
        os.kill(os.getpid(), sig)
        rc = await asyncio.wait_for(task, timeout=3.0)
    assert rc == 0
    assert "shutdown_signal_received" in [l["event"] for l in logs]
    assert ws._closed is True
    # handlers are removed again once run() returns
    assert asyncio.get_running_loop().remove_signal_handler(sig) is False

@pytest.mark.asyncio
async def test_connect_failure_propagates(monkeypatch):
    fake_ws.install(monkeypatch, error=OSError("refused"))
    with capture_logs() as logs:
        with pytest.raises(FeedConnectError):
            await asyncio.wait_for(main_mod.run(_cfg()), timeout=3.0)
    events = [l["event"] for l in logs]
    assert "ws_connect_failed" in events
    assert "feed_ended" not in events
    assert "shutdown_complete" in events

def test_build_evaluator_dedupe_toggle():
    assert main_mod.build_evaluator(_cfg()).suppressor is not None
    ev = main_mod.build_evaluator(_cfg(dedupe=False))
    assert ev.suppressor is None
    assert len(ev.notifiers) == 1

def test_cli_exit_codes(monkeypatch):
    monkeypatch.setattr(main_mod, "load_dotenv", lambda: None)
    monkeypatch.setattr(main_mod, "configure_logging", lambda *a, **k: None)

    def bad_config():
        raise ConfigError("nope")
    monkeypatch.setattr(main_mod, "config_from_env", bad_config)
    assert main_mod.cli() == 2

    monkeypatch.setattr(main_mod, "config_from_env", lambda: _cfg())

    async def fatal(cfg):
        raise FeedConnectError("down")
    monkeypatch.setattr(main_mod, "run", fatal)
    assert main_mod.cli() == 1
