# src/pricewatch/main.py
import asyncio
import signal
import sys
from typing import Optional

import structlog
from dotenv import load_dotenv

from pricewatch.config import AppConfig, ConfigError, config_from_env
from pricewatch.ingest.binance_ws import BinanceStreamConfig, BinanceTradeStream, FeedConnectError
from pricewatch.alerts.dedup import AlertSuppressor
from pricewatch.alerts.evaluator import TargetEvaluator
from pricewatch.alerts.notifiers import ConsoleNotifier
from pricewatch.notify.telegram import TelegramNotifier
from pricewatch.utils.logs import configure_logging

log = structlog.get_logger("main")

SHUTDOWN_TIMEOUT_S = 5.0


# ---------------------------
# Signals
# ---------------------------

def install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # e.g. Windows, or not on the main thread
            log.debug("signal_handler_unavailable", signal=sig.name)


def remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.remove_signal_handler(sig)
        except (NotImplementedError, RuntimeError):
            pass


# ---------------------------
# Wiring
# ---------------------------

def build_evaluator(cfg: AppConfig, tg_notifier: Optional[TelegramNotifier] = None) -> TargetEvaluator:
    notifiers = [ConsoleNotifier()]
    if tg_notifier is not None:
        notifiers.append(tg_notifier)
    suppressor = AlertSuppressor(cooldown_s=cfg.cooldown_s) if cfg.dedupe else None
    return TargetEvaluator(cfg.targets, notifiers, suppressor=suppressor)


async def run(cfg: AppConfig, stop: Optional[asyncio.Event] = None) -> int:
    """
    Runs until SIGINT/SIGTERM (or `stop` being set) or the feed ending,
    whichever comes first. Raises FeedConnectError if the feed never came up.
    """
    stop = stop or asyncio.Event()

    tg_notifier = None
    if cfg.telegram is not None:
        tg_notifier = TelegramNotifier(cfg.telegram)
        await tg_notifier.start()
        log.info("telegram_enabled", chats=len(cfg.telegram.chat_ids))
    else:
        log.info("telegram_disabled_missing_env")

    evaluator = build_evaluator(cfg, tg_notifier)
    feed = BinanceTradeStream(
        BinanceStreamConfig(
            symbols=cfg.symbols,
            base_url=cfg.stream_url,
            expect_heartbeat_s=cfg.expect_heartbeat_s,
        ),
        on_tick=evaluator.on_tick,
    )
    log.info("starting", symbols=len(cfg.symbols), dedupe=cfg.dedupe, cooldown_s=cfg.cooldown_s)

    install_signal_handlers(stop)
    feed_task = asyncio.create_task(feed.start(), name="binance_ws")
    stop_task = asyncio.create_task(stop.wait(), name="shutdown_signal")
    try:
        done, _ = await asyncio.wait({feed_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if feed_task in done:
            if feed_task.exception() is None:
                log.info("feed_ended")
        else:
            log.info("shutdown_signal_received")
        await feed.stop()
        try:
            await asyncio.wait_for(feed_task, timeout=SHUTDOWN_TIMEOUT_S)
        except asyncio.TimeoutError:
            log.warning("feed_stop_timeout", timeout_s=SHUTDOWN_TIMEOUT_S)
    finally:
        stop_task.cancel()
        remove_signal_handlers()
        if tg_notifier is not None:
            await tg_notifier.stop()
        log.info("shutdown_complete")
    return 0


def cli() -> int:
    load_dotenv()
    try:
        cfg = config_from_env()
    except ConfigError as e:
        configure_logging()
        log.error("config_invalid", err=str(e))
        return 2

    configure_logging(cfg.log_level, cfg.log_colors)
    try:
        return asyncio.run(run(cfg))
    except FeedConnectError as e:
        log.error("feed_connect_fatal", err=str(e))
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(cli())
