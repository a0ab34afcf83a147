from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

import structlog
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from pricewatch.config import BINANCE_WS_URL
from pricewatch.utils.time import utc_now_s
from pricewatch.utils.types import TradeTick
from pricewatch.ingest import parser  # parse_trade_msg(obj) -> TradeTick | None

TickHandler = Callable[[TradeTick], Awaitable[object]]


class FeedConnectError(RuntimeError):
    """Connecting or subscribing to the trade stream failed."""


def stream_names(symbols: Iterable[str]) -> list[str]:
    """Binance per-symbol trade streams: lower-cased symbol + '@trade'."""
    return [f"{s.strip().lower()}@trade" for s in symbols if s.strip()]


def stream_url(base_url: str, names: Iterable[str]) -> str:
    return base_url.rstrip("/") + "/" + "/".join(names)


def subscribe_message(names: list[str], request_id: Optional[str] = None) -> dict:
    return {
        "method": "SUBSCRIBE",
        "params": list(names),
        "id": request_id or str(uuid.uuid4()),
    }


@dataclass(slots=True)
class BinanceStreamConfig:
    symbols: list[str]
    base_url: str = BINANCE_WS_URL
    # heartbeat / staleness
    expect_heartbeat_s: float = 30.0  # warn if no frames for this long
    # timeouts
    open_timeout_s: float = 10.0
    ping_interval_s: float = 20.0


class BinanceTradeStream:
    """
    Binance public trade stream client.

    Lifecycle:
      - Connect → Subscribe → Stream, exactly once
      - Connect/subscribe failure raises FeedConnectError (no retry)
      - A close or read error ends start() normally; the caller decides what
        end-of-stream means

    Every decoded TradeTick is awaited through `on_tick` before the next frame
    is read, so ticks are handled strictly in feed order.

    Usage:
        cfg = BinanceStreamConfig(symbols=["SOLUSDT", "LINKUSDT"])
        feed = BinanceTradeStream(cfg, on_tick=evaluator.on_tick)
        await feed.start()   # runs until the socket closes or stop() is called
    """

    def __init__(self, cfg: BinanceStreamConfig, on_tick: TickHandler):
        self.cfg = cfg
        self.on_tick = on_tick
        self.streams = stream_names(cfg.symbols)
        self.url = stream_url(cfg.base_url, self.streams)

        self._log = structlog.get_logger("binance_ws")
        self._stop = asyncio.Event()
        self._last_msg_ts: float = 0.0
        self._ws = None
        self.request_id: Optional[str] = None

        self.connected: bool = False
        self.subscribed: bool = False

    # ---------------------------- public API ---------------------------- #

    async def start(self) -> None:
        self._reset_state()
        self._log.info("ws_connecting", url=self.cfg.base_url, streams=len(self.streams))
        try:
            async with ws_connect(
                self.url,
                open_timeout=self.cfg.open_timeout_s,
                ping_interval=self.cfg.ping_interval_s,
                ping_timeout=None,
            ) as ws:
                self._ws = ws
                self.connected = True
                self._log.info("ws_connected")

                await self._subscribe(ws)
                await self._stream_loop(ws)
        except (OSError, WebSocketException) as e:
            # the stream loop handles its own errors, so anything here is connect/subscribe
            self._log.error("ws_connect_failed", url=self.cfg.base_url, err=str(e))
            raise FeedConnectError(f"could not subscribe to {self.cfg.base_url}: {e}") from e
        finally:
            self.connected = False
            self._ws = None
        self._log.info("ws_loop_exit")

    async def stop(self) -> None:
        self._stop.set()
        if self._ws is not None and hasattr(self._ws, "close"):
            await self._ws.close()

    # --------------------------- core internals ------------------------- #

    async def _subscribe(self, ws) -> None:
        msg = subscribe_message(self.streams)
        self.request_id = msg["id"]
        await ws.send(json.dumps(msg))
        self.subscribed = True
        self._log.info("ws_subscribed", streams=self.streams, request_id=self.request_id)

    async def _stream_loop(self, ws) -> None:
        """
        Reads frames and hands decoded ticks to on_tick. Returns on close, read
        error or stop().
        """
        self._last_msg_ts = utc_now_s()
        while not self._stop.is_set():
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=self._recv_timeout())
            except asyncio.TimeoutError:
                if self.is_stale():
                    self._log.warning("ws_stale_no_messages", age_s=round(self.last_message_age_s(), 3))
                continue
            except ConnectionClosed as e:
                if not self._stop.is_set():
                    self._log.warning("ws_closed", code=getattr(e.rcvd, "code", None), reason=str(e))
                return
            except (OSError, WebSocketException) as e:
                self._log.warning("ws_read_error", err=str(e))
                return

            self._last_msg_ts = utc_now_s()
            await self._handle_frame(raw)

        # graceful stop path: exit stream
        self._log.info("ws_stream_loop_exit")

    async def _handle_frame(self, raw) -> None:
        try:
            msg = json.loads(raw)
        except (TypeError, ValueError) as e:
            self._log.warning("ws_json_error", err=str(e), snippet=str(raw)[:200])
            return

        try:
            tick = parser.parse_trade_msg(msg)
        except parser.PriceParseError as e:
            self._log.warning("price_parse_error", err=str(e), symbol=msg.get("s"))
            return
        except parser.TickDecodeError as e:
            self._log.warning("tick_decode_error", err=str(e), snippet=str(msg)[:200])
            return

        if tick is None:
            self._handle_non_trade(msg)
            return

        try:
            await self.on_tick(tick)
        except Exception:
            self._log.exception("tick_handler_error", symbol=tick.symbol, trade_id=tick.trade_id)

    # --------------------------- helpers -------------------------------- #

    def healthy(self) -> bool:
        """Connected, subscribed and not stale."""
        if not self.connected or not self.subscribed:
            return False
        return not self.is_stale()

    def is_stale(self) -> bool:
        return self.last_message_age_s() > self.cfg.expect_heartbeat_s

    def last_message_age_s(self) -> float:
        return max(0.0, utc_now_s() - self._last_msg_ts) if self._last_msg_ts else float("inf")

    def _handle_non_trade(self, msg) -> None:
        """
        Subscription acks and errors. Examples:
          {"result": null, "id": "6f1c..."}
          {"error": {"code": 2, "msg": "Invalid request"}, "id": "6f1c..."}
        """
        if not isinstance(msg, dict):
            return
        if "error" in msg:
            self._log.warning("binance_stream_error", msg=msg)
            return
        if "result" in msg and msg.get("id") == self.request_id:
            self._log.info("ws_subscribe_ack", request_id=self.request_id)
            return
        # else: ignore

    def _recv_timeout(self) -> float:
        # how long we’re okay waiting for a frame before we check staleness
        return max(1.0, min(self.cfg.expect_heartbeat_s, 5.0))

    def _reset_state(self) -> None:
        self.connected = False
        self.subscribed = False
        self._last_msg_ts = 0.0
        self._ws = None
        self.request_id = None
