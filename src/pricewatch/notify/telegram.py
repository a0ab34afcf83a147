from __future__ import annotations

import asyncio
from typing import Callable, Optional

import aiohttp
import structlog

from pricewatch.alerts.formatting import format_alert_text
from pricewatch.config import TelegramConfig
from pricewatch.utils.types import AlertNotification, PriceAlert

log = structlog.get_logger("telegram")


class TelegramNotifier:
    """
    Sends every alert to each configured chat, one after another.

    Best effort: a failed chat is logged and skipped, the rest still get the
    message. No retries and no queue; the caller awaits the whole fan-out.
    """
    def __init__(
        self,
        cfg: TelegramConfig,
        session: Optional[aiohttp.ClientSession] = None,
        format_fn: Optional[Callable[[AlertNotification], str]] = None,
    ):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None
        self._format_fn = format_fn or format_alert_text
        self.bot_username: Optional[str] = None

    async def start(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        await self.check_token()

    async def stop(self):
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    def _url(self, method: str) -> str:
        return f"{self.cfg.api_base}/bot{self.cfg.bot_token}/{method}"

    async def check_token(self) -> bool:
        """getMe; logs and returns False when the bot credential is rejected."""
        assert self._session is not None
        try:
            async with self._session.get(self._url("getMe")) as resp:
                if resp.status != 200:
                    log.error("telegram_auth_failed", status=resp.status, body=await _maybe_text(resp))
                    return False
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log.error("telegram_auth_failed", err=str(e))
            return False
        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, dict):
            log.error("telegram_auth_failed", body=str(data)[:200])
            return False
        self.bot_username = result.get("username")
        log.info("telegram_ready", bot=self.bot_username, chats=len(self.cfg.chat_ids))
        return True

    async def send(self, alert: PriceAlert) -> int:
        """Fan out to every chat id; returns how many deliveries succeeded."""
        delivered = 0
        for chat_id in self.cfg.chat_ids:
            n = AlertNotification(chat_id=chat_id, symbol=alert.symbol,
                                  price=alert.price, target=alert.target)
            if await self._send(n.chat_id, self._format_fn(n)):
                delivered += 1
        return delivered

    async def _send(self, chat_id: int, text: str) -> bool:
        assert self._session is not None
        payload = {"chat_id": chat_id, "text": text}
        try:
            async with self._session.post(self._url("sendMessage"), json=payload) as resp:
                if resp.status == 200:
                    return True
                log.warning("telegram_send_failed", chat_id=chat_id, status=resp.status,
                            body=await _maybe_text(resp))
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("telegram_network_error", chat_id=chat_id, err=str(e))
            return False


async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return (await resp.text())[:200]
    except Exception:
        return "<no body>"
