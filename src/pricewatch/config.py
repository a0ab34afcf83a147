"""Target table and runtime settings.

Everything comes from the environment (a `.env` file is loaded by the CLI):

    BINANCE_STREAM_URL   base ws url (default wss://stream.binance.com:9443/ws)
    TARGETS_FILE         JSON file {"SOLUSDT": [210, 200, 190], ...}; built-in table if unset
    ALERT_DEDUPE         1/0, suppress repeat alerts for the same symbol (default 1)
    ALERT_COOLDOWN_S     suppression window in seconds (default 60)
    TELEGRAM_BOT_TOKEN   bot credential
    TELEGRAM_CHAT_IDS    comma-separated chat ids to fan out to
    TELEGRAM_TIMEOUT_S   per request timeout (default 8)
    WS_HEARTBEAT_S       warn when the feed is silent this long (default 30)
    LOG_LEVEL            DEBUG/INFO/WARNING/ERROR (default INFO)
    LOG_COLORS           1/0 (default 1)
"""
from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

BINANCE_WS_URL = "wss://stream.binance.com:9443/ws"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

TargetTable = Mapping[str, tuple[float, ...]]

# Price targets per symbol, checked in order.
DEFAULT_TARGETS: dict[str, list[float]] = {
    "LINKUSDT":   [21.7, 20.8, 18.44, 25.00],
    "KSMUSDT":    [40, 37],
    "COTIUSDT":   [15.4, 14.4, 12.7],
    "SOLUSDT":    [210, 200, 190],
    "XLMUSDT":    [0.42, 0.36, 0.30],
    "ALGOUSDT":   [0.42, 0.36, 0.30],
    "PENDLEUSDT": [5.9, 5.6, 5.4],
    "RNDRUSDT":   [9, 8, 7.2],
    "RAYUSDT":    [4.5, 4, 3.4],
    "JASMYUSDT":  [0.045],
    "GALAUSDT":   [0.50, 0.46, 0.40],
    "AVAXUSDT":   [47, 43],
    "KDAUSDT":    [1.31, 1.15, 1],
    "ICPUSDT":    [13.5, 13, 12.3],
    "DIAUSDT":    [0.88, 0.84, 0.80],
    "SUPERUSDT":  [1.6, 1.5],
    "RSRUSDT":    [0.01800, 0.01500, 0.012],
    "TAOUSDT":    [680, 655, 635],
    "ONDOUSDT":   [1.45, 1.28, 1.11],
    "ZILUSDT":    [0.285, 0.253, 0.2218],
    "LITUSDT":    [1.1, 1.0, 0.8],
    "TIAUSDT":    [7.65, 6.8],
}


class ConfigError(ValueError):
    """Invalid or missing configuration."""


# --------- target table ----------

def build_target_table(raw: Mapping[str, object]) -> TargetTable:
    """
    Validate and freeze a {symbol: [targets]} mapping.
    Symbols are upper-cased; target order is preserved.
    """
    if not isinstance(raw, Mapping) or not raw:
        raise ConfigError("target table must be a non-empty mapping")

    table: dict[str, tuple[float, ...]] = {}
    for sym, targets in raw.items():
        symbol = str(sym).strip().upper()
        if not symbol:
            raise ConfigError("empty symbol in target table")
        if isinstance(targets, (str, bytes)) or not isinstance(targets, (list, tuple)) or not targets:
            raise ConfigError(f"{symbol}: targets must be a non-empty list")
        out = []
        for t in targets:
            if isinstance(t, bool):
                raise ConfigError(f"{symbol}: invalid target {t!r}")
            try:
                v = float(t)
            except (TypeError, ValueError):
                raise ConfigError(f"{symbol}: invalid target {t!r}") from None
            if not math.isfinite(v) or v <= 0.0:
                raise ConfigError(f"{symbol}: target must be positive, got {t!r}")
            out.append(v)
        table[symbol] = tuple(out)
    return MappingProxyType(table)


def load_targets(path: str | Path) -> TargetTable:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"targets file not found: {p}") from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"targets file is not valid JSON: {p}: {e}") from e
    return build_target_table(raw)


# --------- settings ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_ids: list[int]
    timeout_s: float = 8.0
    api_base: str = "https://api.telegram.org"


@dataclass(slots=True)
class AppConfig:
    targets: TargetTable
    stream_url: str = BINANCE_WS_URL
    dedupe: bool = True
    cooldown_s: float = 60.0
    expect_heartbeat_s: float = 30.0
    telegram: Optional[TelegramConfig] = None
    log_level: str = "INFO"
    log_colors: bool = True
    symbols: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.symbols:
            self.symbols = list(self.targets)


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    v = env.get(key)
    if v is None or not v.strip():
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    v = env.get(key)
    if v is None or not v.strip():
        return default
    try:
        f = float(v)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {v!r}") from None
    if not math.isfinite(f) or f < 0:
        raise ConfigError(f"{key} must be a non-negative number, got {v!r}")
    return f


def parse_chat_ids(value: str) -> list[int]:
    ids = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise ConfigError(f"invalid telegram chat id: {part!r}") from None
    return ids


def telegram_config_from_env(env: Mapping[str, str]) -> Optional[TelegramConfig]:
    """None unless both a token and at least one chat id are configured."""
    token = (env.get("TELEGRAM_BOT_TOKEN") or "").strip()
    chat_ids = parse_chat_ids(env.get("TELEGRAM_CHAT_IDS") or "")
    if not token or not chat_ids:
        return None
    return TelegramConfig(
        bot_token=token,
        chat_ids=chat_ids,
        timeout_s=_env_float(env, "TELEGRAM_TIMEOUT_S", 8.0),
    )


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    env = os.environ if environ is None else environ

    targets_file = (env.get("TARGETS_FILE") or "").strip()
    targets = load_targets(targets_file) if targets_file else build_target_table(DEFAULT_TARGETS)

    log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    return AppConfig(
        targets=targets,
        stream_url=(env.get("BINANCE_STREAM_URL") or BINANCE_WS_URL).strip().rstrip("/"),
        dedupe=_env_bool(env, "ALERT_DEDUPE", True),
        cooldown_s=_env_float(env, "ALERT_COOLDOWN_S", 60.0),
        expect_heartbeat_s=_env_float(env, "WS_HEARTBEAT_S", 30.0),
        telegram=telegram_config_from_env(env),
        log_level=log_level,
        log_colors=_env_bool(env, "LOG_COLORS", True),
    )
