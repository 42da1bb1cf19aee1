"""Client settings, read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_WS_BASE_URL = "wss://stream.binance.com:9443/ws"
DEFAULT_SYMBOLS: tuple[str, ...] = ("BTCUSDT", "ETHUSDT")

ENV_PREFIX = "PRICEFEED_"


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """Connection and reconnect tuning for StreamingPriceClient.

    Durations are in seconds. With the defaults the reconnect delay is
    ``min(1.0 * 1.5**n, 5.0) + uniform(0, 1.0)`` for the n-th retry.
    """

    ws_base_url: str = DEFAULT_WS_BASE_URL
    symbols: tuple[str, ...] = DEFAULT_SYMBOLS
    max_attempts: int = 5
    backoff_base: float = 1.0
    backoff_factor: float = 1.5
    backoff_max: float = 5.0
    backoff_jitter: float = 1.0
    dedup_threshold: float = 0.01
    open_timeout: float = 10.0
    close_timeout: float = 10.0

    def url_for(self, symbol: str) -> str:
        """Ticker stream URL for one symbol."""
        return f"{self.ws_base_url.rstrip('/')}/{symbol.lower()}@ticker"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientSettings:
        """Build settings from PRICEFEED_* variables. Blank values use defaults.

        Raises ValueError naming the variable when a value is malformed.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def raw(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name, "").strip()
            return value or None

        def number(name: str, default, kind=float, minimum: float = 0.0):
            value = raw(name)
            if value is None:
                return default
            try:
                parsed = kind(value)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{name} must be a {kind.__name__}, got {value!r}") from None
            if parsed < minimum:
                raise ValueError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value!r}")
            return parsed

        symbols_raw = raw("SYMBOLS")
        if symbols_raw is None:
            symbols = defaults.symbols
        else:
            symbols = tuple(dict.fromkeys(s.strip().upper() for s in symbols_raw.split(",") if s.strip()))
            if not symbols:
                raise ValueError(f"{ENV_PREFIX}SYMBOLS has no symbols: {symbols_raw!r}")

        return cls(
            ws_base_url=raw("WS_BASE_URL") or defaults.ws_base_url,
            symbols=symbols,
            max_attempts=number("MAX_ATTEMPTS", defaults.max_attempts, kind=int),
            backoff_base=number("BACKOFF_BASE", defaults.backoff_base),
            backoff_factor=number("BACKOFF_FACTOR", defaults.backoff_factor, minimum=1.0),
            backoff_max=number("BACKOFF_MAX", defaults.backoff_max),
            backoff_jitter=number("BACKOFF_JITTER", defaults.backoff_jitter),
            dedup_threshold=number("DEDUP_THRESHOLD", defaults.dedup_threshold),
            open_timeout=number("OPEN_TIMEOUT", defaults.open_timeout, minimum=0.001),
            close_timeout=number("CLOSE_TIMEOUT", defaults.close_timeout, minimum=0.001),
        )
