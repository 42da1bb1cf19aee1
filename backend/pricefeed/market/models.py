"""Data models for the streaming price client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConnectionState(str, Enum):
    """Connectivity of a single feed subscription."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True, slots=True)
class PriceSnapshot:
    """Immutable record of one ticker event for a symbol.

    All fields come from the same inbound message. ``observed_at`` is a
    monotonic receipt time, meaningful only for ordering and latency.
    """

    symbol: str
    price: float
    price_change: float
    price_change_percent: float
    high: float
    low: float
    volume: float
    observed_at: float

    def differs_from(self, other: PriceSnapshot | None, threshold: float) -> bool:
        """True if the price moved by at least ``threshold`` since ``other``."""
        if other is None:
            return True
        return abs(other.price - self.price) >= threshold

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        return {
            "symbol": self.symbol,
            "price": self.price,
            "price_change": self.price_change,
            "price_change_percent": self.price_change_percent,
            "high": self.high,
            "low": self.low,
            "volume": self.volume,
        }


@dataclass(slots=True)
class RetryState:
    """Private reconnect bookkeeping. Reset on every successful connect."""

    attempt_count: int = 0
    last_attempt_at: float | None = None

    def reset(self) -> None:
        self.attempt_count = 0
        self.last_attempt_at = None


@dataclass(frozen=True, slots=True)
class ClientStatus:
    """Everything a reader can observe about a client, published atomically."""

    symbol: str | None
    state: ConnectionState = ConnectionState.DISCONNECTED
    snapshot: PriceSnapshot | None = None
    latency_ms: int = 0
    retry_attempts: int = 0
    connect_attempts: int = 0
    retry_pending: bool = False
    exhausted: bool = False
    version: int = 0

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def needs_attention(self) -> bool:
        """Parked after running out of retries; only start()/reconnect() helps."""
        return self.exhausted and self.state is ConnectionState.DISCONNECTED

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        return {
            "symbol": self.symbol,
            "state": self.state.value,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "latency_ms": self.latency_ms,
            "retry_attempts": self.retry_attempts,
            "connect_attempts": self.connect_attempts,
            "retry_pending": self.retry_pending,
            "exhausted": self.exhausted,
            "needs_attention": self.needs_attention,
            "version": self.version,
        }
