"""Abstract interface for live price streams."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import ClientStatus


class PriceStream(ABC):
    """Contract for a single-symbol live price subscription.

    Implementations own their connection and publish an immutable
    ClientStatus. Callers never receive pushed callbacks or exceptions
    from the feed; they read ``status`` (or await ``wait_for_update``).

    Lifecycle:
        stream = create_price_client("BTCUSDT")
        stream.start()
        # ... app runs, reads stream.status ...
        stream.reconnect()      # force recovery, e.g. on staleness
        # ... app shutting down ...
        await stream.aclose()

    ``start``, ``stop`` and ``reconnect`` return immediately and must be
    called from the event loop thread hosting the stream.
    """

    @abstractmethod
    def start(self, symbol: str | None = None) -> None:
        """Begin connecting. No-op while connected, connecting or awaiting a retry."""

    @abstractmethod
    def stop(self) -> None:
        """Terminate the subscription and cancel any pending retry.

        Safe to call multiple times. After stop(), the stream will not
        reconnect on its own.
        """

    @abstractmethod
    def reconnect(self) -> None:
        """Drop any live connection, reset retries and connect again at once."""

    @property
    @abstractmethod
    def status(self) -> ClientStatus:
        """Latest published status. Safe to read from any thread."""

    @abstractmethod
    async def wait_closed(self) -> None:
        """Wait until the background connection task has exited."""

    async def aclose(self) -> None:
        """Stop and wait for the connection task to finish."""
        self.stop()
        await self.wait_closed()
