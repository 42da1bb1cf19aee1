"""Factory for creating streaming price clients."""

from __future__ import annotations

import logging

from .client import StreamingPriceClient
from .config import ClientSettings

logger = logging.getLogger(__name__)


def create_price_client(symbol: str, settings: ClientSettings | None = None) -> StreamingPriceClient:
    """Create an unstarted client for one symbol.

    Settings default to ClientSettings.from_env(). Caller must call
    client.start() from within a running event loop.
    """
    settings = settings or ClientSettings.from_env()
    return StreamingPriceClient(symbol=symbol, settings=settings)


def create_price_clients(settings: ClientSettings | None = None) -> dict[str, StreamingPriceClient]:
    """Create one independent, unstarted client per configured symbol."""
    settings = settings or ClientSettings.from_env()
    clients = {symbol: StreamingPriceClient(symbol=symbol, settings=settings) for symbol in settings.symbols}
    logger.info("Price clients created for %s via %s", ", ".join(clients), settings.ws_base_url)
    return clients
