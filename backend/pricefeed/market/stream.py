"""HTTP observe surface: status endpoints and an SSE stream of client state."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Mapping

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from .interface import PriceStream

logger = logging.getLogger(__name__)


def create_stream_router(clients: Mapping[str, PriceStream]) -> APIRouter:
    """Create the price router bound to a set of per-symbol clients.

    This factory pattern lets us inject the clients without globals.
    """
    router = APIRouter(prefix="/api/prices", tags=["prices"])

    def _lookup(symbol: str) -> PriceStream:
        client = clients.get(symbol.upper())
        if client is None:
            raise HTTPException(status_code=404, detail=f"Unknown symbol: {symbol}")
        return client

    @router.get("/status")
    async def all_statuses() -> dict:
        """Current status of every client, keyed by symbol."""
        return _collect(clients)

    @router.get("/stream")
    async def stream_prices(request: Request) -> StreamingResponse:
        """SSE endpoint for live client status.

        Emits every client's status whenever any of them publishes a change:

            data: {"BTCUSDT": {"symbol": "BTCUSDT", "state": "connected", ...}, ...}

        Includes a retry directive so the browser auto-reconnects on
        disconnection (EventSource built-in behavior).
        """
        return StreamingResponse(
            _generate_events(clients, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    @router.get("/{symbol}")
    async def symbol_status(symbol: str) -> dict:
        return _lookup(symbol).status.to_dict()

    @router.post("/{symbol}/reconnect")
    async def force_reconnect(symbol: str) -> dict:
        """Drop the symbol's connection and reconnect immediately, resetting retries."""
        client = _lookup(symbol)
        client.reconnect()
        return client.status.to_dict()

    return router


def _collect(clients: Mapping[str, PriceStream]) -> dict:
    return {symbol: client.status.to_dict() for symbol, client in clients.items()}


async def _generate_events(
    clients: Mapping[str, PriceStream],
    request: Request,
    interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Yield an SSE frame with every status whenever any client's version moves.

    Versions are compared every `interval` seconds. The generator ends once
    the watcher goes away.
    """
    # EventSource reconnect delay in milliseconds
    yield "retry: 1000\n\n"

    seen: tuple[int, ...] | None = None
    watcher = request.client.host if request.client else "unknown"
    logger.info("Status watcher attached: %s (%d symbols)", watcher, len(clients))

    try:
        while not await request.is_disconnected():
            versions = tuple(client.status.version for client in clients.values())
            if clients and versions != seen:
                yield f"data: {json.dumps(_collect(clients))}\n\n"
            seen = versions
            await asyncio.sleep(interval)
        logger.info("Status watcher detached: %s", watcher)
    except asyncio.CancelledError:
        logger.info("Status stream to %s cancelled on shutdown", watcher)
