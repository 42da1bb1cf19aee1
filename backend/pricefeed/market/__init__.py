"""Live market price streaming.

Public API:
    StreamingPriceClient - Auto-reconnecting ticker subscription for one symbol
    PriceStream          - Abstract lifecycle contract for price streams
    PriceSnapshot        - Immutable ticker record
    ClientStatus         - Immutable state/snapshot/latency record read by callers
    ConnectionState      - disconnected / connecting / connected
    ClientSettings       - Connection and backoff tuning, loadable from env
    backoff_delay        - Reconnect delay policy (exponential, capped, jittered)
    create_price_client  - Factory for one symbol
    create_price_clients - Factory for every configured symbol
    create_stream_router - FastAPI router factory for status + SSE endpoints
"""

from .client import StreamingPriceClient, backoff_delay
from .config import ClientSettings
from .factory import create_price_client, create_price_clients
from .interface import PriceStream
from .models import ClientStatus, ConnectionState, PriceSnapshot
from .stream import create_stream_router

__all__ = [
    "StreamingPriceClient",
    "PriceStream",
    "PriceSnapshot",
    "ClientStatus",
    "ConnectionState",
    "ClientSettings",
    "backoff_delay",
    "create_price_client",
    "create_price_clients",
    "create_stream_router",
]
