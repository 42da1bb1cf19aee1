"""Parsing of exchange ticker messages into PriceSnapshot records."""

from __future__ import annotations

import json
import math
from collections.abc import Iterator

from .models import PriceSnapshot

# Binance 24hr ticker stream field names -> PriceSnapshot attributes
BINANCE_TICKER_FIELDS: dict[str, str] = {
    "price": "c",
    "price_change": "p",
    "price_change_percent": "P",
    "high": "h",
    "low": "l",
    "volume": "v",
}


class TickerParseError(ValueError):
    """Raised when an inbound message cannot be mapped to a snapshot."""


def split_frame(frame: str | bytes) -> Iterator[str]:
    """Yield the non-empty newline-delimited documents in a WebSocket frame."""
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TickerParseError(f"frame is not UTF-8: {e}") from e
    for line in frame.splitlines():
        line = line.strip()
        if line:
            yield line


def parse_ticker(raw: str, observed_at: float) -> PriceSnapshot:
    """Map one JSON ticker document to a PriceSnapshot.

    Accepts both the raw stream payload and the combined-stream envelope
    ``{"stream": "...", "data": {...}}``. Numeric fields arrive as strings.
    """
    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TickerParseError(f"invalid JSON: {e}") from e

    if isinstance(doc, dict) and isinstance(doc.get("data"), dict):
        doc = doc["data"]
    if not isinstance(doc, dict):
        raise TickerParseError(f"expected a JSON object, got {type(doc).__name__}")

    symbol = doc.get("s")
    if not isinstance(symbol, str) or not symbol:
        raise TickerParseError("missing symbol")

    values: dict[str, float] = {}
    for attr, key in BINANCE_TICKER_FIELDS.items():
        try:
            values[attr] = float(doc[key])
        except KeyError as e:
            raise TickerParseError(f"missing field {key!r}") from e
        except (TypeError, ValueError) as e:
            raise TickerParseError(f"field {key!r} is not numeric: {doc[key]!r}") from e
        if not math.isfinite(values[attr]):
            raise TickerParseError(f"field {key!r} is not finite: {doc[key]!r}")

    return PriceSnapshot(symbol=symbol.upper(), observed_at=observed_at, **values)
