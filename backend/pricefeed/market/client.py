"""Auto-reconnecting WebSocket client for a single symbol's ticker feed."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from dataclasses import replace
from threading import Lock

import websockets

from .config import ClientSettings
from .interface import PriceStream
from .models import ClientStatus, ConnectionState, PriceSnapshot, RetryState
from .ticker import TickerParseError, parse_ticker, split_frame

logger = logging.getLogger(__name__)

# Failures that end a connection attempt and fall through to the retry policy
TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, websockets.WebSocketException)


def backoff_delay(attempt: int, settings: ClientSettings, rng: random.Random | None = None) -> float:
    """Seconds to wait before retry number ``attempt`` (0-based).

    Exponential growth capped at ``backoff_max``, plus uniform jitter so that
    clients sharing an outage do not reconnect in lockstep.
    """
    rng = rng or random
    base = min(settings.backoff_base * settings.backoff_factor**attempt, settings.backoff_max)
    return base + rng.uniform(0.0, settings.backoff_jitter)


class StreamingPriceClient(PriceStream):
    """Live ticker subscription for one symbol with bounded auto-reconnect.

    A single asyncio task owns the socket and is the only writer of the
    client's private state: it connects, reads ticks, and sleeps through
    the backoff delay between attempts. Readers get an immutable
    ClientStatus swapped in under a lock, so a partially updated record is
    never observable.

    ``latency_ms`` is the spacing between consecutive ticks as seen by this
    client (the first tick is measured from connection time). It is not a
    network round trip; no pings are sent.
    """

    def __init__(
        self,
        symbol: str | None = None,
        settings: ClientSettings | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._symbol = _normalize(symbol)
        self._rng = rng or random.Random()
        self._clock = clock

        self._retry = RetryState()
        self._stopped = True
        self._task: asyncio.Task | None = None
        self._ws = None
        self._last_receipt: float = 0.0
        self._retiring: set[asyncio.Task] = set()  # Cancelled, still closing their socket

        self._lock = Lock()
        self._status = ClientStatus(symbol=self._symbol)
        self._update_event = asyncio.Event()

    # --- Public API ---

    @property
    def symbol(self) -> str | None:
        return self._symbol

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def status(self) -> ClientStatus:
        with self._lock:
            return self._status

    @property
    def state(self) -> ConnectionState:
        return self.status.state

    @property
    def snapshot(self) -> PriceSnapshot | None:
        return self.status.snapshot

    @property
    def latency_ms(self) -> int:
        return self.status.latency_ms

    @property
    def version(self) -> int:
        return self.status.version

    def start(self, symbol: str | None = None) -> None:
        symbol = _normalize(symbol)
        if self._is_running():
            if symbol and symbol != self._symbol:
                logger.warning(
                    "%s: already streaming, ignoring start(%s); stop() first to switch symbols",
                    self._symbol,
                    symbol,
                )
            return

        symbol = symbol or self._symbol
        if not symbol:
            raise ValueError("A symbol is required to start a price stream")
        if symbol != self._symbol:
            # A new subscription never inherits another symbol's price
            self._symbol = symbol
            self._publish(symbol=symbol, snapshot=None, latency_ms=0)

        logger.info("%s: starting price stream (%s)", symbol, self._settings.url_for(symbol))
        self._launch()

    def stop(self) -> None:
        self._stopped = True
        if self._retire(self._task):
            logger.info("%s: price stream stopping", self._symbol)

    def reconnect(self) -> None:
        if not self._symbol:
            logger.warning("reconnect() called before any symbol was started; ignoring")
            return
        self._retire(self._task)
        logger.info("%s: reconnect requested", self._symbol)
        self._launch()

    async def wait_closed(self) -> None:
        # reconnect() may swap in a new task while we wait; retired tasks may still be closing
        while True:
            pending = [t for t in (self._task, *self._retiring) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    async def wait_for_update(self, version: int, timeout: float | None = None) -> ClientStatus:
        """Wait until the published version exceeds ``version``.

        Returns the latest status either way; on timeout it may be unchanged.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            status = self.status
            if status.version > version:
                return status
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return status
            try:
                await asyncio.wait_for(self._update_event.wait(), remaining)
            except asyncio.TimeoutError:
                return self.status

    # --- Connection task ---

    def _is_running(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    def _retire(self, task: asyncio.Task | None) -> bool:
        """Cancel ``task`` once and track it until it has released its socket."""
        if task is None or task.done() or task in self._retiring:
            return False
        task.cancel()
        self._retiring.add(task)
        task.add_done_callback(self._retiring.discard)
        return True

    def _owns_state(self) -> bool:
        """False inside a superseded task, which must not overwrite the live state."""
        return self._task is asyncio.current_task()

    def _launch(self) -> None:
        """Start a fresh connection task, queued behind every task still being torn down."""
        self._stopped = False
        self._retry.reset()
        self._publish(
            state=ConnectionState.DISCONNECTED,
            retry_attempts=0,
            retry_pending=False,
            exhausted=False,
        )
        self._task = asyncio.create_task(
            self._run(list(self._retiring)),
            name=f"price-stream-{self._symbol.lower()}",
        )

    async def _run(self, retiring: list[asyncio.Task]) -> None:
        try:
            pending = [t for t in retiring if not t.done()]
            if pending:
                # One socket at a time: every cancelled task closes its connection first
                await asyncio.wait(pending)

            while not self._stopped:
                await self._connect_once()
                if self._stopped:
                    break

                if self._retry.attempt_count >= self._settings.max_attempts:
                    logger.error(
                        "%s: giving up after %d reconnect attempts; call start() or reconnect() to resume",
                        self._symbol,
                        self._retry.attempt_count,
                    )
                    self._publish(exhausted=True, retry_pending=False)
                    break

                delay = backoff_delay(self._retry.attempt_count, self._settings, self._rng)
                self._retry.attempt_count += 1
                self._publish(retry_attempts=self._retry.attempt_count, retry_pending=True)
                logger.debug(
                    "%s: reconnect %d/%d in %.2fs",
                    self._symbol,
                    self._retry.attempt_count,
                    self._settings.max_attempts,
                    delay,
                )
                await asyncio.sleep(delay)
                self._publish(retry_pending=False)
        finally:
            if self._owns_state():
                self._ws = None
                self._publish(state=ConnectionState.DISCONNECTED, retry_pending=False)

    async def _connect_once(self) -> None:
        """One connection attempt, reading until the socket closes or fails."""
        url = self._settings.url_for(self._symbol)
        self._retry.last_attempt_at = self._clock()
        self._publish(
            state=ConnectionState.CONNECTING,
            connect_attempts=self.status.connect_attempts + 1,
        )

        try:
            async with websockets.connect(
                url,
                open_timeout=self._settings.open_timeout,
                close_timeout=self._settings.close_timeout,
            ) as ws:
                self._ws = ws
                self._on_open()
                async for frame in ws:
                    self._handle_frame(frame)
            logger.info("%s: feed closed by server", self._symbol)
        except TRANSPORT_ERRORS as e:
            logger.warning("%s: connection failed or lost: %r", self._symbol, e)
        except Exception:
            logger.exception("%s: unexpected error in price stream", self._symbol)
        finally:
            if self._owns_state():
                self._ws = None
                self._publish(state=ConnectionState.DISCONNECTED)

    def _on_open(self) -> None:
        self._retry.reset()
        self._last_receipt = self._clock()
        self._publish(state=ConnectionState.CONNECTED, retry_attempts=0, exhausted=False)
        logger.info("%s: connected", self._symbol)

    # --- Message processing ---

    def _handle_frame(self, frame: str | bytes) -> None:
        try:
            documents = list(split_frame(frame))
        except TickerParseError as e:
            logger.warning("%s: dropping undecodable frame: %s", self._symbol, e)
            return
        for raw in documents:
            self._handle_message(raw)

    def _handle_message(self, raw: str) -> None:
        received = self._clock()
        try:
            candidate = parse_ticker(raw, observed_at=received)
        except TickerParseError as e:
            logger.warning("%s: dropping malformed ticker message: %s", self._symbol, e)
            return

        latency_ms = max(0, round((received - self._last_receipt) * 1000))
        self._last_receipt = received

        current = self.status.snapshot
        if candidate.differs_from(current, self._settings.dedup_threshold):
            self._publish(snapshot=candidate, latency_ms=latency_ms)
        else:
            logger.debug(
                "%s: price %.8g within dedup threshold of %.8g",
                self._symbol,
                candidate.price,
                current.price,
            )
            self._publish(latency_ms=latency_ms)

    def _publish(self, **changes) -> ClientStatus:
        """Swap in a new status record and wake any waiters."""
        with self._lock:
            self._status = replace(self._status, version=self._status.version + 1, **changes)
            status = self._status
        event, self._update_event = self._update_event, asyncio.Event()
        event.set()
        return status


def _normalize(symbol: str | None) -> str | None:
    if symbol is None:
        return None
    return symbol.strip().upper() or None
