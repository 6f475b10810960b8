"""
ws.py – Streaming subscriptions for Binance push channels.

Every subscription is exposed as a channel pair:

    events, stop = await service.depth_websocket(DepthWebsocketRequest(symbol="BTCUSDT"))

    async for event in events:      # EventChannel[DepthEvent]
        print(event.bids[:1])
        if done:
            stop.close()            # StopChannel – releases the connection

Both channels are valid as soon as subscribe() returns; connecting
happens in a background task owned by the StreamManager.  Lifecycle of
one subscription:

    Connecting → Open → Closing → Closed

1. Open: frames are decoded one by one and pushed in arrival order.  A
   full EventChannel blocks the reader (backpressure, no unbounded
   buffering).
2. A frame that fails to decode is logged and dropped; the stream stays
   open.  With max_decode_errors=N the stream closes after N consecutive
   bad frames.
3. Closing is triggered by stop.close(), by the remote peer closing the
   connection, or by a connection-level failure (kept in events.error
   as a TransportError).
4. Closed: the connection is released, the EventChannel is closed
   exactly once and the task ends.  Streams never reconnect.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from typing import Any, Generic, Optional, TypeVar, Union
from urllib.parse import urlsplit

import pydantic
import websockets

from .errors import BinanceError, ConstructionError, DecodeError, TransportError


T = TypeVar("T")

# Frame decoder: raw text/bytes frame → typed event, raising DecodeError
Decoder = Callable[[Union[str, bytes]], T]

# Connection factory with the websockets.connect call shape; the result
# is used as an async context manager yielding an async-iterable connection.
Connect = Callable[..., Any]


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_PING_INTERVAL_S = 20
_PONG_TIMEOUT_S  = 10


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

class ChannelClosedError(Exception):
    """Raised by EventChannel.send()/receive() once the channel is closed and drained."""


class EventChannel(Generic[T]):
    """
    Bounded producer → consumer channel of decoded events.

    receive() returns buffered events even after close(); it raises
    ChannelClosedError only once the channel is closed and empty.  The
    channel is also an async iterator that ends on closure.

    Parameters
    ----------
    capacity : events buffered before send() blocks (≥ 1)
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._buffer:  deque[T]               = deque()
        self._closed   = False
        self._error:   Optional[BaseException] = None
        self._changed  = asyncio.Event()

    def _notify(self) -> None:
        # Wake every waiter, then arm a fresh event for the next round.
        self._changed.set()
        self._changed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[BaseException]:
        """The fatal error that closed the stream, None for a clean close."""
        return self._error

    def __len__(self) -> int:
        return len(self._buffer)

    async def send(self, item: T) -> None:
        """Push one event, waiting while the buffer is full."""
        while len(self._buffer) >= self._capacity and not self._closed:
            await self._changed.wait()
        if self._closed:
            raise ChannelClosedError("send on closed channel")
        self._buffer.append(item)
        self._notify()

    async def receive(self) -> T:
        """Pull the next event, waiting until one arrives or the channel closes."""
        while not self._buffer and not self._closed:
            await self._changed.wait()
        if self._buffer:
            item = self._buffer.popleft()
            self._notify()
            return item
        raise ChannelClosedError("channel closed")

    def close(self, error: Optional[BaseException] = None) -> bool:
        """
        Close the channel.  Only the first call has an effect.

        Returns True if this call closed the channel.
        """
        if self._closed:
            return False
        self._closed = True
        self._error  = error
        self._notify()
        return True

    def __aiter__(self) -> "EventChannel[T]":
        return self

    async def __anext__(self) -> T:
        try:
            return await self.receive()
        except ChannelClosedError:
            raise StopAsyncIteration from None


class StopChannel:
    """One-shot termination signal written by the consumer."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def close(self) -> None:
        """Request termination of the stream.  Idempotent."""
        self._event.set()

    @property
    def closed(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def model_decoder(model: type[pydantic.BaseModel]) -> Decoder:
    """Build a Decoder that validates a JSON frame into model."""

    def decode(frame: Union[str, bytes]) -> Any:
        try:
            return model.model_validate_json(frame)
        except pydantic.ValidationError as exc:
            raise DecodeError(
                f"frame does not match {model.__name__}: {exc.error_count()} error(s)"
            ) from exc

    return decode


# ---------------------------------------------------------------------------
# Stream manager
# ---------------------------------------------------------------------------

class StreamManager:
    """
    Opens and supervises streaming subscriptions.

    Parameters
    ----------
    connect           : websockets.connect-compatible factory (injectable for tests)
    logger            : diagnostic sink; defaults to this module's logger
    capacity          : EventChannel capacity for new subscriptions
    max_decode_errors : close a stream after this many consecutive bad
                        frames; None never closes on decode errors
    ping_interval     : websocket keep-alive ping interval (s)
    ping_timeout      : seconds to wait for the pong
    """

    def __init__(
        self,
        connect:           Optional[Connect]        = None,
        logger:            Optional[logging.Logger] = None,
        *,
        capacity:          int           = 1,
        max_decode_errors: Optional[int] = None,
        ping_interval:     float         = _PING_INTERVAL_S,
        ping_timeout:      float         = _PONG_TIMEOUT_S,
    ) -> None:
        if max_decode_errors is not None and max_decode_errors < 1:
            raise ValueError(f"max_decode_errors must be >= 1, got {max_decode_errors}")
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._connect           = connect or websockets.connect
        self._logger            = logger or logging.getLogger(__name__)
        self._capacity          = capacity
        self._max_decode_errors = max_decode_errors
        self._ping_interval     = ping_interval
        self._ping_timeout      = ping_timeout
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        """Number of subscriptions whose task is still running."""
        return len(self._tasks)

    def subscribe(self, url: str, decode: Decoder) -> tuple[EventChannel[Any], StopChannel]:
        """
        Start a subscription and return its (events, stop) pair at once.

        Must be called from a running event loop.  An invalid URL raises
        ConstructionError before any task is started.
        """
        parts = urlsplit(url)
        if parts.scheme not in ("ws", "wss") or not parts.netloc:
            raise ConstructionError(f"stream URL must be an absolute ws(s) URL, got {url!r}")

        events: EventChannel[Any] = EventChannel(self._capacity)
        stop   = StopChannel()
        task   = asyncio.get_running_loop().create_task(self._run(url, decode, events, stop))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return events, stop

    async def close(self) -> None:
        """Cancel every running subscription and wait for their cleanup."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        url:    str,
        decode: Decoder,
        events: EventChannel[Any],
        stop:   StopChannel,
    ) -> None:
        """Race the connection against the stop signal; close events exactly once."""
        session = asyncio.ensure_future(self._session(url, decode, events))
        stopper = asyncio.ensure_future(stop.wait())
        error: Optional[BaseException] = None
        try:
            await asyncio.wait({session, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            session.cancel()
            results = await asyncio.gather(session, stopper, return_exceptions=True)
            if isinstance(results[0], Exception):
                error = results[0]
                self._logger.warning("Stream %s failed: %s", url, error)
            events.close(error)
            self._logger.info("Stream %s closed", url)

    async def _session(self, url: str, decode: Decoder, events: EventChannel[Any]) -> None:
        """Connect, then pump frames; connection-level failures become TransportError."""
        self._logger.info("Connecting to stream %s", url)
        try:
            async with self._connect(
                url,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
            ) as ws:
                self._logger.info("Stream %s open", url)
                await self._pump(url, ws, decode, events)
        except BinanceError:
            raise
        except Exception as exc:
            raise TransportError(f"stream {url} failed: {exc}") from exc

    async def _pump(self, url: str, ws: Any, decode: Decoder, events: EventChannel[Any]) -> None:
        """Decode and push frames in arrival order until the peer closes."""
        failures = 0
        async for frame in ws:
            try:
                event = decode(frame)
            except DecodeError as exc:
                failures += 1
                self._logger.warning("Dropping undecodable frame on %s: %s", url, exc)
                if self._max_decode_errors is not None and failures >= self._max_decode_errors:
                    raise DecodeError(
                        f"{failures} consecutive undecodable frames on {url}"
                    ) from exc
                continue
            failures = 0
            await events.send(event)
