"""
tests/conftest.py – Offline test doubles shared by the unit tests.

  - RecordingTransport : stands in for Transport; records every
                         OutgoingRequest and replays canned RawResponses.
  - FakeConnector      : stands in for websockets.connect; every
                         connection counts opens and closes so tests can
                         prove no connection leaks.
  - StubService        : an in-memory Service used to show that call
                         sites depend only on the abstract interface.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Optional

from binance_service import (
    Account,
    AccountEvent,
    AggTrade,
    AggTradeEvent,
    BookTicker,
    CanceledOrder,
    DepthEvent,
    EventChannel,
    ExecutedOrder,
    Kline,
    KlineEvent,
    OrderBook,
    PriceTicker,
    ProcessedOrder,
    RawResponse,
    Service,
    StopChannel,
    Stream,
    Ticker24,
    WithdrawResult,
)


# ---------------------------------------------------------------------------
# REST
# ---------------------------------------------------------------------------

def json_response(payload: Any, status: int = 200) -> RawResponse:
    return RawResponse(status=status, body=json.dumps(payload).encode())


class RecordingTransport:
    """Records requests; answers with queued responses, then with {}."""

    def __init__(self, *responses: RawResponse) -> None:
        self.requests: list = []
        self._responses = list(responses)

    def queue(self, response: RawResponse) -> None:
        self._responses.append(response)

    async def send(self, request: Any) -> RawResponse:
        self.requests.append(request)
        if self._responses:
            return self._responses.pop(0)
        return json_response({})

    async def close(self) -> None:
        pass


class BlockingTransport:
    """send() never completes on its own; records whether it was cancelled."""

    def __init__(self) -> None:
        self.started   = asyncio.Event()
        self.cancelled = False

    async def send(self, request: Any) -> RawResponse:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        raise AssertionError("unreachable")

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------

_EOF = object()


class FakeConnection:
    """Async-iterable connection fed from a queue of frames / exceptions."""

    def __init__(self, connector: "FakeConnector", frames: list[Any], hold_open: bool) -> None:
        self._connector = connector
        self._queue: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self._queue.put_nowait(frame)
        if not hold_open:
            self._queue.put_nowait(_EOF)
        self.closed = False

    def push(self, frame: Any) -> None:
        self._queue.put_nowait(frame)

    def finish(self) -> None:
        """Simulate the remote peer closing the connection."""
        self._queue.put_nowait(_EOF)

    async def __aenter__(self) -> "FakeConnection":
        if self._connector.gate is not None:
            await self._connector.gate.wait()
        if self._connector.connect_error is not None:
            raise self._connector.connect_error
        self._connector.opened += 1
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._connector.closed += 1

    def __aiter__(self) -> "FakeConnection":
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _EOF:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    """
    websockets.connect stand-in.

    frames        : frames (str/bytes) or exceptions delivered in order
    hold_open     : keep the connection open after the frames
    gate          : if set, connecting waits for this event
    connect_error : raised while connecting
    """

    def __init__(
        self,
        frames: tuple = (),
        *,
        hold_open: bool = False,
        gate: Optional[asyncio.Event] = None,
        connect_error: Optional[BaseException] = None,
    ) -> None:
        self.frames        = list(frames)
        self.hold_open     = hold_open
        self.gate          = gate
        self.connect_error = connect_error
        self.opened        = 0
        self.closed        = 0
        self.urls:        list[str]             = []
        self.kwargs:      list[dict[str, Any]]  = []
        self.connections: list[FakeConnection] = []

    @property
    def live(self) -> int:
        """Connections opened but not yet closed."""
        return self.opened - self.closed

    def __call__(self, url: str, **kwargs: Any) -> FakeConnection:
        self.urls.append(url)
        self.kwargs.append(kwargs)
        conn = FakeConnection(self, self.frames, self.hold_open)
        self.connections.append(conn)
        return conn


def depth_frame(update_id: int, price: str = "100.0") -> str:
    return json.dumps({
        "e": "depthUpdate",
        "E": 1_700_000_000_000 + update_id,
        "s": "BTCUSDT",
        "U": update_id,
        "u": update_id,
        "b": [[price, "1.5"]],
        "a": [],
    })


async def drain(events: EventChannel) -> list:
    return [event async for event in events]


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll predicate until it holds or timeout expires."""
    loop     = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Service double
# ---------------------------------------------------------------------------

class StubService(Service):
    """In-memory Service: canned market data, no network."""

    def __init__(self, book: OrderBook) -> None:
        self.book  = book
        self.calls: list[str] = []

    async def ping(self) -> None:
        self.calls.append("ping")

    async def time(self) -> datetime:
        return datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def order_book(self, obr) -> OrderBook:
        self.calls.append(f"order_book:{obr.symbol}")
        return self.book

    async def agg_trades(self, atr) -> list[AggTrade]:
        return []

    async def klines(self, kr) -> list[Kline]:
        return []

    async def ticker24(self, tr) -> Ticker24:
        raise NotImplementedError

    async def ticker_all_prices(self) -> list[PriceTicker]:
        return []

    async def ticker_all_books(self) -> list[BookTicker]:
        return []

    async def new_order(self, nor) -> ProcessedOrder:
        raise NotImplementedError

    async def new_order_test(self, nor) -> None:
        return None

    async def query_order(self, qor) -> ExecutedOrder:
        raise NotImplementedError

    async def cancel_order(self, cor) -> CanceledOrder:
        raise NotImplementedError

    async def open_orders(self, oor) -> list[ExecutedOrder]:
        return []

    async def all_orders(self, aor) -> list[ExecutedOrder]:
        return []

    async def account(self, ar) -> Account:
        raise NotImplementedError

    async def my_trades(self, mtr) -> list:
        return []

    async def withdraw(self, wr) -> WithdrawResult:
        return WithdrawResult(msg="stub", success=True)

    async def deposit_history(self, hr) -> list:
        return []

    async def withdraw_history(self, hr) -> list:
        return []

    async def start_user_data_stream(self) -> Stream:
        return Stream(listen_key="stub-key", created_at=datetime.now(timezone.utc))

    async def keep_alive_user_data_stream(self, s: Stream) -> None:
        return None

    async def close_user_data_stream(self, s: Stream) -> None:
        return None

    def _closed_pair(self) -> tuple[EventChannel, StopChannel]:
        events: EventChannel = EventChannel()
        events.close()
        return events, StopChannel()

    async def depth_websocket(self, dwr) -> tuple[EventChannel[DepthEvent], StopChannel]:
        return self._closed_pair()

    async def kline_websocket(self, kwr) -> tuple[EventChannel[KlineEvent], StopChannel]:
        return self._closed_pair()

    async def trade_websocket(self, twr) -> tuple[EventChannel[AggTradeEvent], StopChannel]:
        return self._closed_pair()

    async def user_data_websocket(self, udwr) -> tuple[EventChannel[AccountEvent], StopChannel]:
        return self._closed_pair()
