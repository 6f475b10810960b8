"""
client.py – The Service façade for the Binance API.

Service is an abstract capability set: one coroutine per exchange
operation.  APIService is the production implementation; anything else
implementing Service (an in-memory double, a recorder, a paper-trading
stub) can be handed to calling code without touching call sites.

Trust tiers
-----------
    public market data                   → no API key, no signature
    orders / account / trades / wapi /   → X-MBX-APIKEY header + signature
    user-data-stream control

Usage
-----
    import asyncio
    from binance_service import BinanceEnv, HmacSigner, OrderBookRequest, new_api_service

    async def main() -> None:
        service = new_api_service(BinanceEnv.MAINNET.rest_url, api_key, HmacSigner(secret))
        async with service:
            book = await service.order_book(OrderBookRequest(symbol="BTCUSDT", limit=5))
            print(book.bids[0])

    asyncio.run(main())
"""

from __future__ import annotations

import logging
import time as _time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .context import Context
from .errors import DecodeError, ProtocolError
from .rest import RequestBuilder
from .signing import Signer
from .transport import RawResponse, Transport
from .types import (
    Account,
    AccountEvent,
    AccountRequest,
    AggTrade,
    AggTradeEvent,
    AggTradesRequest,
    AllOrdersRequest,
    BinanceEnv,
    BookTicker,
    CanceledOrder,
    CancelOrderRequest,
    Deposit,
    DepthEvent,
    DepthWebsocketRequest,
    ExecutedOrder,
    HistoryRequest,
    Kline,
    KlineEvent,
    KlinesRequest,
    KlineWebsocketRequest,
    MyTradesRequest,
    NewOrderRequest,
    OpenOrdersRequest,
    OrderBook,
    OrderBookRequest,
    PriceTicker,
    ProcessedOrder,
    QueryOrderRequest,
    Stream,
    Ticker24,
    TickerRequest,
    Trade,
    TradeWebsocketRequest,
    UserDataWebsocketRequest,
    WithdrawRequest,
    WithdrawResult,
    Withdrawal,
)
from .ws import EventChannel, StopChannel, StreamManager, model_decoder

R = TypeVar("R")


# ---------------------------------------------------------------------------
# Service interface
# ---------------------------------------------------------------------------

class Service(ABC):
    """
    Service layer for the Binance API.

    Every REST method returns a populated result or raises exactly one
    BinanceError.  Every *_websocket method returns an
    (EventChannel, StopChannel) pair, or raises before connecting.
    """

    # -- market data ----------------------------------------------------

    @abstractmethod
    async def ping(self) -> None: ...

    @abstractmethod
    async def time(self) -> datetime: ...

    @abstractmethod
    async def order_book(self, obr: OrderBookRequest) -> OrderBook: ...

    @abstractmethod
    async def agg_trades(self, atr: AggTradesRequest) -> list[AggTrade]: ...

    @abstractmethod
    async def klines(self, kr: KlinesRequest) -> list[Kline]: ...

    @abstractmethod
    async def ticker24(self, tr: TickerRequest) -> Ticker24: ...

    @abstractmethod
    async def ticker_all_prices(self) -> list[PriceTicker]: ...

    @abstractmethod
    async def ticker_all_books(self) -> list[BookTicker]: ...

    # -- orders ---------------------------------------------------------

    @abstractmethod
    async def new_order(self, nor: NewOrderRequest) -> ProcessedOrder: ...

    @abstractmethod
    async def new_order_test(self, nor: NewOrderRequest) -> None: ...

    @abstractmethod
    async def query_order(self, qor: QueryOrderRequest) -> ExecutedOrder: ...

    @abstractmethod
    async def cancel_order(self, cor: CancelOrderRequest) -> CanceledOrder: ...

    @abstractmethod
    async def open_orders(self, oor: OpenOrdersRequest) -> list[ExecutedOrder]: ...

    @abstractmethod
    async def all_orders(self, aor: AllOrdersRequest) -> list[ExecutedOrder]: ...

    # -- account --------------------------------------------------------

    @abstractmethod
    async def account(self, ar: AccountRequest) -> Account: ...

    @abstractmethod
    async def my_trades(self, mtr: MyTradesRequest) -> list[Trade]: ...

    @abstractmethod
    async def withdraw(self, wr: WithdrawRequest) -> WithdrawResult: ...

    @abstractmethod
    async def deposit_history(self, hr: HistoryRequest) -> list[Deposit]: ...

    @abstractmethod
    async def withdraw_history(self, hr: HistoryRequest) -> list[Withdrawal]: ...

    # -- user data stream ------------------------------------------------

    @abstractmethod
    async def start_user_data_stream(self) -> Stream: ...

    @abstractmethod
    async def keep_alive_user_data_stream(self, s: Stream) -> None: ...

    @abstractmethod
    async def close_user_data_stream(self, s: Stream) -> None: ...

    # -- streaming subscriptions ------------------------------------------

    @abstractmethod
    async def depth_websocket(
        self, dwr: DepthWebsocketRequest
    ) -> tuple[EventChannel[DepthEvent], StopChannel]: ...

    @abstractmethod
    async def kline_websocket(
        self, kwr: KlineWebsocketRequest
    ) -> tuple[EventChannel[KlineEvent], StopChannel]: ...

    @abstractmethod
    async def trade_websocket(
        self, twr: TradeWebsocketRequest
    ) -> tuple[EventChannel[AggTradeEvent], StopChannel]: ...

    @abstractmethod
    async def user_data_websocket(
        self, udwr: UserDataWebsocketRequest
    ) -> tuple[EventChannel[AccountEvent], StopChannel]: ...

    # -- lifecycle --------------------------------------------------------

    async def close(self) -> None:
        """Release transport and stream resources.  Default: nothing to release."""

    async def __aenter__(self) -> "Service":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServiceConfig:
    """
    Immutable settings of one APIService.

    url     : REST base URL (selects the environment)
    api_key : sent as X-MBX-APIKEY on private calls
    signer  : signs private calls
    logger  : diagnostic sink only
    ctx     : bounds every REST call
    ws_url  : stream host, e.g. "wss://stream.binance.com:9443"
    """
    url:     str
    api_key: str
    signer:  Optional[Signer]
    logger:  logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    ctx:     Context        = field(default_factory=Context)
    ws_url:  str            = BinanceEnv.MAINNET.ws_url


# ---------------------------------------------------------------------------
# Response envelopes and decoding helpers
# ---------------------------------------------------------------------------

class _APIErrorBody(BaseModel):
    code: Optional[int] = None
    msg:  Optional[str] = None


class _ServerTime(BaseModel):
    server_time: int = Field(alias="serverTime")


class _ListenKey(BaseModel):
    listen_key: str = Field(alias="listenKey")


class _DepositHistory(BaseModel):
    deposit_list: list[Deposit] = Field(default=[], alias="depositList")
    success:      bool          = True
    msg:          str           = ""


class _WithdrawHistory(BaseModel):
    withdraw_list: list[Withdrawal] = Field(default=[], alias="withdrawList")
    success:       bool             = True
    msg:           str              = ""


_SERVER_TIME      = TypeAdapter(_ServerTime)
_LISTEN_KEY       = TypeAdapter(_ListenKey)
_ORDER_BOOK       = TypeAdapter(OrderBook)
_AGG_TRADES       = TypeAdapter(list[AggTrade])
_KLINES           = TypeAdapter(list[Kline])
_TICKER24         = TypeAdapter(Ticker24)
_PRICE_TICKERS    = TypeAdapter(list[PriceTicker])
_BOOK_TICKERS     = TypeAdapter(list[BookTicker])
_PROCESSED_ORDER  = TypeAdapter(ProcessedOrder)
_EXECUTED_ORDER   = TypeAdapter(ExecutedOrder)
_EXECUTED_ORDERS  = TypeAdapter(list[ExecutedOrder])
_CANCELED_ORDER   = TypeAdapter(CanceledOrder)
_ACCOUNT          = TypeAdapter(Account)
_TRADES           = TypeAdapter(list[Trade])
_WITHDRAW_RESULT  = TypeAdapter(WithdrawResult)
_DEPOSIT_HISTORY  = TypeAdapter(_DepositHistory)
_WITHDRAW_HISTORY = TypeAdapter(_WithdrawHistory)

# Sent last, in this order, on every signed request
_SIGNED_FIELDS = {"recv_window", "timestamp"}


def _now_ms() -> int:
    return int(_time.time() * 1000)


def _params(req: BaseModel) -> dict[str, Any]:
    """Serialise a request model to wire-named query parameters."""
    return req.model_dump(mode="json", by_alias=True, exclude_none=True, exclude=_SIGNED_FIELDS)


def _signed_params(req: Optional[BaseModel] = None) -> dict[str, Any]:
    """_params plus recvWindow and timestamp (now, unless the request pins one)."""
    params      = _params(req) if req is not None else {}
    recv_window = getattr(req, "recv_window", None)
    timestamp   = getattr(req, "timestamp", None)
    if recv_window is not None:
        params["recvWindow"] = recv_window
    params["timestamp"] = timestamp if timestamp is not None else _now_ms()
    return params


def _protocol_error(resp: RawResponse, method: str, path: str) -> ProtocolError:
    """Build a ProtocolError, lifting code/msg from Binance's error payload if present."""
    try:
        payload = _APIErrorBody.model_validate_json(resp.body)
    except ValidationError:
        payload = _APIErrorBody()
    return ProtocolError(
        resp.status, resp.text, method=method, path=path,
        code=payload.code, msg=payload.msg,
    )


def _decode(adapter: TypeAdapter[R], resp: RawResponse, method: str, path: str) -> R:
    try:
        return adapter.validate_json(resp.body)
    except ValidationError as exc:
        raise DecodeError(
            f"{method} {path}: unexpected response body "
            f"({exc.error_count()} validation error(s)): {resp.text[:200]}"
        ) from exc


# ---------------------------------------------------------------------------
# Production implementation
# ---------------------------------------------------------------------------

class APIService(Service):
    """
    Service backed by the Binance REST API and websocket streams.

    Parameters
    ----------
    config         : ServiceConfig
    transport      : shared Transport; a private one is created (and
                     closed by close()) when omitted
    stream_manager : StreamManager for subscriptions; a default one is
                     created when omitted
    """

    def __init__(
        self,
        config:         ServiceConfig,
        *,
        transport:      Optional[Transport]     = None,
        stream_manager: Optional[StreamManager] = None,
    ) -> None:
        self._config         = config
        self._logger         = config.logger
        self._owns_transport = transport is None
        self._transport      = transport or Transport()
        self._builder        = RequestBuilder(
            config.url, config.api_key, config.signer, self._transport, config.logger,
        )
        self._streams        = stream_manager or StreamManager(logger=config.logger)

    @property
    def config(self) -> ServiceConfig:
        return self._config

    async def close(self) -> None:
        """Stop every open stream and close the transport if this service owns it."""
        await self._streams.close()
        if self._owns_transport:
            await self._transport.close()

    # ------------------------------------------------------------------
    # Internal request helper
    # ------------------------------------------------------------------

    async def _request(
        self,
        method:   str,
        endpoint: str,
        params:   Optional[dict[str, Any]] = None,
        *,
        signed:   bool = False,
    ) -> RawResponse:
        """
        Run one REST call under the service Context.

        signed=True selects the private tier (API key + signature).
        Non-2xx responses raise ProtocolError.
        """
        resp = await self._config.ctx.run(
            self._builder.execute(method, endpoint, params, api_key=signed, sign=signed)
        )
        self._logger.debug("%s %s -> %d", method, endpoint, resp.status)
        if not resp.ok:
            raise _protocol_error(resp, method, endpoint)
        return resp

    async def _fetch(
        self,
        adapter:  TypeAdapter[R],
        method:   str,
        endpoint: str,
        params:   Optional[dict[str, Any]] = None,
        *,
        signed:   bool = False,
    ) -> R:
        resp = await self._request(method, endpoint, params, signed=signed)
        return _decode(adapter, resp, method, endpoint)

    def _stream_url(self, path: str) -> str:
        return f"{self._config.ws_url.rstrip('/')}/ws/{path}"

    # ------------------------------------------------------------------
    # Market data (public)
    # ------------------------------------------------------------------

    async def ping(self) -> None:
        await self._request("GET", "api/v1/ping")

    async def time(self) -> datetime:
        st = await self._fetch(_SERVER_TIME, "GET", "api/v1/time")
        return datetime.fromtimestamp(st.server_time / 1000, tz=timezone.utc)

    async def order_book(self, obr: OrderBookRequest) -> OrderBook:
        return await self._fetch(_ORDER_BOOK, "GET", "api/v1/depth", _params(obr))

    async def agg_trades(self, atr: AggTradesRequest) -> list[AggTrade]:
        return await self._fetch(_AGG_TRADES, "GET", "api/v1/aggTrades", _params(atr))

    async def klines(self, kr: KlinesRequest) -> list[Kline]:
        return await self._fetch(_KLINES, "GET", "api/v1/klines", _params(kr))

    async def ticker24(self, tr: TickerRequest) -> Ticker24:
        return await self._fetch(_TICKER24, "GET", "api/v1/ticker/24hr", _params(tr))

    async def ticker_all_prices(self) -> list[PriceTicker]:
        return await self._fetch(_PRICE_TICKERS, "GET", "api/v1/ticker/allPrices")

    async def ticker_all_books(self) -> list[BookTicker]:
        return await self._fetch(_BOOK_TICKERS, "GET", "api/v1/ticker/allBookTickers")

    # ------------------------------------------------------------------
    # Orders (signed)
    # ------------------------------------------------------------------

    async def new_order(self, nor: NewOrderRequest) -> ProcessedOrder:
        return await self._fetch(
            _PROCESSED_ORDER, "POST", "api/v3/order", _signed_params(nor), signed=True,
        )

    async def new_order_test(self, nor: NewOrderRequest) -> None:
        """Validate an order against the matching rules without placing it."""
        await self._request("POST", "api/v3/order/test", _signed_params(nor), signed=True)

    async def query_order(self, qor: QueryOrderRequest) -> ExecutedOrder:
        return await self._fetch(
            _EXECUTED_ORDER, "GET", "api/v3/order", _signed_params(qor), signed=True,
        )

    async def cancel_order(self, cor: CancelOrderRequest) -> CanceledOrder:
        return await self._fetch(
            _CANCELED_ORDER, "DELETE", "api/v3/order", _signed_params(cor), signed=True,
        )

    async def open_orders(self, oor: OpenOrdersRequest) -> list[ExecutedOrder]:
        return await self._fetch(
            _EXECUTED_ORDERS, "GET", "api/v3/openOrders", _signed_params(oor), signed=True,
        )

    async def all_orders(self, aor: AllOrdersRequest) -> list[ExecutedOrder]:
        return await self._fetch(
            _EXECUTED_ORDERS, "GET", "api/v3/allOrders", _signed_params(aor), signed=True,
        )

    # ------------------------------------------------------------------
    # Account (signed)
    # ------------------------------------------------------------------

    async def account(self, ar: AccountRequest) -> Account:
        return await self._fetch(_ACCOUNT, "GET", "api/v3/account", _signed_params(ar), signed=True)

    async def my_trades(self, mtr: MyTradesRequest) -> list[Trade]:
        return await self._fetch(_TRADES, "GET", "api/v3/myTrades", _signed_params(mtr), signed=True)

    async def withdraw(self, wr: WithdrawRequest) -> WithdrawResult:
        path   = "wapi/v3/withdraw.html"
        resp   = await self._request("POST", path, _signed_params(wr), signed=True)
        result = _decode(_WITHDRAW_RESULT, resp, "POST", path)
        if not result.success:
            raise ProtocolError(resp.status, resp.text, method="POST", path=path, msg=result.msg)
        return result

    async def deposit_history(self, hr: HistoryRequest) -> list[Deposit]:
        path    = "wapi/v3/depositHistory.html"
        resp    = await self._request("GET", path, _signed_params(hr), signed=True)
        history = _decode(_DEPOSIT_HISTORY, resp, "GET", path)
        if not history.success:
            raise ProtocolError(resp.status, resp.text, method="GET", path=path, msg=history.msg)
        return history.deposit_list

    async def withdraw_history(self, hr: HistoryRequest) -> list[Withdrawal]:
        path    = "wapi/v3/withdrawHistory.html"
        resp    = await self._request("GET", path, _signed_params(hr), signed=True)
        history = _decode(_WITHDRAW_HISTORY, resp, "GET", path)
        if not history.success:
            raise ProtocolError(resp.status, resp.text, method="GET", path=path, msg=history.msg)
        return history.withdraw_list

    # ------------------------------------------------------------------
    # User data stream lifecycle (signed)
    # ------------------------------------------------------------------

    async def start_user_data_stream(self) -> Stream:
        lk = await self._fetch(
            _LISTEN_KEY, "POST", "api/v1/userDataStream", _signed_params(), signed=True,
        )
        self._logger.info("User data stream started")
        return Stream(listen_key=lk.listen_key, created_at=datetime.now(timezone.utc))

    async def keep_alive_user_data_stream(self, s: Stream) -> None:
        params = {"listenKey": s.listen_key, **_signed_params()}
        await self._request("PUT", "api/v1/userDataStream", params, signed=True)

    async def close_user_data_stream(self, s: Stream) -> None:
        params = {"listenKey": s.listen_key, **_signed_params()}
        await self._request("DELETE", "api/v1/userDataStream", params, signed=True)
        self._logger.info("User data stream closed")

    # ------------------------------------------------------------------
    # Streaming subscriptions
    # ------------------------------------------------------------------

    async def depth_websocket(
        self, dwr: DepthWebsocketRequest
    ) -> tuple[EventChannel[DepthEvent], StopChannel]:
        url = self._stream_url(f"{dwr.symbol.lower()}@depth")
        return self._streams.subscribe(url, model_decoder(DepthEvent))

    async def kline_websocket(
        self, kwr: KlineWebsocketRequest
    ) -> tuple[EventChannel[KlineEvent], StopChannel]:
        url = self._stream_url(f"{kwr.symbol.lower()}@kline_{kwr.interval.value}")
        return self._streams.subscribe(url, model_decoder(KlineEvent))

    async def trade_websocket(
        self, twr: TradeWebsocketRequest
    ) -> tuple[EventChannel[AggTradeEvent], StopChannel]:
        url = self._stream_url(f"{twr.symbol.lower()}@aggTrade")
        return self._streams.subscribe(url, model_decoder(AggTradeEvent))

    async def user_data_websocket(
        self, udwr: UserDataWebsocketRequest
    ) -> tuple[EventChannel[AccountEvent], StopChannel]:
        url = self._stream_url(udwr.listen_key)
        return self._streams.subscribe(url, model_decoder(AccountEvent))


# ---------------------------------------------------------------------------
# Convenience factory
# ---------------------------------------------------------------------------

def new_api_service(
    url:            str,
    api_key:        str,
    signer:         Optional[Signer],
    logger:         Optional[logging.Logger] = None,
    ctx:            Optional[Context]        = None,
    *,
    ws_url:         str                      = BinanceEnv.MAINNET.ws_url,
    transport:      Optional[Transport]      = None,
    stream_manager: Optional[StreamManager]  = None,
) -> Service:
    """
    Create an APIService.

    Without a logger the module logger is used; without a context a
    fresh, never-cancelled Context is used.  Pass a Context to cancel
    every in-flight REST call at once (e.g. on shutdown).
    """
    config = ServiceConfig(
        url=url,
        api_key=api_key,
        signer=signer,
        logger=logger or logging.getLogger(__name__),
        ctx=ctx or Context(),
        ws_url=ws_url,
    )
    return APIService(config, transport=transport, stream_manager=stream_manager)
