"""
binance_service – Service layer for the Binance REST API and push streams.

Provides:
  - Service façade + production impl    (client.py    → Service, APIService)
  - HMAC request signing                (signing.py   → HmacSigner)
  - Authenticated request construction  (rest.py      → RequestBuilder)
  - Pooled aiohttp transport            (transport.py → Transport)
  - Service-wide cancellation context   (context.py   → Context)
  - Streaming channel pairs             (ws.py        → StreamManager, EventChannel, StopChannel)
  - Typed Pydantic v2 models            (types.py)

Quickstart
----------
    import asyncio
    from binance_service import BinanceEnv, DepthWebsocketRequest, HmacSigner, new_api_service

    async def main() -> None:
        async with new_api_service(BinanceEnv.MAINNET.rest_url, "key", HmacSigner("secret")) as svc:
            events, stop = await svc.depth_websocket(DepthWebsocketRequest(symbol="BTCUSDT"))
            async for event in events:
                print(event.update_id, event.bids[:1])
                stop.close()

    asyncio.run(main())
"""

from .types import (
    # Environment
    BinanceEnv,
    # Enums
    OrderSide,
    OrderType,
    TimeInForce,
    OrderStatus,
    Interval,
    # Market data
    OrderBookEntry,
    OrderBook,
    AggTrade,
    Kline,
    Ticker24,
    PriceTicker,
    BookTicker,
    # Orders
    ProcessedOrder,
    ExecutedOrder,
    CanceledOrder,
    # Account
    Balance,
    Account,
    Trade,
    WithdrawResult,
    Deposit,
    Withdrawal,
    Stream,
    # Stream events
    DepthEvent,
    KlineData,
    KlineEvent,
    AggTradeEvent,
    EventBalance,
    AccountEvent,
    # Requests
    OrderBookRequest,
    AggTradesRequest,
    KlinesRequest,
    TickerRequest,
    NewOrderRequest,
    QueryOrderRequest,
    CancelOrderRequest,
    OpenOrdersRequest,
    AllOrdersRequest,
    AccountRequest,
    MyTradesRequest,
    WithdrawRequest,
    HistoryRequest,
    DepthWebsocketRequest,
    KlineWebsocketRequest,
    TradeWebsocketRequest,
    UserDataWebsocketRequest,
)
from .errors import (
    BinanceError,
    ConstructionError,
    TransportError,
    ContextCancelledError,
    DeadlineExceededError,
    ProtocolError,
    DecodeError,
)
from .signing import Signer, HmacSigner
from .context import Context
from .transport import Transport, TransportConfig, RawResponse
from .rest import RequestBuilder, OutgoingRequest, canonical_query
from .ws import EventChannel, StopChannel, StreamManager, ChannelClosedError, model_decoder
from .client import Service, ServiceConfig, APIService, new_api_service

__all__ = [
    # Environment
    "BinanceEnv",
    # Enums
    "OrderSide",
    "OrderType",
    "TimeInForce",
    "OrderStatus",
    "Interval",
    # Market data
    "OrderBookEntry",
    "OrderBook",
    "AggTrade",
    "Kline",
    "Ticker24",
    "PriceTicker",
    "BookTicker",
    # Orders
    "ProcessedOrder",
    "ExecutedOrder",
    "CanceledOrder",
    # Account
    "Balance",
    "Account",
    "Trade",
    "WithdrawResult",
    "Deposit",
    "Withdrawal",
    "Stream",
    # Stream events
    "DepthEvent",
    "KlineData",
    "KlineEvent",
    "AggTradeEvent",
    "EventBalance",
    "AccountEvent",
    # Requests
    "OrderBookRequest",
    "AggTradesRequest",
    "KlinesRequest",
    "TickerRequest",
    "NewOrderRequest",
    "QueryOrderRequest",
    "CancelOrderRequest",
    "OpenOrdersRequest",
    "AllOrdersRequest",
    "AccountRequest",
    "MyTradesRequest",
    "WithdrawRequest",
    "HistoryRequest",
    "DepthWebsocketRequest",
    "KlineWebsocketRequest",
    "TradeWebsocketRequest",
    "UserDataWebsocketRequest",
    # Errors
    "BinanceError",
    "ConstructionError",
    "TransportError",
    "ContextCancelledError",
    "DeadlineExceededError",
    "ProtocolError",
    "DecodeError",
    # Signing
    "Signer",
    "HmacSigner",
    # Context
    "Context",
    # Transport
    "Transport",
    "TransportConfig",
    "RawResponse",
    # REST
    "RequestBuilder",
    "OutgoingRequest",
    "canonical_query",
    # Streams
    "EventChannel",
    "StopChannel",
    "StreamManager",
    "ChannelClosedError",
    "model_decoder",
    # Service façade
    "Service",
    "ServiceConfig",
    "APIService",
    "new_api_service",
]

__version__ = "0.1.0"
