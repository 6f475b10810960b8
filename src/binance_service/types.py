"""
types.py – Pydantic v2 models for the Binance REST and stream schemas.

Binance encodes prices and quantities as strings to preserve precision;
this package keeps that convention and stores them as str – convert with
Decimal for arithmetic.  The wapi endpoints send JSON numbers for
amounts, those are parsed straight into Decimal.

Wire names
----------
Every model field carries its Binance wire name as alias ("lastUpdateId",
"E", "p", ...).  Records are parsed with Model.model_validate(raw) or
Model.model_validate_json(body); request models are serialised with
model_dump(mode="json", by_alias=True, exclude_none=True), which yields
query parameters in field declaration order.

Validation
----------
All models are validated on construction.  Invalid request data raises
pydantic.ValidationError before anything touches the network.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum, unique
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

_ENDPOINTS: dict[str, dict[str, str]] = {
    "mainnet": {
        "rest": "https://api.binance.com",
        "ws":   "wss://stream.binance.com:9443",
    },
    "testnet": {
        "rest": "https://testnet.binance.vision",
        "ws":   "wss://testnet.binance.vision",
    },
}


@unique
class BinanceEnv(Enum):
    """Binance deployment environment."""
    MAINNET = "mainnet"
    TESTNET = "testnet"

    @property
    def rest_url(self) -> str:
        return _ENDPOINTS[self.value]["rest"]

    @property
    def ws_url(self) -> str:
        return _ENDPOINTS[self.value]["ws"]


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

@unique
class OrderSide(str, Enum):
    BUY  = "BUY"
    SELL = "SELL"


@unique
class OrderType(str, Enum):
    LIMIT             = "LIMIT"
    MARKET            = "MARKET"
    STOP_LOSS         = "STOP_LOSS"
    STOP_LOSS_LIMIT   = "STOP_LOSS_LIMIT"
    TAKE_PROFIT       = "TAKE_PROFIT"
    TAKE_PROFIT_LIMIT = "TAKE_PROFIT_LIMIT"
    LIMIT_MAKER       = "LIMIT_MAKER"


@unique
class TimeInForce(str, Enum):
    GTC = "GTC"   # good till cancelled
    IOC = "IOC"   # immediate or cancel
    FOK = "FOK"   # fill or kill


@unique
class OrderStatus(str, Enum):
    NEW              = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED           = "FILLED"
    CANCELED         = "CANCELED"
    PENDING_CANCEL   = "PENDING_CANCEL"
    REJECTED         = "REJECTED"
    EXPIRED          = "EXPIRED"


@unique
class Interval(str, Enum):
    MINUTE      = "1m"
    THREE_MIN   = "3m"
    FIVE_MIN    = "5m"
    FIFTEEN_MIN = "15m"
    THIRTY_MIN  = "30m"
    HOUR        = "1h"
    TWO_HOURS   = "2h"
    FOUR_HOURS  = "4h"
    SIX_HOURS   = "6h"
    EIGHT_HOURS = "8h"
    TWELVE_HOURS = "12h"
    DAY         = "1d"
    THREE_DAYS  = "3d"
    WEEK        = "1w"
    MONTH       = "1M"


# ---------------------------------------------------------------------------
# Shared validator helpers
# ---------------------------------------------------------------------------

def _validate_decimal_string(v: str, field: str = "value") -> str:
    """Reject empty strings and non-parseable decimals."""
    if not v or not v.strip():
        raise ValueError(f"{field} must be a non-empty decimal string")
    try:
        Decimal(v)
    except InvalidOperation:
        raise ValueError(f"{field} '{v}' is not a valid decimal string")
    return v


def _validate_positive_decimal(v: str, field: str) -> str:
    v = _validate_decimal_string(v, field)
    if Decimal(v) <= 0:
        raise ValueError(f"{field} must be positive, got '{v}'")
    return v


def _validate_symbol(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("symbol must be a non-empty string")
    return v.upper()


class _Record(BaseModel):
    """Base for every wire model: fields addressable by name or wire alias."""
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------

class OrderBookEntry(_Record):
    """One price level.  Binance sends it as ["price", "qty", ...]."""
    price:    str
    quantity: str

    @model_validator(mode="before")
    @classmethod
    def from_pair(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) < 2:
                raise ValueError(f"order book level needs [price, quantity], got {data!r}")
            return {"price": data[0], "quantity": data[1]}
        return data

    @field_validator("price", "quantity")
    @classmethod
    def validate_decimal(cls, v: str) -> str:
        return _validate_decimal_string(v)


class OrderBook(_Record):
    """REST depth snapshot."""
    last_update_id: int                  = Field(alias="lastUpdateId")
    bids:           list[OrderBookEntry] = []
    asks:           list[OrderBookEntry] = []


class AggTrade(_Record):
    id:             int  = Field(alias="a")
    price:          str  = Field(alias="p")
    quantity:       str  = Field(alias="q")
    first_trade_id: int  = Field(alias="f")
    last_trade_id:  int  = Field(alias="l")
    timestamp:      int  = Field(alias="T")
    buyer_maker:    bool = Field(alias="m")
    best_match:     bool = Field(alias="M")


_KLINE_COLUMNS = (
    "open_time", "open", "high", "low", "close", "volume", "close_time",
    "quote_asset_volume", "number_of_trades",
    "taker_buy_base_asset_volume", "taker_buy_quote_asset_volume",
)


class Kline(_Record):
    """A candlestick.  The REST endpoint sends each one as a positional array."""
    open_time:                    int
    open:                         str
    high:                         str
    low:                          str
    close:                        str
    volume:                       str
    close_time:                   int
    quote_asset_volume:           str
    number_of_trades:             int
    taker_buy_base_asset_volume:  str
    taker_buy_quote_asset_volume: str

    @model_validator(mode="before")
    @classmethod
    def from_row(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) < len(_KLINE_COLUMNS):
                raise ValueError(
                    f"kline row has {len(data)} columns, expected {len(_KLINE_COLUMNS)}"
                )
            return dict(zip(_KLINE_COLUMNS, data))
        return data


class Ticker24(_Record):
    """24 hour rolling window statistics for one symbol."""
    price_change:         str = Field(alias="priceChange")
    price_change_percent: str = Field(alias="priceChangePercent")
    weighted_avg_price:   str = Field(alias="weightedAvgPrice")
    prev_close_price:     str = Field(alias="prevClosePrice")
    last_price:           str = Field(alias="lastPrice")
    bid_price:            str = Field(alias="bidPrice")
    ask_price:            str = Field(alias="askPrice")
    open_price:           str = Field(alias="openPrice")
    high_price:           str = Field(alias="highPrice")
    low_price:            str = Field(alias="lowPrice")
    volume:               str
    open_time:            int = Field(alias="openTime")
    close_time:           int = Field(alias="closeTime")
    first_id:             int = Field(alias="firstId")
    last_id:              int = Field(alias="lastId")
    count:                int


class PriceTicker(_Record):
    symbol: str
    price:  str


class BookTicker(_Record):
    symbol:    str
    bid_price: str = Field(alias="bidPrice")
    bid_qty:   str = Field(alias="bidQty")
    ask_price: str = Field(alias="askPrice")
    ask_qty:   str = Field(alias="askQty")


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class ProcessedOrder(_Record):
    """Acknowledgement returned by a new order."""
    symbol:          str
    order_id:        int = Field(alias="orderId")
    client_order_id: str = Field(alias="clientOrderId")
    transact_time:   int = Field(alias="transactTime")


class ExecutedOrder(_Record):
    symbol:          str
    order_id:        int                   = Field(alias="orderId")
    client_order_id: str                   = Field(alias="clientOrderId")
    price:           str
    orig_qty:        str                   = Field(alias="origQty")
    executed_qty:    str                   = Field(alias="executedQty")
    status:          OrderStatus
    time_in_force:   Optional[TimeInForce] = Field(default=None, alias="timeInForce")
    type:            OrderType
    side:            OrderSide
    stop_price:      str                   = Field(default="0", alias="stopPrice")
    iceberg_qty:     str                   = Field(default="0", alias="icebergQty")
    time:            int                   = 0


class CanceledOrder(_Record):
    symbol:               str
    orig_client_order_id: str = Field(alias="origClientOrderId")
    order_id:             int = Field(alias="orderId")
    client_order_id:      str = Field(alias="clientOrderId")


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------

class Balance(_Record):
    asset:  str
    free:   str
    locked: str


class Account(_Record):
    maker_commission:  int  = Field(alias="makerCommission")
    taker_commission:  int  = Field(alias="takerCommission")
    buyer_commission:  int  = Field(alias="buyerCommission")
    seller_commission: int  = Field(alias="sellerCommission")
    can_trade:         bool = Field(alias="canTrade")
    can_withdraw:      bool = Field(alias="canWithdraw")
    can_deposit:       bool = Field(alias="canDeposit")
    balances:          list[Balance] = []


class Trade(_Record):
    """One of the caller's own fills (myTrades)."""
    id:               int
    price:            str
    qty:              str
    commission:       str
    commission_asset: str  = Field(alias="commissionAsset")
    time:             int
    is_buyer:         bool = Field(alias="isBuyer")
    is_maker:         bool = Field(alias="isMaker")
    is_best_match:    bool = Field(alias="isBestMatch")


class WithdrawResult(_Record):
    msg:     str = ""
    success: bool
    id:      Optional[str] = None


class Deposit(_Record):
    insert_time: int     = Field(alias="insertTime")
    amount:      Decimal
    asset:       str
    status:      int     # 0 pending, 1 success


class Withdrawal(_Record):
    amount:     Decimal
    address:    str
    asset:      str
    apply_time: int     = Field(alias="applyTime")
    status:     int     # 0 email sent … 6 completed


class Stream(_Record):
    """A server-tracked user-data stream session (listen key)."""
    listen_key: str      = Field(alias="listenKey")
    created_at: datetime


# ---------------------------------------------------------------------------
# Stream push events
# ---------------------------------------------------------------------------

class DepthEvent(_Record):
    """Diff depth update from <symbol>@depth."""
    event_type:      str                  = Field(alias="e")
    event_time:      int                  = Field(alias="E")
    symbol:          str                  = Field(alias="s")
    first_update_id: int                  = Field(default=0, alias="U")
    update_id:       int                  = Field(alias="u")
    bids:            list[OrderBookEntry] = Field(default=[], alias="b")
    asks:            list[OrderBookEntry] = Field(default=[], alias="a")


class KlineData(_Record):
    start_time:             int  = Field(alias="t")
    end_time:               int  = Field(alias="T")
    symbol:                 str  = Field(alias="s")
    interval:               Interval = Field(alias="i")
    first_trade_id:         int  = Field(alias="f")
    last_trade_id:          int  = Field(alias="L")
    open:                   str  = Field(alias="o")
    close:                  str  = Field(alias="c")
    high:                   str  = Field(alias="h")
    low:                    str  = Field(alias="l")
    volume:                 str  = Field(alias="v")
    number_of_trades:       int  = Field(alias="n")
    is_final:               bool = Field(alias="x")
    quote_volume:           str  = Field(alias="q")
    active_buy_volume:      str  = Field(alias="V")
    active_buy_quote_volume: str = Field(alias="Q")


class KlineEvent(_Record):
    event_type: str       = Field(alias="e")
    event_time: int       = Field(alias="E")
    symbol:     str       = Field(alias="s")
    kline:      KlineData = Field(alias="k")


class AggTradeEvent(_Record):
    event_type:     str  = Field(alias="e")
    event_time:     int  = Field(alias="E")
    symbol:         str  = Field(alias="s")
    id:             int  = Field(alias="a")
    price:          str  = Field(alias="p")
    quantity:       str  = Field(alias="q")
    first_trade_id: int  = Field(alias="f")
    last_trade_id:  int  = Field(alias="l")
    timestamp:      int  = Field(alias="T")
    buyer_maker:    bool = Field(alias="m")
    best_match:     bool = Field(alias="M")


class EventBalance(_Record):
    asset:  str = Field(alias="a")
    free:   str = Field(alias="f")
    locked: str = Field(alias="l")


class AccountEvent(_Record):
    """outboundAccountInfo push from the user-data stream; other event kinds fail to decode."""
    event_type:        Literal["outboundAccountInfo"] = Field(alias="e")
    event_time:        int                = Field(alias="E")
    maker_commission:  int                = Field(alias="m")
    taker_commission:  int                = Field(alias="t")
    buyer_commission:  int                = Field(alias="b")
    seller_commission: int                = Field(alias="s")
    can_trade:         bool               = Field(alias="T")
    can_withdraw:      bool               = Field(alias="W")
    can_deposit:       bool               = Field(alias="D")
    balances:          list[EventBalance] = Field(alias="B")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class _SymbolRequest(_Record):
    symbol: str

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        return _validate_symbol(v)


class _SignedFields(_Record):
    """recvWindow / timestamp pair carried by every signed request (ms)."""
    recv_window: Optional[int] = Field(default=None, alias="recvWindow")
    timestamp:   Optional[int] = None

    @field_validator("recv_window")
    @classmethod
    def validate_recv_window(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not (0 < v <= 60_000):
            raise ValueError(f"recv_window must be in (0, 60000] ms, got {v}")
        return v


def _positive_limit(v: Optional[int]) -> Optional[int]:
    if v is not None and v <= 0:
        raise ValueError(f"limit must be positive, got {v}")
    return v


class OrderBookRequest(_SymbolRequest):
    limit: Optional[int] = None

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        return _positive_limit(v)


class AggTradesRequest(_SymbolRequest):
    from_id:    Optional[int] = Field(default=None, alias="fromId")
    start_time: Optional[int] = Field(default=None, alias="startTime")
    end_time:   Optional[int] = Field(default=None, alias="endTime")
    limit:      Optional[int] = None

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        return _positive_limit(v)


class KlinesRequest(_SymbolRequest):
    interval:   Interval
    limit:      Optional[int] = None
    start_time: Optional[int] = Field(default=None, alias="startTime")
    end_time:   Optional[int] = Field(default=None, alias="endTime")

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        return _positive_limit(v)


class TickerRequest(_SymbolRequest):
    pass


class NewOrderRequest(_SymbolRequest, _SignedFields):
    """
    A new order.

    quantity / price / stop_price / iceberg_qty are decimal strings.
    LIMIT orders need price and time_in_force; the exchange enforces the
    remaining per-type rules.
    """
    side:                OrderSide
    type:                OrderType
    time_in_force:       Optional[TimeInForce] = Field(default=None, alias="timeInForce")
    quantity:            str
    price:               Optional[str] = None
    new_client_order_id: Optional[str] = Field(default=None, alias="newClientOrderId")
    stop_price:          Optional[str] = Field(default=None, alias="stopPrice")
    iceberg_qty:         Optional[str] = Field(default=None, alias="icebergQty")

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: str) -> str:
        return _validate_positive_decimal(v, "quantity")

    @field_validator("price", "stop_price", "iceberg_qty")
    @classmethod
    def validate_optional_decimal(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        if v is None:
            return v
        return _validate_positive_decimal(v, info.field_name or "value")

    @model_validator(mode="after")
    def validate_limit_fields(self) -> "NewOrderRequest":
        if self.type == OrderType.LIMIT and (self.price is None or self.time_in_force is None):
            raise ValueError("LIMIT orders require price and time_in_force")
        return self


class _OrderRef(_SymbolRequest, _SignedFields):
    order_id:             Optional[int] = Field(default=None, alias="orderId")
    orig_client_order_id: Optional[str] = Field(default=None, alias="origClientOrderId")

    @model_validator(mode="after")
    def validate_reference(self) -> "_OrderRef":
        if self.order_id is None and not self.orig_client_order_id:
            raise ValueError("either order_id or orig_client_order_id is required")
        return self


class QueryOrderRequest(_OrderRef):
    pass


class CancelOrderRequest(_OrderRef):
    new_client_order_id: Optional[str] = Field(default=None, alias="newClientOrderId")


class OpenOrdersRequest(_SymbolRequest, _SignedFields):
    pass


class AllOrdersRequest(_SymbolRequest, _SignedFields):
    order_id: Optional[int] = Field(default=None, alias="orderId")
    limit:    Optional[int] = None

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        return _positive_limit(v)


class AccountRequest(_SignedFields):
    pass


class MyTradesRequest(_SymbolRequest, _SignedFields):
    limit:   Optional[int] = None
    from_id: Optional[int] = Field(default=None, alias="fromId")

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        return _positive_limit(v)


class WithdrawRequest(_SignedFields):
    asset:   str
    address: str
    amount:  str
    name:    Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return _validate_positive_decimal(v, "amount")

    @field_validator("asset", "address")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("asset and address must be non-empty")
        return v


class HistoryRequest(_SignedFields):
    asset:      Optional[str] = None
    status:     Optional[int] = None
    start_time: Optional[int] = Field(default=None, alias="startTime")
    end_time:   Optional[int] = Field(default=None, alias="endTime")


class DepthWebsocketRequest(_SymbolRequest):
    pass


class KlineWebsocketRequest(_SymbolRequest):
    interval: Interval


class TradeWebsocketRequest(_SymbolRequest):
    pass


class UserDataWebsocketRequest(_Record):
    listen_key: str = Field(alias="listenKey")

    @field_validator("listen_key")
    @classmethod
    def validate_listen_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("listen_key must be a non-empty string")
        return v
