"""
examples/quickstart.py – End-to-end demo of the Binance service layer.

Walks through:
  1. Public market data (ping, server time, order book)
  2. A signed test order (validated by the exchange, never placed)
  3. Account balances
  4. A live depth stream, stopped after a handful of events
  5. A user-data stream session (start, keep-alive, close)

HOW TO RUN
----------
    export BINANCE_API_KEY="your_api_key"
    export BINANCE_SECRET_KEY="your_secret_key"
    python examples/quickstart.py

    Everything targets TESTNET by default.  Set BINANCE_ENV=mainnet to go live.
"""

from __future__ import annotations

import asyncio
import logging
import os
from decimal import Decimal

from binance_service import (
    AccountRequest,
    BinanceEnv,
    BinanceError,
    Context,
    DepthWebsocketRequest,
    HmacSigner,
    NewOrderRequest,
    OrderBookRequest,
    OrderSide,
    OrderType,
    Service,
    TimeInForce,
    new_api_service,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s – %(message)s",
)
logger = logging.getLogger("quickstart")

# ---------------------------------------------------------------------------
# Config – read from environment variables
# ---------------------------------------------------------------------------

API_KEY    = os.environ.get("BINANCE_API_KEY",    "REPLACE_ME")
SECRET_KEY = os.environ.get("BINANCE_SECRET_KEY", "REPLACE_ME")
ENV        = BinanceEnv(os.environ.get("BINANCE_ENV", "testnet"))   # or "mainnet"

SYMBOL       = "BTCUSDT"
STREAM_COUNT = 5


# ---------------------------------------------------------------------------
# Part 1 – REST
# ---------------------------------------------------------------------------

async def rest_demo(service: Service) -> None:
    logger.info("=== REST demo ===")

    await service.ping()
    logger.info("Server time: %s", await service.time())

    book = await service.order_book(OrderBookRequest(symbol=SYMBOL, limit=5))
    if book.bids and book.asks:
        logger.info(
            "Best bid: %s @ %s  |  Best ask: %s @ %s",
            book.bids[0].quantity, book.bids[0].price,
            book.asks[0].quantity, book.asks[0].price,
        )

    # Far below the market so it could never fill, and only a test order anyway
    order = NewOrderRequest(
        symbol=SYMBOL,
        side=OrderSide.BUY,
        type=OrderType.LIMIT,
        time_in_force=TimeInForce.GTC,
        quantity="0.001",
        price="1000",
        recv_window=5000,
    )
    try:
        await service.new_order_test(order)
        logger.info("Test order accepted")
        account = await service.account(AccountRequest(recv_window=5000))
        funded  = [b for b in account.balances if Decimal(b.free) > 0]
        logger.info("Account – can_trade=%s  funded assets=%d", account.can_trade, len(funded))
    except BinanceError as exc:
        logger.warning("Signed call failed (expected if creds are placeholders): %s", exc)


# ---------------------------------------------------------------------------
# Part 2 – Streams
# ---------------------------------------------------------------------------

async def stream_demo(service: Service) -> None:
    logger.info("=== Stream demo (%d depth events) ===", STREAM_COUNT)

    events, stop = await service.depth_websocket(DepthWebsocketRequest(symbol=SYMBOL))
    received = 0
    async for event in events:
        logger.info("[depth]  u=%d  bids=%d  asks=%d", event.update_id, len(event.bids), len(event.asks))
        received += 1
        if received >= STREAM_COUNT:
            stop.close()
    if events.error is not None:
        logger.warning("Depth stream ended with error: %s", events.error)

    try:
        session = await service.start_user_data_stream()
        await service.keep_alive_user_data_stream(session)
        await service.close_user_data_stream(session)
        logger.info("User data stream session opened and closed")
    except BinanceError as exc:
        logger.warning("User data stream failed: %s", exc)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def run() -> None:
    service = new_api_service(
        ENV.rest_url,
        API_KEY,
        HmacSigner(SECRET_KEY),
        ctx=Context(timeout=60.0),
        ws_url=ENV.ws_url,
    )
    async with service:
        await rest_demo(service)
        await stream_demo(service)


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
