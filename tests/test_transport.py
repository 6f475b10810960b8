"""
tests/test_transport.py – Transport and APIService against a local HTTP server.

A throwaway aiohttp server on 127.0.0.1 stands in for Binance, so these
tests exercise the real aiohttp client path while staying offline.
They verify:
  1. The signed query reaches the server byte-for-byte.
  2. The API-key header reaches the server only on private calls.
  3. One pooled session serves concurrent requests.
  4. Connection failures and timeouts surface as TransportError.
  5. Cancelling the service Context aborts a pending call with a
     cancellation error, not a protocol error.
"""

from __future__ import annotations

import asyncio
import socket

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from binance_service import (
    AccountRequest,
    APIService,
    Context,
    ContextCancelledError,
    HmacSigner,
    OrderBookRequest,
    ProtocolError,
    ServiceConfig,
    Transport,
    TransportConfig,
    TransportError,
)
from binance_service.rest import OutgoingRequest


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _FakeBinance:
    """Handlers recording what arrived on the wire."""

    def __init__(self) -> None:
        self.seen:    list[dict] = []
        self.release = asyncio.Event()

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/v1/depth", self.depth)
        app.router.add_get("/api/v3/account", self.account)
        app.router.add_get("/slow", self.slow)
        return app

    def _record(self, request: web.Request) -> None:
        raw_query = request.raw_path.partition("?")[2]
        self.seen.append({"query": raw_query, "headers": dict(request.headers)})

    async def depth(self, request: web.Request) -> web.Response:
        self._record(request)
        if request.query.get("symbol") == "NOPE":
            return web.json_response({"code": -1121, "msg": "Invalid symbol."}, status=400)
        return web.json_response({
            "lastUpdateId": 1027024,
            "bids": [["4.00000000", "431.00000000", []]],
            "asks": [["4.00000200", "12.00000000", []]],
        })

    async def account(self, request: web.Request) -> web.Response:
        self._record(request)
        return web.json_response({
            "makerCommission": 15, "takerCommission": 15,
            "buyerCommission": 0, "sellerCommission": 0,
            "canTrade": True, "canWithdraw": True, "canDeposit": True,
            "balances": [{"asset": "BTC", "free": "4723846.89208129", "locked": "0.00000000"}],
        })

    async def slow(self, request: web.Request) -> web.Response:
        try:
            await asyncio.wait_for(self.release.wait(), 2.0)
        except asyncio.TimeoutError:
            pass
        return web.json_response({})


async def _start(fake: _FakeBinance) -> TestServer:
    server = TestServer(fake.app(), host="127.0.0.1")
    await server.start_server()
    return server


def _unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _service(base_url: str, transport: Transport, ctx: Context | None = None) -> APIService:
    config = ServiceConfig(
        url=base_url,
        api_key="wire-key",
        signer=HmacSigner("wire-secret"),
        ctx=ctx or Context(),
    )
    return APIService(config, transport=transport)


# ---------------------------------------------------------------------------
# Wire fidelity
# ---------------------------------------------------------------------------

class TestWire:
    @pytest.mark.asyncio
    async def test_public_call_has_no_key_or_signature(self) -> None:
        fake   = _FakeBinance()
        server = await _start(fake)
        try:
            async with Transport() as transport:
                service = _service(str(server.make_url("")), transport)
                book    = await service.order_book(OrderBookRequest(symbol="BTCUSDT", limit=5))
        finally:
            await server.close()

        assert book.last_update_id == 1027024
        assert book.bids[0].price == "4.00000000"
        seen = fake.seen[0]
        assert seen["query"] == "symbol=BTCUSDT&limit=5"
        assert "X-MBX-APIKEY" not in seen["headers"]

    @pytest.mark.asyncio
    async def test_signed_query_arrives_verbatim(self) -> None:
        fake   = _FakeBinance()
        server = await _start(fake)
        try:
            async with Transport() as transport:
                base    = str(server.make_url(""))
                service = _service(base, transport)
                account = await service.account(
                    AccountRequest(recv_window=5000, timestamp=1499827319559)
                )
        finally:
            await server.close()

        assert account.can_trade is True
        seen      = fake.seen[0]
        signed    = "recvWindow=5000&timestamp=1499827319559"
        signature = HmacSigner("wire-secret").sign(signed.encode())
        assert seen["query"] == f"{signed}&signature={signature}"
        assert seen["headers"]["X-MBX-APIKEY"] == "wire-key"

    @pytest.mark.asyncio
    async def test_error_status_becomes_protocol_error(self) -> None:
        fake   = _FakeBinance()
        server = await _start(fake)
        try:
            async with Transport() as transport:
                service = _service(str(server.make_url("")), transport)
                with pytest.raises(ProtocolError) as info:
                    await service.order_book(OrderBookRequest(symbol="NOPE"))
        finally:
            await server.close()

        assert info.value.status_code == 400
        assert info.value.code == -1121
        assert info.value.msg == "Invalid symbol."


# ---------------------------------------------------------------------------
# Pooling
# ---------------------------------------------------------------------------

class TestPooling:
    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_session(self) -> None:
        fake   = _FakeBinance()
        server = await _start(fake)
        try:
            async with Transport() as transport:
                service = _service(str(server.make_url("")), transport)
                books   = await asyncio.gather(*(
                    service.order_book(OrderBookRequest(symbol="BTCUSDT", limit=i + 1))
                    for i in range(10)
                ))
                session = transport._session
                assert session is not None
                assert session is await transport._ensure_session()
        finally:
            await server.close()

        assert len(books) == 10
        assert len(fake.seen) == 10

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        transport = Transport()
        await transport.close()
        await transport.close()

    def test_default_config(self) -> None:
        cfg = TransportConfig()
        assert cfg.dial_timeout == 5.0
        assert cfg.keepalive_timeout == 30.0
        assert cfg.max_connections == 30


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    @pytest.mark.asyncio
    async def test_connection_refused_is_transport_error(self) -> None:
        url = f"http://127.0.0.1:{_unused_port()}/api/v1/ping"
        async with Transport(TransportConfig(dial_timeout=1.0)) as transport:
            with pytest.raises(TransportError):
                await transport.send(OutgoingRequest(method="GET", url=url, query=""))

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self) -> None:
        fake   = _FakeBinance()
        server = await _start(fake)
        try:
            async with Transport(TransportConfig(request_timeout=0.1)) as transport:
                url = str(server.make_url("/slow"))
                with pytest.raises(TransportError):
                    await transport.send(OutgoingRequest(method="GET", url=url, query=""))
        finally:
            fake.release.set()
            await server.close()

    @pytest.mark.asyncio
    async def test_context_cancel_aborts_pending_call(self) -> None:
        fake   = _FakeBinance()
        server = await _start(fake)
        ctx    = Context()
        try:
            async with Transport() as transport:
                service = _service(str(server.make_url("")), transport, ctx)
                call    = asyncio.ensure_future(service._request("GET", "slow"))
                await asyncio.sleep(0.1)
                ctx.cancel()
                with pytest.raises(ContextCancelledError):
                    await asyncio.wait_for(call, 1.0)
        finally:
            fake.release.set()
            await server.close()
