"""
transport.py – Pooled HTTP transport shared by REST calls.

One Transport owns one aiohttp.ClientSession (and its TCPConnector
pool).  The session is created lazily on the first send() – inside the
running event loop – and is then reused by every request, so concurrent
calls share keep-alive connections without caller-side locking.

Transports are injected rather than global: several services can share
one pool, and every test can build an isolated one.

Usage
-----
    async with Transport(TransportConfig(request_timeout=5.0)) as transport:
        service = new_api_service(url, api_key, signer, transport=transport)
        ...
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

import aiohttp
from yarl import URL

from .errors import TransportError

if TYPE_CHECKING:
    from .rest import OutgoingRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportConfig:
    """
    Connection pool and timeout settings.

    dial_timeout             : seconds allowed to establish a TCP/TLS connection
    keepalive_timeout        : seconds an idle pooled connection is kept
    max_connections          : total simultaneous connections in the pool
    max_connections_per_host : simultaneous connections to one host
    request_timeout          : total seconds per request (None = unbounded)
    """
    dial_timeout:             float           = 5.0
    keepalive_timeout:        float           = 30.0
    max_connections:          int             = 30
    max_connections_per_host: int             = 30
    request_timeout:          Optional[float] = 10.0


@dataclass(frozen=True)
class RawResponse:
    """A fully-read HTTP response; status is not interpreted here."""
    status:  int
    body:    bytes
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Transport:
    """aiohttp-backed transport with a lazily created, shared session."""

    def __init__(self, config: Optional[TransportConfig] = None) -> None:
        self._config  = config or TransportConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock:    Optional[asyncio.Lock]          = None

    @property
    def config(self) -> TransportConfig:
        return self._config

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the pooled session.  Idempotent; the next send() reopens it."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is not None and not self._session.closed:
            return self._session
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._session is not None and not self._session.closed:
                return self._session
            cfg = self._config
            connector = aiohttp.TCPConnector(
                limit=cfg.max_connections,
                limit_per_host=cfg.max_connections_per_host,
                keepalive_timeout=cfg.keepalive_timeout,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(
                    total=cfg.request_timeout,
                    sock_connect=cfg.dial_timeout,
                ),
            )
            logger.debug(
                "Opened HTTP pool (limit=%d, per_host=%d)",
                cfg.max_connections, cfg.max_connections_per_host,
            )
            return self._session

    async def send(self, request: "OutgoingRequest") -> RawResponse:
        """
        Dispatch request and read the whole body.

        The URL is passed pre-encoded so the query string – including the
        signed prefix – reaches the wire byte-for-byte.  Network failures
        and timeouts raise TransportError; no retry is attempted.
        """
        session = await self._ensure_session()
        url     = URL(request.full_url, encoded=True)
        logger.debug("%s %s", request.method, request.url)
        try:
            async with session.request(request.method, url, headers=request.headers) as resp:
                body = await resp.read()
                return RawResponse(status=resp.status, body=body, headers=dict(resp.headers))
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{request.method} {request.url} timed out") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"{request.method} {request.url} failed: {exc}") from exc
