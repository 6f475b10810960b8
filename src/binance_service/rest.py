"""
rest.py – Authenticated request construction for the Binance REST API.

The pipeline for one call:

1. URL     = base URL + "/" + endpoint (no interpolation inside the path)
2. query   = canonical_query(params) – encoded exactly once
3. api_key → "X-MBX-APIKEY" header (never a query parameter)
4. sign    → signature = signer.sign(query); query += "&signature=<sig>"
5. dispatch through the shared Transport – no retries

The signed prefix is never re-encoded: the sent query is the signed
string with one "signature" field appended, character for character.

Status codes are not interpreted here; mapping a RawResponse into a
result or a ProtocolError is the Service's job (client.py).

Usage
-----
    builder  = RequestBuilder("https://api.binance.com", api_key, HmacSigner(secret), transport)
    response = await builder.execute("GET", "api/v3/account", {"timestamp": "1499827319559"},
                                     api_key=True, sign=True)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlencode, urlsplit

from .errors import ConstructionError
from .signing import Signer
from .transport import RawResponse, Transport


API_KEY_HEADER  = "X-MBX-APIKEY"
SIGNATURE_PARAM = "signature"

_ALLOWED_SCHEMES = ("http", "https")


# ---------------------------------------------------------------------------
# Query encoding
# ---------------------------------------------------------------------------

def canonical_query(params: Optional[Mapping[str, Any]]) -> str:
    """
    Encode params in insertion order with urlencode (quote_plus escaping).

    None values are skipped; everything else is str()-ed.  This single
    rule produces both the string that gets signed and the string that
    gets sent.  Keys are deliberately not sorted: callers control the
    order, and Binance's documented signing example relies on it.
    """
    if not params:
        return ""
    pairs = [(str(key), str(val)) for key, val in params.items() if val is not None]
    return urlencode(pairs)


def _join_url(base_url: str, endpoint: str) -> str:
    parts = urlsplit(base_url)
    if parts.scheme not in _ALLOWED_SCHEMES or not parts.netloc:
        raise ConstructionError(f"base URL must be an absolute http(s) URL, got {base_url!r}")
    if parts.query or parts.fragment:
        raise ConstructionError(f"base URL must not carry a query or fragment: {base_url!r}")
    if not endpoint or "?" in endpoint or "#" in endpoint:
        raise ConstructionError(f"invalid endpoint {endpoint!r}")
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


# ---------------------------------------------------------------------------
# Outgoing request
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutgoingRequest:
    """
    A fully assembled request, consumed by Transport.send().

    signed_query : the exact string passed to the Signer, None if unsigned
    """
    method:       str
    url:          str
    query:        str
    headers:      dict[str, str] = field(default_factory=dict)
    signed_query: Optional[str]  = None

    @property
    def full_url(self) -> str:
        return f"{self.url}?{self.query}" if self.query else self.url


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class RequestBuilder:
    """
    Builds and dispatches authenticated requests.

    Parameters
    ----------
    base_url  : e.g. "https://api.binance.com"
    api_key   : value for the X-MBX-APIKEY header
    signer    : Signer used for SIGNED endpoints
    transport : shared Transport (connection pool)
    logger    : diagnostic sink; defaults to this module's logger
    """

    def __init__(
        self,
        base_url:  str,
        api_key:   str,
        signer:    Optional[Signer],
        transport: Transport,
        logger:    Optional[logging.Logger] = None,
    ) -> None:
        self._base_url  = base_url
        self._api_key   = api_key
        self._signer    = signer
        self._transport = transport
        self._logger    = logger or logging.getLogger(__name__)

    def build(
        self,
        method:   str,
        endpoint: str,
        params:   Optional[Mapping[str, Any]] = None,
        *,
        api_key:  bool = False,
        sign:     bool = False,
    ) -> OutgoingRequest:
        """Assemble the request without sending it."""
        url   = _join_url(self._base_url, endpoint)
        query = canonical_query(params)

        headers: dict[str, str] = {}
        if api_key:
            if not self._api_key:
                raise ConstructionError(f"{endpoint} requires an API key but none is configured")
            headers[API_KEY_HEADER] = self._api_key

        signed_query: Optional[str] = None
        if sign:
            if self._signer is None:
                raise ConstructionError(f"{endpoint} requires a signature but no signer is configured")
            signed_query = query
            signature    = self._signer.sign(signed_query.encode())
            self._logger.debug("queryString=%s signature=%s", signed_query, signature)
            suffix = urlencode([(SIGNATURE_PARAM, signature)])
            query  = f"{signed_query}&{suffix}" if signed_query else suffix

        return OutgoingRequest(
            method=method.upper(),
            url=url,
            query=query,
            headers=headers,
            signed_query=signed_query,
        )

    async def execute(
        self,
        method:   str,
        endpoint: str,
        params:   Optional[Mapping[str, Any]] = None,
        *,
        api_key:  bool = False,
        sign:     bool = False,
    ) -> RawResponse:
        """Build the request and send it through the transport."""
        request = self.build(method, endpoint, params, api_key=api_key, sign=sign)
        return await self._transport.send(request)
