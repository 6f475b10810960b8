"""
errors.py – Exception taxonomy for the Binance service layer.

    BinanceError
    ├── ConstructionError       request / subscription could not be assembled
    ├── TransportError          network, DNS, timeout – never retried here
    │   ├── ContextCancelledError
    │   └── DeadlineExceededError
    ├── ProtocolError           non-2xx status or an error payload
    └── DecodeError             body / frame does not match the expected schema

REST calls raise exactly one of these.  Streams only surface the fatal
ones through EventChannel.error; per-frame DecodeErrors are logged and
dropped.
"""

from __future__ import annotations

from typing import Optional


class BinanceError(Exception):
    """Base class for every error raised by binance_service."""


class ConstructionError(BinanceError):
    """Bad base URL, endpoint, missing credentials or invalid stream URL."""


class TransportError(BinanceError):
    """The HTTP exchange (or stream connection) failed below the protocol level."""


class ContextCancelledError(TransportError):
    """The service Context was cancelled while the call was in flight."""


class DeadlineExceededError(TransportError):
    """The service Context deadline passed while the call was in flight."""


class ProtocolError(BinanceError):
    """
    Raised when Binance answers with a non-2xx status or an error payload.

    code / msg are taken from Binance's {"code": -1121, "msg": "..."}
    envelope when the body carries one.
    """

    def __init__(
        self,
        status_code: int,
        body: str,
        method: str = "",
        path: str = "",
        code: Optional[int] = None,
        msg: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.body        = body
        self.method      = method.upper()
        self.path        = path
        self.code        = code
        self.msg         = msg
        location = f" {self.method} {self.path}" if path else ""
        detail   = f"{code}: {msg}" if code is not None else (msg or body)
        super().__init__(f"Binance API error [{status_code}]{location}: {detail}")


class DecodeError(BinanceError):
    """A response body or stream frame did not match the expected schema."""
