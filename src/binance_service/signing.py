"""
signing.py – Request signing for Binance SIGNED endpoints.

Binance authorises TRADE / USER_DATA calls with an HMAC-SHA256 of the
exact query string that is sent, keyed by the account's secret key:

    signature = hex(HMAC_SHA256(secret, "symbol=LTCBTC&side=BUY&...&timestamp=..."))

The signature is then appended as the last query parameter.  The
RequestBuilder guarantees that the bytes handed to the signer are the
bytes that go on the wire (see rest.py).

Signer
------
Anything with a ``sign(data: bytes) -> str`` method can be plugged into
the service, e.g. an HSM-backed signer.  HmacSigner is the stock one::

    signer = HmacSigner(secret="...")
    signer.sign(b"symbol=BTCUSDT&limit=5")   # -> 64 hex chars

Signers hold no mutable state, so one instance is shared freely by
concurrent requests.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Protocol, Union, runtime_checkable


@runtime_checkable
class Signer(Protocol):
    """Produces a signature over an arbitrary byte string."""

    def sign(self, data: bytes) -> str:
        ...


class HmacSigner:
    """
    HMAC-SHA256 signer returning the lowercase hex digest.

    Parameters
    ----------
    secret : Binance secret key (str is UTF-8 encoded)
    """

    __slots__ = ("_key",)

    def __init__(self, secret: Union[str, bytes]) -> None:
        if not secret:
            raise ValueError("HMAC secret must be non-empty")
        self._key = secret.encode() if isinstance(secret, str) else bytes(secret)

    def sign(self, data: bytes) -> str:
        return hmac.new(self._key, data, hashlib.sha256).hexdigest()

    def __repr__(self) -> str:
        return "HmacSigner(secret=<redacted>)"
