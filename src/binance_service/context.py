"""
context.py – Service-wide cancellation context.

A Context bounds the lifetime of every REST call made by a Service.  It
is done when cancel() is called or when its optional deadline passes;
in-flight calls are aborted and raise ContextCancelledError or
DeadlineExceededError (both TransportError subclasses), never a
ProtocolError.

Usage
-----
    ctx     = Context(timeout=30.0)
    service = new_api_service(url, api_key, signer, ctx=ctx)

    # on shutdown
    ctx.cancel()

Streams are not bound to the Context; each one is stopped through its
own StopChannel.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import Optional, TypeVar

from .errors import ContextCancelledError, DeadlineExceededError

T = TypeVar("T")


class Context:
    """
    Cancellation + optional deadline shared by all calls of one Service.

    Parameters
    ----------
    timeout : seconds from construction until the context expires;
              None means no deadline
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self._cancelled = asyncio.Event()
        self._deadline  = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        """Cancel the context.  Idempotent."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def deadline(self) -> Optional[float]:
        """Deadline on the time.monotonic() clock, or None."""
        return self._deadline

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        """Raise if the context is already done."""
        if self.cancelled:
            raise ContextCancelledError("context canceled")
        if self.expired():
            raise DeadlineExceededError("context deadline exceeded")

    async def run(self, aw: Awaitable[T]) -> T:
        """
        Await aw unless the context finishes first.

        On cancellation or deadline the inner task is cancelled and
        awaited before the error is raised, so no work outlives the call.
        """
        try:
            self.check()
        except (ContextCancelledError, DeadlineExceededError):
            if asyncio.iscoroutine(aw):
                aw.close()
            raise

        task   = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        done: set[asyncio.Future] = set()
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if task in done:
            return task.result()
        if self.cancelled:
            raise ContextCancelledError("context canceled")
        raise DeadlineExceededError("context deadline exceeded")
