"""Cancellation handle for retried requests.

httpx requests carry no cancellation signal of their own, so a
:class:`CancelToken` travels with the request in its extensions::

    token = CancelToken.with_timeout(10.0)
    client.get(url, extensions={"cancel_token": token})

    # from any other thread:
    token.cancel("user pressed stop")

The retry transports race every backoff wait against the token.  Waiting is
event based (:meth:`threading.Event.wait` for threads, a future resolved by
the token for asyncio) so a cancellation interrupts the wait immediately.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any

import httpx

from httpretry.errors import DeadlineExceededError, RequestCancelledError

CANCEL_TOKEN_EXTENSION = "cancel_token"


class CancelToken:
    """Thread-safe, one-shot cancellation signal.

    The first call to :meth:`cancel` (or the deadline of a token created by
    :meth:`with_timeout`) wins; later calls are no-ops.  The token remembers
    *why* it fired so :attr:`error` can report an explicit cancel and an
    elapsed deadline as different exception types.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._fired: tuple[type[RequestCancelledError], str, dict[str, Any]] | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._timer: threading.Timer | None = None

    @classmethod
    def with_timeout(cls, seconds: float) -> CancelToken:
        """Create a token that cancels itself after *seconds*."""
        if seconds < 0:
            raise ValueError(f"seconds must be >= 0, got {seconds}")
        token = cls()
        timer = threading.Timer(seconds, token._expire, args=(seconds,))
        timer.daemon = True
        token._timer = timer
        timer.start()
        return token

    # -- firing ------------------------------------------------------------

    def cancel(self, reason: str | None = None) -> bool:
        """Cancel the token.  Returns ``False`` if it had already fired."""
        message = "request cancelled" if reason is None else f"request cancelled: {reason}"
        return self._fire(RequestCancelledError, message, {"reason": reason})

    def _expire(self, seconds: float) -> None:
        self._fire(
            DeadlineExceededError,
            f"request deadline of {seconds}s exceeded",
            {"timeout_seconds": seconds},
        )

    def _fire(
        self,
        error_cls: type[RequestCancelledError],
        message: str,
        context: dict[str, Any],
    ) -> bool:
        with self._lock:
            if self._fired is not None:
                return False
            self._fired = (error_cls, message, context)
            callbacks = self._callbacks
            self._callbacks = []
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
        for callback in callbacks:
            callback()
        return True

    # -- inspection --------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def error(self) -> RequestCancelledError | None:
        """A fresh exception describing the cancellation, or ``None``."""
        fired = self._fired
        if fired is None:
            return None
        error_cls, message, context = fired
        return error_cls(message=message, context=dict(context))

    def raise_if_cancelled(self) -> None:
        error = self.error
        if error is not None:
            raise error

    # -- waiting -----------------------------------------------------------

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to *timeout* seconds; ``True`` if the token fired."""
        return self._event.wait(timeout)

    async def wait_async(self, timeout: float | None = None) -> bool:
        """Await up to *timeout* seconds; ``True`` if the token fired.

        The token may be cancelled from another thread; the wake-up is
        marshalled onto the running loop.
        """
        loop = asyncio.get_running_loop()
        fired: asyncio.Future[None] = loop.create_future()

        def resolve() -> None:
            if not fired.done():
                fired.set_result(None)

        def wake() -> None:
            loop.call_soon_threadsafe(resolve)

        if not self._add_callback(wake):
            return True
        try:
            done, _ = await asyncio.wait({fired}, timeout=timeout)
            return bool(done)
        finally:
            self._remove_callback(wake)
            if not fired.done():
                fired.cancel()

    def _add_callback(self, callback: Callable[[], None]) -> bool:
        with self._lock:
            if self._fired is not None:
                return False
            self._callbacks.append(callback)
            return True

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"CancelToken({state})"


def get_cancel_token(request: httpx.Request) -> CancelToken | None:
    """Return the :class:`CancelToken` attached to *request*, if any."""
    token = request.extensions.get(CANCEL_TOKEN_EXTENSION)
    if token is None:
        return None
    if not isinstance(token, CancelToken):
        raise TypeError(
            f"extensions[{CANCEL_TOKEN_EXTENSION!r}] must be a CancelToken, "
            f"got {type(token).__name__}"
        )
    return token
