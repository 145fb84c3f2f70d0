"""Sync and async retrying transports for httpx.

:class:`RetryTransport` wraps any :class:`httpx.BaseTransport` (and
:class:`AsyncRetryTransport` any :class:`httpx.AsyncBaseTransport`) and is
itself a transport, so retries are invisible to code using the client::

    client = httpx.Client(transport=RetryTransport(httpx.HTTPTransport()))

Each request runs its own attempt loop:

1. Prepare the body so it can be sent (again) -- see :mod:`httpretry.body`.
2. Hand the request to the inner transport; an exception is the error
   outcome, and the status code is ``0`` when there is no response.
3. Stop if the retry policy declines, the attempt limit is reached, or the
   body cannot be replayed.
4. Otherwise drain and close the discarded response, compute the backoff
   for this attempt and wait, racing the wait against the request's
   :class:`~httpretry.cancel.CancelToken`.

The caller receives the last response, or the last exception raised by the
inner transport, unchanged.  The only errors the loop raises itself are
cancellation errors and :class:`~httpretry.errors.BodyReadError`.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx

from httpretry.body import BodyReplayer
from httpretry.cancel import CancelToken, get_cancel_token
from httpretry.config import Option, RetryConfig
from httpretry.errors import ErrorCode, RequestCancelledError
from httpretry.observability import NoopMetricsHook, get_logger

log = get_logger("httpretry.transport")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def drain_and_close(response: httpx.Response | None, max_bytes: int) -> None:
    """Read at most *max_bytes* of a discarded response, then close it.

    Draining lets the connection be reused; the bound keeps a slow or huge
    body from stalling the retry.  Read failures are logged and ignored
    because the response is being thrown away.
    """
    if response is None:
        return
    try:
        if max_bytes > 0 and not response.is_stream_consumed and not response.is_closed:
            drained = 0
            for chunk in response.stream:
                drained += len(chunk)
                if drained >= max_bytes:
                    break
    except (httpx.TransportError, httpx.StreamError) as exc:
        log.debug(
            "Failed to drain discarded response",
            extra={"extra_fields": {"op": "drain", "error": str(exc)}},
        )
    finally:
        response.close()


async def adrain_and_close(response: httpx.Response | None, max_bytes: int) -> None:
    """Async equivalent of :func:`drain_and_close`."""
    if response is None:
        return
    try:
        if max_bytes > 0 and not response.is_stream_consumed and not response.is_closed:
            drained = 0
            async for chunk in response.stream:
                drained += len(chunk)
                if drained >= max_bytes:
                    break
    except (httpx.TransportError, httpx.StreamError) as exc:
        log.debug(
            "Failed to drain discarded response",
            extra={"extra_fields": {"op": "drain", "error": str(exc)}},
        )
    finally:
        await response.aclose()


def _request_fields(request: httpx.Request, attempt: int) -> dict[str, Any]:
    # Query strings may carry credentials; log host and path only.
    return {
        "method": request.method,
        "host": request.url.host,
        "path": request.url.path,
        "attempt": attempt,
    }


def _record_attempt(
    metrics: Any,
    request: httpx.Request,
    status_code: int,
    error: BaseException | None,
    elapsed_ms: float,
) -> None:
    outcome = type(error).__name__ if error is not None else str(status_code)
    tags = {"method": request.method, "host": request.url.host, "outcome": outcome}
    metrics.increment("httpretry.attempts_total", tags=tags)
    metrics.timing("httpretry.attempt_duration_ms", elapsed_ms, tags=tags)


def _should_retry(
    config: RetryConfig,
    metrics: Any,
    request: httpx.Request,
    body: BodyReplayer,
    attempt: int,
    status_code: int,
    error: BaseException | None,
) -> bool:
    """Decide whether the loop goes on to another attempt.

    The retry policy is pure, so consulting it before the attempt limit
    only changes what gets logged, never the outcome.
    """
    if not config.retry_policy(status_code, error):
        return False

    fields = _request_fields(request, attempt)
    fields["status_code"] = status_code
    if error is not None:
        fields["error"] = repr(error)

    if attempt >= config.max_attempts:
        metrics.increment(
            "httpretry.exhausted_total",
            tags={"method": request.method, "host": request.url.host},
        )
        log.warning(
            "Retry limit reached, returning last outcome",
            extra={"extra_fields": {"op": "exhausted", **fields}},
        )
        return False

    if not body.replayable:
        log.info(
            "Request body cannot be replayed, returning first outcome",
            extra={"extra_fields": {"op": "not_replayable", **fields}},
        )
        return False

    return True


def _schedule_retry(
    config: RetryConfig,
    metrics: Any,
    request: httpx.Request,
    attempt: int,
    status_code: int,
    error: BaseException | None,
) -> float:
    """Compute and record the backoff before the next attempt."""
    delay = max(0.0, float(config.backoff_policy(attempt)))
    reason = "error" if error is not None else "status"
    tags = {"method": request.method, "host": request.url.host, "reason": reason}
    metrics.increment("httpretry.retries_total", tags=tags)
    metrics.timing("httpretry.backoff_ms", delay * 1000, tags=tags)

    fields = _request_fields(request, attempt)
    fields.update({"status_code": status_code, "delay_s": delay})
    if error is not None:
        fields["error"] = repr(error)
    log.warning("Retry scheduled", extra={"extra_fields": {"op": "retry", **fields}})
    return delay


def _cancelled(
    token: CancelToken,
    metrics: Any,
    request: httpx.Request,
    attempt: int,
) -> RequestCancelledError:
    error = token.error
    if error is None:
        raise RuntimeError("cancel token reported a wait interruption without firing")
    error.context["attempt"] = attempt
    code = error.code.value if isinstance(error.code, ErrorCode) else str(error.code)
    metrics.increment(
        "httpretry.cancelled_total",
        tags={"method": request.method, "host": request.url.host, "code": code},
    )
    log.info(
        "Request cancelled while waiting to retry",
        extra={
            "extra_fields": {
                "op": "cancelled",
                **_request_fields(request, attempt),
                "code": code,
            }
        },
    )
    return error


# ---------------------------------------------------------------------------
# Sync transport
# ---------------------------------------------------------------------------

class RetryTransport(httpx.BaseTransport):
    """Synchronous transport adding retry-with-backoff to an inner transport.

    Parameters
    ----------
    transport:
        The transport performing a single exchange.  Defaults to a new
        :class:`httpx.HTTPTransport`.  It is shared by every request and
        never modified.
    *options:
        Option functions from :mod:`httpretry.config`, applied in order on
        top of *config*.
    config:
        Base :class:`~httpretry.config.RetryConfig`.  Defaults to
        ``RetryConfig()``.
    """

    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        *options: Option,
        config: RetryConfig | None = None,
    ) -> None:
        if transport is None:
            transport = httpx.HTTPTransport()
        if not hasattr(transport, "handle_request"):
            raise TypeError(f"transport must be an httpx.BaseTransport, got {transport!r}")
        self._transport = transport
        self._config = (config if config is not None else RetryConfig()).apply(*options)
        self._metrics = (
            self._config.metrics if self._config.metrics is not None else NoopMetricsHook()
        )

    # -- accessors ---------------------------------------------------------

    @property
    def transport(self) -> httpx.BaseTransport:
        """The wrapped inner transport."""
        return self._transport

    @property
    def config(self) -> RetryConfig:
        return self._config

    def with_transport(self, transport: httpx.BaseTransport) -> RetryTransport:
        """Return a new retry transport with the same config around *transport*."""
        return RetryTransport(transport, config=self._config)

    # -- httpx.BaseTransport -----------------------------------------------

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Send *request* through the inner transport, retrying per config.

        Raises
        ------
        RequestCancelledError
            The request's cancel token fired (``DeadlineExceededError`` when
            it fired because of a deadline).
        BodyReadError
            The request body could not be buffered for replay.
        Exception
            The last exception raised by the inner transport, unchanged.
        """
        config = self._config
        metrics = self._metrics
        token = get_cancel_token(request)
        body = BodyReplayer(
            request,
            buffer_unreplayable=config.buffer_unreplayable_bodies,
            metrics=metrics,
        )

        attempt = 0
        while True:
            attempt += 1
            if token is not None:
                token.raise_if_cancelled()
            body.prepare()

            response: httpx.Response | None = None
            error: Exception | None = None
            t0 = time.monotonic()
            try:
                response = self._transport.handle_request(request)
            except Exception as exc:
                error = exc
            elapsed_ms = (time.monotonic() - t0) * 1000
            status_code = response.status_code if response is not None else 0
            _record_attempt(metrics, request, status_code, error, elapsed_ms)

            if not _should_retry(config, metrics, request, body, attempt, status_code, error):
                break

            drain_and_close(response, config.drain_max_bytes)
            delay = _schedule_retry(config, metrics, request, attempt, status_code, error)
            if token is None:
                time.sleep(delay)
            elif token.wait(delay):
                raise _cancelled(token, metrics, request, attempt)

        if error is not None:
            raise error
        if response is None:
            raise RuntimeError("inner transport returned neither a response nor an error")
        return response

    def close(self) -> None:
        """Close the inner transport."""
        self._transport.close()

    def __repr__(self) -> str:
        return (
            f"RetryTransport(transport={self._transport!r}, "
            f"max_retries={self._config.max_retries})"
        )


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncRetryTransport(httpx.AsyncBaseTransport):
    """Asynchronous transport adding retry-with-backoff to an inner transport.

    Mirrors :class:`RetryTransport`; the backoff wait is an
    :func:`asyncio.wait` race against the cancel token, and cancelling the
    surrounding task interrupts it as well.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        *options: Option,
        config: RetryConfig | None = None,
    ) -> None:
        if transport is None:
            transport = httpx.AsyncHTTPTransport()
        if not hasattr(transport, "handle_async_request"):
            raise TypeError(
                f"transport must be an httpx.AsyncBaseTransport, got {transport!r}"
            )
        self._transport = transport
        self._config = (config if config is not None else RetryConfig()).apply(*options)
        self._metrics = (
            self._config.metrics if self._config.metrics is not None else NoopMetricsHook()
        )

    @property
    def transport(self) -> httpx.AsyncBaseTransport:
        """The wrapped inner transport."""
        return self._transport

    @property
    def config(self) -> RetryConfig:
        return self._config

    def with_transport(self, transport: httpx.AsyncBaseTransport) -> AsyncRetryTransport:
        """Return a new retry transport with the same config around *transport*."""
        return AsyncRetryTransport(transport, config=self._config)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Async equivalent of :meth:`RetryTransport.handle_request`."""
        config = self._config
        metrics = self._metrics
        token = get_cancel_token(request)
        body = BodyReplayer(
            request,
            buffer_unreplayable=config.buffer_unreplayable_bodies,
            metrics=metrics,
        )

        attempt = 0
        while True:
            attempt += 1
            if token is not None:
                token.raise_if_cancelled()
            await body.aprepare()

            response: httpx.Response | None = None
            error: Exception | None = None
            t0 = time.monotonic()
            try:
                response = await self._transport.handle_async_request(request)
            except Exception as exc:
                error = exc
            elapsed_ms = (time.monotonic() - t0) * 1000
            status_code = response.status_code if response is not None else 0
            _record_attempt(metrics, request, status_code, error, elapsed_ms)

            if not _should_retry(config, metrics, request, body, attempt, status_code, error):
                break

            await adrain_and_close(response, config.drain_max_bytes)
            delay = _schedule_retry(config, metrics, request, attempt, status_code, error)
            if token is None:
                await asyncio.sleep(delay)
            elif await token.wait_async(delay):
                raise _cancelled(token, metrics, request, attempt)

        if error is not None:
            raise error
        if response is None:
            raise RuntimeError("inner transport returned neither a response nor an error")
        return response

    async def aclose(self) -> None:
        """Close the inner transport."""
        await self._transport.aclose()

    def __repr__(self) -> str:
        return (
            f"AsyncRetryTransport(transport={self._transport!r}, "
            f"max_retries={self._config.max_retries})"
        )
