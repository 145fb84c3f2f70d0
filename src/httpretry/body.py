"""Making a single-use request body replayable across attempts.

An :class:`httpx.Request` body is a byte stream that may only be iterable
once (generator content, file uploads).  Before every attempt the retry
transports ask a :class:`BodyReplayer` to put a fresh, attempt-ready stream
on the request.  Strategies, in order:

1. ``request.extensions["get_body"]`` is a callable -- call it before every
   attempt, including the first.  Nothing is buffered, so arbitrarily large
   bodies can be retried.  A synchronous iterable is adapted for async
   transports; an async iterable cannot be sent by a sync transport and
   raises :class:`~httpretry.errors.BodyReadError` before the attempt.
2. The stream is an :class:`httpx.ByteStream` (``content=b"..."`` or no body
   at all) -- it is already in memory and restarts on every iteration.
3. Anything else -- on first use the whole body is read into a
   :class:`ReplayBuffer`, the original stream is closed, and the buffer is
   rewound before each later attempt.  The full body is held in memory for
   the lifetime of the request; callers retrying very large uploads should
   supply ``get_body`` instead.

With ``buffer_unreplayable=False`` strategy 3 is skipped: the original
stream is sent once and the replayer reports itself as not replayable, so
the transport returns the first outcome as-is.

Request headers are left untouched; a chunked body stays chunked.
"""

from __future__ import annotations

import io
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator
from typing import Any

import httpx

from httpretry.errors import BodyReadError
from httpretry.observability import NoopMetricsHook, get_logger

log = get_logger("httpretry.body")

GET_BODY_EXTENSION = "get_body"

_CHUNK_SIZE = 64 * 1024


class ReplayBuffer(httpx.SyncByteStream, httpx.AsyncByteStream):
    """In-memory, seekable copy of a request body.

    Iterating yields the bytes from the current position to the end;
    :meth:`rewind` seeks back to the start for the next attempt.
    """

    def __init__(self, data: bytes) -> None:
        self._reader = io.BytesIO(data)
        self._size = len(data)

    @property
    def size(self) -> int:
        return self._size

    def rewind(self) -> None:
        self._reader.seek(0, io.SEEK_SET)

    def getvalue(self) -> bytes:
        return self._reader.getvalue()

    def _chunks(self) -> Iterator[bytes]:
        while True:
            chunk = self._reader.read(_CHUNK_SIZE)
            if not chunk:
                return
            yield chunk

    def __iter__(self) -> Iterator[bytes]:
        yield from self._chunks()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks():
            yield chunk

    def __repr__(self) -> str:
        return f"ReplayBuffer(size={self._size}, position={self._reader.tell()})"


class _IterableStream(httpx.SyncByteStream):
    def __init__(self, iterable: Iterable[bytes]) -> None:
        self._iterable = iterable

    def __iter__(self) -> Iterator[bytes]:
        yield from self._iterable


class _AsyncIterableStream(httpx.AsyncByteStream):
    def __init__(self, iterable: AsyncIterable[bytes]) -> None:
        self._iterable = iterable

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._iterable:
            yield chunk


class _SyncToAsyncStream(httpx.AsyncByteStream):
    """Expose a synchronous iterable of bytes to an async transport."""

    def __init__(self, iterable: Iterable[bytes]) -> None:
        self._iterable = iterable

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._iterable:
            yield chunk

    async def aclose(self) -> None:
        close = getattr(self._iterable, "close", None)
        if close is not None:
            close()


def _as_stream(
    body: Any,
    *,
    asynchronous: bool,
) -> httpx.SyncByteStream | httpx.AsyncByteStream:
    """Coerce whatever ``get_body`` returned into an httpx byte stream.

    *asynchronous* selects the stream flavour the inner transport iterates.
    Synchronous iterables are adapted for async transports; async iterables
    cannot be consumed by a sync transport and raise :class:`TypeError`.
    """
    if isinstance(body, str):
        return httpx.ByteStream(body.encode("utf-8"))
    if isinstance(body, (bytes, bytearray, memoryview)):
        return httpx.ByteStream(bytes(body))

    if asynchronous:
        if isinstance(body, httpx.AsyncByteStream):
            return body
        if isinstance(body, AsyncIterable):
            return _AsyncIterableStream(body)
        if isinstance(body, Iterable):
            return _SyncToAsyncStream(body)
    else:
        if isinstance(body, httpx.SyncByteStream):
            return body
        if isinstance(body, AsyncIterable):
            raise TypeError(
                "get_body returned an async iterable, which a synchronous "
                "transport cannot send"
            )
        if isinstance(body, Iterable):
            return _IterableStream(body)

    raise TypeError(
        f"get_body must return bytes, str or an (async) iterable of bytes, "
        f"got {type(body).__name__}"
    )


class BodyReplayer:
    """Per-request body preparation for the attempt loop.

    Parameters
    ----------
    request:
        The request whose ``stream`` is rewritten before every attempt.
    buffer_unreplayable:
        Buffer single-use streams in memory (the default).  When false, such
        requests are attempted exactly once.
    metrics:
        Optional metrics hook; receives ``httpretry.body_buffered_bytes``.
    """

    def __init__(
        self,
        request: httpx.Request,
        *,
        buffer_unreplayable: bool = True,
        metrics: Any | None = None,
    ) -> None:
        self._request = request
        self._buffer_unreplayable = buffer_unreplayable
        self._metrics = metrics if metrics is not None else NoopMetricsHook()
        self._buffer: ReplayBuffer | None = None

        get_body = request.extensions.get(GET_BODY_EXTENSION)
        if get_body is not None and not callable(get_body):
            raise TypeError(
                f"extensions[{GET_BODY_EXTENSION!r}] must be callable, "
                f"got {type(get_body).__name__}"
            )
        self._get_body: Callable[[], Any] | None = get_body

        self._in_memory = get_body is None and isinstance(request.stream, httpx.ByteStream)
        self._replayable = (
            get_body is not None or self._in_memory or buffer_unreplayable
        )

    @property
    def replayable(self) -> bool:
        """Whether the body can be sent again after the first attempt."""
        return self._replayable

    @property
    def buffer(self) -> ReplayBuffer | None:
        """The replay buffer, once one has been created."""
        return self._buffer

    # -- sync --------------------------------------------------------------

    def prepare(self) -> None:
        """Install an attempt-ready body on the request (sync transports)."""
        if self._get_body is not None:
            self._request.stream = self._regenerate(self._get_body, asynchronous=False)
            return
        if self._in_memory or not self._buffer_unreplayable:
            return
        if self._buffer is None:
            stream = self._request.stream
            if not isinstance(stream, Iterable):
                raise self._read_error(
                    TypeError("request body is not a synchronous byte stream")
                )
            try:
                data = b"".join(stream)
            except Exception as exc:
                raise self._read_error(exc) from exc
            finally:
                close = getattr(stream, "close", None)
                if close is not None:
                    close()
            self._install_buffer(data)
        else:
            self._buffer.rewind()
            self._request.stream = self._buffer

    # -- async -------------------------------------------------------------

    async def aprepare(self) -> None:
        """Install an attempt-ready body on the request (async transports)."""
        if self._get_body is not None:
            self._request.stream = self._regenerate(self._get_body, asynchronous=True)
            return
        if self._in_memory or not self._buffer_unreplayable:
            return
        if self._buffer is None:
            stream = self._request.stream
            if not isinstance(stream, AsyncIterable):
                raise self._read_error(
                    TypeError("request body is not an asynchronous byte stream")
                )
            try:
                data = b"".join([chunk async for chunk in stream])
            except Exception as exc:
                raise self._read_error(exc) from exc
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            self._install_buffer(data)
        else:
            self._buffer.rewind()
            self._request.stream = self._buffer

    # -- helpers -----------------------------------------------------------

    def _regenerate(
        self,
        get_body: Callable[[], Any],
        *,
        asynchronous: bool,
    ) -> httpx.SyncByteStream | httpx.AsyncByteStream:
        try:
            return _as_stream(get_body(), asynchronous=asynchronous)
        except Exception as exc:
            raise self._read_error(exc) from exc

    def _install_buffer(self, data: bytes) -> None:
        self._buffer = ReplayBuffer(data)
        self._request.stream = self._buffer
        self._metrics.gauge(
            "httpretry.body_buffered_bytes",
            float(len(data)),
            tags={"method": self._request.method},
        )
        log.debug(
            "Request body buffered for replay",
            extra={
                "extra_fields": {
                    "op": "buffer_body",
                    "method": self._request.method,
                    "size_bytes": len(data),
                }
            },
        )

    def _read_error(self, exc: Exception) -> BodyReadError:
        return BodyReadError(
            message=f"Could not read request body for {self._request.method} "
            f"{self._request.url}: {exc}",
            context={"method": self._request.method, "url": str(self._request.url)},
            cause=exc,
        )
