"""Convenience constructors and transport accessors.

Building a retrying client by hand takes one line::

    httpx.Client(transport=RetryTransport(httpx.HTTPTransport(retries=0)))

The helpers here shorten that and cover the "reach the transport underneath
the retry layer" use case without poking at private client attributes.
"""

from __future__ import annotations

from typing import Any

import httpx

from httpretry.config import Option, RetryConfig
from httpretry.transport import AsyncRetryTransport, RetryTransport


def new_retry_client(
    *options: Option,
    transport: httpx.BaseTransport | None = None,
    config: RetryConfig | None = None,
    **client_kwargs: Any,
) -> httpx.Client:
    """Create an :class:`httpx.Client` whose transport retries.

    Parameters
    ----------
    *options:
        Option functions from :mod:`httpretry.config`.
    transport:
        Inner transport; defaults to :class:`httpx.HTTPTransport`.
    config:
        Base :class:`~httpretry.config.RetryConfig`.
    **client_kwargs:
        Forwarded to :class:`httpx.Client` (``base_url``, ``timeout``,
        ``headers`` ...).  ``transport`` and ``mounts`` are reserved.
    """
    _reject_transport_kwargs(client_kwargs)
    return httpx.Client(
        transport=RetryTransport(transport, *options, config=config),
        **client_kwargs,
    )


def new_async_retry_client(
    *options: Option,
    transport: httpx.AsyncBaseTransport | None = None,
    config: RetryConfig | None = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """Create an :class:`httpx.AsyncClient` whose transport retries.

    See :func:`new_retry_client`.
    """
    _reject_transport_kwargs(client_kwargs)
    return httpx.AsyncClient(
        transport=AsyncRetryTransport(transport, *options, config=config),
        **client_kwargs,
    )


def _reject_transport_kwargs(client_kwargs: dict[str, Any]) -> None:
    for key in ("transport", "mounts"):
        if key in client_kwargs:
            raise TypeError(f"{key!r} cannot be combined with a retry transport here")


def get_embedded_transport(transport: Any) -> Any:
    """Return the transport doing the actual exchange.

    For a retry transport this is its inner transport; any other transport
    is returned as-is.
    """
    if isinstance(transport, (RetryTransport, AsyncRetryTransport)):
        return transport.transport
    return transport


def replace_embedded_transport(transport: Any, replacement: Any) -> Any:
    """Swap the transport doing the actual exchange.

    A retry transport is rebuilt around *replacement* with its config kept;
    any other transport is simply replaced.  The original is not modified.
    """
    if isinstance(transport, (RetryTransport, AsyncRetryTransport)):
        return transport.with_transport(replacement)
    return replacement
