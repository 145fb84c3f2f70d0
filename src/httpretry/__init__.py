"""httpretry: retry-with-backoff as an httpx transport.

Public re-exports
-----------------

* **Transports:** :class:`RetryTransport`, :class:`AsyncRetryTransport`
* **Configuration:** :class:`RetryConfig` and the ``with_*`` option functions
* **Policies:** backoff policies and :func:`default_retry_policy`
* **Cancellation:** :class:`CancelToken`
* **Errors:** every :class:`HttpRetryError` subclass and :class:`ErrorCode`

Usage::

    import httpx
    from httpretry import RetryTransport, exponential_backoff, with_backoff_policy

    client = httpx.Client(
        transport=RetryTransport(
            httpx.HTTPTransport(),
            with_backoff_policy(exponential_backoff(0.5, max_wait=10.0)),
        ),
    )
    response = client.get("https://example.com/")
"""

from __future__ import annotations

# ── Policies ──────────────────────────────────────────────────────────
from httpretry.backoff import (
    BackoffPolicy,
    ConstantBackoff,
    ExponentialBackoff,
    LinearBackoff,
    constant_backoff,
    default_backoff_policy,
    exponential_backoff,
    linear_backoff,
)

# ── Body replay ───────────────────────────────────────────────────────
from httpretry.body import GET_BODY_EXTENSION, BodyReplayer, ReplayBuffer

# ── Cancellation ──────────────────────────────────────────────────────
from httpretry.cancel import CANCEL_TOKEN_EXTENSION, CancelToken

# ── Clients ───────────────────────────────────────────────────────────
from httpretry.client import (
    get_embedded_transport,
    new_async_retry_client,
    new_retry_client,
    replace_embedded_transport,
)

# ── Configuration ─────────────────────────────────────────────────────
from httpretry.config import (
    DEFAULT_DRAIN_MAX_BYTES,
    DEFAULT_MAX_RETRIES,
    RetryConfig,
    with_backoff_policy,
    with_buffer_unreplayable_bodies,
    with_drain_max_bytes,
    with_max_retries,
    with_metrics,
    with_retry_policy,
)

# ── Errors ────────────────────────────────────────────────────────────
from httpretry.errors import (
    BodyReadError,
    DeadlineExceededError,
    ErrorCode,
    HttpRetryError,
    RequestCancelledError,
)
from httpretry.policy import (
    RETRYABLE_STATUSES,
    RetryPolicy,
    default_retry_policy,
    retry_on_status,
)

# ── Transports ────────────────────────────────────────────────────────
from httpretry.transport import AsyncRetryTransport, RetryTransport

__all__ = [
    # Transports
    "RetryTransport",
    "AsyncRetryTransport",
    # Clients
    "new_retry_client",
    "new_async_retry_client",
    "get_embedded_transport",
    "replace_embedded_transport",
    # Configuration
    "RetryConfig",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_DRAIN_MAX_BYTES",
    "with_max_retries",
    "with_retry_policy",
    "with_backoff_policy",
    "with_drain_max_bytes",
    "with_buffer_unreplayable_bodies",
    "with_metrics",
    # Backoff policies
    "BackoffPolicy",
    "ConstantBackoff",
    "LinearBackoff",
    "ExponentialBackoff",
    "constant_backoff",
    "linear_backoff",
    "exponential_backoff",
    "default_backoff_policy",
    # Retry policies
    "RetryPolicy",
    "RETRYABLE_STATUSES",
    "default_retry_policy",
    "retry_on_status",
    # Body replay
    "BodyReplayer",
    "ReplayBuffer",
    "GET_BODY_EXTENSION",
    # Cancellation
    "CancelToken",
    "CANCEL_TOKEN_EXTENSION",
    # Errors
    "HttpRetryError",
    "ErrorCode",
    "RequestCancelledError",
    "DeadlineExceededError",
    "BodyReadError",
]
