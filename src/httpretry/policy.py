"""Retry decision logic.

A retry policy is any callable ``(status_code, error) -> bool``.
``status_code`` is ``0`` when the attempt produced no response at all (the
inner transport raised), which keeps "no response" distinguishable from any
real HTTP status.

:func:`default_retry_policy` is pessimistic: every error is retried unless it
is on a short allow-list of failures that another attempt cannot fix.
"""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Iterator
from typing import Protocol, runtime_checkable

import httpx

from httpretry.errors import RequestCancelledError

# HTTP status codes signalling a transient server-side or rate-limit condition.
RETRYABLE_STATUSES: frozenset[int] = frozenset({408, 409, 423, 429, 500, 502, 503, 504})

# Errors raised because the request itself is malformed or unsendable as given.
_NON_RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.InvalidURL,
    httpx.UnsupportedProtocol,
    httpx.LocalProtocolError,
)

_CANCELLATION_EXCEPTIONS: tuple[type[BaseException], ...] = (
    RequestCancelledError,
    asyncio.CancelledError,
)


@runtime_checkable
class RetryPolicy(Protocol):
    """Callable deciding whether an attempt outcome should be retried."""

    def __call__(self, status_code: int, error: BaseException | None) -> bool:
        ...


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def _error_chain(error: BaseException) -> Iterator[BaseException]:
    """Yield *error* and every exception it was raised from, once each."""
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def is_temporary(error: BaseException) -> bool | None:
    """Return the error's own "temporary" classification, if it has one.

    Looks for a ``temporary`` attribute, or a zero-argument ``temporary()``
    or ``is_temporary()`` method, on *error* and its chained causes.  Any
    positive classification in the chain wins.  Returns ``False`` when only
    negative classifications exist, and ``None`` when nothing in the chain
    classifies itself.
    """
    classified = False
    for exc in _error_chain(error):
        for name in ("temporary", "is_temporary"):
            flag = getattr(exc, name, None)
            if flag is None:
                continue
            if callable(flag):
                flag = flag()
            if flag:
                return True
            classified = True
    return False if classified else None


def _is_certificate_error(error: BaseException) -> bool:
    return any(isinstance(exc, ssl.SSLCertVerificationError) for exc in _error_chain(error))


def _should_retry_error(error: BaseException) -> bool:
    if isinstance(error, _CANCELLATION_EXCEPTIONS):
        return False
    if isinstance(error, _NON_RETRYABLE_EXCEPTIONS):
        return False
    if _is_certificate_error(error):
        return False
    # Unknown failures are assumed transient.
    return True


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

def default_retry_policy(status_code: int, error: BaseException | None) -> bool:
    """Decide whether an attempt should be retried.

    Parameters
    ----------
    status_code:
        HTTP status code of the response, or ``0`` if no response was
        received.
    error:
        The exception raised by the inner transport, or ``None``.

    Returns
    -------
    bool
        ``True`` for transport errors (except malformed requests,
        unsupported schemes, TLS certificate failures and cancellation),
        errors that classify themselves as temporary, a missing response,
        and statuses in :data:`RETRYABLE_STATUSES`.
    """
    if error is not None:
        if is_temporary(error):
            return True
        return _should_retry_error(error)

    # No error but no response either: anomalous, treat as transient.
    if status_code == 0:
        return True

    return status_code in RETRYABLE_STATUSES


def retry_on_status(*status_codes: int, retry_errors: bool = True) -> RetryPolicy:
    """Build a policy retrying exactly the given *status_codes*.

    When *retry_errors* is true, error outcomes (and missing responses) are
    judged the way :func:`default_retry_policy` judges them; otherwise they
    are never retried.
    """
    codes = frozenset(status_codes)

    def policy(status_code: int, error: BaseException | None) -> bool:
        if error is not None or status_code == 0:
            return retry_errors and default_retry_policy(status_code, error)
        return status_code in codes

    return policy
