"""Error hierarchy for the httpretry package.

Every error raised by httpretry itself inherits from :class:`HttpRetryError`.
Each carries a machine-readable ``code`` (from :class:`ErrorCode`), a
human-readable ``message``, an optional structured ``context`` dict, and an
optional ``cause`` (chained exception).

Errors raised by the wrapped transport (``httpx.ConnectError`` and friends)
are never wrapped: when retries are exhausted the caller receives the last
transport exception unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the package can raise."""

    CANCELLED = "CANCELLED"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    BODY_READ_ERROR = "BODY_READ_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class HttpRetryError(Exception):
    """Base exception for all httpretry errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: BaseException | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class RequestCancelledError(HttpRetryError):
    """The request's cancel token fired before the retry loop finished.

    Context keys: ``reason``, ``attempt`` (added by the transport when the
    cancellation interrupted a backoff wait).
    """

    def __init__(
        self,
        message: str = "request cancelled",
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
        code: str = ErrorCode.CANCELLED,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class DeadlineExceededError(RequestCancelledError):
    """The request's cancel token fired because its deadline elapsed.

    Context keys: ``timeout_seconds``, ``attempt``.
    """

    def __init__(
        self,
        message: str = "request deadline exceeded",
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message=message,
            context=context,
            cause=cause,
            code=ErrorCode.DEADLINE_EXCEEDED,
        )


# ---------------------------------------------------------------------------
# Body errors
# ---------------------------------------------------------------------------

class BodyReadError(HttpRetryError):
    """The request body could not be read into the replay buffer, or the
    ``get_body`` extension failed to produce a fresh body.

    Context keys: ``method``, ``url``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.BODY_READ_ERROR,
            message=message,
            context=context,
            cause=cause,
        )
