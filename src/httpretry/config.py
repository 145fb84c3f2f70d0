"""Retry transport configuration.

:class:`RetryConfig` is a frozen dataclass holding every knob of the retry
loop.  One instance is shared, read-only, by every request flowing through a
transport, so it must never be mutated after construction.

Option functions (``with_max_retries(5)`` and friends) each return a
callable that derives a new config from an old one with
:func:`dataclasses.replace`.  Transports apply them in order on top of the
base config::

    RetryTransport(
        httpx.HTTPTransport(),
        with_max_retries(5),
        with_backoff_policy(constant_backoff(0.5)),
    )
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from httpretry.backoff import default_backoff_policy
from httpretry.policy import default_retry_policy

DEFAULT_MAX_RETRIES = 3
"""Retries after the initial attempt, so four attempts in total."""

DEFAULT_DRAIN_MAX_BYTES = 16 * 1024
"""Upper bound on bytes read from a discarded response before closing it."""


@dataclass(frozen=True)
class RetryConfig:
    """Complete configuration for :class:`~httpretry.transport.RetryTransport`.

    Parameters
    ----------
    max_retries:
        Maximum number of retries after the first attempt.  Negative values
        clamp to ``0`` (a single attempt).
    retry_policy:
        ``(status_code, error) -> bool``.  Defaults to
        :func:`~httpretry.policy.default_retry_policy`.
    backoff_policy:
        ``(attempt) -> seconds``.  Defaults to
        :func:`~httpretry.backoff.default_backoff_policy`.
    drain_max_bytes:
        How much of a discarded response body to read before closing it so
        the connection can go back to the pool.  ``0`` closes without
        reading.
    buffer_unreplayable_bodies:
        Buffer single-use request bodies in memory so they can be retried.
        When false, such requests get exactly one attempt.
    metrics:
        Optional :class:`~httpretry.observability.MetricsHook`.
    """

    max_retries: int = DEFAULT_MAX_RETRIES

    retry_policy: Callable[[int, BaseException | None], bool] = default_retry_policy

    backoff_policy: Callable[[int], float] = field(default_factory=default_backoff_policy)

    drain_max_bytes: int = DEFAULT_DRAIN_MAX_BYTES

    buffer_unreplayable_bodies: bool = True

    metrics: Any | None = None

    def __post_init__(self) -> None:
        """Clamp and validate configuration after initialization."""
        if self.max_retries < 0:
            object.__setattr__(self, "max_retries", 0)
        if not callable(self.retry_policy):
            raise TypeError(f"retry_policy must be callable, got {self.retry_policy!r}")
        if not callable(self.backoff_policy):
            raise TypeError(f"backoff_policy must be callable, got {self.backoff_policy!r}")
        if self.drain_max_bytes < 0:
            raise ValueError(f"drain_max_bytes must be >= 0, got {self.drain_max_bytes}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def apply(self, *options: Option) -> RetryConfig:
        """Return a new config with *options* applied in order."""
        config = self
        for option in options:
            config = option(config)
        return config


Option = Callable[[RetryConfig], RetryConfig]


def with_max_retries(max_retries: int) -> Option:
    """Set the maximum retry count; negative values clamp to ``0``."""
    return lambda config: dataclasses.replace(config, max_retries=max_retries)


def with_retry_policy(retry_policy: Callable[[int, BaseException | None], bool]) -> Option:
    """Replace the retry policy."""
    return lambda config: dataclasses.replace(config, retry_policy=retry_policy)


def with_backoff_policy(backoff_policy: Callable[[int], float]) -> Option:
    """Replace the backoff policy."""
    return lambda config: dataclasses.replace(config, backoff_policy=backoff_policy)


def with_drain_max_bytes(drain_max_bytes: int) -> Option:
    return lambda config: dataclasses.replace(config, drain_max_bytes=drain_max_bytes)


def with_buffer_unreplayable_bodies(enabled: bool) -> Option:
    return lambda config: dataclasses.replace(config, buffer_unreplayable_bodies=enabled)


def with_metrics(metrics: Any) -> Option:
    return lambda config: dataclasses.replace(config, metrics=metrics)
