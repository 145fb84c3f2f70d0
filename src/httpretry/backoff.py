"""Backoff policies: how long to wait before the next attempt.

A backoff policy is any callable ``(attempt: int) -> float`` mapping the
1-based number of the attempt that just failed to a wait in seconds.  The
policies in this module are frozen dataclasses so a single instance can be
shared by every request running through a transport.

Three shapes are provided, each with optional jitter and (for the growing
ones) an optional cap:

* :class:`ConstantBackoff` -- ``wait``
* :class:`LinearBackoff` -- ``attempt * base``
* :class:`ExponentialBackoff` -- ``base * 2^(attempt - 1)``

Jitter is a uniformly random value in ``[0, max_jitter)`` added on top, so
that many clients failing at the same moment do not retry in lock-step.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

# Exponents above this already exceed any sane wait; clamping keeps the
# float conversion from overflowing on absurd attempt numbers.
_MAX_EXPONENT = 64


@runtime_checkable
class BackoffPolicy(Protocol):
    """Callable computing the wait (seconds) after a failed attempt."""

    def __call__(self, attempt: int) -> float:
        ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def rand_jitter(max_jitter: float) -> float:
    """Return a random duration in ``[0, max_jitter)``.

    Returns exactly ``0.0`` for a zero-width (or negative) interval.
    """
    if max_jitter <= 0:
        return 0.0
    jitter = random.random() * max_jitter
    # Float rounding can land on the upper bound, which is excluded.
    return min(jitter, math.nextafter(max_jitter, 0.0))


def _non_negative(value: float) -> float:
    return value if value > 0 else 0.0


def _normalize_attempt(attempt: int) -> int:
    return attempt if attempt >= 1 else 1


def _cap(wait: float, max_wait: float) -> float:
    if max_wait > 0:
        return min(wait, max_wait)
    return wait


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConstantBackoff:
    """Wait the same duration after every failed attempt.

    Parameters
    ----------
    wait:
        Base wait in seconds.  Negative values clamp to ``0``.
    max_jitter:
        Upper (exclusive) bound of the random jitter added to *wait*.
    """

    wait: float = 1.0
    max_jitter: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "wait", _non_negative(self.wait))
        object.__setattr__(self, "max_jitter", _non_negative(self.max_jitter))

    def __call__(self, attempt: int) -> float:
        return self.wait + rand_jitter(self.max_jitter)


@dataclass(frozen=True)
class LinearBackoff:
    """Wait ``attempt * base`` seconds, optionally capped at *max_wait*.

    A *max_wait* smaller than *base* can never be honoured sensibly and is
    treated as "no cap".
    """

    base: float = 1.0
    max_wait: float = 0.0
    max_jitter: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", _non_negative(self.base))
        object.__setattr__(self, "max_jitter", _non_negative(self.max_jitter))
        max_wait = _non_negative(self.max_wait)
        if max_wait < self.base:
            max_wait = 0.0
        object.__setattr__(self, "max_wait", max_wait)

    def __call__(self, attempt: int) -> float:
        attempt = _normalize_attempt(attempt)
        return _cap(attempt * self.base + rand_jitter(self.max_jitter), self.max_wait)


@dataclass(frozen=True)
class ExponentialBackoff:
    """Wait ``base * 2^(attempt - 1)`` seconds, optionally capped at *max_wait*.

    The first retry waits exactly *base*; each further retry doubles it.
    Cap handling is identical to :class:`LinearBackoff`.
    """

    base: float = 1.0
    max_wait: float = 0.0
    max_jitter: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", _non_negative(self.base))
        object.__setattr__(self, "max_jitter", _non_negative(self.max_jitter))
        max_wait = _non_negative(self.max_wait)
        if max_wait < self.base:
            max_wait = 0.0
        object.__setattr__(self, "max_wait", max_wait)

    def __call__(self, attempt: int) -> float:
        exponent = min(_normalize_attempt(attempt) - 1, _MAX_EXPONENT)
        wait = self.base * float(2 ** exponent)
        return _cap(wait + rand_jitter(self.max_jitter), self.max_wait)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def constant_backoff(wait: float, max_jitter: float = 0.0) -> ConstantBackoff:
    """Build a :class:`ConstantBackoff`."""
    return ConstantBackoff(wait=wait, max_jitter=max_jitter)


def linear_backoff(
    base: float,
    max_wait: float = 0.0,
    max_jitter: float = 0.0,
) -> LinearBackoff:
    """Build a :class:`LinearBackoff`; ``max_wait=0`` means uncapped."""
    return LinearBackoff(base=base, max_wait=max_wait, max_jitter=max_jitter)


def exponential_backoff(
    base: float,
    max_wait: float = 0.0,
    max_jitter: float = 0.0,
) -> ExponentialBackoff:
    """Build an :class:`ExponentialBackoff`; ``max_wait=0`` means uncapped."""
    return ExponentialBackoff(base=base, max_wait=max_wait, max_jitter=max_jitter)


def default_backoff_policy() -> ExponentialBackoff:
    """Exponential backoff from 1 s, capped at 30 s, with up to 100 ms jitter."""
    return ExponentialBackoff(base=1.0, max_wait=30.0, max_jitter=0.1)
