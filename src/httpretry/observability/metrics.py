"""Metrics hook protocol and no-op default implementation.

The retry transports emit counters, timings and gauges at each step of the
attempt loop.  By default a :class:`NoopMetricsHook` is used so there is zero
overhead.  Any object satisfying :class:`MetricsHook` can be passed through
``RetryConfig.metrics`` to route data points to StatsD, Prometheus, etc.

Usage::

    from httpretry import RetryTransport, with_metrics

    transport = RetryTransport(httpx.HTTPTransport(), with_metrics(my_backend))

Emitted metric names:

* ``httpretry.attempts_total``        -- counter, tagged with ``outcome``
* ``httpretry.retries_total``         -- counter, tagged with ``reason``
* ``httpretry.exhausted_total``       -- counter
* ``httpretry.cancelled_total``       -- counter, tagged with ``code``
* ``httpretry.backoff_ms``            -- timing
* ``httpretry.attempt_duration_ms``   -- timing
* ``httpretry.body_buffered_bytes``   -- gauge

Every data point also carries ``method`` and ``host`` tags.  URLs, query
strings and header values are never used as tags.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    Hooks are called synchronously from inside the attempt loop, on whatever
    thread or event loop is sending the request, so implementations should
    be cheap and thread-safe.  Tag keys and values are always strings.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric.

        Parameters
        ----------
        name:
            Dot-delimited metric name, e.g. ``"httpretry.retries_total"``.
        value:
            Amount to increment by.  Defaults to ``1``.
        tags:
            Optional key-value tags for the data point.
        """
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration.

        Parameters
        ----------
        name:
            Dot-delimited metric name, e.g. ``"httpretry.backoff_ms"``.
        ms:
            Duration in milliseconds.  Backoff timings report the planned
            wait, not the time actually slept.
        tags:
            Optional key-value tags for the data point.
        """
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value.

        Parameters
        ----------
        name:
            Dot-delimited metric name.
        value:
            Current gauge value, e.g. the size in bytes of a buffered body.
        tags:
            Optional key-value tags for the data point.
        """
        ...


class NoopMetricsHook:
    """Metrics backend that discards every data point.

    Transports fall back to it when ``RetryConfig.metrics`` is ``None`` so
    the attempt loop never checks for a missing hook.
    """

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass
