"""Observability: structured logging and metrics hooks for httpretry."""

from __future__ import annotations

from .logger import ROOT_LOGGER, StructuredFormatter, configure, get_logger
from .metrics import MetricsHook, NoopMetricsHook

__all__ = [
    "MetricsHook",
    "NoopMetricsHook",
    "ROOT_LOGGER",
    "StructuredFormatter",
    "configure",
    "get_logger",
]
