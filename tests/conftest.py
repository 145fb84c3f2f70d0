"""Shared test fixtures for the httpretry test suite."""

from __future__ import annotations

import pytest

from httpretry.backoff import constant_backoff
from httpretry.config import RetryConfig


@pytest.fixture
def config() -> RetryConfig:
    """Default retry configuration with a near-zero backoff."""
    return RetryConfig(max_retries=3, backoff_policy=constant_backoff(0.001))
