"""Property-based tests for httpretry using Hypothesis.

These tests verify invariant properties of the backoff policies, the retry
policy and the replay buffer over a wide range of generated inputs.  They
complement the example-based unit tests.
"""

from __future__ import annotations

import httpx
from hypothesis import given, settings
from hypothesis import strategies as st

from httpretry.backoff import (
    constant_backoff,
    exponential_backoff,
    linear_backoff,
    rand_jitter,
)
from httpretry.body import BodyReplayer, ReplayBuffer
from httpretry.policy import RETRYABLE_STATUSES, default_retry_policy

# ---------------------------------------------------------------------------
# Reusable strategies
# ---------------------------------------------------------------------------

_seconds_st = st.floats(min_value=0.0, max_value=3600.0, allow_nan=False)
_positive_seconds_st = st.floats(min_value=0.001, max_value=3600.0, allow_nan=False)
_attempt_st = st.integers(min_value=1, max_value=200)
_status_st = st.integers(min_value=100, max_value=599)
_chunks_st = st.lists(st.binary(max_size=2048), max_size=20)


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------


class TestBackoffProperties:
    @given(wait=_seconds_st, a=_attempt_st, b=_attempt_st)
    def test_constant_is_same_for_every_attempt(self, wait, a, b):
        policy = constant_backoff(wait)
        assert policy(a) == policy(b) == wait

    @given(base=_positive_seconds_st, attempt=st.integers(min_value=1, max_value=10_000))
    def test_linear_is_monotonic(self, base, attempt):
        policy = linear_backoff(base)
        assert policy(attempt) <= policy(attempt + 1)

    @given(base=_positive_seconds_st, attempt=st.integers(min_value=1, max_value=30))
    def test_exponential_doubles(self, base, attempt):
        policy = exponential_backoff(base)
        assert policy(attempt + 1) == 2 * policy(attempt)

    @given(
        base=_positive_seconds_st,
        extra=_seconds_st,
        jitter=_seconds_st,
        attempt=st.integers(min_value=1, max_value=10_000),
    )
    def test_cap_is_never_exceeded(self, base, extra, jitter, attempt):
        max_wait = base + extra
        for policy in (
            linear_backoff(base, max_wait=max_wait, max_jitter=jitter),
            exponential_backoff(base, max_wait=max_wait, max_jitter=jitter),
        ):
            assert 0.0 <= policy(attempt) <= max_wait

    @given(base=_positive_seconds_st, jitter=_positive_seconds_st, attempt=_attempt_st)
    def test_jitter_stays_within_bounds(self, base, jitter, attempt):
        wait = constant_backoff(base, max_jitter=jitter)(attempt)
        assert base <= wait <= base + jitter

    @given(max_jitter=st.floats(min_value=-10.0, max_value=10.0, allow_nan=False))
    def test_rand_jitter_range(self, max_jitter):
        value = rand_jitter(max_jitter)
        if max_jitter <= 0:
            assert value == 0.0
        else:
            assert 0.0 <= value < max_jitter

    @given(attempt=st.integers(max_value=0))
    def test_non_positive_attempt_treated_as_first(self, attempt):
        assert exponential_backoff(2.0)(attempt) == 2.0
        assert linear_backoff(2.0)(attempt) == 2.0


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


class TestRetryPolicyProperties:
    @given(status=_status_st)
    def test_status_decision_matches_table(self, status):
        assert default_retry_policy(status, None) is (status in RETRYABLE_STATUSES)

    @given(status=_status_st)
    def test_transport_errors_always_retried(self, status):
        assert default_retry_policy(status, httpx.ConnectError("refused")) is True

    @given(status=_status_st)
    def test_policy_is_pure(self, status):
        error = httpx.ReadTimeout("slow")
        first = default_retry_policy(status, error), default_retry_policy(status, None)
        second = default_retry_policy(status, error), default_retry_policy(status, None)
        assert first == second


# ---------------------------------------------------------------------------
# Body replay
# ---------------------------------------------------------------------------


class TestReplayProperties:
    @given(
        pattern=st.binary(min_size=1, max_size=64),
        size=st.integers(min_value=0, max_value=300_000),
        rewinds=st.integers(min_value=1, max_value=5),
    )
    @settings(max_examples=30)
    def test_buffer_reproduces_bytes_after_rewind(self, pattern, size, rewinds):
        data = (pattern * (size // len(pattern) + 1))[:size]
        buf = ReplayBuffer(data)
        for _ in range(rewinds):
            buf.rewind()
            assert b"".join(buf) == data

    @given(chunks=_chunks_st, attempts=st.integers(min_value=1, max_value=6))
    def test_streamed_body_identical_on_every_attempt(self, chunks, attempts):
        request = httpx.Request("PUT", "https://example.com/blob", content=iter(chunks))
        replayer = BodyReplayer(request)
        expected = b"".join(chunks)
        for _ in range(attempts):
            replayer.prepare()
            assert b"".join(request.stream) == expected
