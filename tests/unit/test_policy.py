"""Tests for gardenwatch.watches.policy: exponential reconnect backoff."""

from __future__ import annotations

import random
from unittest.mock import patch

import pytest
from hypothesis import given
from hypothesis import strategies as st
from kubernetes_asyncio.client.exceptions import ApiException

from gardenwatch.watches.policy import ReconnectDecision, ReconnectionPolicy


class TestDelays:
    def test_three_consecutive_errors_double_the_delay(self) -> None:
        policy = ReconnectionPolicy(base_delay_ms=100, max_delay_ms=10_000)
        err = ConnectionResetError("reset by peer")

        delays = [policy.decide(err, attempt).delay_ms for attempt in (1, 2, 3)]

        assert delays == [100, 200, 400]

    def test_delay_capped_at_maximum(self) -> None:
        policy = ReconnectionPolicy(base_delay_ms=1000, max_delay_ms=60_000)
        assert policy.delay_ms(6) == 32_000
        assert policy.delay_ms(7) == 60_000
        assert policy.delay_ms(50) == 60_000

    def test_huge_attempt_does_not_overflow(self) -> None:
        policy = ReconnectionPolicy(base_delay_ms=1000, max_delay_ms=60_000)
        assert policy.delay_ms(10_000) == 60_000

    def test_attempt_below_one_uses_base_delay(self) -> None:
        policy = ReconnectionPolicy(base_delay_ms=250, max_delay_ms=1000)
        assert policy.delay_ms(0) == 250


class TestDecisions:
    def test_clean_disconnect_never_retries(self) -> None:
        policy = ReconnectionPolicy()
        with patch.object(policy, "delay_ms") as mock_delay:
            decision = policy.decide(None, 1)

        assert decision == ReconnectDecision(retry=False)
        mock_delay.assert_not_called()

    def test_retry_after_error(self) -> None:
        decision = ReconnectionPolicy(base_delay_ms=500).decide(OSError("down"), 1)
        assert decision == ReconnectDecision(retry=True, delay_ms=500)

    def test_max_attempts_exhausted(self) -> None:
        policy = ReconnectionPolicy(base_delay_ms=10, max_attempts=3)
        err = OSError("down")

        assert policy.decide(err, 3).retry is True
        assert policy.decide(err, 4).retry is False

    def test_zero_max_attempts_means_unlimited(self) -> None:
        policy = ReconnectionPolicy(max_attempts=0)
        assert policy.max_attempts is None
        assert policy.decide(OSError("down"), 1_000).retry is True

    @pytest.mark.parametrize("status", [401, 403, 404])
    def test_auth_and_not_found_are_not_retried(self, status: int) -> None:
        policy = ReconnectionPolicy()
        assert policy.decide(ApiException(status=status, reason="nope"), 1).retry is False

    @pytest.mark.parametrize("status", [410, 429, 500, 503])
    def test_server_errors_are_retried(self, status: int) -> None:
        policy = ReconnectionPolicy()
        assert policy.decide(ApiException(status=status, reason="busy"), 1).retry is True


class TestJitter:
    def test_jitter_stays_within_documented_range(self) -> None:
        policy = ReconnectionPolicy(base_delay_ms=1000, max_delay_ms=8000, jitter=0.5, rng=random.Random(7))
        for attempt in range(1, 8):
            nominal = policy.delay_ms(attempt)
            delay = policy.decide(OSError("down"), attempt).delay_ms
            assert nominal * 0.5 - 1 <= delay <= nominal

    def test_jitter_is_reproducible_with_seeded_rng(self) -> None:
        a = ReconnectionPolicy(jitter=0.3, rng=random.Random(42))
        b = ReconnectionPolicy(jitter=0.3, rng=random.Random(42))
        err = OSError("down")
        assert [a.decide(err, n).delay_ms for n in range(1, 6)] == [b.decide(err, n).delay_ms for n in range(1, 6)]


class TestValidation:
    def test_rejects_non_positive_base(self) -> None:
        with pytest.raises(ValueError):
            ReconnectionPolicy(base_delay_ms=0)

    def test_rejects_max_below_base(self) -> None:
        with pytest.raises(ValueError):
            ReconnectionPolicy(base_delay_ms=1000, max_delay_ms=10)

    def test_rejects_jitter_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            ReconnectionPolicy(jitter=1.5)


@given(
    base=st.integers(min_value=1, max_value=10_000),
    cap_factor=st.integers(min_value=1, max_value=1_000),
    attempt=st.integers(min_value=1, max_value=200),
)
def test_delay_is_non_decreasing_and_capped(base: int, cap_factor: int, attempt: int) -> None:
    policy = ReconnectionPolicy(base_delay_ms=base, max_delay_ms=base * cap_factor)
    err = OSError("down")

    current = policy.decide(err, attempt).delay_ms
    following = policy.decide(err, attempt + 1).delay_ms

    assert base <= current <= following <= base * cap_factor
