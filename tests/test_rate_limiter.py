"""Unit tests for quicksight_export.services.rate_limiter.

A fake clock stands in for time.monotonic and time.sleep, so waits are
observed without actually sleeping.
"""

import threading

import pytest

from quicksight_export.services.rate_limiter import TokenBucketRateLimiter, create_rate_limiters


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(max_tokens, refill_rate, clock):
    return TokenBucketRateLimiter(max_tokens, refill_rate, max_jitter_ms=0, clock=clock, sleep=clock.sleep)


class TestTokenBucketRateLimiter:
    def test_burst_up_to_capacity_without_waiting(self):
        clock = FakeClock()
        limiter = _limiter(5, 1, clock)

        for _ in range(5):
            limiter.acquire()

        assert clock.sleeps == []
        assert limiter.total_acquired == 5

    def test_waits_for_next_token_when_empty(self):
        clock = FakeClock()
        limiter = _limiter(1, 2, clock)

        limiter.acquire()
        limiter.acquire()

        assert clock.sleeps == [pytest.approx(0.5)]
        assert limiter.total_waits == 1
        assert limiter.total_acquired == 2

    def test_sustained_rate_never_exceeds_refill(self):
        """20 acquisitions at 5 tokens/s with a burst of 5 need at least 3 seconds."""
        clock = FakeClock()
        limiter = _limiter(5, 5, clock)

        for _ in range(20):
            limiter.acquire()

        assert 3.0 <= clock.now < 3.5

    def test_refill_is_capped_at_capacity(self):
        clock = FakeClock()
        limiter = _limiter(3, 10, clock)
        limiter.acquire()

        clock.now += 100

        assert limiter.tokens == 3

    def test_invalid_parameters_rejected(self):
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(0, 1)
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(1, 0)

    def test_concurrent_acquire_never_overspends(self):
        limiter = TokenBucketRateLimiter(100, 0.001, max_jitter_ms=0)

        threads = [threading.Thread(target=lambda: [limiter.acquire() for _ in range(25)]) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert limiter.total_acquired == 100
        assert limiter.tokens < 1


class TestCreateRateLimiters:
    def test_buckets_built_from_config(self, config):
        config.permissions_max_tokens = 1
        config.permissions_refill_rate = 0.5

        general, permissions = create_rate_limiters(config)

        assert general.name == 'general'
        assert general.max_tokens == config.general_max_tokens
        assert permissions.name == 'permissions'
        assert permissions.max_tokens == 1
        assert permissions.refill_rate == 0.5
