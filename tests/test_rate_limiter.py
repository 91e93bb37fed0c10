"""Tests for the cycle rate limiter."""

import pytest

from webtracker.rate_limiter import RateLimiter


class ManualTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def time_source():
    return ManualTime()


class TestRateLimiter:
    def test_first_call_does_not_wait(self, time_source):
        limiter = RateLimiter(2.0, sleep=time_source.sleep, clock=time_source.clock)
        assert limiter.acquire() == 0
        assert time_source.sleeps == []

    def test_waits_out_the_interval(self, time_source):
        """Back-to-back calls are spaced by the minimum interval."""
        limiter = RateLimiter(2.0, sleep=time_source.sleep, clock=time_source.clock)
        limiter.acquire()
        time_source.now += 0.5
        assert limiter.acquire() == pytest.approx(1.5)
        assert time_source.sleeps == [pytest.approx(1.5)]

    def test_no_wait_when_interval_passed(self, time_source):
        limiter = RateLimiter(2.0, sleep=time_source.sleep, clock=time_source.clock)
        limiter.acquire()
        time_source.now += 5
        assert limiter.acquire() == 0

    def test_reset_forgets_previous_call(self, time_source):
        limiter = RateLimiter(2.0, sleep=time_source.sleep, clock=time_source.clock)
        limiter.acquire()
        limiter.reset()
        assert limiter.acquire() == 0

    def test_zero_interval(self, time_source):
        limiter = RateLimiter(0, sleep=time_source.sleep, clock=time_source.clock)
        limiter.acquire()
        limiter.acquire()
        assert time_source.sleeps == []

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            RateLimiter(-1)
