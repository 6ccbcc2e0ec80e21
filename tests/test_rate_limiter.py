"""Tests for the per-user token bucket."""

import pytest
from fastapi import HTTPException

from assistant_engine.core.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_burst_then_429_with_retry_after():
    clock = FakeClock()
    limiter = RateLimiter(requests_per_minute=6, burst_size=2, clock=clock)

    assert limiter.check_limit("chat:u1")
    assert limiter.check_limit("chat:u1")
    with pytest.raises(HTTPException) as exc_info:
        limiter.check_limit("chat:u1")

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers["Retry-After"] == "11"


def test_tokens_refill_over_time():
    clock = FakeClock()
    limiter = RateLimiter(requests_per_minute=60, burst_size=1, clock=clock)

    limiter.check_limit("k")
    with pytest.raises(HTTPException):
        limiter.check_limit("k")

    clock.now += 1.0
    assert limiter.check_limit("k")


def test_keys_are_independent_and_stats():
    limiter = RateLimiter(requests_per_minute=10, burst_size=3, clock=FakeClock())
    limiter.check_limit("a")

    assert limiter.get_stats("a")["tokens_remaining"] == 2
    assert limiter.get_stats("a")["total_requests"] == 1
    assert limiter.get_stats("b")["tokens_remaining"] == 3


def test_reset():
    limiter = RateLimiter(requests_per_minute=10, burst_size=1, clock=FakeClock())
    limiter.check_limit("a")
    limiter.reset("a")
    assert limiter.check_limit("a")
