"""In-memory per-user rate limiting for the chat endpoint."""

import time
from collections import defaultdict
from collections.abc import Callable
from functools import lru_cache
from typing import Any

from fastapi import HTTPException

from assistant_engine.core.config import get_settings
from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Token bucket rate limiter.

    Tracks requests per key (e.g., user id) and enforces limits.
    State is per process.
    """

    def __init__(
        self,
        requests_per_minute: int = 10,
        burst_size: int = 15,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Sustained rate limit
            burst_size: Maximum burst size
            clock: Seconds source (monotonic by default)
        """
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.refill_rate = requests_per_minute / 60.0  # tokens per second
        self._clock = clock

        # key -> (tokens, last_refill_time)
        self._buckets: dict[str, tuple[float, float]] = {}
        self._request_counts: dict[str, int] = defaultdict(int)

    def _refill_bucket(self, key: str) -> tuple[float, float]:
        now = self._clock()
        current_tokens, last_refill = self._buckets.get(key, (float(self.burst_size), now))
        new_tokens = min(self.burst_size, current_tokens + (now - last_refill) * self.refill_rate)
        self._buckets[key] = (new_tokens, now)
        return new_tokens, now

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Consume ``cost`` tokens for ``key``.

        Returns:
            True if allowed

        Raises:
            HTTPException: 429 with Retry-After if rate limited
        """
        current_tokens, now = self._refill_bucket(key)

        if current_tokens >= cost:
            self._buckets[key] = (current_tokens - cost, now)
            self._request_counts[key] += 1
            return True

        retry_after = int((cost - current_tokens) / self.refill_rate) + 1
        logger.warning(
            f"Rate limit exceeded for key: {key}, "
            f"tokens: {current_tokens:.2f}/{self.burst_size}, "
            f"retry after: {retry_after}s"
        )
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )

    def get_stats(self, key: str) -> dict[str, Any]:
        current_tokens, _ = self._refill_bucket(key)
        return {
            "tokens_remaining": int(current_tokens),
            "burst_size": self.burst_size,
            "requests_per_minute": self.requests_per_minute,
            "total_requests": self._request_counts.get(key, 0),
        }

    def reset(self, key: str) -> None:
        self._buckets.pop(key, None)
        self._request_counts.pop(key, None)
        logger.info(f"Rate limit reset for key: {key}")


@lru_cache
def get_chat_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        requests_per_minute=settings.CHAT_RATE_LIMIT_PER_MINUTE,
        burst_size=settings.CHAT_RATE_LIMIT_BURST,
    )


def check_chat_rate_limit(user_id: str) -> None:
    """
    Check rate limit for the chat endpoint.

    Raises:
        HTTPException: 429 if rate limited
    """
    get_chat_rate_limiter().check_limit(f"chat:{user_id}")


def get_chat_rate_limit_stats(user_id: str) -> dict[str, Any]:
    return get_chat_rate_limiter().get_stats(f"chat:{user_id}")
