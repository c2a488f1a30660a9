"""Tests for the provider rate limiter."""

import asyncio
import time

import pytest

from gsplay_catalog.enrichment.rate_limiter import RateLimiter, RateLimiterConfig


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_defaults_match_igdb_budget(self) -> None:
        """Test that the default budget is four requests per second."""
        config = RateLimiterConfig()

        assert config.requests_per_minute == 240
        assert config.burst_size == 4

    @pytest.mark.asyncio
    async def test_initial_burst(self) -> None:
        """Test that burst_size requests go through immediately."""
        limiter = RateLimiter(RateLimiterConfig(requests_per_minute=60, burst_size=4))

        start = time.perf_counter()
        for _ in range(4):
            await limiter.acquire()
        elapsed = time.perf_counter() - start

        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_throttles_after_burst(self) -> None:
        """Test that the next request waits for a refill."""
        limiter = RateLimiter(RateLimiterConfig(requests_per_minute=120, burst_size=1))

        await limiter.acquire()
        start = time.perf_counter()
        await limiter.acquire()
        elapsed = time.perf_counter() - start

        # 2 tokens per second
        assert elapsed >= 0.3

    @pytest.mark.asyncio
    async def test_context_manager_takes_token(self) -> None:
        limiter = RateLimiter(RateLimiterConfig(requests_per_minute=60, burst_size=1))

        async with limiter:
            assert limiter.available_tokens < 1

    @pytest.mark.asyncio
    async def test_refill_capped_at_burst(self) -> None:
        """Test that idle time never accumulates more than burst_size tokens."""
        limiter = RateLimiter(RateLimiterConfig(requests_per_minute=6000, burst_size=2))

        await limiter.acquire()
        await asyncio.sleep(0.1)

        assert limiter.available_tokens == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_budget(self) -> None:
        """Test that concurrent acquires beyond the burst are spread out."""
        limiter = RateLimiter(RateLimiterConfig(requests_per_minute=240, burst_size=2))

        start = time.perf_counter()
        await asyncio.gather(*(limiter.acquire() for _ in range(4)))
        elapsed = time.perf_counter() - start

        # Two from the burst, two more at 4 per second
        assert elapsed >= 0.4
