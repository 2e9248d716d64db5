"""Tests for the token-bucket RateLimiter."""

import pytest

from librarysync.config import SpotifySettings
from librarysync.infrastructure.rate_limiter import RateLimiter, RateLimiterConfig


class TestRateLimiter:
    async def test_acquire_consumes_tokens(self) -> None:
        limiter = RateLimiter(RateLimiterConfig(max_tokens=3, refill_rate=0.001))

        await limiter.acquire()
        await limiter.acquire()

        assert limiter.available_tokens == pytest.approx(1.0, abs=0.01)

    async def test_rate_limit_response_drains_bucket_and_doubles_backoff(self) -> None:
        limiter = RateLimiter(
            RateLimiterConfig(max_tokens=5, refill_rate=0.001, initial_backoff_seconds=0.0)
        )

        waited = await limiter.handle_rate_limit_response(retry_after=0)

        assert waited == 0.0
        assert limiter.available_tokens < 1.0
        assert limiter.current_backoff == 0.0

    async def test_backoff_grows_until_reset(self) -> None:
        limiter = RateLimiter(
            RateLimiterConfig(initial_backoff_seconds=0.001, backoff_multiplier=2.0)
        )

        await limiter.handle_rate_limit_response()
        await limiter.handle_rate_limit_response()
        assert limiter.current_backoff == pytest.approx(0.004)

        limiter.reset_backoff()
        assert limiter.current_backoff == pytest.approx(0.001)

    async def test_retry_after_is_capped(self) -> None:
        limiter = RateLimiter(RateLimiterConfig(max_backoff_seconds=0.01))

        waited = await limiter.handle_rate_limit_response(retry_after=3600)

        assert waited == 0.01

    def test_for_spotify_uses_settings(self) -> None:
        limiter = RateLimiter.for_spotify(SpotifySettings(requests_per_second=5.0, burst_size=7))

        assert limiter.name == "spotify"
        assert limiter.config.max_tokens == 7
        assert limiter.config.refill_rate == 5.0
