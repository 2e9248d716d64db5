"""Token-bucket rate limiter with adaptive backoff for the Spotify Web API.

ALGORITHM: Token Bucket
- The bucket holds up to max_tokens
- Tokens refill at refill_rate per second
- Every request consumes one token; an empty bucket means waiting

ADAPTIVE BACKOFF on 429:
- First 429 waits initial_backoff_seconds, every further 429 doubles it
- A Retry-After header always wins (capped at max_backoff_seconds)
- The first successful request resets the backoff

USAGE:
    limiter = RateLimiter.for_spotify(settings.spotify)

    async with limiter:
        response = await client.get(url)

    # On 429:
    await limiter.handle_rate_limit_response(retry_after)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Self

from librarysync.config.settings import SpotifySettings

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter.

    Hey future me - Spotify allows roughly 180 requests/minute. The defaults stay well below
    that. max_backoff_seconds has to be HIGH: Spotify sends Retry-After values of several
    minutes under heavy load, and capping lower just buys another 429.
    """

    max_tokens: int = 10  # Bucket size
    refill_rate: float = 2.0  # Tokens per second
    max_backoff_seconds: float = 600.0
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0


@dataclass
class RateLimiter:
    """Token Bucket Rate Limiter with adaptive backoff.

    Attributes:
        config: Rate limiter configuration
        name: Label used in log lines
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"

    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default_factory=time.monotonic, init=False)
    _current_backoff: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.config.max_tokens)
        self._current_backoff = self.config.initial_backoff_seconds

    @classmethod
    def for_spotify(cls, settings: SpotifySettings) -> Self:
        """Build a limiter from the Spotify settings (burst size and sustained rate)."""
        return cls(
            config=RateLimiterConfig(
                max_tokens=settings.burst_size,
                refill_rate=settings.requests_per_second,
            ),
            name="spotify",
        )

    def _refill_tokens(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self.config.max_tokens, self._tokens + elapsed * self.config.refill_rate)
        self._last_refill = now

    async def acquire(self) -> None:
        """Acquire one token, waiting if necessary."""
        async with self._lock:
            self._refill_tokens()

            while self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.config.refill_rate
                logger.debug(
                    "rate_limiter.waiting",
                    extra={"limiter": self.name, "wait_seconds": round(wait_time, 2)},
                )
                # Sleeping while holding the lock is fine: every other caller would wait anyway
                await asyncio.sleep(wait_time)
                self._refill_tokens()

            self._tokens -= 1.0

    async def handle_rate_limit_response(self, retry_after: int | None = None) -> float:
        """Wait after a 429 and raise the backoff level for the next one.

        Args:
            retry_after: Retry-After header value (seconds), if the response had one

        Returns:
            The number of seconds actually waited
        """
        async with self._lock:
            wait_time = float(retry_after) if retry_after is not None else self._current_backoff
            wait_time = min(wait_time, self.config.max_backoff_seconds)

            logger.warning(
                "rate_limiter.rate_limited",
                extra={
                    "limiter": self.name,
                    "wait_seconds": wait_time,
                    "backoff_level": self._current_backoff,
                },
            )

            self._current_backoff = min(
                self._current_backoff * self.config.backoff_multiplier,
                self.config.max_backoff_seconds,
            )
            # Empty the bucket so concurrent callers back off too
            self._tokens = 0.0
            self._last_refill = time.monotonic()

        await asyncio.sleep(wait_time)
        return wait_time

    def reset_backoff(self) -> None:
        """Reset backoff after a successful request."""
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> Self:
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        if exc_type is None:
            self.reset_backoff()

    @property
    def available_tokens(self) -> float:
        """Current available tokens (for debugging)."""
        self._refill_tokens()
        return self._tokens

    @property
    def current_backoff(self) -> float:
        return self._current_backoff
