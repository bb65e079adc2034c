"""Per-user rate limiting for expensive endpoints."""

import logging
from datetime import datetime
from functools import lru_cache

import redis

from backend.app.config import get_settings
from backend.app.db.context import RequestContext
from backend.app.db.inmemory import InMemoryRateLimiter
from backend.app.db.repositories import RateLimiter
from backend.app.ratelimit import RedisRateLimiter, make_rate_limit_key

logger = logging.getLogger(__name__)


class RateLimitMiddleware:
    """Maps request paths to buckets and enforces rate limits."""

    def __init__(self, limiter: RateLimiter, bucket_map: dict[str, str]) -> None:
        """Initialize rate limit middleware.

        Args:
            limiter: Rate limiter implementation
            bucket_map: Mapping from path patterns to bucket names
        """
        self._limiter = limiter
        self._bucket_map = bucket_map

    def check_rate_limit(
        self, path: str, ctx: RequestContext, now: datetime | None = None
    ) -> tuple[bool, int]:
        """Check if request is allowed under rate limit.

        Args:
            path: Request path
            ctx: Request context
            now: Current time (for testing)

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if now is None:
            now = datetime.now()

        bucket = self._get_bucket(path)
        if bucket is None:
            return (True, 0)

        retry_after = self._limiter.check_quota(make_rate_limit_key(ctx, bucket), now)
        if retry_after is None:
            return (True, 0)

        logger.warning(f"Rate limit hit for user {ctx.user_id} on bucket '{bucket}'")
        return (False, retry_after.seconds)

    def _get_bucket(self, path: str) -> str | None:
        for pattern, bucket in self._bucket_map.items():
            if pattern in path:
                return bucket
        return None


def create_default_bucket_map() -> dict[str, str]:
    """Create default bucket mapping.

    Returns:
        Dictionary mapping path patterns to bucket names
    """
    return {"/quiz/upload": "upload"}


@lru_cache
def get_rate_limit_middleware() -> RateLimitMiddleware:
    """Build the shared middleware (Redis when configured, else in-memory)."""
    settings = get_settings()
    limiter: RateLimiter
    if settings.redis_url:
        client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        limiter = RedisRateLimiter(client, max_requests=settings.uploads_per_min)
    else:
        limiter = InMemoryRateLimiter(max_requests=settings.uploads_per_min)
    return RateLimitMiddleware(limiter, create_default_bucket_map())
