"""Upload quota shared across API workers via Redis."""

import math
from datetime import datetime

import redis

from backend.app.db.context import RequestContext
from backend.app.db.repositories import RetryAfter


def make_rate_limit_key(ctx: RequestContext, bucket: str) -> str:
    """Quota key for one user and bucket, e.g. ``alice:upload``."""
    return f"{ctx.user_id}:{bucket}"


class RedisRateLimiter:
    """Fixed-window quota with one Redis counter per window.

    The counter is created with the window's expiry and incremented in the
    same pipeline round trip, so a crash between the two calls can never
    leave a counter without a TTL.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        max_requests: int,
        window_seconds: int = 60,
        prefix: str = "quiz:ratelimit",
    ) -> None:
        self._redis = redis_client
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._prefix = prefix

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Count one request against the current window.

        Returns:
            RetryAfter until the window rolls over, or None if allowed
        """
        window_start = int(now.timestamp()) // self._window_seconds * self._window_seconds
        counter_key = f"{self._prefix}:{key}:{window_start}"

        pipe = self._redis.pipeline()
        pipe.set(counter_key, 0, ex=self._window_seconds, nx=True)
        pipe.incr(counter_key)
        _, count = pipe.execute()

        if count <= self._max_requests:
            return None

        remaining = window_start + self._window_seconds - now.timestamp()
        return RetryAfter(seconds=max(1, math.ceil(remaining)))
