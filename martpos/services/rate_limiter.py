"""
Redis fixed-window rate limiter for the login endpoint.
Degrades open: when Redis is unreachable or limiting is disabled, every
request is allowed.
"""

import logging
from typing import Optional, Tuple

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask

from martpos.exceptions import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Counts hits per identifier in fixed windows.

    Keys pattern: {prefix}:ratelimit:{scope}:{identifier}
    """

    def __init__(self, app: Optional[Flask] = None, client: Optional[redis.Redis] = None,
                 limit: int = 10, window: int = 900, prefix: str = 'martpos'):
        self.client: Optional[redis.Redis] = client
        self._enabled: bool = client is not None
        self._prefix: str = prefix
        self.limit = limit
        self.window = window

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('RATE_LIMIT_ENABLED', True)
        self._prefix = app.config.get('RATE_LIMIT_KEY_PREFIX', 'martpos')
        self.limit = app.config.get('LOGIN_RATE_LIMIT', self.limit)
        self.window = app.config.get('LOGIN_RATE_WINDOW', self.window)
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[RATELIMIT] Rate limiting is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[RATELIMIT] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[RATELIMIT] Redis connection failed: {e}. Rate limiting DISABLED.")
            self._enabled = False
            self.client = None

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    def _build_key(self, scope: str, identifier: str) -> str:
        return f"{self._prefix}:ratelimit:{scope}:{identifier}"

    def hit(self, scope: str, identifier: str) -> Tuple[bool, Optional[int]]:
        """
        Count one request.

        Returns:
            (allowed, retry_after_seconds). retry_after is None when allowed.
        """
        if not self.enabled:
            return True, None
        key = self._build_key(scope, identifier or 'unknown')
        try:
            count = self.client.incr(key)
            if count == 1:
                self.client.expire(key, self.window)
            if count <= self.limit:
                return True, None
            ttl = self.client.ttl(key)
            return False, ttl if ttl and ttl > 0 else self.window
        except RedisError as e:
            logger.warning(f"[RATELIMIT] Hit error: {e}")
            return True, None

    def check(self, scope: str, identifier: str) -> None:
        """
        Raises:
            RateLimitError: RATE_LIMIT_EXCEEDED once the window's budget is spent
        """
        allowed, retry_after = self.hit(scope, identifier)
        if not allowed:
            logger.warning(f"[RATELIMIT] {scope} limit exceeded for {identifier}")
            raise RateLimitError(
                'Too many authentication attempts, please try again later',
                retry_after=retry_after,
            )

    def reset(self, scope: str, identifier: str) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.delete(self._build_key(scope, identifier))
            return True
        except RedisError as e:
            logger.warning(f"[RATELIMIT] Reset error: {e}")
            return False


def init_rate_limiter(app: Flask) -> RateLimiter:
    """Create the app's login rate limiter."""
    limiter = RateLimiter(app)
    app.extensions['rate_limiter'] = limiter
    return limiter
