"""
Redis rate limiter (fixed window) with graceful degradation.

Fails open: when limiting is disabled, Redis is unreachable, or a Redis
command errors, requests are allowed and a warning is logged.
"""

import logging
import time
from functools import wraps
from typing import Callable, Dict, NamedTuple, Optional

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask, current_app, g, jsonify, make_response, request

from quotevoice.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class RateLimitResult(NamedTuple):
    allowed: bool
    limit: int
    remaining: int
    reset_in: int


class RateLimiter:
    """
    Named fixed-window limiters sharing one Redis connection.

    Keys pattern: {prefix}:{name}:{identifier}:{window}
    """

    def __init__(self, app: Optional[Flask] = None, client: Optional[redis.Redis] = None,
                 clock: Callable[[], float] = time.time):
        self.client: Optional[redis.Redis] = client
        self._enabled: bool = client is not None
        self._prefix: str = 'quotevoice:ratelimit'
        self._limits: Dict[str, int] = {'general': 100, 'invoice': 20}
        self._clock = clock

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('RATE_LIMIT_ENABLED', True)
        self._prefix = app.config.get('RATE_LIMIT_KEY_PREFIX', self._prefix)
        self._limits = {
            'general': app.config.get('RATE_LIMIT_PER_MINUTE', 100),
            'invoice': app.config.get('RATE_LIMIT_INVOICE_PER_MINUTE', 20),
        }
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[RATE_LIMIT] Rate limiting is DISABLED via config")
            return

        if self.client is not None:
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
            logger.info(f"[RATE_LIMIT] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[RATE_LIMIT] Redis connection failed: {e}. Rate limiting DISABLED (fail open).")
            self._enabled = False
            self.client = None

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    def limit_for(self, name: str) -> int:
        return self._limits.get(name, self._limits['general'])

    def check(self, name: str, identifier: str) -> RateLimitResult:
        """Count one request against the limiter and report whether it is allowed."""
        limit = self.limit_for(name)
        now = self._clock()
        window = int(now // WINDOW_SECONDS)
        reset_in = max(int(WINDOW_SECONDS - (now % WINDOW_SECONDS)), 1)

        if not self.enabled:
            return RateLimitResult(True, limit, limit, reset_in)

        key = f"{self._prefix}:{name}:{identifier}:{window}"
        try:
            count = self.client.incr(key)
            if count == 1:
                self.client.expire(key, WINDOW_SECONDS)
        except RedisError as e:
            logger.warning(f"[RATE_LIMIT] Redis error, allowing request: {e}")
            return RateLimitResult(True, limit, limit, reset_in)

        remaining = max(limit - count, 0)
        allowed = count <= limit
        if not allowed:
            logger.info(f"[RATE_LIMIT] EXCEEDED: {name} for {identifier} ({count}/{limit})")
        return RateLimitResult(allowed, limit, remaining, reset_in)


def init_rate_limiter(app: Flask) -> RateLimiter:
    """Create the application's rate limiter."""
    limiter = RateLimiter(app)
    app.extensions['rate_limiter'] = limiter
    return limiter


def get_rate_limiter() -> Optional[RateLimiter]:
    return current_app.extensions.get('rate_limiter')


def _identifier() -> str:
    """Tenant and user when logged in, client address otherwise."""
    user = g.get('user')
    if user is not None:
        return f"tenant:{g.get('tenant_id')}:user:{user.id}"
    return f"ip:{request.remote_addr or 'unknown'}"


def _apply_headers(response, result: RateLimitResult):
    response.headers['X-RateLimit-Limit'] = str(result.limit)
    response.headers['X-RateLimit-Remaining'] = str(result.remaining)
    response.headers['X-RateLimit-Reset'] = str(result.reset_in)
    return response


def rate_limit(name: str = 'general'):
    """
    Decorator to limit a view with a named limiter.

    Usage:
        @rate_limit('invoice')
        def create_invoice(): ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            limiter = get_rate_limiter()
            if limiter is None:
                return f(*args, **kwargs)

            result = limiter.check(name, _identifier())
            if not result.allowed:
                error = RateLimitExceeded(result.limit, result.reset_in)
                response = _apply_headers(make_response(jsonify(error.to_dict()), error.status_code), result)
                response.headers['Retry-After'] = str(result.reset_in)
                return response

            response = make_response(f(*args, **kwargs))
            return _apply_headers(response, result)

        return decorated_function
    return decorator
