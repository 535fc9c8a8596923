import json
from time import time
from typing import Dict, Optional, Tuple
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
import logging

from config.settings import settings

logger = logging.getLogger(__name__)

# Paths called by third parties that must never be throttled
EXEMPT_PATHS = ("/api/billing/webhook",)

_redis_client = None
_redis_available = False

try:
    import redis
    redis_url = settings.redis_url
    if redis_url:
        try:
            _redis_client = redis.from_url(redis_url, decode_responses=True)
            _redis_client.ping()
            _redis_available = True
            logger.info("✅ Redis connected successfully for rate limiting")
        except Exception as e:
            logger.warning(f"⚠️ Redis connection failed: {e}. Falling back to in-memory rate limiting.")
            _redis_client = None
            _redis_available = False
    else:
        logger.info("ℹ️ REDIS_URL not set. Using in-memory rate limiting.")
except ImportError:
    logger.warning("⚠️ redis package not installed. Using in-memory rate limiting.")


def _refill(tokens: float, last_refill: float, now: float, capacity: int, window: float) -> float:
    elapsed = max(0.0, now - last_refill)
    return min(capacity, tokens + (elapsed / window) * capacity)


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Per-IP token bucket, stored in Redis when available and in memory otherwise.
    Capacity comes from RATE_LIMIT_PER_MINUTE.
    """

    def __init__(self, app, requests_per_minute: Optional[int] = None):
        super().__init__(app)
        self.capacity = requests_per_minute or settings.rate_limit_per_minute
        self.refill_time_window = 60.0
        # In-memory storage (ip -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._use_redis = _redis_available and _redis_client is not None

    def _get_client_ip(self, request: Request) -> str:
        xff = request.headers.get("x-forwarded-for")
        if xff:
            return xff.split(",")[0].strip()
        client = request.client
        return client.host if client else "unknown"

    def _check_rate_limit_redis(self, ip: str) -> Optional[bool]:
        """
        Returns True if allowed, False if limited, None if Redis failed and
        the in-memory bucket should decide.
        """
        try:
            key = f"rate_limit:{ip}"
            now = time()
            bucket_data = _redis_client.get(key)
            if bucket_data:
                data = json.loads(bucket_data)
                tokens = float(data.get("tokens", 0))
                last_refill = float(data.get("last_refill", now))
            else:
                tokens = float(self.capacity)
                last_refill = now

            tokens = _refill(tokens, last_refill, now, self.capacity, self.refill_time_window)
            if tokens < 1.0:
                return False

            _redis_client.setex(
                key,
                int(self.refill_time_window) + 10,
                json.dumps({"tokens": tokens - 1.0, "last_refill": now}),
            )
            return True
        except Exception as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    def _check_rate_limit_memory(self, ip: str) -> bool:
        now = time()
        tokens, last_refill = self._buckets.get(ip, (self.capacity, now))
        tokens = _refill(tokens, last_refill, now, self.capacity, self.refill_time_window)
        if tokens < 1.0:
            return False
        self._buckets[ip] = (tokens - 1.0, now)
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        ip = self._get_client_ip(request)
        allowed = None
        if self._use_redis:
            allowed = self._check_rate_limit_redis(ip)
        if allowed is None:
            allowed = self._check_rate_limit_memory(ip)

        if not allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "ok": False,
                    "data": {},
                    "error": "rate_limited",
                    "message": "Rate limit exceeded. Try again shortly."
                },
            )

        return await call_next(request)
