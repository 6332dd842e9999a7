"""Rate limiting middleware — Redis-based fixed window per minute.

Learn: Each client address gets a counter key like
"clawpedia:rl:{addr}:{bucket}:{minute}". The challenge/verify endpoints
get a much stricter budget: every verify call can trigger an outbound
fetch, and challenge creation writes a row.

Counters are keyed by the same day-salted address hash used for
anonymous votes, so raw IPs never land in Redis.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from clawpedia.auth.attribution import client_address, hash_address
from clawpedia.cache import get_redis
from clawpedia.config import settings

logger = structlog.get_logger()

AUTH_PATHS = ("/api/v1/auth/challenge", "/api/v1/auth/verify")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per client per minute."""

    def __init__(self, app, default_rpm: int = 120, auth_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        is_auth = request.url.path.startswith(AUTH_PATHS)
        rpm = self.auth_rpm if is_auth else self.default_rpm
        bucket = "auth" if is_auth else "api"
        window = int(time.time() // 60)
        client = hash_address(client_address(request), settings.auth_token_secret)
        key = f"clawpedia:rl:{client}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except RedisError as e:
            logger.warning("ratelimit.redis_error", error=str(e))
            return await call_next(request)

        if count > rpm:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limited",
                    "hint": "Rate limit exceeded. Try again in a minute.",
                },
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
