"""
Rate limiting middleware for the Rapid Offer API.

One sliding window per caller. Authenticated callers are keyed by tenant and
user, anonymous callers by client IP.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/metrics", "/docs", "/openapi.json")
# Providers retry on any non-2xx, so webhook deliveries are never throttled
EXEMPT_PREFIXES = ("/api/v1/webhooks/",)


def caller_key(request: Request) -> str:
    """tenant/user from the bearer token (unverified), else API key, else IP."""
    auth = request.headers.get("Authorization") or ""
    if auth.startswith("Bearer "):
        try:
            claims = jwt.get_unverified_claims(auth[7:])
            return f"user:{claims.get('tenant_id') or '-'}:{claims.get('sub') or '-'}"
        except JWTError:
            return f"token:{auth[-16:]}"

    api_key = request.headers.get("X-API-Key")
    if api_key:
        return f"key:{api_key[:8]}"

    return f"ip:{request.client.host}" if request.client else "ip:unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiter returning 429 JSON."""

    def __init__(self, app, requests_per_minute: int = 300, window_seconds: int = 60):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def _exempt(self, path: str) -> bool:
        return path in EXEMPT_PATHS or path.startswith(EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        if self._exempt(request.url.path):
            return await call_next(request)

        key = caller_key(request)
        now = time.monotonic()
        hits = self._hits[key]
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

        if len(hits) >= self.requests_per_minute:
            retry_after = max(1, int(hits[0] + self.window_seconds - now) + 1)
            logger.warning(f"Rate limit exceeded for {key} on {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": str(retry_after)},
            )

        hits.append(now)
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_per_minute - len(hits)))
        return response
