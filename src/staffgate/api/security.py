"""
Front-door hardening: security headers, per-client rate limiting and CORS.

Every response gets a fixed set of browser security headers. Requests are
counted per client address over a moving window; a client over the limit
gets a 429 until the window moves on. Cross-origin browser access is
limited to the configured origins.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable

import aiohttp_cors
from aiohttp import web
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from loguru import logger

from ..config import Settings
from ..errors import RateLimitExceeded
from .middleware import Handler, error_response


SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'self'; object-src 'none'",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


async def apply_security_headers(request: web.Request, response: web.StreamResponse) -> None:
    """``on_response_prepare`` hook; covers error and not-found responses too."""
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)


@dataclass(frozen=True)
class RateLimit:
    max_requests: int
    window_seconds: int


class RateLimiter:
    """Moving-window request counter keyed by client address."""

    def __init__(self, limit: RateLimit):
        self.limit = limit
        self._item = RateLimitItemPerSecond(limit.max_requests, limit.window_seconds)
        self._limiter = MovingWindowRateLimiter(MemoryStorage())

    def hit(self, key: str) -> bool:
        """Count one request; False if the key is already at its limit."""
        return self._limiter.hit(self._item, key)

    def headers(self, key: str) -> dict:
        stats = self._limiter.get_window_stats(self._item, key)
        return {
            "RateLimit-Limit": str(self.limit.max_requests),
            "RateLimit-Remaining": str(max(stats.remaining, 0)),
            "RateLimit-Reset": str(max(math.ceil(stats.reset_time - time.time()), 0)),
        }


def rate_limit_middleware(limiter: RateLimiter) -> Callable:
    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        key = request.remote or "unknown"

        if not limiter.hit(key):
            logger.warning(f"Rate limit exceeded: ip={key} {request.method} {request.path}")
            headers = limiter.headers(key)
            response = error_response(RateLimitExceeded())
            response.headers.update(headers)
            response.headers["Retry-After"] = headers["RateLimit-Reset"]
            return response

        response = await handler(request)
        response.headers.update(limiter.headers(key))
        return response
    return middleware


def setup_cors(app: web.Application, settings: Settings) -> None:
    """Allow the configured origins on every registered route."""
    cors = aiohttp_cors.setup(app, defaults={
        origin: aiohttp_cors.ResourceOptions(
            allow_credentials=settings.cors_credentials,
            expose_headers="*",
            allow_headers="*",
        )
        for origin in settings.cors_origins
    })
    for route in list(app.router.routes()):
        cors.add(route)
