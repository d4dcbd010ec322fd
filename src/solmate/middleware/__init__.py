"""Middleware registration for the Solmate API."""

from fastapi import FastAPI

from solmate.config import Settings
from solmate.middleware.cors import setup_cors
from solmate.middleware.error_handler import setup_error_handlers
from solmate.middleware.logging import setup_logging
from solmate.middleware.rate_limit import RateLimitMiddleware
from solmate.middleware.request_id import RequestIdMiddleware

# Hit by load balancers and the mobile app connectivity check
HEALTH_PATHS = frozenset({"/health", "/ready"})


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost).
    CORS must be outermost so it wraps error responses from inner middleware (e.g. 429).
    The rate limiter is left out entirely when ``rate_limit_requests`` is 0.
    """
    setup_logging(settings, component="api")
    setup_error_handlers(app)
    if settings.rate_limit_requests > 0:
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
            exempt_paths=HEALTH_PATHS,
        )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
