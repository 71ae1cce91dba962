"""Middleware stack for the MentorHub API."""

from fastapi import FastAPI

from mentorhub.config import Settings
from mentorhub.middleware.cors import setup_cors
from mentorhub.middleware.error_handler import setup_error_handlers
from mentorhub.middleware.logging import setup_logging
from mentorhub.middleware.rate_limit import RateLimitMiddleware
from mentorhub.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, error handlers and the middleware chain.

    Starlette runs the last added middleware outermost, so the order on the
    wire is CORS, request context, rate limit, then the routers. Request
    context sits outside the rate limiter so 429 responses carry a request id,
    and CORS wraps everything so browsers can read those 429s.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
