"""CORS for the MentorHub web client."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mentorhub.config import Settings

# Headers the web client reads: request tracing and rate limit backoff
EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the configured web origins with bearer auth; cache preflights for ``cors_max_age``."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=EXPOSED_HEADERS,
        max_age=settings.cors_max_age,
    )
