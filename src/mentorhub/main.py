"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mentorhub.challenges.router import router as challenges_router
from mentorhub.config import get_settings
from mentorhub.database import close_db, init_db
from mentorhub.forum.router import router as forum_router
from mentorhub.health.router import router as health_router
from mentorhub.matches.router import router as matches_router
from mentorhub.middleware import setup_middleware
from mentorhub.points.router import router as points_router
from mentorhub.redis_client import close_redis, init_redis


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MentorHub API",
        description="Mentorship matching, challenge points and community forum",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(matches_router)
    app.include_router(points_router)
    app.include_router(challenges_router)
    app.include_router(forum_router)

    return app


app = create_app()
