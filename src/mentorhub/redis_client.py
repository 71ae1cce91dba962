"""Redis connection pool, used for request rate limiting."""

import redis.asyncio as redis
from redis.exceptions import RedisError

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool. Connections are opened lazily."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Get the Redis client. Raises RuntimeError before ``init_redis``."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


async def ping_redis() -> str:
    """Readiness check result: ``ok`` or the error text."""
    try:
        await get_redis().ping()
    except (RuntimeError, RedisError) as exc:
        return f"error: {exc}"
    return "ok"
