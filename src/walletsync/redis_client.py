"""Redis connection pool."""

import redis.asyncio as redis


def create_redis(url: str) -> redis.Redis:
    """Create a Redis client backed by a connection pool."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis(client: redis.Redis) -> None:
    """Close the Redis connection pool."""
    await client.aclose()
