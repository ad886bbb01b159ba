import logging

from redis import RedisError
from redis.asyncio import Redis as AsyncRedis

from ..config import settings

logger = logging.getLogger("casegate.redis")


def get_async_redis_client(redis_url: str | None = None) -> AsyncRedis:
    """Create an async Redis client from settings."""
    url = redis_url or settings.redis_url
    if not url:
        raise ValueError("REDIS_URL environment variable must be set")
    return AsyncRedis.from_url(url, decode_responses=True)


async def close_redis_client(client: AsyncRedis | None) -> None:
    if client is None:
        return
    try:
        await client.aclose()
    except RedisError as exc:
        logger.error("Redis operation failed operation=CLOSE error=%s", exc)
