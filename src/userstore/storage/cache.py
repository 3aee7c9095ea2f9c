"""
Secondary cache handle.

Repositories accept a `Cache` but do not route reads or writes through it yet;
today it is used for health checks and for wiping the cache between test runs.
"""
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from userstore.exceptions import InternalError

logger = logging.getLogger(__name__)


class Cache:
    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_settings(cls, settings) -> "Cache":
        # from_url does not connect; the first command does
        return cls(Redis.from_url(settings.REDIS_URL, decode_responses=True))

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as exc:
            logger.warning("cache.ping_failed", extra={"error_type": type(exc).__name__})
            return False

    async def reset(self) -> None:
        """Remove every key in the selected database."""
        try:
            await self.client.flushdb()
        except RedisError as exc:
            logger.exception("cache.reset_failed")
            raise InternalError("Failed to reset cache", cause=exc) from exc
        logger.info("cache.reset")

    async def close(self) -> None:
        await self.client.aclose()
