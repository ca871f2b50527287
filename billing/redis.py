"""
Redis client configuration using redis-py (asyncio).
"""

from typing import Optional
import logging

from redis import asyncio as aioredis
from redis.asyncio.client import Redis
from redis.asyncio.lock import Lock

from billing.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client wrapper."""

    _client: Optional[Redis] = None

    @classmethod
    def get_client(cls) -> Redis:
        """Get or create Redis client."""
        if cls._client is None:
            cls._client = aioredis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5.0,
                health_check_interval=30
            )
            logger.info("Redis client initialized")

        return cls._client

    @classmethod
    async def close(cls):
        """Close Redis client."""
        if cls._client:
            await cls._client.aclose()
            cls._client = None
            logger.info("Redis client closed")


async def get_redis() -> Redis:
    """Dependency for getting redis connection."""
    return RedisClient.get_client()


def job_lock(name: str, timeout: int = 900) -> Lock:
    """
    Non-blocking lock guarding a scheduled job against overlapping runs.

    The lock expires after `timeout` seconds so a crashed worker
    cannot hold it forever. The default matches the Celery task time limit.
    """
    client = RedisClient.get_client()
    return client.lock(f"billing:job-lock:{name}", timeout=timeout, blocking=False)
