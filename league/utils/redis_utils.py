"""
Redis connection and the cross-process ranking lock.

Redis is optional. With no REDIS_URL, a URL that fails the security check,
or a server that does not answer PING, callers get None and keep to
in-process locking.
"""

import logging
import os
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import LockNotOwnedError, RedisError

from league.config import Config

logger = logging.getLogger(__name__)

LOCAL_PREFIXES = ('redis://localhost', 'redis://127.0.0.1')


def is_acceptable_url(redis_url: str) -> bool:
    """
    Debug mode accepts anything, warning on plain remote hosts. Otherwise the
    URL must use TLS (rediss://) and carry credentials.
    """
    secure = redis_url.startswith('rediss://')
    if Config.DEBUG:
        if not secure and not redis_url.startswith(LOCAL_PREFIXES):
            logger.warning(f"Plain-text Redis connection to a remote host in debug mode: {redis_url}")
        return True

    if not secure:
        logger.error("REDIS_URL must use rediss:// outside debug mode")
        return False
    if '@' not in redis_url:
        logger.error("REDIS_URL must include credentials outside debug mode")
        return False
    return True


async def connect(redis_url: Optional[str] = None) -> Optional[redis.Redis]:
    """Client for redis_url (or REDIS_URL) that answered PING, else None."""
    redis_url = redis_url or os.getenv('REDIS_URL')
    if not redis_url:
        logger.debug("REDIS_URL not set, ranking lock is process-local")
        return None
    if not is_acceptable_url(redis_url):
        return None

    client = redis.from_url(redis_url)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.error(f"Redis at {redis_url} unreachable: {e}")
        await client.aclose()
        return None

    logger.info("Connected to Redis for the ranking lock")
    return client


class RedisLock:
    """
    Non-blocking lock on a Redis key, held for at most ttl_seconds.

    Built on the client's own lock, whose release compares the owner token and
    deletes the key in one Lua script. A lock that expired and was taken by
    another process is therefore never deleted by its former holder.
    """

    def __init__(self, client: redis.Redis, key: str, ttl_seconds: int):
        self.key = key
        self.ttl_seconds = ttl_seconds
        self._lock = client.lock(key, timeout=ttl_seconds, blocking=False)
        self.held = False

    async def acquire(self) -> bool:
        self.held = bool(await self._lock.acquire())
        return self.held

    async def release(self):
        if not self.held:
            return
        self.held = False
        try:
            await self._lock.release()
        except LockNotOwnedError:
            logger.warning(f"Lock {self.key} expired before release, left to its new owner")
