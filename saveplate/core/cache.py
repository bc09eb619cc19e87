"""
Key-value cache used for verification codes, OAuth state and user read caches.

The auth flows only rely on get/set/delete, `set` overwriting any previous
value, TTL expiry being honoured by the backend and `delete` reporting
atomically whether the key existed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from saveplate.core.exceptions import CacheError

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def verification_code_key(email: str) -> str:
    return f"verification_code:{email}"


def oauth_state_key(provider: str, state: str) -> str:
    return f"oauth_state:{provider}:{state}"


def user_cache_key(user_id: Optional[int] = None, email: Optional[str] = None) -> str:
    if user_id:
        return f"user:id:{user_id}"
    if email:
        return f"user:email:{email}"
    return "users:all"


class CacheStore(ABC):
    """Three-operation cache contract."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove key; True only for the caller that actually removed it."""
        pass


class RedisCache(CacheStore):
    """CacheStore backed by Redis. Backend errors surface as CacheError."""

    def __init__(self, client: Redis):
        self._client = client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise CacheError(f"GET {key} failed: {e}") from e

    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        try:
            await self._client.set(key, value, px=ttl_ms)
        except RedisError as e:
            raise CacheError(f"SET {key} failed: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            return await self._client.delete(key) > 0
        except RedisError as e:
            raise CacheError(f"DEL {key} failed: {e}") from e


async def invalidate_user_cache(cache: CacheStore, user_id: int, email: str) -> None:
    """
    Drop cached reads of a user record.

    Failures are logged only; a stale read cache expires on its own.
    """
    for key in (user_cache_key(user_id=user_id), user_cache_key(email=email), user_cache_key()):
        try:
            await cache.delete(key)
        except CacheError as e:
            logger.warning(f"User cache invalidation failed for {key}: {e}")
