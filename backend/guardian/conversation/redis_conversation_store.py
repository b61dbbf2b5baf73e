"""
Redis-based conversation store implementation.
Suitable for deployments where history should survive a restart.

Version: 1.0.0
"""
import logging
from typing import Dict, Any, List, Optional, Sequence

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .conversation_store import ConversationStore
from .validators import ConversationKey, Turn, validate_exchange

logger = logging.getLogger(__name__)


class RedisConversationStore(ConversationStore):
    """
    Redis implementation of ConversationStore.

    Each conversation is a Redis list of JSON-encoded turns. An append
    is RPUSH followed by LTRIM inside one MULTI/EXEC pipeline, so other
    clients never observe the list above its cap.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        max_messages: int = 20,
        key_prefix: str = "guardian:conversation:",
        ttl: Optional[int] = None,
        max_connections: int = 50,
        socket_timeout: int = 5,
        client: Optional[Redis] = None
    ):
        """
        Initialize Redis conversation store.

        Args:
            redis_url: Redis connection URL
            max_messages: Messages kept per conversation
            key_prefix: Prefix for conversation keys
            ttl: Optional key expiry in seconds, refreshed on every append
            max_connections: Maximum connection pool size
            socket_timeout: Socket timeout in seconds
            client: Pre-built client (used by tests)
        """
        super().__init__(max_messages)
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.ttl = ttl or None

        self.pool = None
        if client is None:
            self.pool = redis.ConnectionPool.from_url(
                redis_url,
                max_connections=max_connections,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
                decode_responses=True
            )
            client = Redis(connection_pool=self.pool)
        self.client: Redis = client

        logger.info(
            f"RedisConversationStore initialized "
            f"(prefix={key_prefix}, max_messages={max_messages}, ttl={self.ttl})"
        )

    def _make_key(self, key: ConversationKey) -> str:
        return f"{self.key_prefix}{key.as_string()}"

    async def append(self, key: ConversationKey, turns: Sequence[Turn]) -> None:
        validate_exchange(turns)
        redis_key = self._make_key(key)

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.rpush(redis_key, *[t.to_json() for t in turns])
            pipe.ltrim(redis_key, -self.max_messages, -1)
            if self.ttl:
                pipe.expire(redis_key, self.ttl)
            await pipe.execute()

        logger.debug(f"Appended exchange to {redis_key}")

    async def get(self, key: ConversationKey) -> List[Turn]:
        redis_key = self._make_key(key)
        try:
            raw = await self.client.lrange(redis_key, 0, -1)
        except RedisError as e:
            logger.error(f"Redis error reading conversation {redis_key}: {e}")
            return []

        turns = []
        for item in raw:
            try:
                turns.append(Turn.from_json(item))
            except ValueError as e:
                logger.warning(f"Skipping corrupt turn in {redis_key}: {e}")
        return turns

    async def clear(self, key: ConversationKey) -> bool:
        redis_key = self._make_key(key)
        deleted = await self.client.delete(redis_key)
        return deleted > 0

    async def get_stats(self) -> Dict[str, Any]:
        count = 0
        async for _ in self.client.scan_iter(match=f"{self.key_prefix}*", count=100):
            count += 1

        return {
            "store_type": "redis",
            "conversations": count,
            "max_messages": self.max_messages,
            "ttl": self.ttl
        }

    async def ping(self) -> bool:
        try:
            return await self.client.ping()
        except RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        await self.client.aclose()
        if self.pool is not None:
            await self.pool.disconnect()
        logger.info("Closed Redis connection")


__all__ = ['RedisConversationStore']
