"""Redis implementation of the overlay backend.

文档以 JSON 存储；每次写入/删除后在对应频道发布完整快照，
订阅者因此总是收到整份文档而不是增量。
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from loguru import logger

from src.core.infrastructure.redis import RedisClient, RedisKeys

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub


class RedisOverlayChannel:
    """Change stream backed by a dedicated Redis Pub/Sub connection."""

    def __init__(self, path: str, pubsub: PubSub):
        self.path = path
        self._pubsub = pubsub
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[Any]:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                yield json.loads(message["data"])
            except (TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed overlay snapshot on {self.path}: {e}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(RedisKeys.channel(self.path))
        finally:
            await self._pubsub.aclose()


class RedisOverlayBackend:
    """OverlayBackend backed by Redis documents, sets and Pub/Sub."""

    def __init__(self, redis_client: RedisClient):
        self.redis = redis_client

    async def get(self, path: str) -> Any | None:
        return await self.redis.get_json(RedisKeys.document(path))

    async def set(self, path: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        await self.redis.set(RedisKeys.document(path), payload)
        await self.redis.publish(RedisKeys.channel(path), payload)

    async def delete(self, path: str) -> None:
        await self.redis.delete(RedisKeys.document(path))
        await self.redis.publish(RedisKeys.channel(path), "null")

    async def add_member(self, index_path: str, member: str) -> None:
        await self.redis.sadd(RedisKeys.index(index_path), member)

    async def members(self, index_path: str) -> set[str]:
        return await self.redis.smembers(RedisKeys.index(index_path))

    async def open_channel(self, path: str) -> RedisOverlayChannel:
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(RedisKeys.channel(path))
        except BaseException:
            await pubsub.aclose()
            raise
        return RedisOverlayChannel(path, pubsub)
