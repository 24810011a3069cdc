"""Redis 客户端封装（命名空间隔离），供跨进程共享的熔断状态使用"""
from __future__ import annotations

import asyncio
from typing import Optional

from redis import asyncio as aioredis

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class RedisCache:
    """基于Redis的命名空间键值/哈希操作"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def hgetall(self, key: str) -> dict[str, str]:
        return await self._client.hgetall(self._format_key(key))

    async def hset(self, key: str, mapping: dict[str, str | int | float], ttl: Optional[int] = None) -> None:
        formatted_key = self._format_key(key)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(formatted_key, mapping=mapping)
            if ttl and ttl > 0:
                pipe.expire(formatted_key, ttl)
            await pipe.execute()

    async def hincrby(self, key: str, field: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        formatted_key = self._format_key(key)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hincrby(formatted_key, field, amount)
            if ttl and ttl > 0:
                pipe.expire(formatted_key, ttl)
            value, *_ = await pipe.execute()
        return int(value)

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """SET NX EX：用于在多个进程间争抢唯一名额"""
        return bool(await self._client.set(self._format_key(key), value, nx=True, ex=max(1, int(ttl))))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*(self._format_key(k) for k in keys)))

    async def ping(self) -> bool:
        return bool(await self._client.ping())


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisCache] = None
_lock = asyncio.Lock()


async def init_redis_cache(namespace: Optional[str] = None) -> RedisCache:
    """初始化Redis实例（进程内复用一个连接池）"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )

        _redis_client = client
        _cache_instance = RedisCache(
            client=client,
            namespace=namespace or settings.redis.namespace,
        )
        logger.info("redis_initialized", namespace=namespace or settings.redis.namespace)
        return _cache_instance


async def get_redis_cache() -> RedisCache:
    """获取全局Redis实例"""
    if _cache_instance is None:
        return await init_redis_cache()
    return _cache_instance


async def shutdown_redis_cache() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _cache_instance = None
