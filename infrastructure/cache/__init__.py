"""缓存层对外暴露的接口"""
from .redis_cache import (
    RedisCache,
    init_redis_cache,
    shutdown_redis_cache,
    get_redis_cache,
)
from .secret_cache import SecretCache

__all__ = [
    "RedisCache",
    "SecretCache",
    "init_redis_cache",
    "shutdown_redis_cache",
    "get_redis_cache",
]
