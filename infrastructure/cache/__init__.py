"""缓存层对外暴露的接口"""
from .dedup_store import InMemoryDedupStore, RedisDedupStore
from .redis_cache import create_redis_connection, init_redis, shutdown_redis

__all__ = [
    "InMemoryDedupStore",
    "RedisDedupStore",
    "create_redis_connection",
    "init_redis",
    "shutdown_redis",
]
