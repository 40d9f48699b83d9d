"""Redis连接管理"""
from __future__ import annotations

import asyncio
from typing import Optional

from redis import asyncio as aioredis

from core.config import RedisSettings
from core.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: Optional[aioredis.Redis] = None
_lock = asyncio.Lock()


def create_redis_connection(config: RedisSettings) -> aioredis.Redis:
    """根据配置创建独立的Redis连接（非单例）"""
    if not config.url:
        raise RuntimeError("redis.url 未配置，无法初始化Redis连接")
    return aioredis.from_url(
        config.url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=config.max_connections,
    )


async def init_redis(config: RedisSettings) -> aioredis.Redis:
    """初始化全局Redis连接并检测连通性"""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    async with _lock:
        if _redis_client is not None:
            return _redis_client
        client = create_redis_connection(config)
        await client.ping()
        _redis_client = client
        logger.info("redis_connected", url=config.url)
        return _redis_client


async def shutdown_redis() -> None:
    """关闭Redis连接"""
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("redis_closed")
        finally:
            _redis_client = None
