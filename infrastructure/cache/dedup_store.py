"""
回调去重存储实现

存储值为 JSON ``{"token": ..., "result": ...}``：
- 认领（claim）：result 为空，仅持有者 token 可以完成或释放
- 完成：result 为序列化后的 ProcessingResult，按结果保留期过期
- 释放：删除键，后续回调可重新认领
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Dict, Optional, Tuple

from redis import asyncio as aioredis

from application.ports.dedup_store import DedupEntry, DedupStore
from core.logging_config import get_logger

logger = get_logger(__name__)


def _encode(entry: DedupEntry) -> str:
    return json.dumps({"token": entry.token, "result": entry.result})


def _decode(raw: Optional[str]) -> Optional[DedupEntry]:
    if raw is None:
        return None
    data = json.loads(raw)
    return DedupEntry(token=data["token"], result=data.get("result"))


# 仅当当前值仍由 ARGV[1] 持有时才覆盖
_REPLACE_SCRIPT = """
local cur = redis.call('GET', KEYS[1])
if not cur then return 0 end
if cjson.decode(cur)['token'] ~= ARGV[1] then return 0 end
redis.call('SET', KEYS[1], ARGV[2], 'EX', tonumber(ARGV[3]))
return 1
"""

_RELEASE_SCRIPT = """
local cur = redis.call('GET', KEYS[1])
if not cur then return 0 end
if cjson.decode(cur)['token'] ~= ARGV[1] then return 0 end
return redis.call('DEL', KEYS[1])
"""


class RedisDedupStore(DedupStore):
    """基于Redis的去重存储，多实例部署时共享"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")
        self._replace = client.register_script(_REPLACE_SCRIPT)
        self._release = client.register_script(_RELEASE_SCRIPT)

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[DedupEntry]:
        return _decode(await self._client.get(self._format_key(key)))

    async def put_if_absent(self, key: str, entry: DedupEntry, ttl_seconds: int) -> Optional[DedupEntry]:
        formatted = self._format_key(key)
        while True:
            stored = await self._client.set(formatted, _encode(entry), ex=ttl_seconds, nx=True)
            if stored:
                return None
            existing = _decode(await self._client.get(formatted))
            # 键在 SET 与 GET 之间过期时重试认领
            if existing is not None:
                return existing

    async def replace(self, key: str, token: str, entry: DedupEntry, ttl_seconds: int) -> bool:
        result = await self._replace(
            keys=[self._format_key(key)], args=[token, _encode(entry), int(ttl_seconds)]
        )
        return bool(result)

    async def release(self, key: str, token: str) -> bool:
        result = await self._release(keys=[self._format_key(key)], args=[token])
        return bool(result)

    async def aclose(self) -> None:
        await self._client.aclose()


class InMemoryDedupStore(DedupStore):
    """进程内去重存储（单实例开发/测试）

    过期条目在读取时惰性删除；每 purge_every 次写入再整体清理一次，
    避免从未重放的键常驻内存。
    """

    def __init__(self, *, purge_every: int = 256) -> None:
        self._entries: Dict[str, Tuple[DedupEntry, float]] = {}
        self._lock = asyncio.Lock()
        self._purge_every = max(1, purge_every)
        self._writes = 0

    def size(self) -> int:
        """当前保存的条目数（含尚未清理的过期条目）"""
        return len(self._entries)

    def _purge_expired(self) -> None:
        now = time.monotonic()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("dedup_entries_purged", count=len(expired))

    def _store(self, key: str, entry: DedupEntry, ttl_seconds: int) -> None:
        self._writes += 1
        if self._writes % self._purge_every == 0:
            self._purge_expired()
        self._entries[key] = (entry, time.monotonic() + ttl_seconds)

    def _live(self, key: str) -> Optional[DedupEntry]:
        item = self._entries.get(key)
        if item is None:
            return None
        entry, expires_at = item
        if expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[DedupEntry]:
        async with self._lock:
            return self._live(key)

    async def put_if_absent(self, key: str, entry: DedupEntry, ttl_seconds: int) -> Optional[DedupEntry]:
        async with self._lock:
            existing = self._live(key)
            if existing is not None:
                return existing
            self._store(key, entry, ttl_seconds)
            return None

    async def replace(self, key: str, token: str, entry: DedupEntry, ttl_seconds: int) -> bool:
        async with self._lock:
            existing = self._live(key)
            if existing is None or existing.token != token:
                logger.warning("dedup_replace_rejected", key=key)
                return False
            self._store(key, entry, ttl_seconds)
            return True

    async def release(self, key: str, token: str) -> bool:
        async with self._lock:
            existing = self._live(key)
            if existing is None or existing.token != token:
                return False
            del self._entries[key]
            return True

    def clear(self) -> None:
        self._entries.clear()
