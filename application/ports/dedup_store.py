"""Idempotency store port.

Entries are keyed by provider transaction id. A worker first claims a key
(entry without result), then either completes it with the serialized
ProcessingResult or releases it so a retry starts afresh.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class DedupEntry:
    token: str
    result: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.result is not None


@runtime_checkable
class DedupStore(Protocol):
    async def get(self, key: str) -> Optional[DedupEntry]: ...

    async def put_if_absent(self, key: str, entry: DedupEntry, ttl_seconds: int) -> Optional[DedupEntry]:
        """Store ``entry`` unless the key exists; return the existing entry, or None when stored."""
        ...

    async def replace(self, key: str, token: str, entry: DedupEntry, ttl_seconds: int) -> bool:
        """Overwrite only while the stored entry is still owned by ``token``."""
        ...

    async def release(self, key: str, token: str) -> bool: ...
