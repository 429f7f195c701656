from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from redis import Redis

from .config import Settings

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class RedisStore:
    """Named records kept as plain string values in Redis."""

    def __init__(self, conn: Redis) -> None:
        self.conn = conn

    def get(self, key: str) -> Optional[str]:
        data = self.conn.get(key)
        if data is None:
            return None
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return str(data)

    def set(self, key: str, value: str) -> None:
        self.conn.set(key, value)

    def delete(self, key: str) -> None:
        self.conn.delete(key)

    def close(self) -> None:
        self.conn.close()


class MemoryStore:
    """Process-local store; contents are lost on restart."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def close(self) -> None:
        self._data.clear()


def build_store(cfg: Settings) -> RedisStore | MemoryStore:
    if cfg.redis_url:
        return RedisStore(Redis.from_url(cfg.redis_url))
    logger.warning("REDIS_URL not configured; history is kept in memory only.")
    return MemoryStore()
