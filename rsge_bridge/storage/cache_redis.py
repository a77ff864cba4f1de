"""
Redis-backed response cache for production when REDIS_URL is set.
Implements the same interface as rsge_bridge.storage.cache (in-memory stub).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)


class RedisResponseCache:
    def __init__(self, url: str, default_ttl: int = 300, prefix: str = "rsge:") -> None:
        self._client = redis.from_url(url, decode_responses=True)
        self._default_ttl = default_ttl
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        raw = self._client.get(self._key(key))
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        self._client.setex(self._key(key), ttl, json.dumps(value, default=str, ensure_ascii=False))

    def delete(self, key: str) -> None:
        self._client.delete(self._key(key))

    def clear(self) -> None:
        for key in self._client.scan_iter(match=f"{self._prefix}*"):
            self._client.delete(key)

    def ping(self) -> bool:
        try:
            return self._client.ping()
        except Exception:
            return False
