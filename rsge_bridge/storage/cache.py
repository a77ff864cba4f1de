"""
Lightweight in-memory response cache for local development.

Used by the waybill fetcher to avoid repeating identical list calls. Entries
expire after `default_ttl` seconds.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple


class ResponseCache:
    def __init__(self, default_ttl: int = 300) -> None:
        # key -> (expires_at, value)
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._default_ttl = default_ttl

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at < time.monotonic():
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        self._entries[key] = (time.monotonic() + ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def ping(self) -> bool:
        return True
