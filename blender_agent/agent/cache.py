# FILE: blender_agent/agent/cache.py
"""
Response-code cache: bounded LRU with TTL.

Keys always include the user and conversation so a cached reply can never
leak across contexts. Only deterministic auxiliary LLM calls use it.
"""

from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from blender_agent import config


def make_cache_key(prompt: str, user_id: Any, conversation_id: Any) -> str:
    """SHA-256 of the canonical JSON of {prompt, userId, conversationId}."""
    canonical = json.dumps(
        {"prompt": prompt, "userId": user_id, "conversationId": conversation_id},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float


class ResponseCache:
    def __init__(
        self,
        max_entries: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries if max_entries is not None else config.CODE_CACHE_MAX
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.CODE_CACHE_TTL_SECONDS
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.inserted_at > self.ttl_seconds:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock())
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [k for k, e in self._entries.items() if now - e.inserted_at > self.ttl_seconds]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["CacheEntry", "ResponseCache", "make_cache_key"]
