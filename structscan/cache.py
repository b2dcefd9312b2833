from __future__ import annotations

import copy
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import CacheEntry, ExtractionRecord, ScrapeConfig


Fingerprint = Tuple[str, str]


def fingerprint(target: str, config: ScrapeConfig) -> Fingerprint:
    return (target, config.canonical())


class ResultCache:
    """TTL cache of extraction results keyed by ``(target, canonical config)``.

    Entries are replaced whole and handed out as deep copies, so callers can
    never modify what another caller will be served.
    """

    def __init__(self, ttl_ms: int = 30000, clock: Callable[[], float] = time.time) -> None:
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Fingerprint, CacheEntry] = {}

    def get(self, key: Fingerprint) -> Optional[List[ExtractionRecord]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if (self._clock() - entry.created_at) * 1000 >= self.ttl_ms:
                del self._entries[key]
                return None
            return copy.deepcopy(list(entry.value))

    def put(self, key: Fingerprint, value: Sequence[ExtractionRecord]) -> CacheEntry:
        entry = CacheEntry(key=key, value=tuple(copy.deepcopy(list(value))), created_at=self._clock())
        with self._lock:
            self._entries[key] = entry
        return entry

    def clear(self) -> int:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
        return dropped

    def invalidate_target(self, target: str) -> int:
        """Drop every entry for ``target`` regardless of config."""
        with self._lock:
            stale = [k for k in self._entries if k[0] == target]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
