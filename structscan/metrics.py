from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict
from threading import Lock
from typing import Callable, Deque, Dict, List

from .models import ExtractionEvent, MetricsSnapshot


class EngineMetrics:
    """Thread-safe log of extraction events.

    Keeps the most recent events in a bounded deque and aggregates them into
    MetricsSnapshot objects over sliding time windows."""

    def __init__(self, maxlen: int = 10000, clock: Callable[[], float] = time.time) -> None:
        self._lock = Lock()
        self._clock = clock
        self._events: Deque[tuple[float, ExtractionEvent]] = deque(maxlen=maxlen)

    def record(self, event: ExtractionEvent) -> None:
        with self._lock:
            self._events.append((self._clock(), event))

    def snapshot(self, window_secs: int) -> MetricsSnapshot:
        """Aggregate events from the last ``window_secs`` seconds."""
        now = self._clock()
        cutoff = now - window_secs
        with self._lock:
            events: List[ExtractionEvent] = [e for ts, e in self._events if ts >= cutoff]
        total = len(events)
        avg_latency_ms = (sum(e.latency_ms for e in events) / total) if total else 0.0
        return MetricsSnapshot(
            window_secs=window_secs,
            total_extractions=total,
            cache_hits=sum(1 for e in events if e.cache_hit),
            error_count=sum(1 for e in events if e.error_type),
            worker_jobs=sum(1 for e in events if e.route == "worker"),
            inline_jobs=sum(1 for e in events if e.route == "inline"),
            worker_fallbacks=sum(1 for e in events if e.route == "fallback"),
            avg_latency_ms=avg_latency_ms,
            timestamp=now,
        )

    def export_json(self) -> List[Dict]:
        with self._lock:
            return [{"timestamp": ts, **asdict(e)} for ts, e in self._events]
