from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type, Union
from urllib.parse import urljoin

from .base import BaseFinder, compact
from .cache import ResultCache, fingerprint
from .errors import ExtractionError, SelectorError, StructscanError, TreeAccessError, WorkerError
from .listing import ListFinder
from .metrics import EngineMetrics
from .models import (
    CandidateKind,
    Detection,
    ExtractionEvent,
    ExtractionRecord,
    LocatorOption,
    ProcessorSpec,
    ScrapeConfig,
    ScrapeMode,
    WorkerJob,
)
from .patterns import clean_text
from .processors import run_job
from .products import ProductFinder
from .selectors import SelectorSynthesizer
from .tabular import TableFinder
from .tree import DocumentTree, MutationRecord, Node, Subscription
from .worker_pool import WorkerPool


logger = logging.getLogger(__name__)

FINDERS: Dict[CandidateKind, Type[BaseFinder]] = {
    CandidateKind.TABULAR: TableFinder,
    CandidateKind.LIST: ListFinder,
    CandidateKind.PRODUCT: ProductFinder,
}

DATA_CONTAINER_TAGS = frozenset({"table", "ul", "ol", "div", "section"})

ConfigLike = Union[ScrapeConfig, Mapping[str, Any], None]


def is_data_container(node: Node) -> bool:
    """Cheap check for whether a mutation under ``node`` can change extraction results."""
    if node.tag not in DATA_CONTAINER_TAGS:
        return False
    return len(node.children) > 3 or len(node.text) > 100


def _log(level: int, payload: Dict[str, Any]) -> None:
    if logger.isEnabledFor(level):
        logger.log(level, json.dumps(payload, ensure_ascii=False))


class ExtractionEngine:
    """Orchestrates detection, extraction, caching and post-processing.

    Documents are registered under a target name with ``attach``. Results are
    cached per ``(target, config)`` for ``cache_ttl_ms``; any structural
    mutation on a likely data container clears the whole cache. Post-processing
    runs on a free pooled worker when one exists and inline otherwise.
    """

    def __init__(
        self,
        cache_ttl_ms: int = 30000,
        pool_size: Optional[int] = None,
        slow_extraction_ms: int = 100,
        job_timeout_secs: float = 10.0,
        clock: Callable[[], float] = time.time,
        metrics: Optional[EngineMetrics] = None,
    ) -> None:
        self._clock = clock
        self._cache = ResultCache(ttl_ms=cache_ttl_ms, clock=clock)
        self._pool = WorkerPool(size=pool_size)
        self._metrics = metrics or EngineMetrics(clock=clock)
        self._slow_ms = slow_extraction_ms
        self._job_timeout = job_timeout_secs
        self._lock = threading.Lock()
        self._targets: Dict[str, Tuple[DocumentTree, Subscription]] = {}
        self._modes: Dict[ScrapeMode, Callable[[DocumentTree, ScrapeConfig], List[ExtractionRecord]]] = {
            ScrapeMode.AUTO: self._extract_auto,
            ScrapeMode.TABLE: partial(self._extract_kind, CandidateKind.TABULAR),
            ScrapeMode.LIST: partial(self._extract_kind, CandidateKind.LIST),
            ScrapeMode.PRODUCTS: partial(self._extract_kind, CandidateKind.PRODUCT),
            ScrapeMode.CUSTOM: self._extract_custom,
        }

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    @property
    def metrics(self) -> EngineMetrics:
        return self._metrics

    def attach(self, target: str, tree: DocumentTree) -> None:
        """Register ``tree`` under ``target`` and watch it for mutations."""
        subscription = tree.subscribe(partial(self._on_mutation, target))
        with self._lock:
            previous = self._targets.pop(target, None)
            self._targets[target] = (tree, subscription)
        if previous is not None:
            previous[1].cancel()
        self._cache.invalidate_target(target)

    def detach(self, target: str) -> None:
        with self._lock:
            entry = self._targets.pop(target, None)
        if entry is not None:
            entry[1].cancel()
        self._cache.invalidate_target(target)

    def tree(self, target: str) -> DocumentTree:
        with self._lock:
            entry = self._targets.get(target)
        if entry is None:
            raise TreeAccessError(f"unknown target: {target!r}")
        tree = entry[0]
        if tree.closed:
            raise TreeAccessError(f"document for target {target!r} is no longer available")
        return tree

    def targets(self) -> List[str]:
        with self._lock:
            return list(self._targets)

    def invalidate(self, target: str) -> int:
        """Drop cached results for one target only."""
        dropped = self._cache.invalidate_target(target)
        _log(logging.INFO, {"event": "cache_invalidated", "target": target, "dropped": dropped, "scope": "target"})
        return dropped

    def _on_mutation(self, target: str, records: Sequence[MutationRecord]) -> None:
        for record in records:
            try:
                relevant = is_data_container(record.target)
            except StructscanError:
                relevant = False
            if relevant:
                dropped = self._cache.clear()
                _log(logging.INFO, {
                    "event": "cache_invalidated",
                    "target": target,
                    "trigger": record.target.tag,
                    "dropped": dropped,
                    "scope": "all",
                })
                return

    def extract(self, target: str, config: ConfigLike = None) -> List[ExtractionRecord]:
        """Records for ``target`` under ``config``, served from cache while fresh."""
        config = ScrapeConfig.from_dict(config)
        key = fingerprint(target, config)
        start = self._clock()

        cached = self._cache.get(key)
        if cached is not None:
            _log(logging.DEBUG, {"event": "cache_hit", "target": target, "mode": config.mode.value})
            self._record(target, config, start, cached, cache_hit=True)
            return cached

        try:
            tree = self.tree(target)
            records = self._modes[config.mode](tree, config)
        except (TreeAccessError, ExtractionError) as exc:
            self._record(target, config, start, [], error=exc)
            raise
        except Exception as exc:  # noqa: BLE001
            self._record(target, config, start, [], error=exc)
            raise ExtractionError(f"{config.mode.value} extraction failed: {exc}") from exc

        route = None
        if config.processors:
            try:
                records, route = self._post_process(records, config.processors)
            except ExtractionError as exc:
                self._record(target, config, start, [], error=exc)
                raise

        self._cache.put(key, records)
        latency_ms = self._record(target, config, start, records, route=route)
        if latency_ms > self._slow_ms:
            _log(logging.WARNING, {
                "event": "slow_extraction",
                "target": target,
                "mode": config.mode.value,
                "latency_ms": latency_ms,
                "hint": "consider optimizing selectors",
            })
        return records

    def scrape(self, target: str, config: ConfigLike = None) -> Dict[str, Any]:
        """``extract`` wrapped with page metadata, as answered to scrape requests."""
        start = self._clock()
        records = self.extract(target, config)
        tree = self.tree(target)
        return {
            "data": records,
            "metadata": {
                "url": tree.base_url,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "processingTime": int((self._clock() - start) * 1000),
                "elementCount": len(records),
            },
        }

    def _extract_kind(self, kind: CandidateKind, tree: DocumentTree, config: ScrapeConfig) -> List[ExtractionRecord]:
        return FINDERS[kind](tree).extract_best(config)

    def _extract_auto(self, tree: DocumentTree, config: ScrapeConfig) -> List[ExtractionRecord]:
        best: List[ExtractionRecord] = []
        for kind, finder_cls in FINDERS.items():
            try:
                records = finder_cls(tree).extract_best(config)
            except TreeAccessError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.debug("auto mode: %s finder failed: %s", kind.value, exc)
                continue
            if len(records) > len(best):
                best = records
        return best

    def _extract_custom(self, tree: DocumentTree, config: ScrapeConfig) -> List[ExtractionRecord]:
        records: List[ExtractionRecord] = []
        base = tree.base_url
        for selector in config.selectors:
            try:
                nodes = tree.query_all(selector)
            except SelectorError as exc:
                logger.debug("custom mode: skipping selector: %s", exc)
                continue
            for index, node in enumerate(nodes, start=1):
                href = node.get("href")
                src = node.get("src")
                records.append(compact({
                    "selector": selector,
                    "index": index,
                    "tag": node.tag,
                    "text": clean_text(node.text),
                    "html": node.inner_html.strip() if config.include_html else None,
                    "href": urljoin(base, href) if href and base else href,
                    "src": urljoin(base, src) if src and base else src,
                }))
        return records

    def _post_process(
        self,
        records: List[ExtractionRecord],
        processors: Sequence[ProcessorSpec],
    ) -> Tuple[List[ExtractionRecord], str]:
        job = WorkerJob(data=tuple(records), processors=tuple(processors))
        handle = self._pool.try_acquire()
        if handle is not None:
            try:
                return handle.submit(job).result(timeout=self._job_timeout), "worker"
            except (WorkerError, FutureTimeoutError) as exc:
                _log(logging.WARNING, {
                    "event": "worker_fallback",
                    "slot": handle.slot,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                })
                route = "fallback"
        else:
            route = "inline"
        try:
            return run_job(job), route
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(f"post-processing failed: {exc}") from exc

    def _record(
        self,
        target: str,
        config: ScrapeConfig,
        start: float,
        records: Sequence[ExtractionRecord],
        cache_hit: bool = False,
        route: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> int:
        latency_ms = int((self._clock() - start) * 1000)
        self._metrics.record(ExtractionEvent(
            target=target,
            mode=config.mode.value,
            cache_hit=cache_hit,
            record_count=len(records),
            latency_ms=latency_ms,
            route=route,
            error_type=type(error).__name__ if error is not None else None,
        ))
        return latency_ms

    def detect_structures(self, target: str) -> Dict[str, Detection]:
        """Run every finder and synthesize locators for all accepted candidates."""
        tree = self.tree(target)
        return {kind.value: finder_cls(tree).detect() for kind, finder_cls in FINDERS.items()}

    def generate_selectors(
        self,
        target: str,
        expression: str,
        kind: CandidateKind = CandidateKind.TABULAR,
    ) -> List[LocatorOption]:
        """Ranked locators for the first node matching ``expression``."""
        tree = self.tree(target)
        node = tree.query(expression)
        if node is None:
            return []
        return SelectorSynthesizer(tree, kind).synthesize(node)

    def test_selector(self, target: str, expression: str) -> Dict[str, Any]:
        tree = self.tree(target)
        try:
            nodes = tree.query_all(expression)
        except SelectorError as exc:
            return {"success": False, "error": str(exc), "selector": expression}
        matches = [
            {
                "index": index,
                "tagName": node.tag.upper(),
                "className": node.class_name,
                "id": node.id,
                "text": node.text.strip()[:100],
                "html": node.inner_html[:200],
            }
            for index, node in enumerate(nodes)
        ]
        return {"success": True, "matches": matches, "count": len(matches), "selector": expression}

    def status(self, target: str) -> Dict[str, Any]:
        try:
            tree = self.tree(target)
        except TreeAccessError:
            return {"ready": False, "url": None, "title": "", "hasData": False}
        return {
            "ready": True,
            "url": tree.base_url,
            "title": tree.title,
            "hasData": tree.query("table, ul, ol") is not None,
        }

    def close(self) -> None:
        with self._lock:
            entries = list(self._targets.values())
            self._targets.clear()
        for _tree, subscription in entries:
            subscription.cancel()
        self._cache.clear()
        self._pool.close()

    def __enter__(self) -> "ExtractionEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
