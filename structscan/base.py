from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .errors import SelectorError, TreeAccessError
from .models import Candidate, CandidateKind, Detection, ExtractionRecord, ScrapeConfig
from .scoring import THRESHOLDS, rank
from .selectors import SelectorSynthesizer, locator_key
from .tree import DocumentTree, Node


logger = logging.getLogger(__name__)

Strategy = Callable[[], Iterable[Node]]


class BaseFinder(ABC):
    """Abstract base class defining the detect-score-extract pipeline for one pattern kind.

    Subclasses provide independent nomination strategies, a scoring pass and a
    record extractor. A strategy that raises is logged and skipped; it never
    aborts the finder. Strategy outputs are unioned by node identity in
    discovery order before scoring.
    """

    kind: CandidateKind

    def __init__(self, tree: DocumentTree) -> None:
        self._tree = tree
        self.threshold = THRESHOLDS[self.kind]

    def detect(self) -> Detection:
        """Find candidates and synthesize ranked locators for each of them."""
        start_ms = self._now_ms()
        candidates = self.find_candidates()
        synthesizer = SelectorSynthesizer(self._tree, self.kind)
        locators = {
            locator_key(self.kind, index): synthesizer.synthesize(candidate.node)
            for index, candidate in enumerate(candidates, start=1)
        }
        logger.debug(json.dumps({
            "event": "detect",
            "kind": self.kind.value,
            "candidates": len(candidates),
            "elapsed_ms": self._now_ms() - start_ms,
        }))
        return Detection(
            kind=self.kind,
            candidates=tuple(candidates),
            locators=locators,
            confidence=candidates[0].confidence if candidates else 0.0,
        )

    def find_candidates(self) -> List[Candidate]:
        """Scored candidates at or above the kind threshold, best first."""
        return rank((self.score(node) for node in self.nominate()), self.threshold)

    def nominate(self) -> List[Node]:
        found: Dict[Node, None] = {}
        for strategy in self.strategies():
            try:
                nodes = list(strategy())
            except TreeAccessError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.debug("%s strategy %s failed: %s", self.kind.value, getattr(strategy, "__name__", strategy), exc)
                continue
            for node in nodes:
                found.setdefault(node, None)
        return list(found)

    def extract_best(self, config: ScrapeConfig) -> List[ExtractionRecord]:
        """Records from the highest-scoring candidate, or nothing when there is none."""
        candidates = self.find_candidates()
        if not candidates:
            return []
        return self.extract(candidates[0].node, config)

    @abstractmethod
    def strategies(self) -> Sequence[Strategy]:
        ...

    @abstractmethod
    def score(self, node: Node) -> Candidate:
        ...

    @abstractmethod
    def extract(self, node: Node, config: ScrapeConfig) -> List[ExtractionRecord]:
        ...

    def _select(self, expression: str) -> List[Node]:
        return self._tree.query_all(expression)

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)


def compact(record: Dict[str, Any]) -> ExtractionRecord:
    """Drop fields whose value is None, an empty string or an empty collection."""
    return {k: v for k, v in record.items() if v is not None and v != "" and v != [] and v != {}}


def first_match(node: Node, selectors: Iterable[str]) -> Optional[Node]:
    """First node matched by the earliest selector that matches anything."""
    for selector in selectors:
        try:
            found = node.query(selector)
        except SelectorError:
            continue
        if found is not None:
            return found
    return None


def first_text(node: Node, selectors: Iterable[str]) -> str:
    """Trimmed text of the first selector match with non-empty text."""
    for selector in selectors:
        try:
            found = node.query(selector)
        except SelectorError:
            continue
        if found is not None:
            text = found.text.strip()
            if text:
                return text
    return ""
