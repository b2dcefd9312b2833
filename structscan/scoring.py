from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .models import Candidate, CandidateKind
from .tree import Node


THRESHOLDS: Dict[CandidateKind, float] = {
    CandidateKind.TABULAR: 0.6,
    CandidateKind.LIST: 0.5,
    CandidateKind.PRODUCT: 0.6,
}

SEMANTIC_CAP = 0.25


class ScoreSheet:
    """Accumulates additive signal contributions and their reasons for one node."""

    def __init__(self) -> None:
        self.total = 0.0
        self.reasons: List[str] = []

    def add(self, amount: float, reason: Optional[str] = None) -> None:
        self.total += amount
        if reason:
            self.reasons.append(reason)

    def note(self, reason: str) -> None:
        self.reasons.append(reason)

    def to_candidate(self, node: Node, kind: CandidateKind, metadata: Dict[str, Any]) -> Candidate:
        return Candidate(
            node=node,
            kind=kind,
            score=min(1.0, self.total),
            confidence=self.total,
            reasons=tuple(self.reasons),
            metadata=metadata,
        )


def consistency(items: Sequence[Node], same: Callable[[Node, Node], bool], sample: int = 10) -> float:
    """Fraction of the first ``min(sample, n - 1)`` followers that match the first item."""
    if len(items) < 2:
        return 0.0
    window = min(sample, len(items) - 1)
    first = items[0]
    matching = sum(1 for item in items[1:1 + window] if same(first, item))
    return matching / window


def semantic_score(
    node: Node,
    attributes: Iterable[str],
    needles: Iterable[str],
    class_words: Iterable[str],
    content_words: Iterable[str] = (),
    id_words: Iterable[str] = (),
) -> float:
    """Bounded bonus from role/aria/data attributes, class vocabulary and content keywords."""
    needles = tuple(needles)
    score = 0.0
    for attr in attributes:
        value = (node.get(attr) or "").lower()
        if value and any(n in value for n in needles):
            score += 0.1

    class_name = node.class_name.lower()
    score += 0.05 * sum(1 for word in class_words if word in class_name)

    content_words = tuple(content_words)
    if content_words:
        text = node.text.lower()
        score += 0.02 * sum(1 for word in content_words if word in text)

    ident = node.id.lower()
    if ident and any(word in ident for word in id_words):
        score += 0.1
    return min(SEMANTIC_CAP, score)


def rank(candidates: Iterable[Candidate], threshold: float) -> List[Candidate]:
    """Drop candidates under ``threshold`` and sort the rest by score, best first.

    ``sorted`` is stable, so equal scores keep discovery order.
    """
    kept = [c for c in candidates if c.score >= threshold]
    return sorted(kept, key=lambda c: c.score, reverse=True)
