from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import soupsieve

from .errors import SelectorError
from .models import CandidateKind, LocatorOption
from .tree import DocumentTree, Node


logger = logging.getLogger(__name__)

MAX_OPTIONS = 5


def _tabular_matches(matches: int) -> float:
    return max(0, 5 - matches) / 5


def _list_matches(matches: int) -> float:
    return max(0, 10 - matches) / 10


def _product_matches(matches: int) -> float:
    if matches == 1:
        return 2.0
    if matches <= 3:
        return 1.5
    if matches <= 10:
        return 1.0
    return max(0.0, (20 - matches) / 20)


def _tabular_classes(count: int) -> float:
    return 0.5 if 1 <= count <= 3 else 0.0


def _list_classes(count: int) -> float:
    return {1: 0.8, 2: 1.0, 3: 0.6}.get(count, 0.0)


def _product_classes(count: int) -> float:
    return {1: 1.2, 2: 1.5, 3: 1.0}.get(count, 0.5)


@dataclass(frozen=True)
class RankingProfile:
    """Kind-specific knobs for locator generation and ranking."""

    exact_bonus: float
    length_cap: float
    id_bonus: float
    match_bonus: Callable[[int], float]
    class_bonus: Callable[[int], float]
    class_band: Tuple[int, int]
    combined_range: Tuple[int, int]
    pairwise_combos: bool = False
    role_selector: bool = False
    path_depth: int = 6
    path_class_limit: Optional[int] = None
    context_depth: int = 3
    context_bonus: float = 0.0
    attribute_bonus: float = 0.0


PROFILES: Dict[CandidateKind, RankingProfile] = {
    CandidateKind.TABULAR: RankingProfile(
        exact_bonus=2.0,
        length_cap=100.0,
        id_bonus=1.0,
        match_bonus=_tabular_matches,
        class_bonus=_tabular_classes,
        class_band=(1, 9),
        combined_range=(1, 3),
    ),
    CandidateKind.LIST: RankingProfile(
        exact_bonus=2.0,
        length_cap=100.0,
        id_bonus=1.5,
        match_bonus=_list_matches,
        class_bonus=_list_classes,
        class_band=(1, 19),
        combined_range=(2, 4),
        role_selector=True,
        path_depth=5,
        path_class_limit=10,
    ),
    CandidateKind.PRODUCT: RankingProfile(
        exact_bonus=3.0,
        length_cap=150.0,
        id_bonus=2.0,
        match_bonus=_product_matches,
        class_bonus=_product_classes,
        class_band=(1, 10),
        combined_range=(2, 4),
        pairwise_combos=True,
        context_bonus=0.8,
        attribute_bonus=0.5,
    ),
}


def escape(ident: str) -> str:
    return soupsieve.escape(ident)


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def locator_key(kind: CandidateKind, index: int) -> str:
    return f"{kind.value}_{index}"


class SelectorSynthesizer:
    """Generates and ranks CSS selectors that re-identify a node in its tree.

    Generation pools id, single-class, combined-class, data-attribute,
    contextual, ancestor-path and positional expressions; ranking evaluates
    each against the live tree and keeps the best five.
    """

    def __init__(self, tree: DocumentTree, kind: CandidateKind = CandidateKind.TABULAR) -> None:
        self._tree = tree
        self.kind = kind
        self.profile = PROFILES[kind]

    def synthesize(self, node: Node) -> List[LocatorOption]:
        return self.rank(self.generate(node), node)

    def generate(self, node: Node) -> List[str]:
        """Candidate expressions for ``node``, deduplicated, in generation order."""
        profile = self.profile
        options: List[str] = []
        tag = node.tag

        if node.id:
            options.append(f"#{escape(node.id)}")

        classes = node.classes
        for name in classes:
            selector = f".{escape(name)}"
            count = self._count(selector)
            if count is not None and profile.class_band[0] <= count <= profile.class_band[1]:
                options.append(selector)

        low, high = profile.combined_range
        if classes and low <= len(classes) <= high:
            if profile.pairwise_combos:
                for i in range(len(classes)):
                    for j in range(i + 1, len(classes)):
                        options.append(f".{escape(classes[i])}.{escape(classes[j])}")
            else:
                options.append("".join(f".{escape(c)}" for c in classes))

        for name, value in node.attributes.items():
            if name.startswith("data-"):
                options.append(f'{tag}[{name}="{_quote(value)}"]')
        if profile.role_selector and node.has_attribute("role"):
            options.append(f'{tag}[role="{_quote(node.get("role") or "")}"]')

        for builder in (self.context_selector, self.path_selector, self.position_selector):
            expression = builder(node)
            if expression:
                options.append(expression)

        return list(dict.fromkeys(options))

    def context_selector(self, node: Node) -> Optional[str]:
        """``ancestor > tag`` anchored on the nearest ancestor id or unique single class."""
        root = self._tree.root
        current = node.parent
        depth = 0
        while current is not None and current is not root and depth < self.profile.context_depth:
            if current.id:
                return f"#{escape(current.id)} > {node.tag}"
            classes = current.classes
            if len(classes) == 1:
                selector = f".{escape(classes[0])}"
                if self._count(selector) == 1:
                    return f"{selector} > {node.tag}"
            current = current.parent
            depth += 1
        return None

    def path_selector(self, node: Node) -> Optional[str]:
        """Child-combinator path towards the body, stopping at the first id."""
        root = self._tree.root
        limit = self.profile.path_class_limit
        path: List[str] = []
        current: Optional[Node] = node
        depth = 0
        while current is not None and current is not root and depth < self.profile.path_depth:
            part = current.tag
            if current.id:
                path.insert(0, f"{part}#{escape(current.id)}")
                break
            classes = current.classes
            if len(classes) == 1:
                selector = f".{escape(classes[0])}"
                count = self._count(selector) if limit is not None else 0
                if count is not None and (limit is None or count < limit):
                    part += selector
            parent = current.parent
            if parent is not None:
                siblings = parent.children
                if sum(1 for s in siblings if s.tag == current.tag) > 1:
                    position = next(i for i, s in enumerate(siblings) if s is current) + 1
                    part += f":nth-child({position})"
            path.insert(0, part)
            current = parent
            depth += 1
        return " > ".join(path) if path else None

    def position_selector(self, node: Node) -> Optional[str]:
        """``tag:nth-of-type(k)`` from the node's ordinal among same-tag nodes in the document."""
        try:
            same = self._tree.query_all(node.tag)
        except SelectorError:
            return None
        if len(same) <= 1:
            return None
        for position, other in enumerate(same, start=1):
            if other is node:
                return f"{node.tag}:nth-of-type({position})"
        return None

    def evaluate(self, expression: str, target: Node) -> Tuple[int, bool]:
        """Match count and whether ``target`` is the first match; raises SelectorError."""
        matches = self._tree.query_all(expression)
        return len(matches), bool(matches) and matches[0] is target

    def score(self, expression: str, match_count: int, is_exact: bool) -> float:
        profile = self.profile
        score = 0.0
        if is_exact:
            score += profile.exact_bonus
        score += max(0.0, (profile.length_cap - len(expression)) / profile.length_cap)
        score += profile.match_bonus(match_count)
        if expression.startswith("#"):
            score += profile.id_bonus
        if "." in expression and "#" not in expression:
            score += profile.class_bonus(expression.count("."))
        if " > " in expression:
            score += profile.context_bonus
        if "[" in expression:
            score += profile.attribute_bonus
        return score

    def rank(self, expressions: Iterable[str], target: Node) -> List[LocatorOption]:
        """Evaluate, score and keep the best ``MAX_OPTIONS`` expressions.

        Expressions that fail to evaluate score -1 and are dropped along with
        anything scoring zero or less.
        """
        ranked: List[LocatorOption] = []
        for expression in dict.fromkeys(expressions):
            try:
                match_count, is_exact = self.evaluate(expression, target)
            except SelectorError as exc:
                logger.debug("dropping selector %r: %s", expression, exc)
                continue
            score = self.score(expression, match_count, is_exact)
            if score <= 0:
                continue
            ranked.append(
                LocatorOption(
                    expression=expression,
                    match_count=match_count,
                    is_exact_match=is_exact,
                    stability_score=score,
                    length=len(expression),
                )
            )
        ranked.sort(key=lambda option: option.stability_score, reverse=True)
        return ranked[:MAX_OPTIONS]

    def _count(self, expression: str) -> Optional[int]:
        try:
            return len(self._tree.query_all(expression))
        except SelectorError:
            return None
