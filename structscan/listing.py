from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin

from .base import BaseFinder, Strategy, compact
from .models import Candidate, CandidateKind, ExtractionRecord, ScrapeConfig
from .patterns import clean_text, is_layout_container, is_visible, row_cells, table_rows, text_density
from .scoring import ScoreSheet, consistency, semantic_score
from .tree import Node


MIN_ITEMS = 3

_SEMANTIC_ATTRS = ("role", "aria-label", "data-list", "data-items")
_CLASS_WORDS = ("list", "items", "collection", "products", "menu", "nav")


def _same_signature(a: Node, b: Node) -> bool:
    return a.tag == b.tag and a.class_name == b.class_name


class ListFinder(BaseFinder):
    """Finds repeating item lists: native lists, uniform div runs, narrow tables, flex/grid runs."""

    kind = CandidateKind.LIST

    def strategies(self) -> Sequence[Strategy]:
        return (
            self.native_lists,
            self.div_lists,
            self.table_lists,
            self.grid_lists,
        )

    def native_lists(self) -> List[Node]:
        return self._select("ul, ol")

    def div_lists(self) -> List[Node]:
        found = []
        for node in self._select("div, section"):
            children = node.children
            if len(children) < MIN_ITEMS:
                continue
            first = children[0]
            if sum(1 for c in children if _same_signature(first, c)) >= MIN_ITEMS:
                found.append(node)
        return found

    def table_lists(self) -> List[Node]:
        found = []
        for table in self._select("table"):
            rows = table_rows(table)
            if len(rows) >= MIN_ITEMS and len(row_cells(rows[0])) <= 3:
                found.append(table)
        return found

    def grid_lists(self) -> List[Node]:
        found = []
        for node in self._select("div, ul, ol"):
            if not is_layout_container(node):
                continue
            children = node.children
            if len(children) < MIN_ITEMS:
                continue
            if sum(1 for c in children if is_visible(c)) >= MIN_ITEMS:
                found.append(node)
        return found

    def score(self, node: Node) -> Candidate:
        sheet = ScoreSheet()
        if node.tag in ("ul", "ol"):
            sheet.add(0.3, "Native list element")

        items = self.item_count(node)
        if items >= 5:
            sheet.add(0.2, f"Has {items} items")

        uniform = consistency(node.children, _same_signature, sample=10)
        sheet.add(uniform * 0.2)
        if uniform > 0.7:
            sheet.note("Consistent items")

        density = text_density(node)
        if density > 0.2:
            sheet.add(0.1, "Good text content")

        sheet.add(semantic_score(
            node,
            _SEMANTIC_ATTRS,
            needles=("list", "items"),
            class_words=_CLASS_WORDS,
        ))

        if is_visible(node, 50, 50):
            sheet.add(0.1, "Visible on screen")

        return sheet.to_candidate(node, self.kind, {
            "items": items,
            "text_density": density,
            "tag": node.tag,
        })

    @staticmethod
    def item_count(node: Node) -> int:
        if node.tag in ("ul", "ol"):
            return len(node.children)
        return sum(1 for child in node.children if child.rect.height > 0)

    def extract(self, node: Node, config: ScrapeConfig) -> List[ExtractionRecord]:
        if node.tag in ("ul", "ol"):
            return self._extract_native(node, config)
        return self._extract_div(node, config)

    def _extract_native(self, lst: Node, config: ScrapeConfig) -> List[ExtractionRecord]:
        records = []
        for index, item in enumerate(lst.children[:config.max_items], start=1):
            record: Dict[str, Any] = {
                "text": clean_text(item.text),
                "index": index,
                "html": item.inner_html.strip() if config.include_html else None,
                "links": [
                    compact({
                        "text": link.text.strip(),
                        "href": self._absolute(link.get("href")),
                        "title": link.get("title"),
                    })
                    for link in item.query_all("a")
                ],
                "images": [
                    compact({
                        "src": self._absolute(img.get("src")),
                        "alt": img.get("alt"),
                        "title": img.get("title"),
                    })
                    for img in item.query_all("img")
                ],
            }
            records.append(compact(record))
        return records

    def _extract_div(self, container: Node, config: ScrapeConfig) -> List[ExtractionRecord]:
        items = table_rows(container) if container.tag == "table" else container.children
        records = []
        for index, item in enumerate(items[:config.max_items], start=1):
            record: Dict[str, Any] = {
                "text": clean_text(item.text),
                "index": index,
                "tag": item.tag,
                "html": item.inner_html.strip() if config.include_html else None,
            }
            if item.tag == "a":
                record["href"] = self._absolute(item.get("href"))
                record["title"] = item.get("title")
            elif item.tag == "img":
                record["src"] = self._absolute(item.get("src"))
                record["alt"] = item.get("alt")
            record["children"] = [
                {"tag": child.tag, "text": clean_text(child.text)} for child in item.children
            ]
            records.append(compact(record))
        return records

    def _absolute(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return url
        base = self._tree.base_url
        return urljoin(base, url) if base else url
