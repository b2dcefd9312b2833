from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from urllib.parse import urljoin

from .base import BaseFinder, Strategy, compact, first_text
from .errors import SelectorError
from .models import Candidate, CandidateKind, ExtractionRecord, ScrapeConfig
from .patterns import (
    contains_price,
    contains_product_keywords,
    find_price,
    is_layout_container,
    is_product_like,
    is_visible,
    table_rows,
)
from .scoring import ScoreSheet, semantic_score
from .tree import Node


logger = logging.getLogger(__name__)

_SEMANTIC_ATTRS = ("role", "data-product", "data-items", "aria-label")
_CLASS_WORDS = ("product", "catalog", "grid", "list", "items", "shop", "store")

TITLE_SELECTORS = (
    "h1", "h2", "h3", "h4",
    '[class*="title"]', '[class*="name"]',
    '[itemprop="name"]', ".product-title", ".item-title",
    "strong", "b", ".name", ".title",
)
PRICE_SELECTORS = (
    ".price", ".cost", ".amount", ".value",
    '[class*="price"]', '[itemprop="price"]',
    'span[class*="currency"]', ".product-price",
)
DESCRIPTION_SELECTORS = (
    ".description", ".desc", ".details",
    '[class*="description"]', '[itemprop="description"]',
    "p:not(:empty)", ".product-desc",
)
RATING_SELECTORS = (
    ".rating", ".stars", ".review",
    '[class*="rating"]', '[itemprop="ratingValue"]',
    ".product-rating", '[aria-label*="star"]',
)
AVAILABILITY_SELECTORS = (
    ".availability", ".stock", ".inventory",
    '[class*="stock"]', '[class*="available"]',
    ".product-availability",
)

_RATING_OUT_OF_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:out of|/)\s*\d+", re.IGNORECASE)
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def analyze_pattern(children: Sequence[Node]) -> Dict[str, float]:
    """Structure, class and size consistency over the first five children."""
    samples = list(children[:5])
    tags = {c.tag for c in samples}
    classes = {c.class_name for c in samples if c.class_name}
    rects = [c.rect for c in samples]
    same_size = all(
        abs(r.width - rects[0].width) < 50 and abs(r.height - rects[0].height) < 50
        for r in rects
    )
    return {
        "structure": 1.0 if len(tags) == 1 else 0.5,
        "classes": 1.0 if len(classes) <= 2 else 0.3,
        "size": 1.0 if same_size else 0.2,
    }


def _count_product_like(nodes: Sequence[Node]) -> int:
    return sum(1 for n in nodes if is_product_like(n))


class ProductFinder(BaseFinder):
    """Finds product listings: containers of repeated cards carrying prices, images and actions."""

    kind = CandidateKind.PRODUCT

    def strategies(self) -> Sequence[Strategy]:
        return (
            self.grid_products,
            self.list_products,
            self.table_products,
            self.card_products,
            self.container_products,
        )

    def grid_products(self) -> List[Node]:
        found = []
        for node in self._select("div, section, ul, li"):
            if not is_layout_container(node):
                continue
            children = node.children
            if len(children) >= 2 and _count_product_like(children[:5]) >= 2:
                found.append(node)
        return found

    def list_products(self) -> List[Node]:
        found = []
        for lst in self._select("ul, ol"):
            items = lst.children
            if len(items) >= 2 and _count_product_like(items[:5]) >= 2:
                found.append(lst)
        return found

    def table_products(self) -> List[Node]:
        found = []
        for table in self._select("table"):
            rows = table_rows(table)
            if len(rows) < 2:
                continue
            hits = sum(
                1 for row in rows[:5]
                if contains_price(row.text) or contains_product_keywords(row.text)
            )
            if hits >= 2:
                found.append(table)
        return found

    def card_products(self) -> List[Node]:
        found = []
        for node in self._select("div, article, section"):
            class_name = node.class_name.lower()
            if not any(word in class_name for word in ("card", "product", "item")):
                continue
            if contains_price(node.text) or node.query("img") is not None or node.query("button, .btn") is not None:
                found.append(node)
        return found

    def container_products(self) -> List[Node]:
        found = []
        for node in self._select("div, section"):
            children = node.children
            if len(children) < 3:
                continue
            if analyze_pattern(children)["structure"] < 0.7:
                continue
            if _count_product_like(children[:3]) >= 2:
                found.append(node)
        return found

    def score(self, node: Node) -> Candidate:
        sheet = ScoreSheet()
        children = node.children
        child_count = len(children)
        if child_count >= 3:
            sheet.add(0.2, f"Has {child_count} items")

        product_items = _count_product_like(children[:10])
        ratio = product_items / max(1, child_count)
        sheet.add(ratio * 0.3)
        if ratio > 0.5:
            sheet.note(f"{round(ratio * 100)}% product-like items")

        pattern = analyze_pattern(children)
        sheet.add(sum(pattern.values()) / 3 * 0.2)
        if pattern["structure"] > 0.8:
            sheet.note("Consistent structure")

        sheet.add(semantic_score(
            node,
            _SEMANTIC_ATTRS,
            needles=("product", "grid", "list"),
            class_words=_CLASS_WORDS,
            id_words=("product", "catalog"),
        ))

        if is_visible(node, 200, 100):
            sheet.add(0.1, "Good visibility")

        return sheet.to_candidate(node, self.kind, {
            "items": child_count,
            "product_items": product_items,
            "pattern": pattern,
        })

    def extract(self, node: Node, config: ScrapeConfig) -> List[ExtractionRecord]:
        records: List[ExtractionRecord] = []
        for index, child in enumerate(node.children[:config.max_products * 2], start=1):
            if not is_product_like(child):
                continue
            record = self.extract_product(child, config)
            record["index"] = index
            records.append(record)
        return records[:config.max_products]

    def extract_product(self, element: Node, config: ScrapeConfig) -> ExtractionRecord:
        fields: Dict[str, Optional[Callable[[Node], Any]]] = {
            "title": self.extract_title,
            "price": self.extract_price if config.include_prices else None,
            "url": self.extract_url,
            "image": self.extract_image if config.include_images else None,
            "description": self.extract_description,
            "rating": self.extract_rating,
            "availability": self.extract_availability,
        }
        product: Dict[str, Any] = {}
        for name, extractor in fields.items():
            if extractor is None:
                continue
            try:
                product[name] = extractor(element)
            except Exception as exc:  # noqa: BLE001
                logger.debug("product field %s failed: %s", name, exc)
        return compact(product)

    @staticmethod
    def extract_title(element: Node) -> str:
        title = first_text(element, TITLE_SELECTORS)
        if title:
            return title
        for line in element.text.strip().split("\n"):
            line = line.strip()
            if 10 < len(line) < 100 and not contains_price(line):
                return line
        return ""

    @staticmethod
    def extract_price(element: Node) -> Optional[str]:
        return find_price(element.text) or first_text(element, PRICE_SELECTORS) or None

    def extract_url(self, element: Node) -> Optional[str]:
        candidates = [element] if element.tag == "a" and element.has_attribute("href") else []
        candidates.extend(element.query_all("a[href]"))
        for link in candidates:
            href = (link.get("href") or "").strip()
            if href and not href.startswith("javascript:") and not href.startswith("#"):
                return self._absolute(href)
        return None

    def extract_image(self, element: Node) -> Optional[str]:
        for img in element.query_all("img[src]"):
            src = (img.get("src") or "").strip()
            if src and "data:image" not in src and "placeholder" not in src:
                return self._absolute(src)
        return None

    @staticmethod
    def extract_description(element: Node) -> Optional[str]:
        for selector in DESCRIPTION_SELECTORS:
            try:
                found = element.query(selector)
            except SelectorError:
                continue
            if found is None:
                continue
            text = found.text.strip()
            if 20 < len(text) < 500:
                return text
        return None

    @staticmethod
    def extract_rating(element: Node) -> Optional[Union[float, int]]:
        for selector in RATING_SELECTORS:
            try:
                found = element.query(selector)
            except SelectorError:
                continue
            if found is None:
                continue
            text = found.text.strip()
            match = _RATING_OUT_OF_RE.search(text) or _NUMBER_RE.search(text)
            if match:
                return float(match.group(1))
            stars = text.count("★")
            if stars:
                return stars
        return None

    @staticmethod
    def extract_availability(element: Node) -> Optional[str]:
        for selector in AVAILABILITY_SELECTORS:
            try:
                found = element.query(selector)
            except SelectorError:
                continue
            if found is None:
                continue
            text = found.text.lower()
            # Negative phrases first: "unavailable" contains "available".
            if "out of stock" in text or "sold out" in text or "unavailable" in text:
                return "Out of Stock"
            if "preorder" in text or "coming soon" in text:
                return "Preorder"
            if "in stock" in text or "available" in text:
                return "In Stock"
        return None

    def _absolute(self, url: str) -> str:
        base = self._tree.base_url
        return urljoin(base, url) if base else url
