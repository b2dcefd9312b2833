"""Text and structure heuristics shared by the finders and the extractors."""
from __future__ import annotations

import re
from typing import List, Optional

from .tree import Node


PRICE_PATTERNS = (
    re.compile(r"\$[\d,]+(?:\.\d{2})?"),
    re.compile(r"€[\d,]+(?:\.\d{2})?"),
    re.compile(r"£[\d,]+(?:\.\d{2})?"),
    re.compile(r"¥[\d,]+(?:\.\d{2})?"),
    re.compile(r"[\d,]+(?:\.\d{2})?\s*(?:USD|EUR|GBP|JPY)", re.IGNORECASE),
)

PRODUCT_KEYWORDS = (
    "product", "item", "card", "good", "merchandise",
    "listing", "offer", "deal", "sale", "buy",
)

ACTION_SELECTOR = 'button, .btn, [role="button"]'
TITLE_SELECTOR = 'h1, h2, h3, h4, [class*="title"], [class*="name"]'

_WS_RE = re.compile(r"\s+")


def clean_text(text: Optional[str]) -> str:
    """Trim and collapse all runs of whitespace to single spaces."""
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def find_price(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    for pattern in PRICE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def contains_price(text: Optional[str]) -> bool:
    return find_price(text) is not None


def contains_product_keywords(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in PRODUCT_KEYWORDS)


def text_density(node: Node) -> float:
    """Trimmed text length over serialized inner markup length."""
    markup_length = len(node.inner_html)
    if markup_length == 0:
        return 0.0
    return len(node.text.strip()) / markup_length


def table_rows(table: Node) -> List[Node]:
    """Rows of a ``table`` in document order, looking through thead/tbody/tfoot."""
    rows: List[Node] = []
    for child in table.children:
        if child.tag == "tr":
            rows.append(child)
        elif child.tag in ("thead", "tbody", "tfoot"):
            rows.extend(r for r in child.children if r.tag == "tr")
    return rows


def row_cells(row: Node) -> List[Node]:
    return [c for c in row.children if c.tag in ("td", "th")]


def is_visible(node: Node, min_width: float = 0.0, min_height: float = 0.0) -> bool:
    rect = node.rect
    return rect.width > min_width and rect.height > min_height


def is_layout_container(node: Node) -> bool:
    display = node.display
    return "grid" in display or "flex" in display


def product_score(node: Node) -> int:
    """Points on the product rubric: price 3, image 2, action 1, title 1, size 1."""
    score = 0
    if contains_price(node.text):
        score += 3
    if node.query("img") is not None:
        score += 2
    if node.query(ACTION_SELECTOR) is not None:
        score += 1
    if node.query(TITLE_SELECTOR) is not None:
        score += 1
    if is_visible(node, 100, 50):
        score += 1
    return score


def is_product_like(node: Optional[Node]) -> bool:
    if node is None:
        return False
    return product_score(node) >= 3
