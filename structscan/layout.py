from __future__ import annotations

import math
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from soupsieve import SelectorSyntaxError

from .models import Rect


LINE_HEIGHT = 20.0
CHAR_WIDTH = 8.0
DEFAULT_IMAGE_SIZE = 100.0

_INLINE_DISPLAYS = frozenset({"inline", "inline-block", "inline-flex", "inline-grid"})

_DEFAULT_DISPLAY: Dict[str, str] = {
    "table": "table",
    "thead": "table-row-group",
    "tbody": "table-row-group",
    "tfoot": "table-row-group",
    "tr": "table-row",
    "td": "table-cell",
    "th": "table-cell",
    "caption": "table-caption",
    "li": "list-item",
    "img": "inline-block",
    "button": "inline-block",
    "input": "inline-block",
    "select": "inline-block",
    "textarea": "inline-block",
}
for _name in ("a", "span", "strong", "b", "em", "i", "small", "label", "abbr", "code",
              "sup", "sub", "u", "s", "mark", "time", "cite", "q", "br"):
    _DEFAULT_DISPLAY[_name] = "inline"
for _name in ("head", "script", "style", "template", "meta", "link", "title", "noscript", "base"):
    _DEFAULT_DISPLAY[_name] = "none"

_COMMENT_RE = re.compile(r"/\*.*?\*/", re.S)
_RULE_RE = re.compile(r"([^{}@;]+)\{([^{}]*)\}")
_LENGTH_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(px|%)?\s*$")
_REPEAT_RE = re.compile(r"repeat\(\s*(\d+)")


def parse_declarations(raw: str) -> Dict[str, str]:
    """Parse ``prop: value; ...`` into a lower-cased property mapping."""
    decls: Dict[str, str] = {}
    for part in raw.split(";"):
        if ":" not in part:
            continue
        prop, value = part.split(":", 1)
        value = value.replace("!important", "").strip()
        if prop.strip() and value:
            decls[prop.strip().lower()] = value.lower()
    return decls


class StaticLayout:
    """Estimates display modes and box geometry for a parsed document.

    There is no rendering engine behind a parsed document, so geometry is
    approximated from the cascade of ``<style>`` rules and inline styles:
    explicit pixel sizes win, images default to 100x100, text takes a 20px
    line per wrapped run of 8px glyphs, blocks stack, flex rows sit side by
    side and grids wrap on their declared column count.
    """

    def __init__(self, soup: BeautifulSoup, viewport_width: float = 1280.0) -> None:
        self._soup = soup
        self._viewport = float(viewport_width)
        self._sheet: Optional[Dict[int, Dict[str, str]]] = None
        self._styles: Dict[int, Dict[str, str]] = {}
        self._displays: Dict[int, str] = {}
        self._widths: Dict[int, float] = {}
        self._heights: Dict[int, float] = {}
        self._origins: Dict[int, tuple] = {}

    def invalidate(self) -> None:
        self._sheet = None
        self._styles.clear()
        self._displays.clear()
        self._widths.clear()
        self._heights.clear()
        self._origins.clear()

    def style(self, tag: Tag) -> Dict[str, str]:
        key = id(tag)
        if key not in self._styles:
            merged = dict(self._stylesheet().get(key, {}))
            inline = tag.get("style")
            if inline:
                merged.update(parse_declarations(inline))
            self._styles[key] = merged
        return self._styles[key]

    def display(self, tag: Tag) -> str:
        key = id(tag)
        if key not in self._displays:
            if tag.has_attr("hidden") or (tag.name == "input" and tag.get("type") == "hidden"):
                value = "none"
            else:
                value = self.style(tag).get("display") or _DEFAULT_DISPLAY.get(tag.name, "block")
            self._displays[key] = value
        return self._displays[key]

    def rect(self, tag: Tag) -> Rect:
        if self._hidden(tag):
            return Rect()
        x, y = self._origin(tag)
        return Rect(x=x, y=y, width=self._width(tag), height=self._height(tag))

    def _stylesheet(self) -> Dict[int, Dict[str, str]]:
        if self._sheet is not None:
            return self._sheet
        sheet: Dict[int, Dict[str, str]] = {}
        for style_tag in self._soup.find_all("style"):
            css = _COMMENT_RE.sub("", style_tag.get_text())
            for selector_group, body in _RULE_RE.findall(css):
                decls = parse_declarations(body)
                if not decls:
                    continue
                for selector in selector_group.split(","):
                    selector = selector.strip()
                    if not selector:
                        continue
                    try:
                        matches = self._soup.select(selector)
                    except (SelectorSyntaxError, ValueError, NotImplementedError):
                        continue
                    for match in matches:
                        sheet.setdefault(id(match), {}).update(decls)
        self._sheet = sheet
        return sheet

    def _hidden(self, tag: Optional[Tag]) -> bool:
        while isinstance(tag, Tag) and not isinstance(tag, BeautifulSoup):
            if self.display(tag) == "none":
                return True
            tag = tag.parent
        return False

    def _element_children(self, tag: Tag) -> List[Tag]:
        return [c for c in tag.children if isinstance(c, Tag) and self.display(c) != "none"]

    def _length(self, tag: Tag, prop: str, reference: float) -> Optional[float]:
        raw = self.style(tag).get(prop)
        if not raw:
            return None
        match = _LENGTH_RE.match(raw)
        if not match:
            return None
        value = float(match.group(1))
        if match.group(2) == "%":
            return reference * value / 100.0
        return value

    def _columns(self, tag: Tag) -> int:
        template = self.style(tag).get("grid-template-columns", "")
        repeat = _REPEAT_RE.search(template)
        if repeat:
            return max(1, int(repeat.group(1)))
        tokens = [t for t in re.sub(r"\([^)]*\)", "", template).split() if t]
        return max(1, len(tokens))

    def _parent(self, tag: Tag) -> Optional[Tag]:
        parent = tag.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            return None
        return parent

    def _width(self, tag: Tag) -> float:
        key = id(tag)
        if key in self._widths:
            return self._widths[key]
        parent = self._parent(tag)
        parent_width = self._width(parent) if parent is not None else self._viewport
        display = self.display(tag)

        explicit = self._length(tag, "width", parent_width)
        if explicit is not None:
            width = explicit
        elif tag.name == "img":
            width = _attr_number(tag, "width", DEFAULT_IMAGE_SIZE)
        elif display in _INLINE_DISPLAYS:
            width = min(parent_width, CHAR_WIDTH * len(tag.get_text(strip=True)))
        elif parent is not None and "flex" in self.display(parent) \
                and "column" not in self.style(parent).get("flex-direction", ""):
            width = parent_width / max(1, len(self._element_children(parent)))
        elif parent is not None and "grid" in self.display(parent):
            width = parent_width / self._columns(parent)
        elif display == "table-cell" and parent is not None:
            width = parent_width / max(1, len(self._element_children(parent)))
        else:
            width = parent_width
        self._widths[key] = width
        return width

    def _height(self, tag: Tag) -> float:
        key = id(tag)
        if key in self._heights:
            return self._heights[key]
        display = self.display(tag)
        explicit = self._length(tag, "height", 0.0)
        children = self._element_children(tag)

        if explicit is not None:
            height = explicit
        elif tag.name == "img":
            height = _attr_number(tag, "height", DEFAULT_IMAGE_SIZE)
        elif not children:
            height = self._text_height(tag.get_text(strip=True), self._width(tag))
        elif "grid" in display:
            cols = self._columns(tag)
            rows = [children[i:i + cols] for i in range(0, len(children), cols)]
            height = sum(max(self._height(c) for c in row) for row in rows)
        elif "flex" in display and "column" not in self.style(tag).get("flex-direction", ""):
            height = max(self._height(c) for c in children)
        elif display == "table-row":
            height = max(self._height(c) for c in children)
        else:
            height = self._flow_height(tag)
        self._heights[key] = height
        return height

    def _flow_height(self, tag: Tag) -> float:
        """Stack block children; consecutive inline content shares one line box."""
        total = 0.0
        line = 0.0
        for child in tag.children:
            if isinstance(child, Tag):
                if self.display(child) == "none":
                    continue
                if self.display(child) in _INLINE_DISPLAYS:
                    line = max(line, self._height(child))
                    continue
                total += line + self._height(child)
                line = 0.0
            elif type(child) is NavigableString and child.strip():
                line = max(line, self._text_height(child.strip(), self._width(tag)))
        return total + line

    @staticmethod
    def _text_height(text: str, width: float) -> float:
        if not text:
            return 0.0
        per_line = max(1, int(max(width, CHAR_WIDTH) // CHAR_WIDTH))
        return LINE_HEIGHT * math.ceil(len(text) / per_line)

    def _origin(self, tag: Tag) -> tuple:
        key = id(tag)
        if key in self._origins:
            return self._origins[key]
        parent = self._parent(tag)
        if parent is None:
            origin = (0.0, 0.0)
        else:
            px, py = self._origin(parent)
            before = []
            for sibling in self._element_children(parent):
                if sibling is tag:
                    break
                before.append(sibling)
            parent_display = self.display(parent)
            if "flex" in parent_display and "column" not in self.style(parent).get("flex-direction", ""):
                origin = (px + sum(self._width(s) for s in before), py)
            elif "grid" in parent_display:
                cols = self._columns(parent)
                col = len(before) % cols
                origin = (px + col * self._width(tag), py)
            else:
                flow = [s for s in before if self.display(s) not in _INLINE_DISPLAYS]
                origin = (px, py + sum(self._height(s) for s in flow))
        self._origins[key] = origin
        return origin


def _attr_number(tag: Tag, name: str, default: float) -> float:
    raw = tag.get(name)
    if raw is None:
        return default
    match = _LENGTH_RE.match(str(raw))
    return float(match.group(1)) if match else default
