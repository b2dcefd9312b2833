from __future__ import annotations

import threading
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from .errors import SelectorError, TreeAccessError
from .layout import StaticLayout
from .models import Rect
from .tree import DocumentTree, MutationRecord, Node


class SoupNode(Node):
    """Node backed by a BeautifulSoup ``Tag``."""

    def __init__(self, tree: "SoupTree", tag: Tag) -> None:
        self._tree = tree
        self._tag = tag

    @property
    def tag(self) -> str:
        return self._tag.name.lower()

    @property
    def id(self) -> str:
        value = self._tag.get("id")
        return value.strip() if isinstance(value, str) else ""

    @property
    def classes(self) -> List[str]:
        value = self._tag.get("class") or []
        if isinstance(value, str):
            value = value.split()
        return [c for c in value if c]

    @property
    def attributes(self) -> Dict[str, str]:
        attrs: Dict[str, str] = {}
        for name, value in self._tag.attrs.items():
            attrs[name] = " ".join(value) if isinstance(value, list) else str(value)
        return attrs

    @property
    def parent(self) -> Optional[Node]:
        parent = self._tag.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            return None
        return self._tree._wrap(parent)

    @property
    def children(self) -> List[Node]:
        self._tree._count_traversal()
        return [self._tree._wrap(c) for c in self._tag.children if isinstance(c, Tag)]

    @property
    def text(self) -> str:
        return self._tag.get_text()

    @property
    def inner_html(self) -> str:
        return self._tag.decode_contents()

    @property
    def rect(self) -> Rect:
        return self._tree.layout.rect(self._tag)

    @property
    def display(self) -> str:
        return self._tree.layout.display(self._tag)

    def query_all(self, expression: str) -> List[Node]:
        return self._tree._select(self._tag, expression)


class SoupTree(DocumentTree):
    """DocumentTree over markup parsed with BeautifulSoup; CSS goes through soupsieve.

    ``traversal_count`` is incremented on every selector evaluation and child
    listing, which lets callers observe whether a request touched the tree.
    """

    def __init__(
        self,
        markup: str,
        base_url: Optional[str] = None,
        parser: str = "html.parser",
        viewport_width: float = 1280.0,
    ) -> None:
        super().__init__()
        self._soup = BeautifulSoup(markup, parser)
        self._base_url = base_url
        self._parser = parser
        self._wrappers: Dict[int, SoupNode] = {}
        self._lock = threading.Lock()
        self._traversals = 0
        self._closed = False
        self.layout = StaticLayout(self._soup, viewport_width=viewport_width)

    @property
    def root(self) -> Node:
        self._check_alive()
        top = self._soup.body or self._soup.find(True)
        if top is None:
            raise TreeAccessError("document has no elements")
        return self._wrap(top)

    @property
    def base_url(self) -> Optional[str]:
        return self._base_url

    @property
    def title(self) -> str:
        title = self._soup.title
        return title.get_text(strip=True) if title else ""

    @property
    def traversal_count(self) -> int:
        with self._lock:
            return self._traversals

    def query_all(self, expression: str) -> List[Node]:
        return self._select(self._soup, expression)

    def close(self) -> None:
        """Mark the document as gone; further access raises TreeAccessError."""
        self._closed = True
        self._wrappers.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def insert(self, parent: Node, markup: str, index: Optional[int] = None) -> List[Node]:
        """Parse ``markup`` and append (or insert at ``index``) under ``parent``."""
        self._check_alive()
        parent_tag = self._unwrap(parent)
        fragment = BeautifulSoup(markup, self._parser)
        added: List[Tag] = []
        position = len(parent_tag.contents) if index is None else index
        for item in list(fragment.contents):
            item = item.extract()
            parent_tag.insert(position, item)
            position += 1
            if isinstance(item, Tag):
                added.append(item)
        self.layout.invalidate()
        nodes = [self._wrap(t) for t in added]
        self._notify([MutationRecord(target=parent, added=tuple(nodes))])
        return nodes

    def remove(self, node: Node) -> None:
        """Detach ``node`` (and its subtree) from the document."""
        self._check_alive()
        tag = self._unwrap(node)
        parent = node.parent
        tag.extract()
        self._wrappers.pop(id(tag), None)
        for descendant in tag.find_all(True):
            self._wrappers.pop(id(descendant), None)
        self.layout.invalidate()
        if parent is not None:
            self._notify([MutationRecord(target=parent, removed=(node,))])

    def _select(self, scope: Tag, expression: str) -> List[Node]:
        self._check_alive()
        self._count_traversal()
        if not expression or not expression.strip():
            raise SelectorError(expression, "empty expression")
        try:
            tags = scope.select(expression)
        except (SelectorSyntaxError, ValueError, TypeError, NotImplementedError) as exc:
            raise SelectorError(expression, str(exc).splitlines()[0] if str(exc) else "") from exc
        return [self._wrap(t) for t in tags]

    def _wrap(self, tag: Tag) -> SoupNode:
        node = self._wrappers.get(id(tag))
        if node is None or node._tag is not tag:
            node = SoupNode(self, tag)
            self._wrappers[id(tag)] = node
        return node

    def _unwrap(self, node: Node) -> Tag:
        if not isinstance(node, SoupNode) or node._tree is not self:
            raise TreeAccessError(f"{node!r} does not belong to this document")
        return node._tag

    def _count_traversal(self) -> None:
        with self._lock:
            self._traversals += 1

    def _check_alive(self) -> None:
        if self._closed:
            raise TreeAccessError("document is no longer available")
