from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .errors import SelectorError
from .selectors import escape
from .tree import DocumentTree, Node


logger = logging.getLogger(__name__)

PickerListener = Callable[[Dict[str, Any]], None]


class ElementPicker:
    """Interactive "pick an element" session over one document.

    There is no overlay here: the picker keeps track of the highlighted node
    and reports picks and cancellations to ``listener`` as message mappings.
    """

    def __init__(self, tree: DocumentTree, listener: Optional[PickerListener] = None) -> None:
        self._tree = tree
        self._listener = listener
        self.active = False
        self.highlighted: Optional[Node] = None

    @property
    def tree(self) -> DocumentTree:
        return self._tree

    def start(self) -> None:
        if self.active:
            return
        self.active = True
        logger.debug("element picker started")

    def stop(self) -> None:
        if not self.active:
            return
        self.active = False
        self.highlighted = None
        logger.debug("element picker stopped")

    def hover(self, node: Node) -> Optional[Dict[str, Any]]:
        """Highlight ``node`` and describe it; ignored while the picker is stopped."""
        if not self.active:
            return None
        self.highlighted = node
        return {
            "tag": node.tag,
            "id": f"#{node.id}" if node.id else "",
            "classes": "".join(f".{c}" for c in node.classes),
            "selector": self.generate_selector(node),
        }

    def pick(self, node: Optional[Node] = None) -> Optional[Dict[str, Any]]:
        if not self.active:
            return None
        node = node or self.highlighted
        if node is None:
            return None
        message = {
            "action": "elementPicked",
            "selector": self.generate_selector(node),
            "element": {
                "tagName": node.tag.upper(),
                "className": node.class_name,
                "id": node.id,
                "text": node.text.strip()[:200],
            },
        }
        self._emit(message)
        self.stop()
        return message

    def cancel(self) -> Dict[str, Any]:
        self.stop()
        message = {"action": "pickerCancelled"}
        self._emit(message)
        return message

    def highlight(self, expression: str, index: int = 0) -> bool:
        """Highlight the ``index``-th match of ``expression``; False when there is none."""
        try:
            matches = self._tree.query_all(expression)
        except SelectorError as exc:
            logger.warning("failed to highlight element: %s", exc)
            return False
        if 0 <= index < len(matches):
            self.highlighted = matches[index]
            return True
        return False

    def generate_selector(self, node: Node) -> str:
        """Single best-effort selector: id, then a rare class, then an ancestor path."""
        if node.id:
            return f"#{escape(node.id)}"
        classes = node.classes
        if len(classes) == 1:
            selector = f".{escape(classes[0])}"
            try:
                count = len(self._tree.query_all(selector))
            except SelectorError:
                count = 0
            if 0 < count < 10:
                return selector
        return self.path_selector(node)

    def path_selector(self, node: Node) -> str:
        root = self._tree.root
        path: List[str] = []
        current: Optional[Node] = node
        depth = 0
        while current is not None and current is not root and depth < 6:
            part = current.tag
            if current.id:
                path.insert(0, f"{part}#{escape(current.id)}")
                break
            if len(current.classes) == 1:
                part += f".{escape(current.classes[0])}"
            path.insert(0, part)
            current = current.parent
            depth += 1
        return " > ".join(path) if path else node.tag

    def _emit(self, message: Dict[str, Any]) -> None:
        if self._listener is not None:
            self._listener(message)
