from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import Rect


class Node(ABC):
    """Read-only handle onto one element of a document tree.

    Finders, the scorer and the selector synthesizer are written against this
    interface only. Implementations must hand out the same Node object for
    the same element for as long as the element stays in the tree, so that
    identity comparisons (``is``) are meaningful within one request.
    """

    @property
    @abstractmethod
    def tag(self) -> str:
        """Lower-case tag name."""

    @property
    @abstractmethod
    def id(self) -> str:
        """Element id, or an empty string."""

    @property
    @abstractmethod
    def classes(self) -> List[str]:
        """Class list in document order."""

    @property
    @abstractmethod
    def attributes(self) -> Dict[str, str]:
        ...

    @property
    @abstractmethod
    def parent(self) -> Optional["Node"]:
        ...

    @property
    @abstractmethod
    def children(self) -> List["Node"]:
        """Element children only (text nodes are not included)."""

    @property
    @abstractmethod
    def text(self) -> str:
        """Untrimmed text content of the subtree."""

    @property
    @abstractmethod
    def inner_html(self) -> str:
        ...

    @property
    @abstractmethod
    def rect(self) -> Rect:
        ...

    @property
    @abstractmethod
    def display(self) -> str:
        """Layout display mode (block, flex, grid, inline, table-row, none, ...)."""

    @abstractmethod
    def query_all(self, expression: str) -> List["Node"]:
        """Descendants matching a CSS selector; raises SelectorError when malformed."""

    def query(self, expression: str) -> Optional["Node"]:
        matches = self.query_all(expression)
        return matches[0] if matches else None

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    @property
    def class_name(self) -> str:
        return " ".join(self.classes)

    def __repr__(self) -> str:
        ident = f"#{self.id}" if self.id else ""
        classes = "".join(f".{c}" for c in self.classes)
        return f"<{type(self).__name__} {self.tag}{ident}{classes}>"


@dataclass(frozen=True)
class MutationRecord:
    """One structural change: children added to / removed from ``target``."""

    target: Node
    added: Tuple[Node, ...] = ()
    removed: Tuple[Node, ...] = ()


MutationCallback = Callable[[Sequence[MutationRecord]], None]


class Subscription:
    """Cancellable registration of a mutation callback."""

    def __init__(self, owner: "DocumentTree", callback: MutationCallback) -> None:
        self._owner = owner
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._owner._unsubscribe(self)


class DocumentTree(ABC):
    """Facade over one loaded document.

    Concrete trees provide element access and CSS evaluation. Mutation
    fan-out to subscribers lives here so every tree notifies the same way.
    """

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []
        self._sub_lock = threading.Lock()

    @property
    @abstractmethod
    def root(self) -> Node:
        """The document body (or the outermost element when there is no body)."""

    @property
    def base_url(self) -> Optional[str]:
        return None

    @property
    def title(self) -> str:
        return ""

    @property
    def closed(self) -> bool:
        """True once the document can no longer be accessed."""
        return False

    @abstractmethod
    def query_all(self, expression: str) -> List[Node]:
        """All elements in the document matching a CSS selector."""

    def query(self, expression: str) -> Optional[Node]:
        matches = self.query_all(expression)
        return matches[0] if matches else None

    def subscribe(self, callback: MutationCallback) -> Subscription:
        sub = Subscription(self, callback)
        with self._sub_lock:
            self._subscriptions.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._sub_lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _notify(self, records: Sequence[MutationRecord]) -> None:
        with self._sub_lock:
            subs = list(self._subscriptions)
        for sub in subs:
            if sub.active:
                sub.callback(records)
