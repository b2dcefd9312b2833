from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .engine import ExtractionEngine
from .errors import StructscanError
from .models import Candidate, CandidateKind, Detection, LocatorOption
from .picker import ElementPicker, PickerListener


logger = logging.getLogger(__name__)


class Action(str, Enum):
    EXTRACT = "extract"
    SCRAPE = "scrape"
    TEST_SELECTOR = "testSelector"
    DETECT_STRUCTURES = "detectStructures"
    GET_SELECTORS = "getSelectors"
    GET_STATUS = "getStatus"
    START_ELEMENT_PICKER = "startElementPicker"
    STOP_ELEMENT_PICKER = "stopElementPicker"
    HIGHLIGHT_ELEMENT = "highlightElement"


def locator_to_dict(option: LocatorOption) -> Dict[str, Any]:
    return {
        "selector": option.expression,
        "matches": option.match_count,
        "isExact": option.is_exact_match,
        "score": option.stability_score,
        "length": option.length,
    }


def candidate_to_dict(candidate: Candidate) -> Dict[str, Any]:
    node = candidate.node
    return {
        "tagName": node.tag.upper(),
        "id": node.id,
        "className": node.class_name,
        "score": candidate.score,
        "confidence": candidate.confidence,
        "reasons": list(candidate.reasons),
        "metadata": dict(candidate.metadata),
    }


def detection_to_dict(detection: Detection) -> Dict[str, Any]:
    return {
        "kind": detection.kind.value,
        "candidates": [candidate_to_dict(c) for c in detection.candidates],
        "selectors": {key: [locator_to_dict(o) for o in options] for key, options in detection.locators.items()},
        "confidence": detection.confidence,
    }


class RequestRouter:
    """Answers transport requests (``{"action": ..., ...}``) against an engine.

    Every answer is a plain mapping; failures come back as ``{"error": msg}``
    instead of raising, so the transport can forward them unchanged.
    """

    def __init__(
        self,
        engine: ExtractionEngine,
        default_target: Optional[str] = None,
        picker_listener: Optional[PickerListener] = None,
    ) -> None:
        self._engine = engine
        self._default_target = default_target
        self._picker_listener = picker_listener
        self._pickers: Dict[str, ElementPicker] = {}
        self._handlers: Dict[Action, Callable[[str, Mapping[str, Any]], Dict[str, Any]]] = {
            Action.EXTRACT: self._scrape,
            Action.SCRAPE: self._scrape,
            Action.TEST_SELECTOR: self._test_selector,
            Action.DETECT_STRUCTURES: self._detect_structures,
            Action.GET_SELECTORS: self._get_selectors,
            Action.GET_STATUS: self._get_status,
            Action.START_ELEMENT_PICKER: self._start_picker,
            Action.STOP_ELEMENT_PICKER: self._stop_picker,
            Action.HIGHLIGHT_ELEMENT: self._highlight,
        }

    def handle(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        name = request.get("action")
        try:
            action = Action(name)
        except ValueError:
            return {"error": f"Unknown action: {name}"}

        target = request.get("target") or self._default_target
        if not target:
            return {"error": "no target given"}
        try:
            return self._handlers[action](target, request)
        except StructscanError as exc:
            return {"error": str(exc)}
        except Exception as exc:  # noqa: BLE001
            logger.exception("request %s failed", action.value)
            return {"error": str(exc)}

    def picker(self, target: str) -> ElementPicker:
        tree = self._engine.tree(target)
        picker = self._pickers.get(target)
        if picker is None or picker.tree is not tree:
            picker = ElementPicker(tree, listener=self._picker_listener)
            self._pickers[target] = picker
        return picker

    def _scrape(self, target: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        return self._engine.scrape(target, request.get("config"))

    def _test_selector(self, target: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        return self._engine.test_selector(target, request.get("selector") or "")

    def _detect_structures(self, target: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        detections = self._engine.detect_structures(target)
        return {kind: detection_to_dict(d) for kind, d in detections.items()}

    def _get_selectors(self, target: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        kind = CandidateKind(request.get("kind") or CandidateKind.TABULAR.value)
        options: List[LocatorOption] = self._engine.generate_selectors(target, request.get("selector") or "", kind)
        return {"selectors": [locator_to_dict(o) for o in options]}

    def _get_status(self, target: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        return self._engine.status(target)

    def _start_picker(self, target: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        self.picker(target).start()
        return {"started": True}

    def _stop_picker(self, target: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        picker = self._pickers.get(target)
        if picker is not None:
            picker.stop()
        return {"stopped": True}

    def _highlight(self, target: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        highlighted = self.picker(target).highlight(request.get("selector") or "", int(request.get("index") or 0))
        return {"highlighted": highlighted}
