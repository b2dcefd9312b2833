from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from .errors import ConfigError, UnknownProcessorError

if TYPE_CHECKING:
    from .tree import Node


ExtractionRecord = Dict[str, Any]


class CandidateKind(str, Enum):
    TABULAR = "table"
    LIST = "list"
    PRODUCT = "products"


class ScrapeMode(str, Enum):
    AUTO = "auto"
    TABLE = "table"
    LIST = "list"
    PRODUCTS = "products"
    CUSTOM = "custom"


class ProcessorName(str, Enum):
    DEDUPLICATE = "deduplicate"
    SORT = "sort"
    FILTER = "filter"


class FilterOp(str, Enum):
    EXISTS = "exists"
    EQ = "eq"
    NE = "ne"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"


# (min, max) positional arguments accepted by each processor.
_PROCESSOR_ARITY: Dict[ProcessorName, Tuple[int, int]] = {
    ProcessorName.DEDUPLICATE: (0, 0),
    ProcessorName.SORT: (1, 2),
    ProcessorName.FILTER: (2, 3),
}


@dataclass(frozen=True)
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class ProcessorSpec:
    name: ProcessorName
    args: Tuple[Any, ...] = ()

    @classmethod
    def from_dict(cls, raw: Any) -> "ProcessorSpec":
        """Parse a ``{name, args}`` mapping, rejecting names outside the processor table."""
        if isinstance(raw, ProcessorSpec):
            return raw
        if not isinstance(raw, Mapping) or "name" not in raw:
            raise ConfigError(f"processor must be a mapping with a name: {raw!r}")
        try:
            name = ProcessorName(raw["name"])
        except ValueError:
            raise UnknownProcessorError(str(raw["name"])) from None

        args = tuple(raw.get("args") or ())
        low, high = _PROCESSOR_ARITY[name]
        if not low <= len(args) <= high:
            raise ConfigError(f"processor {name.value} expects {low}..{high} args, got {len(args)}")
        if name is ProcessorName.SORT and len(args) == 2 and args[1] not in ("asc", "desc"):
            raise ConfigError(f"sort order must be 'asc' or 'desc', got {args[1]!r}")
        if name is ProcessorName.FILTER:
            try:
                FilterOp(args[1])
            except ValueError:
                raise ConfigError(f"unknown filter operator: {args[1]!r}") from None
        return cls(name=name, args=args)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name.value, "args": list(self.args)}


_CONFIG_ALIASES = {
    "maxRows": "max_rows",
    "maxItems": "max_items",
    "maxProducts": "max_products",
    "includeHeaders": "include_headers",
    "includeHtml": "include_html",
    "includeImages": "include_images",
    "includePrices": "include_prices",
}

_INT_FIELDS = ("max_rows", "max_items", "max_products")
_BOOL_FIELDS = ("include_headers", "include_html", "include_images", "include_prices")


@dataclass(frozen=True)
class ScrapeConfig:
    mode: ScrapeMode = ScrapeMode.AUTO
    selectors: Tuple[str, ...] = ()
    processors: Tuple[ProcessorSpec, ...] = ()
    max_rows: int = 1000
    max_items: int = 1000
    max_products: int = 100
    include_headers: bool = True
    include_html: bool = False
    include_images: bool = True
    include_prices: bool = True

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "ScrapeConfig":
        """Build a config from a wire mapping (camelCase or snake_case keys)."""
        if raw is None:
            return cls()
        if isinstance(raw, ScrapeConfig):
            return raw
        if not isinstance(raw, Mapping):
            raise ConfigError(f"config must be a mapping, got {type(raw).__name__}")

        values: Dict[str, Any] = {}
        for key, value in raw.items():
            name = _CONFIG_ALIASES.get(key, key)
            if value is None:
                continue
            if name == "mode":
                try:
                    values["mode"] = ScrapeMode(value)
                except ValueError:
                    raise ConfigError(f"unknown mode: {value!r}") from None
            elif name == "selectors":
                if isinstance(value, str):
                    value = [value]
                values["selectors"] = tuple(str(s) for s in value)
            elif name == "processors":
                values["processors"] = tuple(ProcessorSpec.from_dict(p) for p in value)
            elif name in _INT_FIELDS:
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ConfigError(f"{key} must be a non-negative integer, got {value!r}")
                values[name] = value
            elif name in _BOOL_FIELDS:
                values[name] = bool(value)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        data["selectors"] = list(self.selectors)
        data["processors"] = [p.to_dict() for p in self.processors]
        return data

    def canonical(self) -> str:
        """Stable serialization used as the config half of the cache fingerprint."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class Candidate:
    node: "Node"
    kind: CandidateKind
    score: float
    confidence: float
    reasons: Tuple[str, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LocatorOption:
    expression: str
    match_count: int
    is_exact_match: bool
    stability_score: float
    length: int


@dataclass(frozen=True)
class Detection:
    kind: CandidateKind
    candidates: Tuple[Candidate, ...]
    locators: Dict[str, List[LocatorOption]]
    confidence: float


@dataclass(frozen=True)
class CacheEntry:
    key: Tuple[str, str]
    value: Tuple[ExtractionRecord, ...]
    created_at: float


@dataclass(frozen=True)
class WorkerJob:
    data: Tuple[ExtractionRecord, ...]
    processors: Tuple[ProcessorSpec, ...]
    action: str = "process"


@dataclass(frozen=True)
class ExtractionEvent:
    target: str
    mode: str
    cache_hit: bool
    record_count: int
    latency_ms: int
    route: Optional[str]
    error_type: Optional[str] = None


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    total_extractions: int
    cache_hits: int
    error_count: int
    worker_jobs: int
    inline_jobs: int
    worker_fallbacks: int
    avg_latency_ms: float
    timestamp: float
