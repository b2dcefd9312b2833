"""Structural pattern detection and selector synthesis for HTML documents.

Finds tabular data, item lists and product listings in arbitrary markup,
generates ranked CSS selectors for them, and extracts normalized records
through a cached, pool-backed pipeline.

Key modules:
    tree            -- Node and DocumentTree abstract interfaces, mutation subscriptions
    soup_tree       -- SoupTree, the BeautifulSoup/soupsieve document implementation
    layout          -- StaticLayout geometry and display estimation
    base            -- BaseFinder abstract detect/score/extract pipeline
    tabular         -- TableFinder
    listing         -- ListFinder
    products        -- ProductFinder
    scoring         -- ScoreSheet, thresholds and shared scoring signals
    selectors       -- SelectorSynthesizer and per-kind ranking profiles
    engine          -- ExtractionEngine orchestration, cache and post-processing
    cache           -- ResultCache TTL cache
    processors      -- deduplicate / sort / filter post-processors
    worker_pool     -- WorkerPool with non-blocking slot acquisition
    metrics         -- EngineMetrics for extraction statistics
    picker          -- ElementPicker interactive selection
    service         -- RequestRouter action dispatch
    loader          -- DocumentLoader for markup, files and URLs
    models          -- ScrapeConfig, Candidate, LocatorOption and other dataclasses
    errors          -- exception hierarchy
"""

from .engine import ExtractionEngine
from .errors import (
    ConfigError,
    ExtractionError,
    SelectorError,
    StructscanError,
    TreeAccessError,
    UnknownProcessorError,
    WorkerError,
)
from .loader import DocumentLoader
from .models import CandidateKind, ScrapeConfig, ScrapeMode
from .service import RequestRouter
from .soup_tree import SoupTree

__all__ = [
    "CandidateKind",
    "ConfigError",
    "DocumentLoader",
    "ExtractionEngine",
    "ExtractionError",
    "RequestRouter",
    "ScrapeConfig",
    "ScrapeMode",
    "SelectorError",
    "SoupTree",
    "StructscanError",
    "TreeAccessError",
    "UnknownProcessorError",
    "WorkerError",
]
