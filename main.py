from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from structscan.engine import ExtractionEngine
from structscan.errors import StructscanError
from structscan.loader import DocumentLoader
from structscan.service import detection_to_dict


DEFAULT_TARGET = "page"


def _parse_processor(raw: str) -> Dict[str, Any]:
    """``name[:arg[:arg...]]``, e.g. ``sort:price:desc`` or ``filter:price:gt:10``."""
    name, *args = raw.split(":")
    return {"name": name, "args": args}


def _build_config(args: argparse.Namespace) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "mode": args.mode,
        "selectors": args.selector or [],
        "processors": [_parse_processor(p) for p in args.processor or []],
        "maxRows": args.max_rows,
        "maxItems": args.max_items,
        "maxProducts": args.max_products,
        "includeHeaders": not args.no_headers,
        "includeHtml": args.include_html,
        "includeImages": not args.no_images,
        "includePrices": not args.no_prices,
    }
    if config["selectors"] and args.mode == "auto":
        config["mode"] = "custom"
    return config


def run(args: argparse.Namespace) -> int:
    loader = DocumentLoader(timeout=args.timeout, parser=args.parser)
    if args.file:
        tree = loader.load_file(args.file, base_url=args.base_url)
    else:
        tree = loader.fetch(args.url, impersonate=args.impersonate)

    with ExtractionEngine(pool_size=args.workers, slow_extraction_ms=args.slow_ms) as engine:
        engine.attach(DEFAULT_TARGET, tree)
        if args.detect:
            detections = engine.detect_structures(DEFAULT_TARGET)
            output: Any = {kind: detection_to_dict(d) for kind, d in detections.items()}
        else:
            output = engine.scrape(DEFAULT_TARGET, _build_config(args))
        print(json.dumps(output, ensure_ascii=False, indent=2 if args.pretty else None, default=str))
        if args.stats:
            snap = engine.metrics.snapshot(window_secs=3600)
            print(json.dumps(asdict(snap), ensure_ascii=False), file=sys.stderr)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Detect and extract structured data from an HTML page")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", help="Page URL to fetch")
    source.add_argument("--file", help="Local HTML file to load")
    parser.add_argument("--base-url", default=None, help="Base URL for resolving links in --file documents")

    parser.add_argument("--mode", default="auto", choices=["auto", "table", "list", "products", "custom"])
    parser.add_argument("--selector", action="append", help="CSS selector for custom mode (repeatable)")
    parser.add_argument("--processor", action="append", help="Post-processor name[:args], e.g. sort:price:desc")
    parser.add_argument("--detect", action="store_true", help="Report detected structures and selectors instead")

    parser.add_argument("--max-rows", type=int, default=1000)
    parser.add_argument("--max-items", type=int, default=1000)
    parser.add_argument("--max-products", type=int, default=100)
    parser.add_argument("--no-headers", action="store_true", help="Do not use the first row as table headers")
    parser.add_argument("--include-html", action="store_true", help="Keep inner markup instead of text")
    parser.add_argument("--no-images", action="store_true")
    parser.add_argument("--no-prices", action="store_true")

    parser.add_argument("--impersonate", default=None, help="Browser to impersonate with curl_cffi, e.g. chrome120")
    parser.add_argument("--timeout", type=int, default=20, help="Fetch timeout seconds")
    parser.add_argument("--parser", default="html.parser", help="BeautifulSoup parser name")
    parser.add_argument("--workers", type=int, default=None, help="Post-processing worker count")
    parser.add_argument("--slow-ms", type=int, default=100, help="Warn when an extraction takes longer")

    parser.add_argument("--pretty", action="store_true")
    parser.add_argument("--stats", action="store_true", help="Print a metrics snapshot to stderr")
    parser.add_argument("--log-level", default="WARNING")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        return run(args)
    except StructscanError as exc:
        print(json.dumps({"error": str(exc)}, ensure_ascii=False))
        return 1


if __name__ == "__main__":
    sys.exit(main())
