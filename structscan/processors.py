"""Post-processing of extracted records.

Every processor is a pure function over a list of records: it returns a new
list and never mutates its input. The worker pool and the inline fallback both
go through ``run_job`` so they produce identical output.
"""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .models import ExtractionRecord, FilterOp, ProcessorName, ProcessorSpec, WorkerJob


_NUMERIC_RE = re.compile(r"-?\d+(?:\.\d+)?")


def to_number(value: Any) -> Optional[float]:
    """Numeric value of ``value``; strings like ``"$1,299.00"`` are read as 1299.0."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMERIC_RE.search(value.replace(",", ""))
        if match:
            return float(match.group(0))
    return None


def deduplicate(data: Sequence[ExtractionRecord]) -> List[ExtractionRecord]:
    seen = set()
    result = []
    for record in data:
        key = json.dumps(record, sort_keys=True, default=str)
        if key in seen:
            continue
        seen.add(key)
        result.append(record)
    return result


def sort_records(data: Sequence[ExtractionRecord], key: str, order: str = "asc") -> List[ExtractionRecord]:
    """Sort by ``key``; numbers before text, records missing the key always last."""
    numbers: List[Tuple[float, ExtractionRecord]] = []
    texts: List[Tuple[str, ExtractionRecord]] = []
    missing: List[ExtractionRecord] = []
    for record in data:
        value = record.get(key)
        if value in (None, ""):
            missing.append(record)
            continue
        number = to_number(value)
        if number is not None:
            numbers.append((number, record))
        else:
            texts.append((str(value).lower(), record))

    reverse = order == "desc"
    numbers.sort(key=lambda pair: pair[0], reverse=reverse)
    texts.sort(key=lambda pair: pair[0], reverse=reverse)
    return [r for _, r in numbers] + [r for _, r in texts] + missing


def filter_records(
    data: Sequence[ExtractionRecord],
    key: str,
    op: str,
    value: Any = None,
) -> List[ExtractionRecord]:
    check = _FILTERS[FilterOp(op)]
    return [r for r in data if check(r.get(key), value)]


def _exists(actual: Any, _expected: Any) -> bool:
    return actual not in (None, "", [], {})


def _contains(actual: Any, expected: Any) -> bool:
    return actual is not None and str(expected).lower() in str(actual).lower()


def _compare(pick: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def check(actual: Any, expected: Any) -> bool:
        left, right = to_number(actual), to_number(expected)
        return left is not None and right is not None and pick(left, right)
    return check


_FILTERS: Dict[FilterOp, Callable[[Any, Any], bool]] = {
    FilterOp.EXISTS: _exists,
    FilterOp.EQ: lambda actual, expected: actual is not None and str(actual) == str(expected),
    FilterOp.NE: lambda actual, expected: actual is None or str(actual) != str(expected),
    FilterOp.CONTAINS: _contains,
    FilterOp.GT: _compare(lambda a, b: a > b),
    FilterOp.LT: _compare(lambda a, b: a < b),
}

PROCESSORS: Dict[ProcessorName, Callable[..., List[ExtractionRecord]]] = {
    ProcessorName.DEDUPLICATE: deduplicate,
    ProcessorName.SORT: sort_records,
    ProcessorName.FILTER: filter_records,
}


def run_processors(data: Sequence[ExtractionRecord], specs: Sequence[ProcessorSpec]) -> List[ExtractionRecord]:
    """Apply ``specs`` in order; the input sequence is left untouched."""
    result = list(data)
    for spec in specs:
        result = PROCESSORS[spec.name](result, *spec.args)
    return result


def run_job(job: WorkerJob) -> List[ExtractionRecord]:
    if job.action != "process":
        raise ValueError(f"unsupported worker action: {job.action!r}")
    return run_processors(job.data, job.processors)
