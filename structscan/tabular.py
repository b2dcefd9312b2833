from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .base import BaseFinder, Strategy, compact
from .models import Candidate, CandidateKind, ExtractionRecord, ScrapeConfig
from .patterns import clean_text, is_layout_container, is_visible, row_cells, table_rows, text_density
from .scoring import ScoreSheet, consistency, semantic_score
from .tree import Node


MIN_ROWS = 2
MIN_COLS = 2

_SEMANTIC_ATTRS = ("role", "aria-label", "data-table", "data-grid")
_CLASS_WORDS = ("table", "grid", "list", "data", "results", "products")
_CONTENT_WORDS = ("price", "total", "quantity", "description", "name")


class TableFinder(BaseFinder):
    """Finds tabular regions: native tables, div grids, multi-field lists and CSS grids."""

    kind = CandidateKind.TABULAR

    def strategies(self) -> Sequence[Strategy]:
        return (
            self.native_tables,
            self.div_tables,
            self.list_tables,
            self.grid_tables,
        )

    def native_tables(self) -> List[Node]:
        return self._select("table")

    def div_tables(self) -> List[Node]:
        found = []
        for div in self._select("div"):
            rows = div.children
            if len(rows) < MIN_ROWS:
                continue
            cell_count = len(rows[0].children)
            if cell_count < MIN_COLS:
                continue
            if all(len(row.children) == cell_count for row in rows[1:3]):
                found.append(div)
        return found

    def list_tables(self) -> List[Node]:
        found = []
        for lst in self._select("ul, ol"):
            items = lst.children
            if len(items) < MIN_ROWS:
                continue
            if any(len(item.query_all("span, div, p")) >= MIN_COLS for item in items):
                found.append(lst)
        return found

    def grid_tables(self) -> List[Node]:
        found = []
        minimum = MIN_ROWS * MIN_COLS
        for node in self._select("div, section"):
            if not is_layout_container(node):
                continue
            children = node.children
            if len(children) < minimum:
                continue
            if sum(1 for c in children if is_visible(c)) >= minimum:
                found.append(node)
        return found

    def score(self, node: Node) -> Candidate:
        sheet = ScoreSheet()
        native = node.tag == "table"
        if native:
            sheet.add(0.3, "Native table element")

        rows = self.row_count(node)
        columns = self.column_count(node)
        if rows >= 5:
            sheet.add(0.2, "Has 5+ rows")
        if columns >= 3:
            sheet.add(0.15, "Has 3+ columns")

        density = text_density(node)
        if density > 0.1:
            sheet.add(0.1, "Good text density")

        structure = self.structure_score(node)
        sheet.add(structure * 0.15)
        if structure > 0.7:
            sheet.note("Consistent structure")

        sheet.add(semantic_score(
            node,
            _SEMANTIC_ATTRS,
            needles=("table", "grid"),
            class_words=_CLASS_WORDS,
            content_words=_CONTENT_WORDS,
        ))

        if is_visible(node, 100, 50):
            sheet.add(0.1, "Visible on screen")

        return sheet.to_candidate(node, self.kind, {
            "rows": rows,
            "columns": columns,
            "text_density": density,
            "tag": node.tag,
        })

    @staticmethod
    def row_count(node: Node) -> int:
        if node.tag == "table":
            return len(table_rows(node))
        count = 0
        for child in node.children:
            display = child.display
            if ("block" in display or "flex" in display or "grid" in display) and child.rect.height > 0:
                count += 1
        return count

    @staticmethod
    def column_count(node: Node) -> int:
        if node.tag == "table":
            rows = table_rows(node)
            return len(row_cells(rows[0])) if rows else 0
        return max((len(row.children) for row in node.children[:5]), default=0)

    @staticmethod
    def structure_score(node: Node) -> float:
        if node.tag == "table":
            return consistency(
                table_rows(node),
                lambda a, b: len(row_cells(a)) == len(row_cells(b)),
                sample=10,
            )
        return consistency(
            node.children,
            lambda a, b: len(a.children) == len(b.children),
            sample=5,
        )

    def extract(self, node: Node, config: ScrapeConfig) -> List[ExtractionRecord]:
        if node.tag == "table":
            return self._extract_native(node, config)
        return self._extract_div(node, config)

    def _extract_native(self, table: Node, config: ScrapeConfig) -> List[ExtractionRecord]:
        rows = table_rows(table)
        header_row = _header_row(table, rows)
        headers: List[str] = []
        if header_row is not None and config.include_headers:
            headers = [clean_text(cell.text) for cell in row_cells(header_row)]

        records: List[ExtractionRecord] = []
        for row in rows:
            if row is header_row:
                continue
            if len(records) >= config.max_rows:
                break
            record = _row_record(row_cells(row), headers, config.include_html)
            if record:
                records.append(record)
        return records

    def _extract_div(self, container: Node, config: ScrapeConfig) -> List[ExtractionRecord]:
        rows = container.children
        headers: List[str] = []
        if config.include_headers and rows:
            headers = [clean_text(cell.text) for cell in rows[0].children]
            rows = rows[1:]

        records: List[ExtractionRecord] = []
        for row in rows[:config.max_rows]:
            record = _row_record(row.children, headers, config.include_html)
            if record:
                records.append(record)
        return records


def _header_row(table: Node, rows: List[Node]) -> Optional[Node]:
    """The first ``thead`` row, else a first row made only of ``th`` cells."""
    for child in table.children:
        if child.tag == "thead":
            head_rows = [r for r in child.children if r.tag == "tr"]
            if head_rows:
                return head_rows[0]
    if rows:
        cells = row_cells(rows[0])
        if cells and all(c.tag == "th" for c in cells):
            return rows[0]
    return None


def _row_record(cells: Sequence[Node], headers: List[str], include_html: bool) -> ExtractionRecord:
    record: Dict[str, str] = {}
    for index, cell in enumerate(cells):
        header = headers[index] if index < len(headers) and headers[index] else f"Column {index + 1}"
        record[header] = cell.inner_html.strip() if include_html else clean_text(cell.text)
    return compact(record)
