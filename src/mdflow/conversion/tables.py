"""HTML table parsing and Markdown table rendering."""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, TypeVar

from bs4 import Tag

from ..models.document import new_tag

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Tag)

# Element that carries pre-rendered Markdown for a table
TABLE_PLACEHOLDER_TAG = "mdflow-table"

MAX_SPAN = 1000
WIDE_TABLE_COLUMNS = 20

_WHITESPACE = re.compile(r"\s+")
_TEXT_ALIGN = re.compile(r"text-align\s*:\s*(left|center|right)", re.IGNORECASE)
_ALIGN_CLASS = re.compile(r"^text-(left|center|right)$")

SEPARATORS = {None: "---", "left": "---", "center": ":---:", "right": "---:"}


@dataclass
class TableCell:
    text: str = ""
    colspan: int = 1
    rowspan: int = 1
    is_header: bool = False
    alignment: Optional[str] = None


@dataclass
class TableRow:
    cells: list[TableCell] = field(default_factory=list)
    is_header: bool = False

    @property
    def width(self) -> int:
        return sum(cell.colspan for cell in self.cells)


@dataclass
class TableModel:
    """Parsed table. Rows keep their cells unexpanded; see expand_row()."""

    rows: list[TableRow] = field(default_factory=list)

    @property
    def columns(self) -> int:
        return max((row.width for row in self.rows), default=0)

    @property
    def has_headers(self) -> bool:
        return any(row.is_header for row in self.rows)


@dataclass
class TableValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


def _span(cell: Tag, attr: str) -> int:
    try:
        value = int(str(cell.get(attr, 1)).strip())
    except ValueError:
        return 1
    return min(max(value, 1), MAX_SPAN)


def _alignment(cell: Tag) -> Optional[str]:
    style = str(cell.get("style", ""))
    match = _TEXT_ALIGN.search(style)
    if match:
        return match.group(1).lower()
    classes = cell.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    for cls in classes:
        class_match = _ALIGN_CLASS.match(cls)
        if class_match:
            return class_match.group(1)
    align = str(cell.get("align", "")).strip().lower()
    if align in ("left", "center", "right"):
        return align
    return None


def cell_text(cell: Tag) -> str:
    """Cell text on one line with pipes escaped."""
    text = _WHITESPACE.sub(" ", cell.get_text(" ")).strip()
    return text.replace("|", "\\|")


def expand_row(row: TableRow, columns: int) -> list[TableCell]:
    """
    Expand colspans into continuation cells and pad to columns.

    Rowspans are not carried into the rows below.
    """
    expanded: list[TableCell] = []
    for cell in row.cells:
        expanded.append(cell)
        for _ in range(cell.colspan - 1):
            expanded.append(TableCell(is_header=cell.is_header, alignment=cell.alignment))
    while len(expanded) < columns:
        expanded.append(TableCell(is_header=row.is_header))
    return expanded[:columns] if columns else expanded


class TableFormatter:
    """
    Converts HTML tables to Markdown tables.

    Example:
        formatter = TableFormatter()
        model = formatter.parse(table_element)
        markdown = formatter.render(model)
    """

    def _own_rows(self, table: Tag) -> list[Tag]:
        rows = [tr for tr in table.find_all("tr") if tr.find_parent("table") is table]
        head_rows = [tr for tr in rows if tr.parent is not None and tr.parent.name == "thead"]
        head_ids = {id(tr) for tr in head_rows}
        return head_rows + [tr for tr in rows if id(tr) not in head_ids]

    def _parse_row(self, tr: Tag) -> TableRow:
        cell_elements = tr.find_all(["td", "th"], recursive=False)
        in_thead = tr.parent is not None and tr.parent.name == "thead"
        is_header = in_thead or (bool(cell_elements) and all(c.name == "th" for c in cell_elements))

        cells: list[TableCell] = []
        for element in cell_elements:
            try:
                cells.append(
                    TableCell(
                        text=cell_text(element),
                        colspan=_span(element, "colspan"),
                        rowspan=_span(element, "rowspan"),
                        is_header=element.name == "th" or in_thead,
                        alignment=_alignment(element),
                    )
                )
            except Exception as e:
                logger.warning(f"Rendering malformed table cell as empty: {e}")
                cells.append(TableCell(is_header=is_header))
        return TableRow(cells=cells, is_header=is_header)

    def parse(self, table: Tag) -> TableModel:
        """Parse a <table> element. Rows of nested tables are left to their own table."""
        rows: list[TableRow] = []
        for tr in self._own_rows(table):
            try:
                row = self._parse_row(tr)
            except Exception as e:
                logger.warning(f"Skipping malformed table row: {e}")
                continue
            if row.cells:
                rows.append(row)
        return TableModel(rows=rows)

    def render(self, model: TableModel) -> str:
        """
        Render a table model as a Markdown pipe table.

        The first header row (or the first row) goes on top; the separator
        line carries each header cell's alignment.
        """
        columns = model.columns
        if not model.rows or columns == 0:
            return ""

        header_index = next((i for i, row in enumerate(model.rows) if row.is_header), 0)
        header = expand_row(model.rows[header_index], columns)
        body = [expand_row(row, columns) for i, row in enumerate(model.rows) if i != header_index]

        lines = [self._line(header)]
        lines.append("|" + "|".join(SEPARATORS.get(cell.alignment, "---") for cell in header) + "|")
        lines.extend(self._line(cells) for cells in body)
        return "\n".join(lines)

    @staticmethod
    def _line(cells: list[TableCell]) -> str:
        return "| " + " | ".join(cell.text for cell in cells) + " |"

    def process_tables(self, subtree: T) -> T:
        """
        Replace every outermost table in a copy of subtree with rendered Markdown.

        A table nested in a cell contributes its text to that cell.
        """
        root = copy.copy(subtree)
        outermost = [table for table in root.find_all("table") if table.find_parent("table") is None]
        for table in outermost:
            try:
                markdown = self.render(self.parse(table))
            except Exception as e:
                logger.warning(f"Leaving table unconverted: {e}")
                continue
            if markdown:
                placeholder = new_tag(TABLE_PLACEHOLDER_TAG, text=markdown)
                for key, value in table.attrs.items():
                    if key.startswith("data-mdflow"):
                        placeholder[key] = value
                table.replace_with(placeholder)
            else:
                table.extract()
        return root

    def optimize(self, model: TableModel) -> TableModel:
        """Drop rows without text and columns that are empty in every row."""
        rows = [row for row in model.rows if any(cell.text for cell in row.cells)]
        if not rows:
            return TableModel(rows=[])

        columns = TableModel(rows=rows).columns
        expanded = [expand_row(row, columns) for row in rows]
        keep = [col for col in range(columns) if any(cells[col].text for cells in expanded)]

        optimized = []
        for row, cells in zip(rows, expanded):
            kept = [TableCell(c.text, 1, c.rowspan, c.is_header, c.alignment) for i, c in enumerate(cells) if i in keep]
            optimized.append(TableRow(cells=kept, is_header=row.is_header))
        return TableModel(rows=optimized)

    def validate(self, model: TableModel) -> TableValidation:
        errors: list[str] = []
        if not model.rows:
            return TableValidation(valid=False, errors=["Table has no rows"])

        widths = [row.width for row in model.rows]
        if max(widths) != min(widths):
            errors.append(f"Table has inconsistent column counts: min={min(widths)}, max={max(widths)}")
        if max(widths) > WIDE_TABLE_COLUMNS:
            errors.append(f"Table is very wide: {max(widths)} columns")
        return TableValidation(valid=not errors, errors=errors)

    def extract_table_data(self, table: Tag) -> list[list[str]]:
        """Table cell texts as a grid with spans expanded."""
        model = self.parse(table)
        return [[cell.text for cell in expand_row(row, model.columns)] for row in model.rows]

    def rows_to_markdown(self, data: list[list[str]], headers: Optional[list[str]] = None) -> str:
        """Render a grid of strings; the first row is the header unless headers are given."""
        if not data and not headers:
            return ""
        rows = [list(map(str, r)) for r in data]
        header = list(headers) if headers else rows.pop(0)
        model = TableModel(rows=[TableRow([TableCell(text=t) for t in header], is_header=True)])
        model.rows.extend(TableRow([TableCell(text=t) for t in r]) for r in rows)
        return self.render(model)
