"""
Read trade workbooks into immutable row grids.

The statistics office publishes an OpenXML workbook, but administrators also
upload legacy ``.xls`` files and CSV exports. All of them are stored under the
same canonical file name, so the format is sniffed from the leading bytes
rather than trusted from the extension. Row and column positions are kept
exactly as they appear in the source because the extractors address cells by
fixed offsets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from io import StringIO
import logging
import math
from pathlib import Path
from typing import Iterable, Iterator, Sequence

import openpyxl
import pandas as pd
import xlrd

from .errors import SourceNotFound, UnreadableFormat

OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0"
ZIP_SIGNATURE = b"PK"

Row = tuple


def _trim_row(values: Iterable[object]) -> Row:
    """Drop trailing empty cells so a row ends at its last populated cell."""
    cells = list(values)
    while cells and cells[-1] is None:
        cells.pop()
    return tuple(cells)


@dataclass(frozen=True)
class Sheet:
    """A named grid of raw cell values, addressed by (row, column)."""

    name: str
    rows: Sequence[Row] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "rows", tuple(_trim_row(row) for row in self.rows))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def row(self, index: int) -> Row:
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return ()

    def cell(self, row: int, col: int) -> object:
        values = self.row(row)
        if 0 <= col < len(values):
            return values[col]
        return None


class Workbook:
    """Loaded workbook exposing its sheets by name, in document order."""

    def __init__(self, sheets: Iterable[Sheet], source: Path | None = None) -> None:
        self._sheets = {sheet.name: sheet for sheet in sheets}
        self.source = source

    @property
    def sheet_names(self) -> list[str]:
        return list(self._sheets)

    def sheet(self, name: str) -> Sheet | None:
        return self._sheets.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._sheets

    def __iter__(self) -> Iterator[Sheet]:
        return iter(self._sheets.values())

    def __repr__(self) -> str:
        return f"Workbook(source={self.source!s}, sheets={self.sheet_names})"


def load_workbook(path: str | Path) -> Workbook:
    """
    Load a spreadsheet from disk.

    Raises:
        SourceNotFound: If ``path`` does not exist.
        UnreadableFormat: If the bytes are not a workbook, legacy workbook
            or CSV text.
    """
    path = Path(path)
    if not path.is_file():
        raise SourceNotFound(f"Source file not found: {path}")

    with open(path, "rb") as handle:
        head = handle.read(8)

    if head.startswith(ZIP_SIGNATURE):
        sheets = _sheets_from_xlsx(path)
    elif head.startswith(OLE2_SIGNATURE):
        sheets = _sheets_from_xls(path)
    else:
        sheets = _sheets_from_csv(path)

    workbook = Workbook(sheets, source=path)
    logging.info("Loaded %s with sheets: %s", path.name, workbook.sheet_names)
    return workbook


def _sheets_from_xlsx(path: Path) -> list[Sheet]:
    try:
        book = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as exc:  # noqa: BLE001
        raise UnreadableFormat(f"Not a readable workbook: {path.name} ({exc})") from exc

    try:
        sheets = []
        for worksheet in book.worksheets:
            rows = worksheet.iter_rows(min_row=1, min_col=1, values_only=True)
            sheets.append(Sheet(worksheet.title, list(rows)))
        return sheets
    finally:
        book.close()


def _xls_cell(cell: xlrd.sheet.Cell) -> object:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_NUMBER and float(cell.value).is_integer():
        return int(cell.value)
    return cell.value


def _sheets_from_xls(path: Path) -> list[Sheet]:
    try:
        book = xlrd.open_workbook(path)
    except Exception as exc:  # noqa: BLE001
        raise UnreadableFormat(f"Not a readable .xls workbook: {path.name} ({exc})") from exc

    sheets = []
    for sheet in book.sheets():
        rows = [
            [_xls_cell(sheet.cell(r, c)) for c in range(sheet.row_len(r))]
            for r in range(sheet.nrows)
        ]
        sheets.append(Sheet(sheet.name, rows))
    return sheets


def _coerce_text(value: object) -> object:
    """Turn a CSV field into a number when it looks like one."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return text
    return number if math.isfinite(number) else text


def _sheets_from_csv(path: Path) -> list[Sheet]:
    raw = path.read_bytes()
    if b"\x00" in raw:
        raise UnreadableFormat(f"Binary content is not CSV text: {path.name}")
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = raw.decode("latin-1")
    if not text.strip():
        raise UnreadableFormat(f"File is empty: {path.name}")

    # Rows are ragged (titles, notes), so size the frame generously; quoted
    # commas only over-count and the surplus columns are trimmed per row.
    width = max(line.count(",") for line in text.splitlines()) + 1
    try:
        frame = pd.read_csv(
            StringIO(text),
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except (pd.errors.ParserError, ValueError) as exc:
        raise UnreadableFormat(f"Not readable as CSV: {path.name} ({exc})") from exc

    rows = [[_coerce_text(value) for value in record] for record in frame.itertuples(index=False)]
    return [Sheet(path.stem, rows)]
