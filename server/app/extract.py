"""
Per-sheet extraction of IMTS tables into dashboard records.

Each statistics table has a few title rows, then one row per period,
commodity, partner or category. Values are read from fixed column offsets.
Those offsets drift by a column or two between releases of the workbook, so
every value is read through a fallback chain: the first populated column of
the chain wins. When header labels are configured for a table, they are
looked up in the title rows first and the offsets are only used when no
label matches.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import re
from typing import Iterable, Sequence

import pandas as pd

from .transport import aggregate_modes
from .workbook import Row, Sheet

Record = dict[str, object]

BALANCE_SENTINELS = {"Period", "Annually", "Monthly"}
COMMODITY_HEADER = "Commodity"
HS_HEADER = "Period"
COUNTRY_EXCLUDE = (
    "COUNTRY",
    "Notes:",
    "Source:",
    "*",
    "TOTAL",
    "All others",
    "Annually",
    "Monthly",
    "ANNUALLY",
    "MONTHLY",
)
REGION_EXCLUDE = ("REGION", "Notes:", "Source:", "TOTAL", "Annually", "Monthly")
TRANSPORT_SECTIONS = ("IMPORTS", "EXPORTS")
TRANSPORT_ROW = re.compile(r"^(Sea|Air|Other|Post|Mail|Courier)", re.IGNORECASE)

BALANCE_LIMIT = 20
COUNTRY_LIMIT = 20
HS_LIMIT = 20
HS_SCAN_ROWS = 50


@dataclass(frozen=True)
class YearColumns:
    """Fallback chains for the previous-year and current-year value columns."""

    previous: tuple[int, ...]
    current: tuple[int, ...]
    previous_labels: tuple[str, ...] = ()
    current_labels: tuple[str, ...] = ()

    def resolve(self, sheet: Sheet, skip_rows: int) -> tuple[tuple[int, ...], tuple[int, ...]]:
        return (
            resolve_columns(sheet, skip_rows, self.previous_labels, self.previous),
            resolve_columns(sheet, skip_rows, self.current_labels, self.current),
        )


COMMODITY_COLUMNS = YearColumns(previous=(84, 85, 86), current=(96, 97, 98))
COUNTRY_COLUMNS = YearColumns(previous=(86, 87, 88), current=(98, 99, 100))
REGION_COLUMNS = YearColumns(previous=(64, 65, 66), current=(73, 74, 75))
TRANSPORT_COLUMNS = YearColumns(previous=(86, 87, 88), current=(98, 99, 100))
AGREEMENT_COLUMNS = YearColumns(previous=(60, 61, 62), current=(70, 71, 72))


def _normalize_header(value: object) -> str:
    """Normalize a header by removing whitespace, hyphens, and converting to lowercase."""
    return re.sub(r"[\s_\-]+", "", str(value or "").strip().lower())


def _truthy(value: object) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _cell(row: Row, index: int) -> object:
    return row[index] if 0 <= index < len(row) else None


def to_number(value: object) -> float:
    """
    Coerce a cell to a finite number.

    Absent, boolean and non-numeric cells become ``0``. Text is parsed after
    removing thousands separators.
    """
    if value is None or isinstance(value, bool):
        return 0
    if _is_number(value):
        return value if math.isfinite(value) else 0
    if not isinstance(value, str):
        return 0
    number = pd.to_numeric(value.replace(",", "").strip(), errors="coerce")
    if pd.isna(number) or not math.isfinite(number):
        return 0
    if hasattr(number, "item"):
        number = number.item()
    return number


def first_present(row: Row, columns: Iterable[int]) -> object:
    """Return the first populated cell among ``columns``, else ``0``."""
    for index in columns:
        value = _cell(row, index)
        if _truthy(value):
            return value
    return 0


def round2(value: float) -> float:
    """Round half up to two decimal places."""
    return math.floor(value * 100 + 0.5) / 100


def format_period(value: object) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _clean_code(value: object) -> object:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def resolve_columns(
    sheet: Sheet,
    skip_rows: int,
    labels: Sequence[str],
    fallback: tuple[int, ...],
) -> tuple[int, ...]:
    """
    Find the column whose title matches one of ``labels``.

    Only the skipped title rows are searched. Exact (normalized) matches win
    over substring matches; without a match the ``fallback`` chain is used.
    """
    keys = [_normalize_header(label) for label in labels if _normalize_header(label)]
    if not keys:
        return fallback

    header_cells = [
        (col, _normalize_header(value))
        for r in range(min(skip_rows, len(sheet)))
        for col, value in enumerate(sheet.row(r))
        if isinstance(value, (str, int, float)) and not isinstance(value, bool)
    ]
    for key in keys:
        for col, text in header_cells:
            if text == key:
                return (col,)
    for key in keys:
        for col, text in header_cells:
            if key in text:
                return (col,)
    logging.info("No header matched %s in %s; using columns %s", list(labels), sheet.name, fallback)
    return fallback


def extract_balance_of_trade(sheet: Sheet, skip_rows: int = 3) -> list[Record]:
    """
    Monthly and annual exports, imports and balance, most recent 20 rows.

    Rows are kept only when the period cell is numeric and at least one of
    exports or imports is positive. A missing balance is derived from the
    rounded exports and imports.
    """
    records: list[Record] = []
    for row in sheet.rows[skip_rows:]:
        period = _cell(row, 0)
        if period in BALANCE_SENTINELS or not _is_number(period) or not _truthy(period):
            continue

        exports = to_number(_cell(row, 2))
        imports = to_number(_cell(row, 3))
        if not (exports > 0 or imports > 0):
            continue

        exports = round2(exports)
        imports = round2(imports)
        balance = to_number(_cell(row, 4)) or exports - imports
        records.append(
            {
                "period": format_period(period),
                "exports": exports,
                "imports": imports,
                "balance": round2(balance),
            }
        )

    logging.info("Balance of Trade: %s records", len(records))
    return records[-BALANCE_LIMIT:]


def extract_principal_commodities(
    sheet: Sheet,
    skip_rows: int = 4,
    columns: YearColumns = COMMODITY_COLUMNS,
) -> list[Record]:
    """Principal export or import commodities ordered by year-to-date value."""
    previous, current = columns.resolve(sheet, skip_rows)
    records: list[Record] = []
    for row in sheet.rows[skip_rows:]:
        commodity = _cell(row, 0)
        if not isinstance(commodity, str) or not commodity or commodity == COMMODITY_HEADER:
            continue

        value_previous = to_number(first_present(row, previous))
        value_current = to_number(first_present(row, current))
        records.append(
            {
                "commodity": commodity,
                "value2024": value_previous,
                "value2025": value_current,
                "ytd": value_current or value_previous or 0,
            }
        )

    logging.info("%s: %s commodities", sheet.name, len(records))
    kept = [record for record in records if record["commodity"] and record["ytd"] > 0]
    return sorted(kept, key=lambda record: record["ytd"], reverse=True)


def _partner_records(
    sheet: Sheet,
    skip_rows: int,
    columns: YearColumns,
    key: str,
    exclude: Sequence[str],
    min_length: int = 0,
) -> list[Record]:
    previous, current = columns.resolve(sheet, skip_rows)
    records: list[Record] = []
    for row in sheet.rows[skip_rows:]:
        name = _cell(row, 0)
        if not isinstance(name, str) or not name:
            continue
        if any(keyword in name for keyword in exclude):
            continue
        if len(name) < min_length:
            continue

        value_previous = to_number(first_present(row, previous))
        value_current = to_number(first_present(row, current))
        volume = abs(value_current or value_previous or 0)
        if volume > 0:
            records.append(
                {
                    key: name.strip(),
                    "value2024": round2(abs(value_previous)),
                    "value2025": round2(abs(value_current)),
                    "tradeVolume": round2(volume),
                }
            )
    return sorted(records, key=lambda record: record["tradeVolume"], reverse=True)


def extract_trade_by_country(
    sheet: Sheet,
    skip_rows: int = 4,
    columns: YearColumns = COUNTRY_COLUMNS,
) -> list[Record]:
    """Top 20 partner countries by trade volume."""
    records = _partner_records(sheet, skip_rows, columns, "country", COUNTRY_EXCLUDE, min_length=3)
    logging.info("Trade by Country: %s countries", len(records))
    return records[:COUNTRY_LIMIT]


def extract_trade_by_region(
    sheet: Sheet,
    skip_rows: int = 4,
    columns: YearColumns = REGION_COLUMNS,
) -> list[Record]:
    """All partner regions by trade volume; regional totals are excluded."""
    records = _partner_records(sheet, skip_rows, columns, "region", REGION_EXCLUDE)
    logging.info("Trade by Region: %s regions", len(records))
    return records


def transport_pairs(
    sheet: Sheet,
    skip_rows: int = 0,
    columns: YearColumns = TRANSPORT_COLUMNS,
) -> list[tuple[str, float]]:
    """Raw ``(label, value)`` rows found under the IMPORTS/EXPORTS sections."""
    previous, current = columns.resolve(sheet, skip_rows)
    pairs: list[tuple[str, float]] = []
    in_section = False
    for row in sheet.rows[skip_rows:]:
        label = _cell(row, 0)
        if not isinstance(label, str) or not label:
            continue
        if any(section in label for section in TRANSPORT_SECTIONS):
            in_section = True
            continue
        if in_section and TRANSPORT_ROW.match(label):
            value_previous = to_number(first_present(row, previous))
            value_current = to_number(first_present(row, current))
            pairs.append((label.strip(), value_current or value_previous or 0))
    return pairs


def extract_trade_by_transport(
    sheet: Sheet,
    skip_rows: int = 0,
    columns: YearColumns = TRANSPORT_COLUMNS,
) -> list[Record]:
    records = aggregate_modes(transport_pairs(sheet, skip_rows, columns))
    logging.info("Trade by Transport: %s modes", len(records))
    return records


def extract_trade_by_agreement(
    sheet: Sheet,
    skip_rows: int = 3,
    columns: YearColumns = AGREEMENT_COLUMNS,
) -> list[Record]:
    previous, current = columns.resolve(sheet, skip_rows)
    records: list[Record] = []
    for row in sheet.rows[skip_rows:]:
        name = _cell(row, 0)
        if not isinstance(name, str) or not name:
            continue
        value_previous = to_number(first_present(row, previous))
        value_current = to_number(first_present(row, current))
        records.append({"agreement": name.strip(), "value": value_current or value_previous or 0})

    logging.info("Trade Agreements: %s agreements", len(records))
    return [record for record in records if record["agreement"] and record["value"] > 0]


def extract_by_hs(sheet: Sheet, skip_rows: int = 3) -> list[Record]:
    """
    Top 20 HS sections by value.

    Only the first 50 rows after the titles are scanned. The value is the last
    populated cell of the row (the latest period), falling back to the one
    before it.
    """
    records: list[Record] = []
    for row in sheet.rows[skip_rows : skip_rows + HS_SCAN_ROWS]:
        code = _cell(row, 0)
        if not _truthy(code) or code == HS_HEADER:
            continue
        code = _clean_code(code)
        description = _cell(row, 1)
        if not _truthy(description):
            description = f"HS {code}"

        raw = first_present(row, (len(row) - 1, len(row) - 2))
        value = to_number(raw)
        if value > 0:
            records.append({"code": code, "description": description, "value": value})

    logging.info("%s: %s categories", sheet.name, len(records))
    records.sort(key=lambda record: record["value"], reverse=True)
    return records[:HS_LIMIT]


def parse_sheet_table(sheet: Sheet, skip_rows: int = 4) -> dict[str, list]:
    """
    Generic ``{headers, data}`` view of a sheet.

    Row ``skip_rows`` holds the headers; every later non-blank row becomes a
    mapping of header to cell value. Columns without a header are dropped.
    """
    if len(sheet) <= skip_rows:
        return {"headers": [], "data": []}

    headers = list(sheet.row(skip_rows))
    data = []
    for row in sheet.rows[skip_rows + 1 :]:
        if not any(value is not None and value != "" for value in row):
            continue
        data.append(
            {
                str(header): _cell(row, index)
                for index, header in enumerate(headers)
                if _truthy(header)
            }
        )
    return {"headers": headers, "data": data}


def _unique_headers(values: Row, width: int) -> list[str]:
    headers: list[str] = []
    seen: dict[str, int] = {}
    for index in range(width):
        value = _cell(values, index)
        name = str(value).strip() if _truthy(value) else f"Unnamed: {index}"
        if name in seen:
            seen[name] += 1
            name = f"{name}.{seen[name]}"
        else:
            seen[name] = 0
        headers.append(name)
    return headers


def sheet_to_records(sheet: Sheet) -> list[Record]:
    """First row as headers, one mapping per later non-blank row, gaps as ``None``."""
    if not len(sheet):
        return []
    width = max(len(row) for row in sheet.rows)
    headers = _unique_headers(sheet.row(0), width)
    return [
        {header: _cell(row, index) for index, header in enumerate(headers)}
        for row in sheet.rows[1:]
        if any(value is not None and value != "" for value in row)
    ]
