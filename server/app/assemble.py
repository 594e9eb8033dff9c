"""
Assemble the dashboard dataset from a trade workbook and write it as JSON.

The dataset is rebuilt from scratch on every run. A sheet that is missing
from the workbook leaves its dataset empty instead of failing the run; any
other failure aborts the run.

Run from the repository root:
    imts-process data/current_data.xlsx -o public/data.json
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
import json
import logging
from pathlib import Path
import sys
from typing import Callable, Sequence

from . import config
from .errors import ImtsError, ProcessingFailure
from .extract import (
    Record,
    extract_balance_of_trade,
    extract_by_hs,
    extract_principal_commodities,
    extract_trade_by_agreement,
    extract_trade_by_country,
    extract_trade_by_region,
    extract_trade_by_transport,
    parse_sheet_table,
)
from .workbook import Sheet, Workbook, load_workbook

Extractor = Callable[[Sheet, int], list[Record]]


@dataclass(frozen=True)
class DatasetSpec:
    key: str
    sheet: str
    skip_rows: int
    extractor: Extractor
    label: str


# Extraction order is also the key order of the output document.
DATASETS: tuple[DatasetSpec, ...] = (
    DatasetSpec("balanceOfTrade", "1_BalanceOfTrade", 3, extract_balance_of_trade, "Balance of Trade"),
    DatasetSpec("principalExports", "6_PrincipalExports", 4, extract_principal_commodities, "Principal Exports"),
    DatasetSpec("principalImports", "7_PrincipalImports", 4, extract_principal_commodities, "Principal Imports"),
    DatasetSpec("tradeByCountry", "8_BalanceOfTradePartnerCountry", 4, extract_trade_by_country, "Trade Countries"),
    DatasetSpec("tradeByRegion", "9_BalanceOfTradeRegion", 4, extract_trade_by_region, "Trade Regions"),
    DatasetSpec("tradeByTransport", "10_TradeByModeTransport", 0, extract_trade_by_transport, "Transport Modes"),
    DatasetSpec("tradeByAgreement", "11_TradeByTradeAgreement", 3, extract_trade_by_agreement, "Trade Agreements"),
    DatasetSpec("importsByHS", "2_ImportsByHS", 3, extract_by_hs, "Imports by HS"),
    DatasetSpec("exportsByHS", "3_ExportsByHS", 3, extract_by_hs, "Exports by HS"),
)

# Header-row positions for the generic {headers, data} variant.
TABLE_SHEETS: tuple[tuple[str, str, int], ...] = (
    ("balanceOfTrade", "1_BalanceOfTrade", 3),
    ("importsByHS", "2_ImportsByHS", 4),
    ("exportsByHS", "3_ExportsByHS", 4),
    ("principalExports", "6_PrincipalExports", 4),
    ("principalImports", "7_PrincipalImports", 4),
    ("tradeByCountry", "8_BalanceOfTradePartnerCountry", 4),
    ("tradeByRegion", "9_BalanceOfTradeRegion", 4),
    ("tradeByTransport", "10_TradeByModeTransport", 4),
    ("tradeByAgreement", "11_TradeByTradeAgreement", 4),
)


@dataclass
class ProcessResult:
    """Outcome of one extraction run."""

    success: bool
    source: Path
    output: Path
    counts: dict[str, int] = field(default_factory=dict)
    log: list[str] = field(default_factory=list)

    @property
    def log_text(self) -> str:
        return "\n".join(self.log)


def iso_timestamp(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_metadata(
    *,
    file_name: str | None = None,
    period: str | None = None,
    uploaded: bool = False,
    now: datetime | None = None,
) -> dict[str, str]:
    timestamp = iso_timestamp(now)
    metadata = {"source": config.SOURCE_NAME, "currency": config.CURRENCY}
    if period or config.PERIOD:
        metadata["period"] = period or config.PERIOD
    metadata["lastUpdated"] = timestamp
    if uploaded:
        metadata["uploadedAt"] = timestamp
    if file_name:
        metadata["fileName"] = file_name
    return metadata


def build_dataset(
    workbook: Workbook,
    specs: Sequence[DatasetSpec] = DATASETS,
    *,
    file_name: str | None = None,
    period: str | None = None,
    uploaded: bool = False,
    now: datetime | None = None,
    log: list[str] | None = None,
) -> dict[str, object]:
    """
    Run every extractor against ``workbook`` and attach metadata.

    Args:
        workbook: The loaded workbook.
        specs: Datasets to extract, in output order.
        file_name: Source file name recorded in the metadata.
        period: Reporting period label, e.g. "November 2024 - July 2025".
        uploaded: Whether the run was triggered by an upload.
        now: Generation time; defaults to the current UTC time.
        log: Optional list collecting one human-readable line per dataset.

    Returns:
        The dataset document, with ``metadata`` as its last key.
    """
    lines = log if log is not None else []
    dataset: dict[str, object] = {}
    for spec in specs:
        sheet = workbook.sheet(spec.sheet)
        if sheet is None:
            logging.warning("Sheet '%s' not found; %s will be empty", spec.sheet, spec.key)
            lines.append(f"{spec.label}: sheet '{spec.sheet}' not found")
            dataset[spec.key] = []
            continue
        records = spec.extractor(sheet, spec.skip_rows)
        lines.append(f"{spec.label}: {len(records)} records")
        dataset[spec.key] = records

    dataset["metadata"] = build_metadata(
        file_name=file_name, period=period, uploaded=uploaded, now=now
    )
    return dataset


def build_tables(workbook: Workbook) -> dict[str, dict[str, list]]:
    """The ``{headers, data}`` variant for every known sheet that is present."""
    tables = {}
    for key, sheet_name, skip_rows in TABLE_SHEETS:
        sheet = workbook.sheet(sheet_name)
        if sheet is None:
            continue
        logging.info("Processing %s...", sheet_name)
        tables[key] = parse_sheet_table(sheet, skip_rows)
    return tables


def _json_default(value: object) -> object:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def write_dataset(dataset: dict[str, object], output_path: str | Path) -> Path:
    """Serialize ``dataset`` to ``output_path``, replacing any previous file."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(dataset, handle, indent=2, ensure_ascii=False, default=_json_default)
    return path


def record_counts(dataset: dict[str, object]) -> dict[str, int]:
    return {
        key: len(value)
        for key, value in dataset.items()
        if key != "metadata" and isinstance(value, (list, dict))
    }


def run_extraction(
    source_path: str | Path,
    output_path: str | Path,
    *,
    variant: str = "records",
    period: str | None = None,
    uploaded: bool = False,
    file_name: str | None = None,
) -> ProcessResult:
    """
    Load ``source_path``, build the dataset and write it to ``output_path``.

    Raises:
        SourceNotFound: If the source file is missing.
        UnreadableFormat: If the source is not a supported spreadsheet.
        ProcessingFailure: For any other failure during extraction or writing.
    """
    source = Path(source_path)
    output = Path(output_path)
    log = [f"Input: {source}"]

    try:
        workbook = load_workbook(source)
        if variant == "tables":
            dataset: dict[str, object] = build_tables(workbook)
            log.extend(f"{key}: {len(table['data'])} rows" for key, table in dataset.items())
        else:
            dataset = build_dataset(
                workbook,
                file_name=file_name or source.name,
                period=period,
                uploaded=uploaded,
                log=log,
            )
        write_dataset(dataset, output)
    except ImtsError:
        raise
    except Exception as exc:  # noqa: BLE001
        logging.exception("Extraction of %s failed", source)
        log.append(f"Error processing data: {exc}")
        raise ProcessingFailure(f"Failed to process {source.name}: {exc}", log) from exc

    log.append(f"Output: {output}")
    counts = record_counts(dataset) if variant != "tables" else {
        key: len(table["data"]) for key, table in dataset.items()
    }
    for line in log:
        logging.info(line)
    return ProcessResult(success=True, source=source, output=output, counts=counts, log=log)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Extract IMTS workbook tables into dashboard JSON.")
    parser.add_argument("source", nargs="?", default=str(config.SOURCE_PATH), help="Workbook to process.")
    parser.add_argument("-o", "--output", default=str(config.OUTPUT_PATH), help="JSON file to write.")
    parser.add_argument(
        "--variant",
        choices=("records", "tables"),
        default="records",
        help="Typed dashboard records, or raw {headers, data} tables.",
    )
    parser.add_argument("--period", default=None, help="Reporting period label for the metadata.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    try:
        result = run_extraction(args.source, args.output, variant=args.variant, period=args.period)
    except ImtsError as exc:
        logging.error("Error processing data: %s", exc)
        return 1

    logging.info("Data processing complete: %s", result.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
