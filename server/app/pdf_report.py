"""
Heuristic extraction of headline figures from a trade highlights PDF.

The monthly highlights report is only available as a PDF. Its text is pulled
out with pdfplumber and scanned with regular expressions for the reporting
period, totals, labelled statistics and simple tables of commodities and
partner countries. Results are best effort and meant for manual review.

Usage:
    imts-pdf "International Merchandise Trade Highlight_January_2024.pdf"
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
import json
from pathlib import Path
import re
import sys
from typing import Sequence

import pdfplumber

from . import config
from .errors import SourceNotFound, UnreadableFormat

COMMON_COUNTRIES = (
    "Australia",
    "China",
    "Fiji",
    "Japan",
    "New Zealand",
    "Singapore",
    "Thailand",
    "France",
    "USA",
    "United States",
    "PNG",
    "Papua New Guinea",
    "New Caledonia",
    "Solomon Islands",
    "Indonesia",
    "Malaysia",
    "Philippines",
)

_NUMBER = r"\d[\d,]*(?:\.\d+)?"
_TABLE_NUMBER = re.compile(r"\d{1,3}(,\d{3})*(\.\d+)?")
_WIDE_GAP = re.compile(r"\s{2,}")
_STATISTIC = re.compile(
    rf"(\w+(?:[ \t]+\w+)*)\s*[:=]\s*(?:VT\s*)?({_NUMBER})\s*(million|billion)?",
    re.IGNORECASE,
)
_PERIOD = re.compile(
    r"(January|February|March|April|May|June|July|August|September|October|November|December)\s+(\d{4})",
    re.IGNORECASE,
)
_EXPORTS = re.compile(rf"(?:total\s+)?exports?\s*[:=]?\s*(?:VT\s*)?({_NUMBER})", re.IGNORECASE)
_IMPORTS = re.compile(rf"(?:total\s+)?imports?\s*[:=]?\s*(?:VT\s*)?({_NUMBER})", re.IGNORECASE)
_BALANCE = re.compile(rf"(?:trade\s+)?balance\s*[:=]?\s*(?:VT\s*)?(-?{_NUMBER})", re.IGNORECASE)
_COMMODITY = re.compile(rf"^([A-Za-z\s,&-]+?)\s+({_NUMBER})")
_NOT_COMMODITY = re.compile(r"^(total|period|month|year)", re.IGNORECASE)


def _to_float(text: str) -> float | None:
    digits = text.replace(",", "")
    if not digits.strip("-"):
        return None
    return float(digits)


def extract_tables(text: str) -> list[list[str]]:
    """Group consecutive lines that look like table rows (numbers and wide gaps)."""
    tables: list[list[str]] = []
    current: list[str] = []
    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue
        if _TABLE_NUMBER.search(line) and _WIDE_GAP.search(line):
            current.append(line)
        elif current:
            tables.append(current)
            current = []
    if current:
        tables.append(current)
    return tables


def extract_key_statistics(text: str) -> dict[str, dict[str, object]]:
    """``Label: VT 1,234.5 million`` pairs keyed by snake_case label."""
    stats: dict[str, dict[str, object]] = {}
    for match in _STATISTIC.finditer(text):
        key = re.sub(r"\s+", "_", match.group(1).strip().lower())
        stats[key] = {
            "value": _to_float(match.group(2)),
            "unit": (match.group(3) or "").lower(),
            "formatted": match.group(2),
        }
    return stats


def extract_trade_data(text: str) -> dict[str, object]:
    data: dict[str, object] = {
        "period": None,
        "exports": {"total": None, "reExports": None, "domesticExports": None, "topCommodities": []},
        "imports": {"total": None, "topCommodities": [], "topCountries": []},
        "balance": {"total": None, "trend": None},
    }

    period = _PERIOD.search(text)
    if period:
        data["period"] = f"{period.group(1)} {period.group(2)}"

    exports = _EXPORTS.search(text)
    if exports:
        data["exports"]["total"] = _to_float(exports.group(1))
    imports = _IMPORTS.search(text)
    if imports:
        data["imports"]["total"] = _to_float(imports.group(1))
    balance = _BALANCE.search(text)
    if balance:
        data["balance"]["total"] = _to_float(balance.group(1))
    return data


def extract_commodities(tables: Sequence[Sequence[str]]) -> list[dict[str, object]]:
    commodities = []
    for table in tables:
        for row in table:
            match = _COMMODITY.match(row)
            if not match:
                continue
            name = match.group(1).strip()
            if len(name) > 3 and not _NOT_COMMODITY.match(name):
                commodities.append({"name": name, "value": _to_float(match.group(2))})
    return commodities


def extract_countries(tables: Sequence[Sequence[str]]) -> list[dict[str, object]]:
    countries = []
    patterns = [
        (country, re.compile(rf"{re.escape(country)}\s+({_NUMBER})")) for country in COMMON_COUNTRIES
    ]
    for table in tables:
        for row in table:
            for country, pattern in patterns:
                if country not in row:
                    continue
                match = pattern.search(row)
                if match:
                    countries.append({"country": country, "value": _to_float(match.group(1))})
    return countries


def read_pdf_text(pdf_path: str | Path) -> tuple[str, int]:
    """Return the text of every page and the page count."""
    path = Path(pdf_path)
    if not path.is_file():
        raise SourceNotFound(f"PDF file not found: {path}")
    try:
        with pdfplumber.open(path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:  # noqa: BLE001
        raise UnreadableFormat(f"Could not read PDF {path.name}: {exc}") from exc
    return "\n".join(pages), len(pages)


def build_report(text: str, *, filename: str, pages: int) -> dict[str, object]:
    tables = extract_tables(text)
    trade_data = extract_trade_data(text)
    return {
        "metadata": {
            "source": "International Merchandise Trade Highlight",
            "filename": filename,
            "extractedAt": datetime.now(timezone.utc).isoformat(),
            "pages": pages,
        },
        "period": trade_data["period"],
        "tradeData": trade_data,
        "statistics": extract_key_statistics(text),
        "commodities": extract_commodities(tables)[:20],
        "countries": extract_countries(tables)[:15],
        "tables": [table[:10] for table in tables],
        "rawText": text[:5000],
    }


def write_report(report: dict[str, object], output_dir: str | Path, raw_text: str | None = None) -> Path:
    """Save ``pdf_data.json`` (and ``pdf_raw_text.txt`` when given) to ``output_dir``."""
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    output = directory / "pdf_data.json"
    with open(output, "w", encoding="utf-8") as handle:
        json.dump(report, handle, indent=2, ensure_ascii=False)
    if raw_text is not None:
        (directory / "pdf_raw_text.txt").write_text(raw_text, encoding="utf-8")
    return output


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Extract headline figures from an IMTS highlights PDF.")
    parser.add_argument("pdf", help="Path to the PDF report.")
    parser.add_argument("-o", "--output-dir", default=str(config.PDF_OUTPUT_DIR))
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    try:
        text, pages = read_pdf_text(args.pdf)
    except (SourceNotFound, UnreadableFormat) as exc:
        logging.error("Error extracting PDF data: %s", exc)
        return 1

    report = build_report(text, filename=Path(args.pdf).name, pages=pages)
    output = write_report(report, args.output_dir, raw_text=text)
    logging.info("Period: %s", report["period"] or "Not found")
    logging.info("Tables found: %s", len(report["tables"]))
    logging.info("Commodities: %s, countries: %s", len(report["commodities"]), len(report["countries"]))
    logging.info("Output: %s", output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
