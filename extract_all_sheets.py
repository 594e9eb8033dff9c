"""
Dump every sheet of a trade workbook to JSON for inspection.

Writes one ``<sheet>.json`` per sheet (first row as headers) plus a combined
``all_data.json``. Useful when a new release of the workbook shifts its
layout and the extraction offsets have to be checked.

    python extract_all_sheets.py data/current_data.xlsx -o extracted_data
"""

import argparse
import json
import re
import sys
from pathlib import Path

from server.app.errors import ImtsError
from server.app.extract import sheet_to_records
from server.app.workbook import load_workbook

# Paths (Adjust if necessary)
EXCEL_PATH = Path("data/current_data.xlsx")
OUTPUT_DIR = Path("extracted_data")


def sheet_file_name(sheet_name):
    return re.sub(r"[^a-zA-Z0-9]", "_", sheet_name) + ".json"


def write_json(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)


def dump_sheets(excel_path, output_dir):
    print(f"Reading {excel_path}...")
    workbook = load_workbook(excel_path)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"Total sheets: {len(workbook.sheet_names)}")
    all_data = {}
    for index, sheet in enumerate(workbook, start=1):
        width = max((len(row) for row in sheet.rows), default=0)
        records = sheet_to_records(sheet)
        print(f"{index}. {sheet.name}: {len(sheet)} rows x {width} columns, {len(records)} data rows")

        write_json(output_dir / sheet_file_name(sheet.name), records)
        all_data[sheet.name] = records

    combined = output_dir / "all_data.json"
    write_json(combined, all_data)
    print(f"Success! Saved {len(all_data)} sheets to {output_dir}")
    return combined


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("source", nargs="?", default=str(EXCEL_PATH))
    parser.add_argument("-o", "--output-dir", default=str(OUTPUT_DIR))
    args = parser.parse_args(argv)

    try:
        dump_sheets(args.source, args.output_dir)
    except ImtsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
