"""
Filesystem layout and deployment switches for the dashboard server.

Paths default to directories next to the repository root and can be moved
with environment variables. The API reads these module attributes at request
time, so tests patch them with ``unittest.mock.patch.object``.
"""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

DATA_DIR = Path(os.getenv("IMTS_DATA_DIR", BASE_DIR / "data"))
UPLOADS_DIR = Path(os.getenv("IMTS_UPLOADS_DIR", BASE_DIR / "uploads"))
PUBLIC_DIR = Path(os.getenv("IMTS_PUBLIC_DIR", BASE_DIR / "public"))
# Built front end; only mounted when present.
WEB_DIR = Path(os.getenv("IMTS_WEB_DIR", BASE_DIR / "web"))

# The canonical "current" workbook is always stored under this name,
# whatever the extension of the uploaded file.
SOURCE_PATH = DATA_DIR / "current_data.xlsx"
OUTPUT_PATH = PUBLIC_DIR / "data.json"
PDF_OUTPUT_DIR = BASE_DIR / "extracted_data"

SOURCE_NAME = os.getenv("IMTS_SOURCE_NAME", "Vanuatu National Statistics Office")
CURRENCY = os.getenv("IMTS_CURRENCY", "VT Million")
PERIOD = os.getenv("IMTS_PERIOD") or None

ALLOWED_EXTENSIONS = (".xlsx", ".xls", ".csv")
MAX_UPLOAD_BYTES = 50 * 1024 * 1024

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("IMTS_ALLOWED_ORIGINS", "*").split(",")
    if origin.strip()
]
