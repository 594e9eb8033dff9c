"""
Accept replacement workbooks and re-run the extraction in-process.

Every upload is kept in the uploads directory under a timestamped name and
copied over the canonical source path before the dataset is rebuilt. There is
no versioning: the previous source and output are simply overwritten.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import shutil
import time
from typing import BinaryIO

from . import config
from .assemble import ProcessResult, iso_timestamp, record_counts, run_extraction
from .errors import SizeLimitExceeded, UnreadableFormat, UnsupportedFileType

READ_CHUNK_BYTES = 1024 * 1024


@dataclass
class UploadResult:
    filename: str
    original_name: str
    size: int
    stored_path: Path
    result: ProcessResult

    def to_response(self) -> dict[str, object]:
        return {
            "success": self.result.success,
            "message": "File uploaded and processed successfully",
            "filename": self.filename,
            "originalName": self.original_name,
            "size": self.size,
            "processLog": self.result.log_text,
            "recordCounts": self.result.counts,
        }


def validate_upload(original_name: str, size: int | None) -> str:
    """
    Check the declared file name and size before anything is written.

    A ``size`` of ``None`` (not declared by the client) only checks the name.

    Returns:
        The lower-cased extension of ``original_name``.

    Raises:
        UnsupportedFileType: If the extension is not allowed.
        SizeLimitExceeded: If ``size`` is over the upload limit.
        UnreadableFormat: If the file is empty.
    """
    extension = Path(original_name or "").suffix.lower()
    if extension not in config.ALLOWED_EXTENSIONS:
        raise UnsupportedFileType(
            f"Only Excel (.xlsx, .xls) and CSV files are allowed, got '{original_name}'."
        )
    if size is None:
        return extension
    if size > config.MAX_UPLOAD_BYTES:
        limit_mb = config.MAX_UPLOAD_BYTES // (1024 * 1024)
        raise SizeLimitExceeded(f"File is {size} bytes; the limit is {limit_mb} MB.")
    if size == 0:
        raise UnreadableFormat("Uploaded file is empty.")
    return extension


def read_upload(stream: BinaryIO, original_name: str, declared_size: int | None = None) -> bytes:
    """
    Read an upload body, giving up as soon as it passes the size limit.

    The name and any declared size are checked before the first read, so a
    rejected upload is never pulled into memory.

    Raises:
        UnsupportedFileType, SizeLimitExceeded, UnreadableFormat: As for
            :func:`validate_upload`.
    """
    validate_upload(original_name, declared_size)

    limit = config.MAX_UPLOAD_BYTES
    chunks = []
    total = 0
    while True:
        chunk = stream.read(min(READ_CHUNK_BYTES, limit + 1 - total))
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise SizeLimitExceeded(f"File is over the {limit // (1024 * 1024)} MB limit.")
        chunks.append(chunk)
    return b"".join(chunks)


def stored_name(original_name: str, timestamp_ms: int | None = None) -> str:
    """``report.xlsx`` -> ``report_1730000000000.xlsx``."""
    name = Path(original_name).name
    suffix = Path(name).suffix
    stem = name[: -len(suffix)] if suffix else name
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{stem}_{timestamp_ms}{suffix}"


def store_upload(data: bytes, original_name: str) -> Path:
    """Keep the raw upload and make it the current source workbook."""
    uploads_dir = Path(config.UPLOADS_DIR)
    uploads_dir.mkdir(parents=True, exist_ok=True)
    stored = uploads_dir / stored_name(original_name)
    stored.write_bytes(data)

    source = Path(config.SOURCE_PATH)
    source.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(stored, source)
    logging.info("Stored upload %s as %s", original_name, stored.name)
    return stored


def process_upload(data: bytes, original_name: str) -> UploadResult:
    """
    Validate, store and process an uploaded workbook.

    Raises:
        UnsupportedFileType, SizeLimitExceeded, UnreadableFormat: The upload
            was rejected; for the first two nothing is written.
        ProcessingFailure: The extraction failed after the file was stored.
    """
    validate_upload(original_name, len(data))
    stored = store_upload(data, original_name)

    logging.info("Processing data...")
    result = run_extraction(
        config.SOURCE_PATH,
        config.OUTPUT_PATH,
        uploaded=True,
        file_name=stored.name,
    )
    return UploadResult(
        filename=stored.name,
        original_name=original_name,
        size=len(data),
        stored_path=stored,
        result=result,
    )


def _modified_at(path: Path) -> str:
    return iso_timestamp(datetime.fromtimestamp(path.stat().st_mtime, timezone.utc))


def data_info() -> dict[str, object]:
    """Size, modification time, metadata and record counts of the output JSON."""
    output = Path(config.OUTPUT_PATH)
    if not output.is_file():
        return {"exists": False}

    with open(output, "r", encoding="utf-8") as handle:
        dataset = json.load(handle)
    return {
        "exists": True,
        "lastModified": _modified_at(output),
        "size": output.stat().st_size,
        "metadata": dataset.get("metadata") or {},
        "recordCounts": record_counts(dataset),
    }


def list_uploads() -> list[dict[str, object]]:
    """Stored uploads, newest first."""
    uploads_dir = Path(config.UPLOADS_DIR)
    if not uploads_dir.is_dir():
        return []

    files = [path for path in uploads_dir.iterdir() if path.is_file()]
    files.sort(key=lambda path: path.stat().st_mtime, reverse=True)
    return [
        {"filename": path.name, "size": path.stat().st_size, "uploadedAt": _modified_at(path)}
        for path in files
    ]
