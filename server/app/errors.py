"""
Error types raised while loading, extracting and uploading trade workbooks.

Every error carries the HTTP status the upload service answers with, so the
API layer can translate failures without a lookup table of its own.
"""

from __future__ import annotations


class ImtsError(Exception):
    """Base class for all dashboard data errors."""

    status_code = 500

    @property
    def code(self) -> str:
        return type(self).__name__


class SourceNotFound(ImtsError, FileNotFoundError):
    """The input workbook path does not exist."""

    status_code = 404


class UnreadableFormat(ImtsError, ValueError):
    """The file content cannot be parsed as a supported tabular format."""

    status_code = 400


class UnsupportedFileType(ImtsError, ValueError):
    """The uploaded file extension is not in the allow-list."""

    status_code = 400


class SizeLimitExceeded(ImtsError, ValueError):
    """The uploaded file is larger than the configured maximum."""

    status_code = 413


class ProcessingFailure(ImtsError, RuntimeError):
    """The extraction run failed after the source file was accepted."""

    status_code = 500

    def __init__(self, message: str, log: list[str] | None = None) -> None:
        super().__init__(message)
        self.log = list(log or [])
