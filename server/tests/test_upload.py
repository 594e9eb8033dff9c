import inspect
import io
import json
import os
import tempfile
import time
import unittest
from contextlib import ExitStack
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient
from openpyxl import Workbook as XlsxWorkbook

from server.app import config, upload as upload_module
from server.app.errors import SizeLimitExceeded, UnreadableFormat, UnsupportedFileType
from server.app.main import app, upload as upload_endpoint
from server.app.upload import (
    data_info,
    list_uploads,
    process_upload,
    read_upload,
    stored_name,
    validate_upload,
)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _xlsx_bytes() -> bytes:
    book = XlsxWorkbook()
    book.remove(book.active)
    sheet = book.create_sheet("1_BalanceOfTrade")
    for row in (
        ["Balance of trade"],
        ["VT Million"],
        ["Period", None, "Exports", "Imports", "Balance"],
        [202412, "Exports", 1500.456, 900.123, None],
    ):
        sheet.append(row)
    buffer = io.BytesIO()
    book.save(buffer)
    return buffer.getvalue()


class _IsolatedPaths(unittest.TestCase):
    """Point every configured path into a temporary directory."""

    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)

        stack = ExitStack()
        self.addCleanup(stack.close)
        for name, value in {
            "DATA_DIR": self.root / "data",
            "UPLOADS_DIR": self.root / "uploads",
            "PUBLIC_DIR": self.root / "public",
            "SOURCE_PATH": self.root / "data" / "current_data.xlsx",
            "OUTPUT_PATH": self.root / "public" / "data.json",
        }.items():
            stack.enter_context(patch.object(config, name, value))
        self.output = config.OUTPUT_PATH


class ValidateUploadTests(unittest.TestCase):
    def test_accepted_extensions(self) -> None:
        self.assertEqual(validate_upload("IMTS_Tables.XLSX", 10), ".xlsx")
        self.assertEqual(validate_upload("legacy.xls", 10), ".xls")
        self.assertEqual(validate_upload("export.csv", 10), ".csv")

    def test_rejections(self) -> None:
        with self.assertRaises(UnsupportedFileType):
            validate_upload("notes.docx", 10)
        with self.assertRaises(UnsupportedFileType):
            validate_upload("no_extension", 10)
        with self.assertRaises(SizeLimitExceeded):
            validate_upload("big.xlsx", config.MAX_UPLOAD_BYTES + 1)
        with self.assertRaises(UnreadableFormat):
            validate_upload("empty.xlsx", 0)

    def test_limit_is_inclusive(self) -> None:
        self.assertEqual(validate_upload("edge.xlsx", config.MAX_UPLOAD_BYTES), ".xlsx")

    def test_rejections_are_value_errors(self) -> None:
        with self.assertRaises(ValueError):
            validate_upload("notes.pdf", 10)

    def test_stored_name(self) -> None:
        self.assertEqual(stored_name("IMTS Tables.xlsx", 1730000000000), "IMTS Tables_1730000000000.xlsx")
        self.assertEqual(stored_name("../../etc/data.csv", 5), "data_5.csv")


class ReadUploadTests(unittest.TestCase):
    def test_reads_whole_body_within_limit(self) -> None:
        with patch.object(upload_module, "READ_CHUNK_BYTES", 4):
            self.assertEqual(read_upload(io.BytesIO(b"0123456789"), "tables.csv"), b"0123456789")

    def test_stops_reading_past_the_limit(self) -> None:
        stream = io.BytesIO(b"x" * 1000)
        with patch.object(config, "MAX_UPLOAD_BYTES", 16), patch.object(upload_module, "READ_CHUNK_BYTES", 4):
            with self.assertRaises(SizeLimitExceeded):
                read_upload(stream, "big.xlsx")
        self.assertEqual(stream.tell(), 17)

    def test_declared_size_rejected_before_reading(self) -> None:
        stream = io.BytesIO(b"x" * 100)
        with patch.object(config, "MAX_UPLOAD_BYTES", 16):
            with self.assertRaises(SizeLimitExceeded):
                read_upload(stream, "big.xlsx", declared_size=100)
        self.assertEqual(stream.tell(), 0)

    def test_name_checked_before_reading(self) -> None:
        stream = io.BytesIO(b"x" * 100)
        with self.assertRaises(UnsupportedFileType):
            read_upload(stream, "notes.docx")
        self.assertEqual(stream.tell(), 0)

    def test_undeclared_size_only_checks_the_name(self) -> None:
        self.assertEqual(validate_upload("tables.xlsx", None), ".xlsx")


class ProcessUploadTests(_IsolatedPaths):
    def test_upload_replaces_source_and_output(self) -> None:
        data = _xlsx_bytes()
        outcome = process_upload(data, "IMTS_Tables.xlsx")

        self.assertTrue(outcome.result.success)
        self.assertEqual(outcome.size, len(data))
        self.assertTrue(outcome.filename.startswith("IMTS_Tables_"))
        self.assertEqual(config.SOURCE_PATH.read_bytes(), data)
        self.assertEqual(outcome.stored_path.read_bytes(), data)

        with open(self.output, encoding="utf-8") as handle:
            document = json.load(handle)
        self.assertEqual(document["balanceOfTrade"][0]["balance"], 600.34)
        self.assertEqual(document["metadata"]["fileName"], outcome.filename)
        self.assertIn("uploadedAt", document["metadata"])

        response = outcome.to_response()
        self.assertEqual(response["originalName"], "IMTS_Tables.xlsx")
        self.assertEqual(response["recordCounts"]["balanceOfTrade"], 1)
        self.assertIn("Balance of Trade: 1 records", response["processLog"])

    def test_rejected_upload_writes_nothing(self) -> None:
        with self.assertRaises(UnsupportedFileType):
            process_upload(b"text", "notes.docx")
        self.assertFalse(config.UPLOADS_DIR.exists())
        self.assertFalse(self.output.exists())

    def test_data_info(self) -> None:
        self.assertEqual(data_info(), {"exists": False})

        process_upload(_xlsx_bytes(), "IMTS_Tables.xlsx")
        info = data_info()
        self.assertTrue(info["exists"])
        self.assertEqual(info["size"], self.output.stat().st_size)
        self.assertEqual(info["recordCounts"]["balanceOfTrade"], 1)
        self.assertEqual(info["metadata"]["currency"], config.CURRENCY)
        self.assertTrue(info["lastModified"].endswith("Z"))

    def test_uploads_listed_newest_first(self) -> None:
        self.assertEqual(list_uploads(), [])

        config.UPLOADS_DIR.mkdir(parents=True)
        older = config.UPLOADS_DIR / "first_1.xlsx"
        newer = config.UPLOADS_DIR / "second_2.xlsx"
        older.write_bytes(b"a")
        newer.write_bytes(b"bb")
        now = time.time()
        os.utime(older, (now - 60, now - 60))
        os.utime(newer, (now, now))

        uploads = list_uploads()
        self.assertEqual([item["filename"] for item in uploads], ["second_2.xlsx", "first_1.xlsx"])
        self.assertEqual(uploads[0]["size"], 2)


class ApiTests(_IsolatedPaths):
    def setUp(self) -> None:
        super().setUp()
        self.client = TestClient(app)

    def test_health(self) -> None:
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "message": "Server is running"})

    def test_upload_and_read_back(self) -> None:
        response = self.client.post(
            "/api/upload",
            files={"file": ("IMTS_Tables.xlsx", _xlsx_bytes(), XLSX_MIME)},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertIn("Balance of Trade: 1 records", body["processLog"])

        info = self.client.get("/api/data-info").json()
        self.assertTrue(info["exists"])
        self.assertEqual(info["metadata"]["fileName"], body["filename"])

        uploads = self.client.get("/api/uploads").json()["uploads"]
        self.assertEqual([item["filename"] for item in uploads], [body["filename"]])

        data = self.client.get("/data.json")
        self.assertEqual(data.status_code, 200)
        self.assertEqual(data.json()["balanceOfTrade"][0]["exports"], 1500.46)

    def test_disallowed_type_keeps_previous_output(self) -> None:
        self.output.parent.mkdir(parents=True)
        self.output.write_text('{"balanceOfTrade": []}', encoding="utf-8")

        response = self.client.post(
            "/api/upload",
            files={"file": ("notes.docx", b"not a spreadsheet", "application/msword")},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "UnsupportedFileType")
        self.assertEqual(self.output.read_text(encoding="utf-8"), '{"balanceOfTrade": []}')

    def test_oversized_upload(self) -> None:
        with patch.object(config, "MAX_UPLOAD_BYTES", 16):
            response = self.client.post(
                "/api/upload",
                files={"file": ("IMTS_Tables.xlsx", _xlsx_bytes(), XLSX_MIME)},
            )
        self.assertEqual(response.status_code, 413)
        self.assertEqual(response.json()["error"], "SizeLimitExceeded")
        self.assertFalse(config.UPLOADS_DIR.exists())
        self.assertFalse(self.output.exists())

    def test_upload_endpoint_runs_in_threadpool(self) -> None:
        self.assertFalse(inspect.iscoroutinefunction(upload_endpoint))

    def test_missing_file_field(self) -> None:
        response = self.client.post("/api/upload")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "NoFileUploaded")

    def test_unreadable_workbook(self) -> None:
        response = self.client.post(
            "/api/upload",
            files={"file": ("broken.xlsx", b"PK\x03\x04garbage", XLSX_MIME)},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "UnreadableFormat")
        self.assertFalse(self.output.exists())

    def test_processing_failure_returns_log(self) -> None:
        with patch("server.app.assemble.build_dataset", side_effect=KeyError("boom")):
            response = self.client.post(
                "/api/upload",
                files={"file": ("IMTS_Tables.xlsx", _xlsx_bytes(), XLSX_MIME)},
            )
        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertEqual(body["error"], "ProcessingFailure")
        self.assertIn("boom", body["processLog"])

    def test_data_endpoints_before_first_upload(self) -> None:
        self.assertEqual(self.client.get("/api/data-info").json(), {"exists": False})
        self.assertEqual(self.client.get("/api/uploads").json(), {"uploads": []})
        self.assertEqual(self.client.get("/data.json").status_code, 404)


if __name__ == "__main__":
    unittest.main()
