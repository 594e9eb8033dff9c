"""
FastAPI application for the trade statistics dashboard.

Provides a health check, the administrator upload endpoint that replaces the
source workbook and rebuilds the dashboard JSON, and read-only endpoints
describing the current output and the upload history. The built front end is
served from the same process when it is present.
"""

# To run the application, use the following command in the terminal:
# uvicorn server.app.main:app --host 0.0.0.0 --port 3001

import logging
from pathlib import Path
import traceback
from typing import Optional

from fastapi import FastAPI, File, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from . import config
from .errors import ImtsError, ProcessingFailure
from .upload import data_info, list_uploads, process_upload, read_upload

# Initialize the FastAPI application.
app = FastAPI(title="IMTS Dashboard API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, error: str, message: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message, **extra})


@app.get("/api/health")
async def health() -> dict[str, str]:
    """
    Simple health check endpoint.

    Returns:
        A dictionary with the status "ok" to indicate the server is running.
    """
    return {"status": "ok", "message": "Server is running"}


@app.post("/api/upload")
# Plain def: the extraction blocks, so FastAPI runs this in its threadpool.
def upload(file: Optional[UploadFile] = File(None)):
    """
    Replace the source workbook and rebuild the dashboard dataset.

    Args:
        file: The uploaded spreadsheet (.xlsx, .xls or .csv, at most 50 MB).

    Returns:
        The stored file name, original name, size and the processing log, or
        an ``{error, message}`` body with a non-2xx status.
    """
    if file is None or not file.filename:
        return _error(400, "NoFileUploaded", "No file uploaded")

    try:
        data = read_upload(file.file, file.filename, file.size)
        logging.info("File uploaded: %s (%s bytes)", file.filename, len(data))
        result = process_upload(data, file.filename)
    except ProcessingFailure as exc:
        logging.error("Upload processing failed: %s", exc)
        return _error(exc.status_code, exc.code, str(exc), processLog="\n".join(exc.log))
    except ImtsError as exc:
        logging.warning("Upload rejected: %s", exc)
        return _error(exc.status_code, exc.code, str(exc))
    except Exception as exc:  # noqa: BLE001
        logging.error("Unexpected error during upload: %s", exc)
        logging.error(traceback.format_exc())
        return _error(500, "ProcessingFailure", "Failed to process file")

    return result.to_response()


@app.get("/api/data-info")
async def get_data_info():
    """Describe the current dashboard JSON, or ``{"exists": false}``."""
    try:
        return data_info()
    except Exception as exc:  # noqa: BLE001
        logging.error("Reading data info failed: %s", exc)
        return _error(500, type(exc).__name__, str(exc))


@app.get("/api/uploads")
async def get_uploads():
    try:
        return {"uploads": list_uploads()}
    except OSError as exc:
        logging.error("Listing uploads failed: %s", exc)
        return _error(500, type(exc).__name__, str(exc))


@app.get("/data.json")
async def dashboard_data():
    """The dataset consumed by the browser application."""
    output = Path(config.OUTPUT_PATH)
    if not output.is_file():
        return _error(404, "SourceNotFound", "Dashboard data has not been generated yet.")
    return FileResponse(output, media_type="application/json")


# Mount the built front end so the server also delivers the HTML, CSS and JavaScript.
if config.WEB_DIR.is_dir():
    app.mount("/", StaticFiles(directory=config.WEB_DIR, html=True), name="web")
