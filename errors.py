"""
Error taxonomy for one upload attempt.

Every failure is scoped to a single upload: the controller records it, the
page shows a single error banner, and the next upload starts clean.
Nothing here is retried automatically.
"""
import os
import traceback
from datetime import datetime

from flask import render_template
from werkzeug.exceptions import RequestEntityTooLarge

from logging_utils import get_logger

logger = get_logger(__name__)

ERROR_LOG = os.environ.get("ERROR_LOG", "last_error.log")

# User-facing messages
MSG_TOO_LARGE        = "File is too large (max 10MB)."
MSG_INVALID_TYPE     = "Invalid file type. Please upload an image."
MSG_NO_FILE          = "No file received."
MSG_READ_FAILED      = "Failed to read the uploaded file."
MSG_EMPTY_DATA       = "Failed to read the image data."
MSG_LOAD_FAILED      = "Failed to load the uploaded image."
MSG_BAD_DIMENSIONS   = "Failed to get image dimensions. The image might be invalid or corrupted."
MSG_INFERENCE_FAILED = "An unexpected error occurred during AI processing."


class FoggyVisionError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class UploadRejected(FoggyVisionError):
    """Bad type or size; reported inline at the uploader."""
    status_code = 400


class FileReadFailed(FoggyVisionError):
    status_code = 400


class ImageDecodeFailed(FoggyVisionError):
    """The image could not be decoded or has zero dimensions."""
    status_code = 422


class InferenceFailed(FoggyVisionError):
    """A gateway call raised or returned output that failed validation."""
    status_code = 502


def log_error(context: str, exc: BaseException) -> None:
    """Write the last error with timestamp to last_error.log (no user data)."""
    logger.error("%s: %s", context, exc, exc_info=exc)
    with open(ERROR_LOG, "w", encoding="utf-8") as f:
        f.write(f"[{datetime.now().isoformat(timespec='seconds')}] {context}\n\n")
        if exc.__traceback__:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=f)
        else:
            f.write(f"{type(exc).__name__}: {exc}\n")


def register_error_handlers(app, upload_page) -> None:
    """Install the Flask error pages for the upload error taxonomy.

    upload_page(message) renders the upload page with an inline uploader error.
    """

    @app.errorhandler(UploadRejected)
    def handle_upload_rejected(e):
        logger.info("Upload rejected: %s", e.message)
        return upload_page(e.message), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        logger.info("Upload rejected: request body over the size limit")
        return upload_page(MSG_TOO_LARGE), 413

    @app.errorhandler(FoggyVisionError)
    def handle_foggy_error(e):
        log_error(type(e).__name__, e)
        return render_template("error.html", message=e.message), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        # Let Flask render its own pages for plain HTTP errors (404, 405, ...)
        code = getattr(e, "code", None)
        if isinstance(code, int) and code < 500:
            return e
        log_error("unhandled", e)
        return render_template("error.html", message=MSG_INFERENCE_FAILED), 500
