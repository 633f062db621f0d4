import os
import uuid

from flask import Flask, request, render_template, Response, session
from dotenv import load_dotenv

from bounding_box import aspect_padding, overlay_boxes
from controller import ControllerRegistry, ControllerSnapshot
from errors import (
    MSG_INVALID_TYPE, MSG_NO_FILE, MSG_TOO_LARGE, UploadRejected, register_error_handlers,
)
from image_processor import MIME_TYPES
from logging_utils import get_logger, setup_logging
from metrics import format_confidence, format_percent, histogram_bar_heights
from site_config import SITE_CONFIG, MAX_UPLOAD_BYTES, ALLOWED_EXTENSIONS

load_dotenv()

logger = get_logger(__name__)

app = Flask(__name__)
# Multipart framing adds a little on top of the file itself
app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES + 64 * 1024
app.secret_key = os.environ.get("FLASK_SECRET_KEY") or os.urandom(32).hex()

# Only static file serving bypasses the API-key check
_NO_KEY_ALLOWED = {"static", "robots_txt"}

registry = ControllerRegistry()


# ── Inject site config into every template automatically ──────────────────────
@app.context_processor
def inject_globals():
    return {"site": SITE_CONFIG}


app.add_template_filter(format_percent, "percent")
app.add_template_filter(format_confidence, "confidence")


@app.before_request
def require_api_key():
    if request.endpoint in _NO_KEY_ALLOWED:
        return
    if os.environ.get("AI_PROVIDER", "gemini_api") != "gemini_api":
        return
    if not os.environ.get("GEMINI_API_KEY"):
        return render_template("setup.html"), 503


# ── Helpers ───────────────────────────────────────────────────────────────────

def _session_id() -> str:
    if "sid" not in session:
        session["sid"] = uuid.uuid4().hex
    return session["sid"]


def _ext(filename: str) -> str:
    return filename.rsplit(".", 1)[1].lower() if "." in filename else ""


def _file_size(file) -> int:
    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    return size


def _validate_upload(file) -> str:
    """Check type and size before anything reaches the controller; return the MIME type."""
    if not file or not file.filename:
        raise UploadRejected(MSG_NO_FILE)
    ext = _ext(file.filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise UploadRejected(MSG_INVALID_TYPE)
    if file.mimetype and not file.mimetype.startswith("image/"):
        raise UploadRejected(MSG_INVALID_TYPE)
    if _file_size(file) > MAX_UPLOAD_BYTES:
        raise UploadRejected(MSG_TOO_LARGE, status_code=413)
    return MIME_TYPES[ext]


def _render_page(view: ControllerSnapshot, upload_error: str | None = None):
    overlays = []
    padding  = None
    if view.image_dimensions and view.image_dimensions.is_valid:
        overlays = overlay_boxes(view.detections, view.image_dimensions)
        padding  = aspect_padding(view.image_dimensions)

    bars = []
    if view.summary:
        bars = list(zip(view.summary.histogram, histogram_bar_heights(view.summary.histogram)))

    return render_template(
        "index.html",
        view=view,
        overlays=overlays,
        aspect_padding=padding,
        bars=bars,
        upload_error=upload_error,
        upload_hint=SITE_CONFIG["upload_hint"],
    )


def _current_view() -> ControllerSnapshot:
    controller = registry.peek(_session_id())
    return controller.snapshot() if controller else ControllerSnapshot()


def _upload_page(message: str):
    return _render_page(_current_view(), upload_error=message)


register_error_handlers(app, _upload_page)


# ── Routes ────────────────────────────────────────────────────────────────────

@app.route("/robots.txt")
def robots_txt():
    return Response("User-agent: *\nDisallow: /\n", mimetype="text/plain")


@app.route("/")
def index():
    return _render_page(_current_view())


@app.route("/upload", methods=["POST"])
def upload():
    files = request.files.getlist("image")
    if len(files) > 1:
        raise UploadRejected("Please upload a single image.")
    file      = files[0] if files else None
    mime_type = _validate_upload(file)

    controller = registry.get(_session_id())
    view       = controller.process(file.stream, mime_type)
    return _render_page(view)


if __name__ == "__main__":
    setup_logging()
    logger.info("Starting on http://localhost:5000")
    app.run(debug=True, port=5000, threaded=True)
