"""
Centralized site configuration.
Edit this file to update the texts displayed on all pages of the site.
"""

SITE_CONFIG = {
    "title": "FoggyVision",
    "upload_title": "Upload Foggy Image",
    # Shown under the drop zone; keep in sync with the upload limits below
    "upload_hint": "(Max 10MB, JPG, PNG, WEBP)",
    # Footer, displayed at the bottom of every page
    "footer_tagline": (
        "FoggyVision is a demonstrator: fog scoring, fog removal and object detection "
        "are all performed by a hosted generative model."
    ),
    "footer_model_note": (
        "Performance metrics on the dashboard are simulated for demonstration "
        "and are not an evaluation of the model."
    ),
}

# ── Upload limits ────────────────────────────────────────────────────────────
MAX_UPLOAD_BYTES   = 10 * 1024 * 1024  # 10 MB
ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
