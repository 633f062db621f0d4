"""
Bounding box overlay layout.

Converts detector-reported pixel rectangles into percentage rectangles that
can be positioned over the displayed image with CSS (left/top/width/height
in %). The result never overflows the image container and is always at
least MIN_BOX_PX pixels wide and tall.
"""
import math
from numbers import Real

from pydantic import BaseModel, ConfigDict

from handlers.detection import Detection
from image_processor import ImageDimensions, build_color_map

MIN_BOX_PX = 5

# Badges on boxes hugging the left edge get nudged right (percent threshold)
BADGE_NUDGE_THRESHOLD = 2.0

DEFAULT_COLOR = "#FF9100"


class NormalizedBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    left:   float
    top:    float
    width:  float
    height: float


class OverlayBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    box:         NormalizedBox
    label:       str
    confidence:  float
    color:       str
    badge_nudge: bool

    @property
    def badge_text(self) -> str:
        return f"{self.label} ({self.confidence:.2f})"


def _finite_or_zero(value) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        return 0.0
    value = float(value)
    return value if math.isfinite(value) else 0.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def normalize_box(x, y, width, height, image_width: int, image_height: int) -> NormalizedBox:
    """Map a pixel rectangle onto the image as clamped percentages.

    Any coordinate that is not a finite number is treated as 0, so malformed
    detector output still yields a drawable box. Both image dimensions must be
    positive; zero-sized images are rejected before detection is requested.
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {image_width}x{image_height}")

    x, y, width, height = (_finite_or_zero(v) for v in (x, y, width, height))

    left_pct   = x / image_width * 100
    top_pct    = y / image_height * 100
    width_pct  = width / image_width * 100
    height_pct = height / image_height * 100

    # Size first, then position against the space that is left
    safe_width  = _clamp(width_pct, 0, 100)
    safe_height = _clamp(height_pct, 0, 100)

    clamped_left = _clamp(left_pct, 0, 100 - safe_width)
    clamped_top  = _clamp(top_pct, 0, 100 - safe_height)

    clamped_width  = _clamp(safe_width, 0, 100 - clamped_left)
    clamped_height = _clamp(safe_height, 0, 100 - clamped_top)

    # Capped at the full image so images under MIN_BOX_PX keep a non-negative origin
    min_width_pct  = min(MIN_BOX_PX / image_width * 100, 100)
    min_height_pct = min(MIN_BOX_PX / image_height * 100, 100)

    final_width  = max(clamped_width, min_width_pct)
    final_height = max(clamped_height, min_height_pct)

    # The minimum size may push the box past the edge; pull it back in
    final_left = min(clamped_left, 100 - final_width)
    final_top  = min(clamped_top, 100 - final_height)

    return NormalizedBox(left=final_left, top=final_top, width=final_width, height=final_height)


def overlay_boxes(detections: list[Detection] | None, dims: ImageDimensions) -> list[OverlayBox]:
    """Lay out every detection over an image of the given natural size."""
    if not detections:
        return []

    color_map = build_color_map([d.label for d in detections])
    overlays  = []
    for det in detections:
        bb  = det.bounding_box
        box = normalize_box(bb.x, bb.y, bb.width, bb.height, dims.width, dims.height)
        overlays.append(OverlayBox(
            box=box,
            label=det.label,
            confidence=det.confidence,
            color=color_map.get((det.label or "unknown").lower(), DEFAULT_COLOR),
            badge_nudge=box.left < BADGE_NUDGE_THRESHOLD,
        ))
    return overlays


def aspect_padding(dims: ImageDimensions) -> float:
    """Padding-top percentage that keeps a container at the image's aspect ratio."""
    if dims.width <= 0:
        return 75.0  # 4:3 fallback
    return dims.height / dims.width * 100
