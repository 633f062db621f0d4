"""Shared image utilities: data URIs, dimension probing and overlay colours."""
import base64
import binascii
import io
import re
from typing import Annotated

from PIL import Image, ImageOps, UnidentifiedImageError
from pydantic import AfterValidator, BaseModel, ConfigDict

# ── 10-colour palette for per-label overlay colouring ──
COLOR_PALETTE: list[str] = [
    "#FF6B6B",  # coral red
    "#4ECDC4",  # teal
    "#45B7D1",  # sky blue
    "#96CEB4",  # sage green
    "#F7DC6F",  # gold
    "#DDA0DD",  # plum
    "#F0B27A",  # peach
    "#98D8C8",  # mint
    "#BB8FCE",  # lavender
    "#F1948A",  # salmon
]

MIME_TYPES: dict[str, str] = {
    "jpg":  "image/jpeg",
    "jpeg": "image/jpeg",
    "png":  "image/png",
    "webp": "image/webp",
}

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.*)$", re.DOTALL)


class ImageDimensions(BaseModel):
    """Natural pixel size of the uploaded image."""
    model_config = ConfigDict(frozen=True)

    width:  int
    height: int

    @property
    def is_valid(self) -> bool:
        return self.width > 0 and self.height > 0


def to_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def parse_data_uri(data_uri: str) -> tuple[str, bytes]:
    """Split 'data:<mime>;base64,<payload>' into (mime_type, raw bytes).

    Raises ValueError when the string is not a base64 data URI.
    """
    match = _DATA_URI_RE.match(data_uri or "")
    if not match:
        raise ValueError("Expected a data URI of the form 'data:<mimetype>;base64,<encoded_data>'.")
    try:
        payload = base64.b64decode(match.group("payload"), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Data URI payload is not valid base64: {e}") from e
    return match.group("mime"), payload


def _check_data_uri(value: str) -> str:
    parse_data_uri(value)
    return value


# A str field that only accepts base64 image data URIs
DataUri = Annotated[str, AfterValidator(_check_data_uri)]


def open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    return ImageOps.exif_transpose(image)


def probe_dimensions(data_uri: str) -> ImageDimensions:
    """Decode the image behind a data URI and return its displayed size.

    EXIF orientation is applied, so a rotated phone photo reports the size a
    browser shows. Raises ValueError for anything Pillow cannot decode.
    """
    _, data = parse_data_uri(data_uri)
    try:
        image = open_image(data)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Image could not be decoded: {e}") from e
    width, height = image.size
    return ImageDimensions(width=width, height=height)


def build_color_map(labels: list[str], palette: list[str] | None = None) -> dict[str, str]:
    """
    Build a label → hex_color mapping by assigning palette colours in order
    of first appearance among the labels.
    """
    if palette is None:
        palette = COLOR_PALETTE
    color_map: dict[str, str] = {}
    idx = 0
    for label in labels:
        key = (label or "unknown").lower()
        if key not in color_map:
            color_map[key] = palette[idx % len(palette)]
            idx += 1
    return color_map
