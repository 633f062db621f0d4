from __future__ import annotations

import io

import pytest
from PIL import Image

from image_processor import (
    COLOR_PALETTE,
    ImageDimensions,
    build_color_map,
    parse_data_uri,
    probe_dimensions,
    to_data_uri,
)


def test_data_uri_round_trip() -> None:
    uri = to_data_uri(b"\x89PNG fake", "image/png")
    assert uri.startswith("data:image/png;base64,")
    assert parse_data_uri(uri) == ("image/png", b"\x89PNG fake")


@pytest.mark.parametrize("bad", [
    "",
    "image/png;base64,AAAA",
    "data:image/png,AAAA",
    "data:;base64,AAAA",
    "data:image/png;base64,not base64!",
])
def test_parse_data_uri_rejects_malformed_input(bad: str) -> None:
    with pytest.raises(ValueError):
        parse_data_uri(bad)


def test_probe_dimensions_reads_natural_size(png_factory) -> None:
    dims = probe_dimensions(to_data_uri(png_factory(64, 48), "image/png"))
    assert dims == ImageDimensions(width=64, height=48)
    assert dims.is_valid


def test_probe_dimensions_applies_exif_orientation() -> None:
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90° clockwise on display
    buf = io.BytesIO()
    Image.new("RGB", (64, 48)).save(buf, format="JPEG", exif=exif)

    dims = probe_dimensions(to_data_uri(buf.getvalue(), "image/jpeg"))
    assert (dims.width, dims.height) == (48, 64)


def test_probe_dimensions_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        probe_dimensions(to_data_uri(b"GIF89a but not really", "image/gif"))


def test_zero_dimensions_are_not_valid() -> None:
    assert not ImageDimensions(width=0, height=10).is_valid
    assert not ImageDimensions(width=10, height=0).is_valid


def test_build_color_map_is_case_insensitive_and_wraps() -> None:
    labels = ["Car", "car", "person"] + [f"label{i}" for i in range(len(COLOR_PALETTE))]
    colors = build_color_map(labels)

    assert colors["car"] == COLOR_PALETTE[0]
    assert colors["person"] == COLOR_PALETTE[1]
    assert colors[f"label{len(COLOR_PALETTE) - 2}"] == COLOR_PALETTE[0]
