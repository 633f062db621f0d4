from __future__ import annotations

import io

import pytest
from PIL import Image

import errors
from image_processor import to_data_uri


def make_png(width: int = 40, height: int = 30) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 200, 210)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture(autouse=True)
def _error_log_in_tmp(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(errors, "ERROR_LOG", str(tmp_path / "last_error.log"))


@pytest.fixture
def png_bytes() -> bytes:
    return make_png(200, 100)


@pytest.fixture
def png_data_uri(png_bytes: bytes) -> str:
    return to_data_uri(png_bytes, "image/png")


@pytest.fixture
def png_factory():
    return make_png
