from __future__ import annotations

import math
from typing import Any

import pytest
from pydantic import ValidationError

import handlers.detection as detection
import handlers.enhance as enhance
import handlers.fog_density as fog_density
from handlers.detection import DetectObjectsInput, DetectObjectsOutput, detect_objects
from handlers.enhance import EnhanceFoggyImageInput, enhance_foggy_image
from handlers.fog_density import AnalyzeFogDensityInput, AnalyzeFogDensityOutput, analyze_fog_density


class _FakeCallAi:
    def __init__(self, payload: dict[str, Any]):
        self.payload = payload
        self.calls: list[tuple[str, str, type]] = []

    def __call__(self, image_data_uri: str, prompt: str, response_schema) -> dict[str, Any]:
        self.calls.append((image_data_uri, prompt, response_schema))
        return self.payload


def test_fog_density_parses_camel_case_response(monkeypatch, png_data_uri: str) -> None:
    fake = _FakeCallAi({"fogDensityScore": 0.82, "fogDensityDescription": "Thick fog"})
    monkeypatch.setattr(fog_density, "call_ai", fake)

    out = analyze_fog_density(AnalyzeFogDensityInput(photo_data_uri=png_data_uri))

    assert out.fog_density_score == pytest.approx(0.82)
    assert out.fog_density_description == "Thick fog"
    uri, prompt, schema = fake.calls[0]
    assert uri == png_data_uri
    assert "fogDensityScore" in prompt
    assert schema is AnalyzeFogDensityOutput


def test_fog_density_rejects_score_out_of_range(monkeypatch, png_data_uri: str) -> None:
    monkeypatch.setattr(fog_density, "call_ai", _FakeCallAi({"fogDensityScore": 3, "fogDensityDescription": "?"}))
    with pytest.raises(ValidationError):
        analyze_fog_density(AnalyzeFogDensityInput(photo_data_uri=png_data_uri))


def test_inputs_accept_wire_names_and_reject_non_data_uris(png_data_uri: str) -> None:
    assert AnalyzeFogDensityInput.model_validate({"photoDataUri": png_data_uri}).photo_data_uri == png_data_uri
    assert EnhanceFoggyImageInput.model_validate({"foggyPhotoDataUri": png_data_uri}).foggy_photo_data_uri == png_data_uri
    with pytest.raises(ValidationError):
        DetectObjectsInput(photo_data_uri="https://example.com/fog.png")
    with pytest.raises(ValidationError):
        AnalyzeFogDensityInput(photo_data_uri="data:image/png;base64,@@@")


def test_detection_response_with_missing_and_odd_coordinates(monkeypatch, png_data_uri: str) -> None:
    fake = _FakeCallAi({
        "detections": [
            {"label": "car", "confidence": 0.93, "boundingBox": {"x": 10, "y": 20, "width": 30, "height": 40}},
            {"label": "sign", "confidence": 0.4, "boundingBox": {"x": 5}},
            {"label": "tree", "confidence": 0.7, "boundingBox": {"x": float("nan"), "y": 1, "width": 2, "height": 3}},
        ]
    })
    monkeypatch.setattr(detection, "call_ai", fake)

    out = detect_objects(DetectObjectsInput(photo_data_uri=png_data_uri))

    assert [d.label for d in out.detections] == ["car", "sign", "tree"]
    assert out.detections[0].bounding_box.height == 40
    sign_box = out.detections[1].bounding_box
    assert (sign_box.x, sign_box.y, sign_box.width, sign_box.height) == (5, 0, 0, 0)
    assert math.isnan(out.detections[2].bounding_box.x)
    assert fake.calls[0][2] is DetectObjectsOutput


def test_detection_response_without_label_is_malformed(monkeypatch, png_data_uri: str) -> None:
    monkeypatch.setattr(detection, "call_ai", _FakeCallAi({"detections": [{"confidence": 0.4, "boundingBox": {}}]}))
    with pytest.raises(ValidationError):
        detect_objects(DetectObjectsInput(photo_data_uri=png_data_uri))


def test_detection_schema_uses_wire_names() -> None:
    schema = DetectObjectsOutput.model_json_schema()
    detection_schema = schema["$defs"]["Detection"]
    assert "boundingBox" in detection_schema["properties"]


def test_enhance_passes_data_uri_through(monkeypatch, png_data_uri: str) -> None:
    calls: list[tuple[str, str]] = []

    def fake_generate(image_data_uri: str, prompt: str) -> str:
        calls.append((image_data_uri, prompt))
        return "data:image/jpeg;base64,/9j/"

    monkeypatch.setattr(enhance, "generate_image", fake_generate)
    out = enhance_foggy_image(EnhanceFoggyImageInput(foggy_photo_data_uri=png_data_uri))

    assert out.enhanced_photo_data_uri == "data:image/jpeg;base64,/9j/"
    assert calls == [(png_data_uri, enhance.PROMPT)]
    assert out.model_dump(by_alias=True) == {"enhancedPhotoDataUri": "data:image/jpeg;base64,/9j/"}


def test_enhance_rejects_non_image_output(monkeypatch, png_data_uri: str) -> None:
    monkeypatch.setattr(enhance, "generate_image", lambda uri, prompt: "I could not edit this image.")
    with pytest.raises(ValidationError):
        enhance_foggy_image(EnhanceFoggyImageInput(foggy_photo_data_uri=png_data_uri))


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_detection_confidence_must_be_finite(monkeypatch, png_data_uri: str, bad: float) -> None:
    monkeypatch.setattr(detection, "call_ai", _FakeCallAi({
        "detections": [{"label": "car", "confidence": bad, "boundingBox": {"x": 1, "y": 1, "width": 2, "height": 2}}],
    }))
    with pytest.raises(ValidationError):
        detect_objects(DetectObjectsInput(photo_data_uri=png_data_uri))


def test_fog_score_must_be_finite(monkeypatch, png_data_uri: str) -> None:
    monkeypatch.setattr(fog_density, "call_ai", _FakeCallAi({"fogDensityScore": float("nan"), "fogDensityDescription": "?"}))
    with pytest.raises(ValidationError):
        analyze_fog_density(AnalyzeFogDensityInput(photo_data_uri=png_data_uri))
