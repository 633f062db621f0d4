"""
Handler: Object Detection
Detects objects in the (possibly foggy) photo. Each detection carries a label,
a confidence score and a pixel bounding box in source-image coordinates
(origin top-left, y pointing down).
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ai_client import call_ai
from image_processor import DataUri


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Missing coordinates degrade to 0 instead of failing the whole response
    x:      float = 0.0
    y:      float = 0.0
    width:  float = 0.0
    height: float = 0.0


class Detection(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    label:        str
    confidence:   float = Field(allow_inf_nan=False)
    bounding_box: BoundingBox


class DetectObjectsInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    photo_data_uri: DataUri


class DetectObjectsOutput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    detections: list[Detection]


def _build_prompt() -> str:
    return (
        "You are an expert object detection AI, specialized in detecting objects in foggy images.\n\n"
        "Analyze the image and identify the objects present in it.\n\n"
        "For each object provide:\n"
        "- label: short object class name in English (e.g. \"car\", \"person\", \"traffic light\")\n"
        "- confidence: detection confidence as float 0.0 to 1.0\n"
        "- boundingBox: {x, y, width, height} in pixels of the original image, "
        "x/y being the top-left corner\n\n"
        "Return an empty detections array if nothing is visible."
    )


def detect_objects(request: DetectObjectsInput) -> DetectObjectsOutput:
    ai_raw = call_ai(request.photo_data_uri, _build_prompt(), DetectObjectsOutput)
    return DetectObjectsOutput.model_validate(ai_raw)
