"""
Handler: Fog Removal
Asks the image model for a copy of the photo with reduced fog and improved
visibility. The result comes back as a data URI and is passed through untouched.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ai_client import generate_image
from image_processor import DataUri

PROMPT = "Enhance this image by reducing the fog and improving visibility."


class EnhanceFoggyImageInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    foggy_photo_data_uri: DataUri


class EnhanceFoggyImageOutput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    enhanced_photo_data_uri: DataUri


def enhance_foggy_image(request: EnhanceFoggyImageInput) -> EnhanceFoggyImageOutput:
    enhanced = generate_image(request.foggy_photo_data_uri, PROMPT)
    return EnhanceFoggyImageOutput(enhanced_photo_data_uri=enhanced)
