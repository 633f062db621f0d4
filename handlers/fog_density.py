"""
Handler: Fog Density
Scores how foggy the photo is, from 0 (clear) to 1 (very dense fog),
and returns a short textual description.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ai_client import call_ai
from image_processor import DataUri


class AnalyzeFogDensityInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    photo_data_uri: DataUri   # 'data:<mimetype>;base64,<encoded_data>'


class AnalyzeFogDensityOutput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    fog_density_score:       float = Field(ge=0.0, le=1.0, allow_inf_nan=False)   # 0 = no fog, 1 = very dense fog
    fog_density_description: str


def _build_prompt() -> str:
    return (
        "You are an expert in image analysis, specializing in assessing fog density.\n\n"
        "Analyze the provided image and determine the fog density.\n\n"
        "Return a JSON object with:\n"
        "- fogDensityScore: a number from 0 to 1, where 0 means no fog and 1 means "
        "extremely dense fog\n"
        "- fogDensityDescription: a short textual description of the fog density"
    )


def analyze_fog_density(request: AnalyzeFogDensityInput) -> AnalyzeFogDensityOutput:
    ai_raw = call_ai(request.photo_data_uri, _build_prompt(), AnalyzeFogDensityOutput)
    return AnalyzeFogDensityOutput.model_validate(ai_raw)
