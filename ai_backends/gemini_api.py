"""
AI backend: Google Gemini
Structured calls use GEMINI_MODEL (default gemini-2.5-flash-lite) with enforced
JSON output; image editing uses GEMINI_IMAGE_MODEL (default gemini-2.0-flash-exp)
with TEXT + IMAGE response modalities.
Requires GEMINI_API_KEY in environment.
"""
import os
import json
import time

from google import genai
from google.genai import types

from image_processor import parse_data_uri, to_data_uri
from logging_utils import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL       = "gemini-2.5-flash-lite"
DEFAULT_IMAGE_MODEL = "gemini-2.0-flash-exp"


def _client() -> genai.Client:
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        raise RuntimeError(
            "GEMINI_API_KEY is not set. Copy .env.example to .env and add your key."
        )
    return genai.Client(api_key=api_key)


def _image_part(image_data_uri: str) -> types.Part:
    mime_type, image_bytes = parse_data_uri(image_data_uri)
    return types.Part.from_bytes(data=image_bytes, mime_type=mime_type)


def _quota_error(exc: Exception) -> RuntimeError | None:
    """Translate a 429 / RESOURCE_EXHAUSTED error into a readable message."""
    msg = str(exc)
    if "429" not in msg and "RESOURCE_EXHAUSTED" not in msg:
        return None
    retry = ""
    try:
        data = json.loads(msg[msg.index("{"):])
        for d in data.get("error", {}).get("details", []):
            if d.get("@type", "").endswith("RetryInfo"):
                retry = f" Retry after: {d['retryDelay']}."
    except (ValueError, KeyError, AttributeError):
        pass
    return RuntimeError(
        f"Gemini API quota exceeded: free tier limit reached.{retry} "
        "Generate a new key at https://aistudio.google.com/apikey "
        "or wait and try again."
    )


def call(image_data_uri: str, prompt: str, response_schema) -> dict:
    """Send an image + prompt to Gemini and return the parsed JSON response.

    Args:
        image_data_uri:  The image as a base64 data URI.
        prompt:          Text prompt to send alongside the image.
        response_schema: Pydantic model class used as the structured output schema.

    Returns:
        Parsed JSON response as a dict.
    """
    model  = os.environ.get("GEMINI_MODEL", DEFAULT_MODEL)
    client = _client()
    start  = time.monotonic()

    try:
        response = client.models.generate_content(
            model=model,
            contents=[_image_part(image_data_uri), prompt],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=response_schema,
                max_output_tokens=16384,
            ),
        )
    except Exception as e:
        quota = _quota_error(e)
        if quota is not None:
            raise quota from e
        raise

    logger.info("Gemini %s answered %s in %.1fs", model, response_schema.__name__, time.monotonic() - start)

    # Prefer response.parsed (SDK-parsed Pydantic object); avoids json.loads issues
    # with thinking-mode tokens or truncated responses from long outputs.
    parsed = getattr(response, "parsed", None)
    if parsed is not None:
        return parsed.model_dump(by_alias=True)

    raw_text = response.text or ""
    try:
        return json.loads(raw_text)
    except ValueError as parse_err:
        # Last resort: try to extract only the JSON part from response.text
        try:
            start_idx = raw_text.index("{")
            end_idx   = raw_text.rindex("}") + 1
            return json.loads(raw_text[start_idx:end_idx])
        except ValueError:
            snippet = raw_text[:2000] if raw_text else "(empty)"
            raise RuntimeError(
                f"AI returned a response that could not be parsed as JSON. "
                f"(Detail: {parse_err})\n\n"
                f"--- RAW RESPONSE (first 2000 chars) ---\n{snippet}"
            ) from parse_err


def generate_image(image_data_uri: str, prompt: str) -> str:
    """Send an image + editing instruction to Gemini and return the edited image as a data URI."""
    model  = os.environ.get("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL)
    client = _client()
    start  = time.monotonic()

    try:
        response = client.models.generate_content(
            model=model,
            contents=[_image_part(image_data_uri), prompt],
            config=types.GenerateContentConfig(
                response_modalities=["TEXT", "IMAGE"],
            ),
        )
    except Exception as e:
        quota = _quota_error(e)
        if quota is not None:
            raise quota from e
        raise

    logger.info("Gemini %s returned an image in %.1fs", model, time.monotonic() - start)

    for candidate in response.candidates or []:
        content = candidate.content
        for part in (content.parts if content else None) or []:
            inline = part.inline_data
            if inline is not None and inline.data:
                return to_data_uri(inline.data, inline.mime_type or "image/png")

    raise RuntimeError(f"{model} did not return an image.")
