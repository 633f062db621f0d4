"""
AI client dispatcher.
Selects the active backend based on the AI_PROVIDER environment variable
and delegates all calls to it.

Supported backends (ai_backends/<name>.py, each must expose call() and generate_image()):
  gemini_api  : Google Gemini via google-genai SDK (default, enforced JSON schema)

To add a new backend:
  1. Create ai_backends/my_provider.py with call() and generate_image() matching the signatures below.
  2. Set AI_PROVIDER=my_provider in .env.
"""
import os
import importlib

from dotenv import load_dotenv

load_dotenv()


def _backend():
    load_dotenv(override=True)  # re-read .env so changes apply without server restart
    provider = os.environ.get("AI_PROVIDER", "gemini_api")
    try:
        return importlib.import_module(f"ai_backends.{provider}")
    except ModuleNotFoundError:
        raise RuntimeError(
            f"AI backend '{provider}' not found. "
            f"Create ai_backends/{provider}.py or change AI_PROVIDER in .env."
        )


def call_ai(image_data_uri: str, prompt: str, response_schema) -> dict:
    """Send an image + prompt to the active AI backend and return parsed JSON.

    Args:
        image_data_uri:  The image as 'data:<mimetype>;base64,<encoded_data>'.
        prompt:          Text prompt describing what to extract.
        response_schema: Pydantic model class for structured output.

    Returns:
        Parsed JSON response as a dict.
    """
    return _backend().call(image_data_uri, prompt, response_schema)


def generate_image(image_data_uri: str, prompt: str) -> str:
    """Ask the active AI backend for an edited copy of the image.

    Returns:
        The generated image as a data URI.
    """
    return _backend().generate_image(image_data_uri, prompt)
