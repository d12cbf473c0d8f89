"""Gemini image model client: one standalone call per design, no chat session.

Responses are classified into the generation error taxonomy here so callers
only ever see a GenerationResult or a DreamCasaError subclass.
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field

import structlog
from google import genai
from google.genai import types
from PIL import Image

from app.config import settings
from app.errors import (
    ContentBlocked,
    DreamCasaError,
    EmptyResponse,
    GenerationFailed,
    ImageMissing,
    UpstreamUnavailable,
)
from app.utils.prompts import parse_detected_objects

logger = structlog.get_logger()

MAX_INPUT_IMAGES = 14

_SAFETY_FINISH_REASONS = frozenset(
    {
        "SAFETY",
        "IMAGE_SAFETY",
        "PROHIBITED_CONTENT",
        "IMAGE_PROHIBITED_CONTENT",
        "BLOCKLIST",
        "SPII",
    }
)

_RELAXED_SAFETY = [
    types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_NONE)
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]

IMAGE_CONFIG = types.GenerateContentConfig(
    response_modalities=["TEXT", "IMAGE"],
    safety_settings=_RELAXED_SAFETY,
)

TEXT_CONFIG = types.GenerateContentConfig(safety_settings=_RELAXED_SAFETY)

DESCRIBE_OBJECT_PROMPT = (
    "Describe the main object in this image concisely in a few words, focusing on "
    "its type, color, and key visual features. "
    "Example: 'black leather sofa with chrome legs'."
)


@dataclass
class GenerationResult:
    image: Image.Image
    description: str | None
    detected_objects: list[str] = field(default_factory=list)


def get_client() -> genai.Client:
    """Create a Gemini client using the configured API key."""
    return genai.Client(api_key=settings.google_ai_api_key)


def extract_image(response: types.GenerateContentResponse) -> Image.Image | None:
    """Extract the first image from a Gemini response as PIL Image.

    Returns None if no image parts found. May raise if image data is corrupt.
    """
    if not response.candidates:
        return None
    content = response.candidates[0].content
    if content is None or content.parts is None:
        return None
    for part in content.parts:
        if part.inline_data is None or not part.inline_data.data:
            continue
        try:
            return Image.open(io.BytesIO(part.inline_data.data))
        except Exception:
            logger.error(
                "gemini_image_decode_failed",
                mime_type=part.inline_data.mime_type,
                image_bytes_len=len(part.inline_data.data),
            )
            raise
    return None


def extract_text(response: types.GenerateContentResponse) -> str:
    """Concatenate all text parts from a Gemini response."""
    if not response.candidates:
        return ""
    content = response.candidates[0].content
    if content is None or content.parts is None:
        return ""
    return "".join(part.text for part in content.parts if part.text)


def _enum_name(value: object) -> str:
    return str(getattr(value, "name", value) or "")


def blocked_reason(response: types.GenerateContentResponse) -> str | None:
    """Return the safety block reason, or None if the response was not blocked."""
    feedback = response.prompt_feedback
    if feedback is not None and feedback.block_reason is not None:
        return _enum_name(feedback.block_reason)
    if response.candidates:
        reason = _enum_name(response.candidates[0].finish_reason)
        if reason in _SAFETY_FINISH_REASONS:
            return reason
    return None


def classify_response(response: types.GenerateContentResponse) -> GenerationResult:
    """Apply the image/description policy to a raw model response.

    Image without description is a success. Anything without an image fails.
    """
    reason = blocked_reason(response)
    if reason is not None:
        logger.warning("gemini_content_blocked", reason=reason)
        raise ContentBlocked()

    image = extract_image(response)
    description = extract_text(response).strip() or None

    if image is None and description is None:
        raise EmptyResponse()
    if image is None:
        logger.warning("gemini_no_image_response", gemini_text=(description or "")[:300])
        raise ImageMissing()
    if description is None:
        logger.warning("gemini_missing_description")

    return GenerationResult(
        image=image,
        description=description,
        detected_objects=parse_detected_objects(description or ""),
    )


def classify_exception(exc: BaseException) -> DreamCasaError:
    """Map an SDK/transport exception onto the error taxonomy."""
    if isinstance(exc, DreamCasaError):
        return exc
    if isinstance(exc, TimeoutError):
        return UpstreamUnavailable(
            f"Image model timed out after {settings.gemini_timeout_seconds:.0f}s"
        )

    error_type = type(exc).__name__
    error_msg = str(exc)
    lowered = error_msg.lower()

    # TODO: Catch typed google.genai.errors.APIError codes once every path raises them
    if (
        "503" in error_msg
        or "429" in error_msg
        or "overloaded" in lowered
        or "UNAVAILABLE" in error_msg
        or "RESOURCE_EXHAUSTED" in error_msg
    ):
        return UpstreamUnavailable()
    if "SAFETY" in error_msg or "blocked" in lowered:
        return ContentBlocked()
    return GenerationFailed(f"Failed to generate design: {error_type}: {error_msg[:200]}")


async def _generate_content(
    client: genai.Client,
    contents: list,
    config: types.GenerateContentConfig,
) -> types.GenerateContentResponse:
    # Sync SDK call runs in the thread pool, bounded by a timeout
    async with asyncio.timeout(settings.gemini_timeout_seconds):
        return await asyncio.to_thread(
            client.models.generate_content,
            model=settings.gemini_model,
            contents=contents,
            config=config,
        )


async def generate_design(
    prompt: str,
    main_image: Image.Image,
    object_images: list[Image.Image],
    client: genai.Client | None = None,
) -> GenerationResult:
    """Generate one redesigned room image from the main photo plus object photos."""
    if 1 + len(object_images) > MAX_INPUT_IMAGES:
        logger.warning(
            "object_images_truncated",
            original_count=len(object_images),
            kept=MAX_INPUT_IMAGES - 1,
        )
        object_images = object_images[: MAX_INPUT_IMAGES - 1]

    client = client or get_client()
    contents: list = [main_image, *object_images, prompt]

    logger.info("gemini_generate_start", num_object_images=len(object_images))
    try:
        response = await _generate_content(client, contents, IMAGE_CONFIG)
    except Exception as exc:
        error = classify_exception(exc)
        logger.warning(
            "gemini_generate_failed",
            error_type=type(exc).__name__,
            error_code=error.code,
        )
        raise error from exc

    result = classify_response(response)
    logger.info(
        "gemini_generate_done",
        has_description=result.description is not None,
        detected_objects=len(result.detected_objects),
    )
    return result


async def describe_image(image: Image.Image, client: genai.Client | None = None) -> str | None:
    """Short text description of the main object in an image, or None."""
    client = client or get_client()
    try:
        response = await _generate_content(client, [DESCRIBE_OBJECT_PROMPT, image], TEXT_CONFIG)
    except Exception as exc:
        raise classify_exception(exc) from exc

    reason = blocked_reason(response)
    if reason is not None:
        raise ContentBlocked()
    return extract_text(response).strip() or None
