"""Mock image model for development without a Gemini key (USE_MOCK_ACTIVITIES=true).

The generation state machine, storage and credits all run for real; only the
model call is replaced with a local Pillow transformation.
"""

import tempfile
from pathlib import Path

from PIL import Image, ImageOps

from app.errors import (
    ContentBlocked,
    DreamCasaError,
    EmptyResponse,
    ImageMissing,
    UpstreamUnavailable,
)
from app.utils.gemini import GenerationResult
from app.utils.prompts import parse_detected_objects

# Cross-process one-shot error injection for E2E testing.
# Write an error code (e.g. "content_blocked") to this file; the next mock
# generation raises the matching error and deletes the file.
FORCE_FAILURE_SENTINEL = Path(tempfile.gettempdir()) / "dreamcasa-force-failure"

_INJECTABLE: dict[str, type[DreamCasaError]] = {
    ContentBlocked.code: ContentBlocked,
    UpstreamUnavailable.code: UpstreamUnavailable,
    ImageMissing.code: ImageMissing,
    EmptyResponse.code: EmptyResponse,
}

MOCK_DESCRIPTION = """- light oak dining table
- linen armchair
- brass floor lamp

The furniture is arranged around the window wall, leaving a clear walkway to the door."""


def _take_injected_failure() -> DreamCasaError | None:
    if not FORCE_FAILURE_SENTINEL.exists():
        return None
    code = FORCE_FAILURE_SENTINEL.read_text().strip()
    FORCE_FAILURE_SENTINEL.unlink(missing_ok=True)
    return _INJECTABLE.get(code, UpstreamUnavailable)()


async def generate_design(
    prompt: str,
    main_image: Image.Image,
    object_images: list[Image.Image],
) -> GenerationResult:
    if (error := _take_injected_failure()) is not None:
        raise error
    rendered = ImageOps.posterize(main_image.convert("RGB"), 3)
    for idx, obj in enumerate(object_images):
        inset = obj.convert("RGB").copy()
        inset.thumbnail((rendered.width // 4, rendered.height // 4))
        rendered.paste(inset, (idx * inset.width, rendered.height - inset.height))
    return GenerationResult(
        image=rendered,
        description=MOCK_DESCRIPTION,
        detected_objects=parse_detected_objects(MOCK_DESCRIPTION),
    )


async def describe_image(image: Image.Image) -> str | None:
    return f"mock object ({image.width}x{image.height})"
