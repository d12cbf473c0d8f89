"""Stateless model endpoints: one-off design preview and object description.

Neither touches credits or the project store.
"""

from __future__ import annotations

import structlog
from PIL import Image

from app.activities.generate import call_model
from app.config import settings
from app.errors import DreamCasaError, InvalidInput
from app.models.contracts import GenerateRequest, GenerateResponse
from app.utils.http import download_image, download_images_best_effort
from app.utils.image import image_to_data_url

logger = structlog.get_logger()

DESCRIPTION_UNAVAILABLE = "Object description unavailable"


async def generate_preview(request: GenerateRequest) -> GenerateResponse:
    """Run the image model once and return the result inline.

    The main image is required; object images that cannot be fetched are
    skipped.
    """
    if not request.prompt.strip() or not request.main_image_url:
        raise InvalidInput("Missing required fields: prompt and mainImageUrl.")

    object_urls = [url for url in request.object_image_urls if url and url.strip()]
    if len(object_urls) != len(request.object_image_urls):
        logger.warning("empty_object_urls_skipped", count=len(request.object_image_urls) - len(object_urls))

    main_image = await download_image(request.main_image_url)
    object_images = await download_images_best_effort(object_urls)
    result = await call_model(request.prompt, main_image, object_images)
    return GenerateResponse(
        description=result.description or "",
        image_data=image_to_data_url(result.image),
        detected_objects=result.detected_objects,
    )


async def describe_image(image: Image.Image) -> str | None:
    if settings.use_mock_activities:
        from app.activities import mock_stubs

        return await mock_stubs.describe_image(image)

    from app.utils import gemini

    return await gemini.describe_image(image)


async def describe_object(image: Image.Image) -> str:
    """Short description for a stored user object.

    Uploads never fail on the description: model errors and empty answers
    both fall back to the placeholder.
    """
    try:
        description = await describe_image(image)
    except DreamCasaError as exc:
        logger.warning("describe_object_failed", error_code=exc.code)
        description = None
    return description or DESCRIPTION_UNAVAILABLE


async def describe_object_url(image_url: str) -> str:
    """Describe the image at `image_url`.

    Model errors propagate as taxonomy errors; only an empty answer becomes
    the placeholder.
    """
    if not image_url:
        raise InvalidInput("Missing required field: imageUrl.")
    image = await download_image(image_url)
    return (await describe_image(image)) or DESCRIPTION_UNAVAILABLE
