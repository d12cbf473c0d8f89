"""Source image download and validation.

Accepts http(s) URLs and base64 data URLs. Every failure raises
InvalidInput (bad reference) or ImageFetchFailed (reference could not be
downloaded or decoded), both surfaced to the client as 400s.
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
import structlog
from PIL import Image

from app.config import settings
from app.errors import ImageFetchFailed, InvalidInput
from app.utils.image import decode_data_url

logger = structlog.get_logger()

_ALLOWED_SCHEMES = frozenset({"http", "https", "data"})


@dataclass
class FetchedImage:
    url: str
    image: Image.Image


def validate_image_url(url: str) -> None:
    """Reject empty, malformed, non-http(s)/data and AVIF references."""
    if not url or not url.strip():
        raise InvalidInput("Image URL is required")
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        raise InvalidInput("Invalid image URL format") from exc
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise InvalidInput("Only HTTP/HTTPS and data URLs are supported")
    if parsed.scheme != "data" and not parsed.netloc:
        raise InvalidInput("Invalid image URL format")
    if parsed.path.lower().endswith(".avif") or url.startswith("data:image/avif"):
        raise InvalidInput("AVIF format is not supported. Please use JPEG or PNG.")


def _decode(url: str, data: bytes) -> Image.Image:
    if not data:
        raise ImageFetchFailed(f"Fetched empty image data from {url[:100]}")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()  # Force full decode to catch truncation
    except Exception as exc:
        raise ImageFetchFailed(f"Downloaded image is corrupt: {url[:100]}") from exc
    return img


async def fetch_image(client: httpx.AsyncClient, url: str) -> FetchedImage:
    """Fetch and validate a single image using the given HTTP client."""
    validate_image_url(url)

    if url.startswith("data:"):
        try:
            _, data = decode_data_url(url)
        except ValueError as exc:
            raise InvalidInput("Invalid image URL format") from exc
        return FetchedImage(url=url, image=_decode(url[:40], data))

    try:
        response = await client.get(
            url, timeout=settings.image_fetch_timeout_seconds, follow_redirects=True
        )
    except httpx.TimeoutException as exc:
        raise ImageFetchFailed(f"Timeout downloading image: {url[:100]}") from exc
    except httpx.RequestError as exc:
        raise ImageFetchFailed(
            f"Network error downloading image: {url[:100]}: {type(exc).__name__}"
        ) from exc

    if response.status_code >= 400:
        raise ImageFetchFailed(f"Failed to fetch image: HTTP {response.status_code} {url[:100]}")

    content_type = response.headers.get("content-type", "")
    if "avif" in content_type:
        raise InvalidInput("AVIF format is not supported. Please use JPEG or PNG.")
    if content_type and not content_type.startswith(("image/", "application/octet-stream")):
        raise ImageFetchFailed(f"Expected image content-type, got: {content_type}")

    return FetchedImage(url=url, image=_decode(url, response.content))


async def download_image(url: str) -> Image.Image:
    """Download one image with a short-lived client."""
    async with httpx.AsyncClient() as client:
        return (await fetch_image(client, url)).image


async def download_images(urls: list[str]) -> list[Image.Image]:
    """Download images concurrently; the first failure cancels the rest and is raised."""
    if not urls:
        return []
    async with httpx.AsyncClient() as client:
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(fetch_image(client, url)) for url in urls]
        except ExceptionGroup as failed:
            raise failed.exceptions[0] from None
    return [task.result().image for task in tasks]


async def download_images_best_effort(urls: list[str]) -> list[Image.Image]:
    """Download images concurrently, skipping (and logging) any that fail."""
    if not urls:
        return []
    async with httpx.AsyncClient() as client:
        results = await asyncio.gather(
            *(fetch_image(client, url) for url in urls), return_exceptions=True
        )
    images: list[Image.Image] = []
    for url, result in zip(urls, results, strict=True):
        if isinstance(result, InvalidInput):
            logger.warning("object_image_skipped", url=url[:100], reason=result.message)
            continue
        if isinstance(result, BaseException):
            raise result
        images.append(result.image)
    return images
