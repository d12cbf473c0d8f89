"""Error taxonomy for design generation.

Every failure a caller can observe maps to one of these classes. The API
renders them as ErrorResponse JSON; the worker stores `code` and the message
on the failed project so the client can tell a safety block from an outage.
"""

from __future__ import annotations


class DreamCasaError(Exception):
    code = "internal_error"
    status_code = 500
    retryable = False
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(DreamCasaError):
    code = "invalid_input"
    status_code = 400
    default_message = "Invalid request"


class ImageFetchFailed(InvalidInput):
    """A source image URL could not be downloaded or decoded."""

    code = "image_fetch_failed"
    default_message = "Failed to fetch image"


class Unauthorized(DreamCasaError):
    code = "unauthorized"
    status_code = 401
    default_message = "Missing X-User-ID header"


class InsufficientCredits(DreamCasaError):
    code = "insufficient_credits"
    status_code = 402
    default_message = "Insufficient credits"

    def __init__(self, required: int, available: int | None = None) -> None:
        self.required = required
        self.available = available
        msg = f"Insufficient credits: {required} required"
        if available is not None:
            msg += f", {available} available"
        super().__init__(msg)


class ProjectNotFound(DreamCasaError):
    code = "not_found"
    status_code = 404
    default_message = "Project not found"


class ObjectNotFound(DreamCasaError):
    code = "not_found"
    status_code = 404
    default_message = "Object not found"


class ContentBlocked(DreamCasaError):
    code = "content_blocked"
    status_code = 400
    default_message = (
        "Content generation blocked due to safety filters. "
        "Try a different photo or prompt."
    )


class UpstreamUnavailable(DreamCasaError):
    code = "upstream_unavailable"
    status_code = 503
    retryable = True
    default_message = "Service Unavailable - the image model is currently overloaded"


class ImageMissing(DreamCasaError):
    code = "image_missing"
    status_code = 503
    retryable = True
    default_message = "Service Unavailable - image data missing from response"


class EmptyResponse(DreamCasaError):
    code = "empty_response"
    status_code = 503
    retryable = True
    default_message = (
        "Service Unavailable - both description and image data are missing from response"
    )


class GenerationFailed(DreamCasaError):
    code = "generation_failed"
    status_code = 500
    retryable = True
    default_message = "Failed to generate design"


class PersistenceFailure(DreamCasaError):
    code = "persistence_failure"
    status_code = 500
    retryable = True
    default_message = "Failed to save generation result"


class DispatchFailure(DreamCasaError):
    code = "dispatch_failure"
    status_code = 500
    retryable = True
    default_message = "Function invocation failed"


GENERATION_TIMEOUT_CODE = "generation_timeout"
