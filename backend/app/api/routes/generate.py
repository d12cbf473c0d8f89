"""Stateless model endpoints (no credits, nothing persisted)."""

import structlog
from fastapi import APIRouter, Depends

from app.api import deps
from app.config import settings
from app.errors import DreamCasaError, InvalidInput
from app.models.contracts import (
    DescribeObjectRequest,
    DescribeObjectResponse,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
)
from app.services import preview

logger = structlog.get_logger()

router = APIRouter(tags=["generate"])


class _DebugForbidden(DreamCasaError):
    code = "forbidden"
    status_code = 403
    default_message = "Debug endpoints disabled outside development"


@router.post(
    "/generate",
    response_model=GenerateResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def generate(
    body: GenerateRequest, user_id: str = Depends(deps.current_user)
) -> GenerateResponse:
    """One-off design preview; the image comes back as a data URL."""
    logger.info("preview_requested", user_id=user_id, num_objects=len(body.object_image_urls))
    return await preview.generate_preview(body)


@router.post(
    "/describe-object",
    response_model=DescribeObjectResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def describe_object(
    body: DescribeObjectRequest, user_id: str = Depends(deps.current_user)
) -> DescribeObjectResponse:
    description = await preview.describe_object_url(body.image_url)
    return DescribeObjectResponse(description=description)


@router.post("/debug/force-failure", status_code=204)
async def force_failure(error_code: str = "upstream_unavailable") -> None:
    """Arm a one-shot failure in the next mock generation (development only)."""
    if settings.environment != "development":
        raise _DebugForbidden()
    if not settings.use_mock_activities:
        raise InvalidInput("Error injection only works with mock activities")

    from app.activities.mock_stubs import FORCE_FAILURE_SENTINEL

    FORCE_FAILURE_SENTINEL.write_text(error_code)
