import asyncio
import contextlib
import uuid
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.routes import credits, generate, health, objects, projects
from app.config import settings
from app.errors import DreamCasaError
from app.logging import configure_logging
from app.services.dispatch import InProcessDispatcher, TemporalDispatcher
from app.services.reconciler import reconcile_forever
from app.store import close_store, get_store

configure_logging()

logger = structlog.get_logger()


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire the store and dispatcher; run the reconcile loop when Temporal is off."""
    store = await get_store()
    reconcile_task: asyncio.Task | None = None  # type: ignore[type-arg]

    if settings.use_temporal:
        from app.worker import create_temporal_client

        app.state.dispatcher = TemporalDispatcher(await create_temporal_client())
    else:
        app.state.dispatcher = InProcessDispatcher(store)
        reconcile_task = asyncio.create_task(
            reconcile_forever(store, settings.reconcile_interval_seconds)
        )

    logger.info(
        "api_started",
        store_backend=settings.store_backend,
        use_temporal=settings.use_temporal,
        use_mock_activities=settings.use_mock_activities,
    )
    try:
        yield
    finally:
        if reconcile_task is not None:
            reconcile_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reconcile_task
        await close_store()
        logger.info("api_stopped")


app = FastAPI(
    title="DreamCasa API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)


def _error_response(request: Request, status_code: int, content: dict) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=content)
    response.headers["X-Request-ID"] = getattr(
        request.state, "request_id", request.headers.get("X-Request-ID", "")
    )
    return response


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a unique request ID to every request for log correlation.

    Sets the ID in structlog context vars (appears in all log entries for the
    request) and returns it in the X-Request-ID response header so clients
    can report it when debugging errors.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(DreamCasaError)
async def dreamcasa_exception_handler(request: Request, exc: DreamCasaError) -> JSONResponse:
    """Render taxonomy errors as ErrorResponse JSON with their HTTP status."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        method=request.method,
        error_code=exc.code,
        status_code=exc.status_code,
    )
    return _error_response(
        request,
        exc.status_code,
        {"error": exc.code, "message": exc.message, "retryable": exc.retryable},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Return ErrorResponse JSON for Pydantic validation errors.

    FastAPI's default 422 returns {"detail": [...]}, which doesn't match
    our ErrorResponse contract.
    """
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return _error_response(
        request,
        422,
        {"error": "validation_error", "message": "; ".join(messages), "retryable": False},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return consistent ErrorResponse JSON for unhandled exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return _error_response(
        request,
        500,
        {"error": "internal_error", "message": "An unexpected error occurred", "retryable": True},
    )


app.include_router(health.router)
app.include_router(projects.router, prefix="/api/v1")
app.include_router(generate.router, prefix="/api/v1")
app.include_router(objects.router, prefix="/api/v1")
app.include_router(credits.router, prefix="/api/v1")
