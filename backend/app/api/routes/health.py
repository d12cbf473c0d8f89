"""Health check endpoint with real service connectivity probes.

Each service check has a short timeout to avoid blocking the response.
A service reporting "disconnected" does not affect the overall status ("ok");
the endpoint always returns 200 so load balancers keep routing.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter

from app.config import settings

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

_CHECK_TIMEOUT = 3.0  # seconds per service check


async def _check_postgres() -> str:
    """Ping PostgreSQL with a simple SELECT 1 query."""
    if settings.store_backend != "postgres":
        return "disabled"

    import asyncpg

    from app.store.postgres import pg_dsn

    try:
        conn = await asyncio.wait_for(asyncpg.connect(pg_dsn()), timeout=_CHECK_TIMEOUT)
        try:
            await conn.fetchval("SELECT 1")
        finally:
            await conn.close()
        return "connected"
    except Exception as exc:
        logger.debug("health_postgres_failed", error=str(exc))
        return "disconnected"


async def _check_temporal() -> str:
    """Connect to Temporal server with a short timeout."""
    if not settings.use_temporal:
        return "disabled"

    from app.worker import create_temporal_client

    try:
        client = await asyncio.wait_for(create_temporal_client(), timeout=_CHECK_TIMEOUT)
        await client.service_client.check_health()
        return "connected"
    except Exception as exc:
        logger.debug("health_temporal_failed", error=str(exc))
        return "disconnected"


async def _check_r2() -> str:
    """Check R2 bucket accessibility via head_bucket."""
    from app.utils import r2

    if not r2.is_configured():
        return "disabled"
    try:
        await asyncio.wait_for(asyncio.to_thread(r2.head_bucket), timeout=_CHECK_TIMEOUT)
        return "connected"
    except Exception as exc:
        logger.debug("health_r2_failed", error=str(exc))
        return "disconnected"


@router.get("/health")
async def health_check() -> dict:
    """Confirm the API process is alive and report dependency reachability."""
    postgres, temporal, r2 = await asyncio.gather(
        _check_postgres(),
        _check_temporal(),
        _check_r2(),
    )

    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": settings.environment,
        "store": settings.store_backend,
        "postgres": postgres,
        "temporal": temporal,
        "r2": r2,
    }
