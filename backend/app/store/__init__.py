"""Process-wide store selection (STORE_BACKEND=memory|postgres)."""

from __future__ import annotations

import asyncio

import structlog

from app.config import settings
from app.store.base import Store
from app.store.memory import InMemoryStore

logger = structlog.get_logger()

_store: Store | None = None
_store_lock = asyncio.Lock()


async def get_store() -> Store:
    """Lazy-init singleton store."""
    global _store  # noqa: PLW0603
    if _store is not None:
        return _store
    async with _store_lock:
        if _store is None:
            if settings.store_backend == "postgres":
                from app.store.postgres import PostgresStore

                _store = await PostgresStore.connect()
            else:
                if settings.environment != "development":
                    logger.warning("store_using_memory_backend", environment=settings.environment)
                _store = InMemoryStore()
    return _store


def set_store(store: Store | None) -> None:
    """Install a specific store (tests) or clear the singleton with None."""
    global _store  # noqa: PLW0603
    _store = store


async def close_store() -> None:
    global _store  # noqa: PLW0603
    if _store is not None:
        await _store.close()
        _store = None


__all__ = ["InMemoryStore", "Store", "close_store", "get_store", "set_store"]
