"""FastAPI dependencies shared by the v1 routers."""

from __future__ import annotations

from fastapi import Header, Request

from app.errors import Unauthorized
from app.services.dispatch import Dispatcher
from app.store import get_store
from app.store.base import Store


async def current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity, set by the auth gateway in front of the API."""
    if x_user_id is None or not x_user_id.strip():
        raise Unauthorized()
    return x_user_id.strip()


async def store() -> Store:
    return await get_store()


def dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher
