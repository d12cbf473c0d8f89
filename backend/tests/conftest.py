"""Shared fixtures: a fresh in-memory store per test and an ASGI test client.

Images are passed as data URLs so no test touches the network.
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from app.config import settings
from app.main import app
from app.services.dispatch import InProcessDispatcher
from app.store import InMemoryStore, set_store
from app.utils.image import image_to_data_url


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Mock model, memory store, no R2, regardless of the developer's .env."""
    monkeypatch.setattr(settings, "use_mock_activities", True)
    monkeypatch.setattr(settings, "use_temporal", False)
    monkeypatch.setattr(settings, "store_backend", "memory")
    monkeypatch.setattr(settings, "r2_account_id", "")
    monkeypatch.setattr(settings, "generation_cost_credits", 5)
    monkeypatch.setattr(settings, "default_credits", 3)


@pytest.fixture
def store():
    """Fresh in-memory store installed as the process store."""
    memory = InMemoryStore()
    set_store(memory)
    yield memory
    set_store(None)


@pytest.fixture
def dispatcher(store):
    return InProcessDispatcher(store)


@pytest.fixture
async def client(store, dispatcher):
    """httpx client over ASGI; lifespan is skipped so state is wired here."""
    app.state.dispatcher = dispatcher
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def room_url() -> str:
    return image_to_data_url(Image.new("RGB", (64, 48), (200, 180, 160)))


@pytest.fixture
def object_url() -> str:
    return image_to_data_url(Image.new("RGB", (32, 32), (20, 40, 60)))
