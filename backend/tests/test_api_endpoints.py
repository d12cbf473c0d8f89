"""HTTP-level tests for the v1 API over the ASGI transport.

Identity comes from the X-User-ID header; the mock image model and the
in-memory store run for real.
"""

from __future__ import annotations

import io
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from PIL import Image

from app.errors import ContentBlocked, UpstreamUnavailable
from app.models.contracts import ProjectDraft

USER = "user-1"
OTHER = "user-2"
AUTH = {"X-User-ID": USER}
OTHER_AUTH = {"X-User-ID": OTHER}


def _body(room_url: str, **overrides) -> dict:
    body = {
        "inputImageUrl": room_url,
        "style": "Japandi",
        "roomType": "Living Room",
        "renderingType": "3d",
    }
    body.update(overrides)
    return body


def _png_bytes(size=(40, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (120, 90, 60)).save(buf, format="PNG")
    return buf.getvalue()


async def _completed(store, owner: str, room_url: str):
    project = await store.create_project(
        ProjectDraft(owner_id=owner, input_image_url=room_url, style="Boho", room_type="Kitchen")
    )
    return await store.complete_project(
        project.id, result_image_url="https://cdn.test/r.png", thumbnail_url=None, description=None
    )


class TestIdentity:
    @pytest.mark.asyncio
    async def test_missing_header_is_401(self, client) -> None:
        """Requests without X-User-ID get the 401 error body."""
        resp = await client.get("/api/v1/projects")
        assert resp.status_code == 401
        assert resp.json() == {
            "error": "unauthorized",
            "message": "Missing X-User-ID header",
            "retryable": False,
        }

    @pytest.mark.asyncio
    async def test_blank_header_is_401(self, client) -> None:
        """A whitespace-only user id counts as missing."""
        resp = await client.get("/api/v1/credits", headers={"X-User-ID": "   "})
        assert resp.status_code == 401


class TestCreateProject:
    @pytest.mark.asyncio
    async def test_async_returns_202_then_completes(self, client, store, dispatcher, room_url) -> None:
        """Async create returns 202 with the id; polling shows the completed project."""
        store.set_balance(USER, 10)

        resp = await client.post("/api/v1/projects", json=_body(room_url), headers=AUTH)

        assert resp.status_code == 202
        data = resp.json()
        assert data["success"] is True
        assert data["status"] == "pending"
        assert "project" not in data
        project_id = data["projectId"]

        await dispatcher.drain()
        polled = await client.get(f"/api/v1/projects/{project_id}")
        assert polled.status_code == 200
        project = polled.json()
        assert project["status"] == "completed"
        assert project["resultImageUrl"].startswith("data:image/png")
        assert project["creditsCharged"] == 5
        assert store._credits[USER] == 5

    @pytest.mark.asyncio
    async def test_wait_returns_200_with_project(self, client, store, room_url) -> None:
        """wait=true returns 200 with the finished project inline."""
        store.set_balance(USER, 10)

        resp = await client.post(
            "/api/v1/projects", json=_body(room_url, wait=True), headers=AUTH
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["project"]["id"] == data["projectId"]
        assert data["project"]["description"].startswith("- light oak dining table")

    @pytest.mark.asyncio
    async def test_wait_failure_returns_error_and_refunds(self, client, store, room_url) -> None:
        """A sync model failure maps to its status and refunds the charge."""
        store.set_balance(USER, 10)

        with patch(
            "app.activities.mock_stubs.generate_design",
            new=AsyncMock(side_effect=UpstreamUnavailable()),
        ):
            resp = await client.post(
                "/api/v1/projects", json=_body(room_url, wait=True), headers=AUTH
            )

        assert resp.status_code == 503
        assert resp.json()["error"] == "upstream_unavailable"
        assert resp.json()["retryable"] is True
        assert store._credits[USER] == 10

    @pytest.mark.asyncio
    async def test_insufficient_credits_is_402(self, client, store, room_url) -> None:
        """New users start with 3 credits; a generation costs 5."""
        resp = await client.post("/api/v1/projects", json=_body(room_url), headers=AUTH)

        assert resp.status_code == 402
        assert resp.json()["error"] == "insufficient_credits"
        items, total = await store.list_projects(offset=0, limit=10)
        assert total == 0

    @pytest.mark.asyncio
    async def test_bad_image_url_is_400(self, client, store) -> None:
        """An unsupported image URL is rejected before any charge."""
        store.set_balance(USER, 10)

        resp = await client.post(
            "/api/v1/projects", json=_body("ftp://example.com/room.png"), headers=AUTH
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"
        assert store._credits[USER] == 10

    @pytest.mark.asyncio
    async def test_schema_violation_is_422(self, client, room_url) -> None:
        """Schema violations are 422 with a validation_error naming the field."""
        resp = await client.post(
            "/api/v1/projects", json=_body(room_url, renderingType="oil-painting"), headers=AUTH
        )

        assert resp.status_code == 422
        data = resp.json()
        assert data["error"] == "validation_error"
        assert "renderingType" in data["message"]

    @pytest.mark.asyncio
    async def test_idempotency_key_reuses_project(self, client, store, dispatcher, room_url) -> None:
        """Repeating idempotencyKey returns the same project, charged once."""
        store.set_balance(USER, 10)
        body = _body(room_url, idempotencyKey="retry-1")

        first = await client.post("/api/v1/projects", json=body, headers=AUTH)
        second = await client.post("/api/v1/projects", json=body, headers=AUTH)
        await dispatcher.drain()

        assert first.json()["projectId"] == second.json()["projectId"]
        assert store._credits[USER] == 5


class TestRegenerateProject:
    @pytest.mark.asyncio
    async def test_async_regeneration_returns_202(self, client, store, dispatcher, room_url) -> None:
        """Regeneration creates a new project linked to its source and charges once."""
        store.set_balance(USER, 20)
        created = await client.post(
            "/api/v1/projects", json=_body(room_url, wait=True), headers=AUTH
        )
        source_id = created.json()["projectId"]

        resp = await client.post(
            f"/api/v1/projects/{source_id}/regenerate",
            json={"renderingType": "wireframe", "viewType": "top"},
            headers=AUTH,
        )

        assert resp.status_code == 202
        project_id = resp.json()["projectId"]
        assert project_id != source_id
        await dispatcher.drain()
        polled = (await client.get(f"/api/v1/projects/{project_id}")).json()
        assert polled["status"] == "completed"
        assert polled["sourceProjectId"] == source_id
        assert polled["renderingType"] == "wireframe"
        assert store._credits[USER] == 10

    @pytest.mark.asyncio
    async def test_wait_returns_200_with_project(self, client, store, room_url) -> None:
        """wait=true regeneration returns the completed project inline."""
        store.set_balance(USER, 20)
        created = await client.post(
            "/api/v1/projects", json=_body(room_url, wait=True), headers=AUTH
        )

        resp = await client.post(
            f"/api/v1/projects/{created.json()['projectId']}/regenerate",
            json={"wait": True},
            headers=AUTH,
        )

        assert resp.status_code == 200
        assert resp.json()["project"]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_other_users_project_is_404(self, client, store, room_url) -> None:
        """Regenerating someone else's project is 404 and costs nothing."""
        source = await _completed(store, USER, room_url)
        store.set_balance(OTHER, 20)

        resp = await client.post(
            f"/api/v1/projects/{source.id}/regenerate", json={}, headers=OTHER_AUTH
        )

        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"
        assert store._credits[OTHER] == 20

    @pytest.mark.asyncio
    async def test_requires_identity(self, client, store, room_url) -> None:
        """Regeneration needs the X-User-ID header."""
        source = await _completed(store, USER, room_url)

        resp = await client.post(f"/api/v1/projects/{source.id}/regenerate", json={})

        assert resp.status_code == 401


class TestListProjects:
    @pytest.mark.asyncio
    async def test_lists_only_callers_projects_newest_first(self, client, store, room_url) -> None:
        """GET /projects returns only the caller's projects, newest first."""
        mine = [await _completed(store, USER, room_url) for _ in range(3)]
        await _completed(store, OTHER, room_url)

        resp = await client.get("/api/v1/projects", params={"pageSize": 2}, headers=AUTH)

        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 3
        assert data["page"] == 1
        assert data["pageSize"] == 2
        assert [p["id"] for p in data["items"]] == [str(mine[2].id), str(mine[1].id)]

    @pytest.mark.asyncio
    async def test_default_page_size(self, client, store) -> None:
        """Without pageSize the configured default applies."""
        resp = await client.get("/api/v1/projects", headers=AUTH)
        assert resp.json()["pageSize"] == 6

    @pytest.mark.asyncio
    async def test_page_size_over_limit_is_400(self, client, store) -> None:
        """pageSize above the maximum is rejected."""
        resp = await client.get("/api/v1/projects", params={"pageSize": 51}, headers=AUTH)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_all_needs_no_identity(self, client, store, room_url) -> None:
        """/projects/all is a public read."""
        await _completed(store, USER, room_url)
        await _completed(store, OTHER, room_url)

        resp = await client.get("/api/v1/projects/all")

        assert resp.status_code == 200
        assert resp.json()["total"] == 2

    @pytest.mark.asyncio
    async def test_community_excludes_viewer_and_pending(self, client, store, room_url) -> None:
        """Community lists other users' completed projects only."""
        await _completed(store, USER, room_url)
        theirs = await _completed(store, OTHER, room_url)
        await store.create_project(
            ProjectDraft(owner_id=OTHER, input_image_url=room_url, style="Boho", room_type="Den")
        )

        resp = await client.get("/api/v1/projects/community", headers=AUTH)

        data = resp.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == str(theirs.id)


class TestProjectDetail:
    @pytest.mark.asyncio
    async def test_unknown_project_is_404(self, client, store) -> None:
        """An unknown project id is 404."""
        resp = await client.get(f"/api/v1/projects/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_malformed_id_is_422(self, client, store) -> None:
        """A non-UUID project id fails path validation."""
        resp = await client.get("/api/v1/projects/not-a-uuid")
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_detected_objects(self, client, store, room_url) -> None:
        """Detected object names are served per project."""
        project = await _completed(store, USER, room_url)
        await store.save_detected_objects(project.id, USER, ["sofa", "rug"])

        resp = await client.get(f"/api/v1/projects/{project.id}/objects")

        assert resp.status_code == 200
        assert resp.json() == {"projectId": str(project.id), "objects": ["sofa", "rug"]}

    @pytest.mark.asyncio
    async def test_delete_own_project(self, client, store, room_url) -> None:
        """Owners can delete their project; it is gone afterwards."""
        project = await _completed(store, USER, room_url)

        resp = await client.delete(f"/api/v1/projects/{project.id}", headers=AUTH)

        assert resp.status_code == 204
        assert await store.get_project(project.id) is None

    @pytest.mark.asyncio
    async def test_delete_someone_elses_project_is_404(self, client, store, room_url) -> None:
        """Deleting another user's project reports not-found."""
        project = await _completed(store, OTHER, room_url)

        resp = await client.delete(f"/api/v1/projects/{project.id}", headers=AUTH)

        assert resp.status_code == 404
        assert await store.get_project(project.id) is not None


class TestPreviewEndpoints:
    @pytest.mark.asyncio
    async def test_generate_returns_inline_image(self, client, room_url, object_url) -> None:
        """/generate returns a data URL image and detected objects."""
        resp = await client.post(
            "/api/v1/generate",
            json={
                "prompt": "Make it cosy",
                "mainImageUrl": room_url,
                "objectImageUrls": [object_url, ""],
            },
            headers=AUTH,
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["imageData"].startswith("data:image/png;base64,")
        assert data["detectedObjects"] == [
            "light oak dining table",
            "linen armchair",
            "brass floor lamp",
        ]

    @pytest.mark.asyncio
    async def test_generate_missing_fields_is_400(self, client) -> None:
        """/generate without prompt or main image is 400."""
        resp = await client.post("/api/v1/generate", json={"prompt": "x"}, headers=AUTH)

        assert resp.status_code == 400
        assert resp.json()["message"] == "Missing required fields: prompt and mainImageUrl."

    @pytest.mark.asyncio
    async def test_describe_object(self, client, object_url) -> None:
        """/describe-object returns the model's description."""
        resp = await client.post(
            "/api/v1/describe-object", json={"imageUrl": object_url}, headers=AUTH
        )

        assert resp.status_code == 200
        assert resp.json() == {"description": "mock object (32x32)"}

    @pytest.mark.asyncio
    async def test_describe_object_requires_url(self, client) -> None:
        """/describe-object without imageUrl is 400."""
        resp = await client.post("/api/v1/describe-object", json={}, headers=AUTH)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "status", "code"),
        [
            (ContentBlocked(), 400, "content_blocked"),
            (UpstreamUnavailable(), 503, "upstream_unavailable"),
        ],
    )
    async def test_describe_object_model_error_status(
        self, client, object_url, error, status, code
    ) -> None:
        """Model failures map to their taxonomy status rather than a 200 placeholder."""
        with patch("app.activities.mock_stubs.describe_image", new=AsyncMock(side_effect=error)):
            resp = await client.post(
                "/api/v1/describe-object", json={"imageUrl": object_url}, headers=AUTH
            )

        assert resp.status_code == status
        assert resp.json()["error"] == code


class TestObjectEndpoints:
    @pytest.mark.asyncio
    async def test_upload_list_delete(self, client, store) -> None:
        """Uploaded objects are listed and can be deleted."""
        resp = await client.post(
            "/api/v1/objects",
            files={"file": ("chair.png", _png_bytes(), "image/png")},
            data={"displayName": "Green chair", "category": "seating"},
            headers=AUTH,
        )

        assert resp.status_code == 201
        obj = resp.json()
        assert obj["displayName"] == "Green chair"
        assert obj["assetUrl"].startswith("data:image/png")
        assert obj["thumbnailUrl"].startswith("data:image/jpeg")
        assert obj["description"] == "mock object (40x30)"

        listed = await client.get("/api/v1/objects", headers=AUTH)
        assert [o["id"] for o in listed.json()] == [obj["id"]]
        other = await client.get("/api/v1/objects", headers=OTHER_AUTH)
        assert other.json() == []

        deleted = await client.delete(f"/api/v1/objects/{obj['id']}", headers=AUTH)
        assert deleted.status_code == 204
        assert (await client.get("/api/v1/objects", headers=AUTH)).json() == []

    @pytest.mark.asyncio
    async def test_upload_rejects_non_image(self, client, store) -> None:
        """Non-image uploads are rejected."""
        resp = await client.post(
            "/api/v1/objects",
            files={"file": ("notes.txt", b"not an image", "text/plain")},
            data={"displayName": "Notes", "category": "misc"},
            headers=AUTH,
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_someone_elses_object_is_404(self, client, store) -> None:
        """Deleting another user's object reports not-found."""
        obj = await store.create_user_object(
            owner_id=OTHER,
            display_name="Lamp",
            category="lighting",
            asset_url="https://cdn.test/lamp.png",
            thumbnail_url=None,
            description=None,
        )

        resp = await client.delete(f"/api/v1/objects/{obj.id}", headers=AUTH)

        assert resp.status_code == 404


class TestCredits:
    @pytest.mark.asyncio
    async def test_new_user_gets_default_balance(self, client, store) -> None:
        """First balance read provisions the default credits."""
        resp = await client.get("/api/v1/credits", headers=AUTH)

        assert resp.status_code == 200
        assert resp.json() == {"userId": USER, "balance": 3}


class TestHealthAndHeaders:
    @pytest.mark.asyncio
    async def test_health_reports_disabled_services(self, client) -> None:
        """Health lists unconfigured services as disabled."""
        resp = await client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["store"] == "memory"
        assert data["postgres"] == "disabled"
        assert data["temporal"] == "disabled"
        assert data["r2"] == "disabled"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client) -> None:
        """Responses carry a generated X-Request-ID."""
        resp = await client.get("/health")
        assert uuid.UUID(resp.headers["X-Request-ID"])

    @pytest.mark.asyncio
    async def test_request_id_echoed_on_errors(self, client) -> None:
        """A client X-Request-ID is echoed on error responses too."""
        resp = await client.get("/api/v1/projects", headers={"X-Request-ID": "req-42"})
        assert resp.status_code == 401
        assert resp.headers["X-Request-ID"] == "req-42"
