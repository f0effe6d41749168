# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
Phase 6 tests — HTTP API end to end and the httpx backend client.
The app runs with its real lifespan; the backend dependency is overridden
with the FakeBackend, and settings with the fast test settings.
"""

import json
from contextlib import asynccontextmanager

import httpx
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient


@asynccontextmanager
async def api_client(backend, settings):
    import os
    os.environ["JOB_STORE_BACKEND"] = "memory"
    os.environ["LOG_LEVEL"] = "WARNING"

    from cardengine.config import get_settings
    get_settings.cache_clear()

    from cardengine.dependencies import get_backend
    from cardengine.main import create_app

    test_app = create_app()
    test_app.dependency_overrides[get_backend] = lambda: backend
    test_app.dependency_overrides[get_settings] = lambda: settings

    async with LifespanManager(test_app) as manager:
        transport = ASGITransport(app=manager.app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


# ─── Batch endpoints ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_batch_submit_runs_and_reports_summary(make_guests, make_backend, settings):
    backend = make_backend(make_guests(5, carded=2))
    backend.fail_upload_for = {4}

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/cards/batch", json={"mode": "missing"})
        assert resp.status_code == 202
        body = resp.json()
        assert body["total"] == 3

        # Background task has finished once the ASGI call returns
        status = await c.get(f"/batches/{body['job_id']}")

    assert status.status_code == 200
    data = status.json()
    assert data["status"] == "completed"
    assert data["progress"] == {"current": 3, "total": 3, "percent": 100}
    assert data["summary"]["generated"] == 2
    assert data["summary"]["failed"] == 1
    assert data["failures"][0]["guest_id"] == 4


@pytest.mark.asyncio
async def test_batch_defaults_to_missing_mode(make_guests, make_backend, settings):
    backend = make_backend(make_guests(3, carded=1))

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/cards/batch", json={})

    assert resp.status_code == 202
    assert resp.json()["total"] == 2


@pytest.mark.asyncio
async def test_batch_without_template_is_422(make_guests, make_backend, settings):
    backend = make_backend(make_guests(3), design=None)

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/cards/batch", json={"mode": "all"})

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "TEMPLATE_UNAVAILABLE"


@pytest.mark.asyncio
async def test_batch_with_nobody_to_generate_is_422(make_guests, make_backend, settings):
    backend = make_backend(make_guests(2, carded=2))

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/cards/batch", json={"mode": "missing"})

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "PREFLIGHT_FAILED"


@pytest.mark.asyncio
async def test_batch_invalid_mode_rejected(make_guests, make_backend, settings):
    backend = make_backend(make_guests(2))

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/cards/batch", json={"mode": "some"})

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_cancel_finished_batch_conflicts(make_guests, make_backend, settings):
    backend = make_backend(make_guests(1))

    async with api_client(backend, settings) as c:
        job_id = (await c.post("/events/1/cards/batch", json={"mode": "all"})).json()["job_id"]
        resp = await c.post(f"/batches/{job_id}/cancel")
        missing = await c.post("/batches/nope/cancel")

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "JOB_CONFLICT"
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_cancel_pending_batch_accepted(make_guests, make_backend, settings):
    from cardengine.dependencies import get_job_store
    from cardengine.models.card import RegenerationMode

    backend = make_backend(make_guests(1))

    async with api_client(backend, settings) as c:
        store = get_job_store()
        job = store.create_job(1, RegenerationMode.ALL, total=1)
        resp = await c.post(f"/batches/{job.job_id}/cancel")

    assert resp.status_code == 202
    assert resp.json()["status"] == "pending"
    assert store.is_cancel_requested(job.job_id)


# ─── Single card endpoints ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_single_card_endpoint(make_guests, make_backend, settings):
    backend = make_backend(make_guests(2))

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/guests/2/card")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["guest_id"] == 2
    assert body["image_format"] == "png"


@pytest.mark.asyncio
async def test_single_card_rejected_upload_returns_failed_result(make_guests, make_backend, settings):
    backend = make_backend(make_guests(2))
    backend.reject_upload_for = {1}

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/guests/1/card")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["guest_id"] == 1
    assert body["error"] == "Storage quota exceeded"


@pytest.mark.asyncio
async def test_single_card_unknown_guest_is_404(make_guests, make_backend, settings):
    backend = make_backend(make_guests(2))

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/guests/42/card")

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "GUEST_NOT_FOUND"


@pytest.mark.asyncio
async def test_preview_returns_image_bytes(make_guests, make_backend, settings):
    backend = make_backend(make_guests(1))

    async with api_client(backend, settings) as c:
        resp = await c.get("/events/1/guests/1/card/preview")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.headers["x-card-within-budget"] == "true"
    assert resp.content.startswith(b"\x89PNG")
    assert backend.uploads == []


@pytest.mark.asyncio
async def test_backend_failure_is_502(make_guests, make_backend, settings):
    from unittest.mock import AsyncMock
    from cardengine.api.middleware.error_handler import BackendApiError

    backend = make_backend(make_guests(1))
    backend.get_event = AsyncMock(side_effect=BackendApiError("boom", status_code=500))

    async with api_client(backend, settings) as c:
        resp = await c.post("/events/1/cards/batch", json={"mode": "all"})

    assert resp.status_code == 502
    assert resp.json()["error"]["code"] == "BACKEND_ERROR"


# ─── HttpCardBackend ─────────────────────────────────────────────────────────

def _http_backend(handler, settings):
    from cardengine.core.backend_client import HttpCardBackend

    client = httpx.AsyncClient(
        base_url="http://backend.test/api",
        transport=httpx.MockTransport(handler),
    )
    return HttpCardBackend(settings, client=client)


@pytest.mark.asyncio
async def test_http_backend_reads_event_guests_and_card_type(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/events/3":
            return httpx.Response(200, json={"data": {
                "id": 3, "card_design_path": "d.png", "card_type_id": 2,
                "name_position_y": 35,
            }})
        if path == "/api/card-types":
            return httpx.Response(200, json=[
                {"id": 1, "show_qr_code": False},
                {"id": 2, "show_qr_code": True, "show_card_class": None},
            ])
        if path == "/api/events/3/guests/all":
            return httpx.Response(200, json={"data": [
                {"id": 1, "name": "Asha", "guest_card_path": None},
                {"id": 2, "name": "Juma", "guest_card_path": "cards/2.png"},
            ]})
        if path == "/api/events/3/card-design":
            return httpx.Response(200, json={"card_design_base64": "data:image/png;base64,AAAA"})
        return httpx.Response(404)

    backend = _http_backend(handler, settings)

    event = await backend.get_event(3)
    flags = await backend.get_card_type(event.card_type_id)
    guests = await backend.get_all_guests(3)
    design = await backend.get_card_design(3)

    assert event.name_position_y == 35
    assert flags.show_qr_code is True
    assert flags.show_card_class is False
    assert [g.has_card for g in guests] == [False, True]
    assert design.startswith("data:image/png")


@pytest.mark.asyncio
async def test_http_backend_upload_and_delete(settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == "POST":
            body = json.loads(request.content)
            assert body["card_image"].startswith("data:image/jpeg;base64,")
            return httpx.Response(200, json={"success": True, "card_url": "http://cdn/c.jpg"})
        if request.url.path == "/api/guests/8/card":
            return httpx.Response(404, json={"message": "No card"})
        return httpx.Response(200, json={"success": True})

    backend = _http_backend(handler, settings)

    result = await backend.upload_card(7, "data:image/jpeg;base64,AAAA")
    deleted = await backend.delete_card(7)
    nothing = await backend.delete_card(8)

    assert result.success and result.card_url == "http://cdn/c.jpg"
    assert deleted is True
    assert nothing is False
    assert ("POST", "/api/guests/7/canvas-card") in seen
    assert ("DELETE", "/api/guests/7/card") in seen


@pytest.mark.asyncio
async def test_http_backend_error_carries_backend_message(settings):
    from cardengine.api.middleware.error_handler import BackendApiError

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "Event is archived"})

    backend = _http_backend(handler, settings)

    with pytest.raises(BackendApiError, match="Event is archived") as exc_info:
        await backend.get_event(1)
    assert exc_info.value.status_code == 422


@pytest.mark.asyncio
async def test_http_backend_transport_error_wrapped(settings):
    from cardengine.api.middleware.error_handler import BackendApiError

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend = _http_backend(handler, settings)

    with pytest.raises(BackendApiError, match="connection refused"):
        await backend.get_all_guests(1)


@pytest.mark.asyncio
async def test_http_backend_refresh_webhook(settings):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((str(request.url), json.loads(request.content)))
        return httpx.Response(204)

    quiet = _http_backend(handler, settings)
    await quiet.notify_refresh(1, {"generated": 2})
    assert calls == []

    hooked = _http_backend(
        handler,
        settings.model_copy(update={"refresh_webhook_url": "http://ui.test/hooks/cards"}),
    )
    await hooked.notify_refresh(1, {"generated": 2})
    assert calls == [(
        "http://ui.test/hooks/cards",
        {"event_id": 1, "reason": "cards_generated", "summary": {"generated": 2}},
    )]
