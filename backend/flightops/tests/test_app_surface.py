from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from flightops.errors import ResourceConflict, UnknownStatus
from flightops import serve
from flightops.main import app, domain_error_handler
from flightops.security import ActorContext, Role, create_access_token, decode_actor, require_roles, require_staff


def _request(path: str = "/bookings") -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "scheme": "http",
            "server": ("testserver", 80),
            "root_path": "",
            "path": path,
            "query_string": b"",
            "headers": [],
        }
    )


def test_token_round_trips_into_actor_context():
    token = create_access_token(data={"sub": "user-1", "tenant_id": "tenant-1", "role": "Instructor"})

    actor = decode_actor(token)

    assert actor == ActorContext(user_id="user-1", tenant_id="tenant-1", role=Role.INSTRUCTOR)
    assert actor.is_staff


def test_token_without_tenant_is_rejected():
    token = create_access_token(data={"sub": "user-1", "role": "member"})

    with pytest.raises(HTTPException) as excinfo:
        decode_actor(token)
    assert excinfo.value.status_code == 401


def test_expired_token_is_rejected():
    token = create_access_token(
        data={"sub": "user-1", "tenant_id": "tenant-1", "role": "member"},
        expires_delta=timedelta(minutes=-5),
    )

    with pytest.raises(HTTPException) as excinfo:
        decode_actor(token)
    assert excinfo.value.status_code == 401


def test_unknown_role_claim_is_forbidden():
    token = create_access_token(data={"sub": "user-1", "tenant_id": "tenant-1", "role": "pilot"})

    with pytest.raises(HTTPException) as excinfo:
        decode_actor(token)
    assert excinfo.value.status_code == 403


def test_require_roles_blocks_other_roles():
    member = ActorContext(user_id="m", tenant_id="t", role=Role.MEMBER)
    admin = ActorContext(user_id="a", tenant_id="t", role=Role.ADMIN)

    with pytest.raises(HTTPException) as excinfo:
        require_staff(member)
    assert excinfo.value.status_code == 403
    assert require_staff(admin) is admin

    with pytest.raises(ValueError):
        require_roles("pilot")


def test_domain_errors_render_as_json():
    exc = ResourceConflict(aircraft_conflict=True)

    response = asyncio.run(domain_error_handler(_request(), exc))

    assert response.status_code == 409
    body = json.loads(response.body)
    assert body["code"] == "resource_conflict"
    assert body["detail"] == [{"field": "aircraft_id", "reason": "aircraft already booked for this time"}]


def test_data_defects_render_as_server_errors():
    response = asyncio.run(domain_error_handler(_request("/bookings/b1"), UnknownStatus("Unknown booking status 'x'")))

    assert response.status_code == 500
    assert json.loads(response.body)["code"] == "unknown_status"


def test_routes_are_mounted():
    paths = {route.path for route in app.routes}

    assert {
        "/health",
        "/roster-rules",
        "/bookings",
        "/bookings/batch",
        "/bookings/overlaps",
        "/bookings/{booking_id}/checkin/approve",
        "/bookings/{booking_id}/checkin/correct",
        "/invoices/{invoice_id}/payments",
    } <= paths


def test_serve_reads_server_options_from_env(monkeypatch):
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "9100")
    monkeypatch.setenv("WEB_CONCURRENCY", "3")
    monkeypatch.delenv("RELOAD", raising=False)
    calls = []
    monkeypatch.setattr(serve.uvicorn, "run", lambda app_path, **options: calls.append((app_path, options)))

    serve.main()

    app_path, options = calls[0]
    assert app_path == "flightops.main:app"
    assert options["host"] == "0.0.0.0"
    assert options["port"] == 9100
    assert options["workers"] == 3
    assert options["reload"] is False


def test_serve_drops_workers_when_reloading(monkeypatch):
    monkeypatch.setenv("RELOAD", "yes")

    options = serve.server_options()

    assert options["reload"] is True
    assert "workers" not in options
