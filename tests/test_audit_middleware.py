"""Tests for audit middleware request logging."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest
from starlette.requests import Request
from starlette.responses import JSONResponse

from treasury_actions.middleware.audit import AuditMiddleware, _sanitize_log_value, get_client_ip


def _request(path: str = "/api/actions", headers: dict[str, str] | None = None) -> Request:
    raw_headers = [
        (k.lower().encode("utf-8"), v.encode("utf-8")) for k, v in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "method": "POST",
        "path": path,
        "headers": raw_headers,
        "scheme": "https",
        "server": ("example.com", 443),
        "client": ("127.0.0.1", 12345),
    }
    return Request(scope)


def test_sanitize_log_value() -> None:
    assert _sanitize_log_value("a\nb\rc\x00d") == "a_b_c_d"
    assert _sanitize_log_value("a\tb") == "a\tb"


def test_get_client_ip_ignores_forwarded_headers_by_default() -> None:
    request = _request(headers={"x-forwarded-for": "10.0.0.1, 10.0.0.2"})
    assert get_client_ip(request) == "127.0.0.1"
    assert get_client_ip(request, trust_forwarded_headers=True) == "10.0.0.1"


@pytest.mark.asyncio
async def test_dispatch_disabled_bypasses_logging(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock(), enabled=False)
    caplog.set_level(logging.INFO)

    response = await middleware.dispatch(
        _request(), AsyncMock(return_value=JSONResponse({"ok": True}))
    )

    assert response.status_code == 200
    assert "REQUEST_START" not in caplog.text


@pytest.mark.asyncio
async def test_dispatch_exempt_path_bypasses_logging(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock())
    caplog.set_level(logging.INFO)

    response = await middleware.dispatch(
        _request("/api/health"),
        AsyncMock(return_value=JSONResponse({"ok": True})),
    )

    assert response.status_code == 200
    assert "REQUEST_START" not in caplog.text


@pytest.mark.asyncio
async def test_dispatch_success_logs_start_and_end(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock())
    caplog.set_level(logging.INFO)

    response = await middleware.dispatch(
        _request(headers={"x-request-id": "req-1"}),
        AsyncMock(return_value=JSONResponse({"ok": True}, status_code=201)),
    )

    assert response.status_code == 201
    assert response.headers["x-request-id"] == "req-1"
    assert "REQUEST_START request_id=req-1 method=POST path=/api/actions" in caplog.text
    assert "REQUEST_END request_id=req-1 method=POST path=/api/actions status=201" in caplog.text


@pytest.mark.asyncio
async def test_dispatch_sanitizes_request_id(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock())
    caplog.set_level(logging.INFO)

    await middleware.dispatch(
        _request(headers={"x-request-id": "req-\n1"}),
        AsyncMock(return_value=JSONResponse({"ok": True})),
    )

    assert "REQUEST_START request_id=req-_1" in caplog.text


@pytest.mark.asyncio
async def test_dispatch_exception_logs_error(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock())
    caplog.set_level(logging.ERROR)

    async def _raise(_: Request) -> JSONResponse:
        raise RuntimeError("store\nexploded")

    with pytest.raises(RuntimeError):
        await middleware.dispatch(_request(), _raise)

    assert "status=500" in caplog.text
    assert "error=store_exploded" in caplog.text
