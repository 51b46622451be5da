from __future__ import annotations

import json

import httpx
import pytest

from treasury_actions.errors import ConfigurationError, InvalidTokenError, UpstreamError
from treasury_actions.payments.client import DEFAULT_API_BASE_URL, PaymentsClient


class _Recorder:
    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _client(recorder: _Recorder, api_key: str | None = "secret") -> PaymentsClient:
    return PaymentsClient(api_key, transport=httpx.MockTransport(recorder))


@pytest.mark.asyncio
async def test_approve_sends_server_key() -> None:
    recorder = _Recorder(httpx.Response(200, json={"identifier": "PAY-1"}))

    data = await _client(recorder).approve("PAY-1")

    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == f"{DEFAULT_API_BASE_URL}/payments/PAY-1/approve"
    assert request.headers["Authorization"] == "Key secret"
    assert data == {"identifier": "PAY-1"}


@pytest.mark.asyncio
async def test_complete_sends_txid() -> None:
    recorder = _Recorder(httpx.Response(200, json={"status": "completed"}))

    await _client(recorder).complete("PAY-1", "TX-1")

    request = recorder.requests[0]
    assert request.url.path.endswith("/payments/PAY-1/complete")
    assert json.loads(request.content) == {"txid": "TX-1"}


@pytest.mark.asyncio
async def test_get_incomplete_uses_get() -> None:
    recorder = _Recorder(httpx.Response(200, json={"incomplete": True}))

    await _client(recorder).get_incomplete("PAY-1")

    assert recorder.requests[0].method == "GET"
    assert recorder.requests[0].url.path.endswith("/payments/PAY-1/incomplete")


@pytest.mark.asyncio
async def test_payment_id_is_path_quoted() -> None:
    recorder = _Recorder(httpx.Response(200, json={}))

    await _client(recorder).approve("../me")

    assert "/payments/..%2Fme/approve" in recorder.requests[0].url.raw_path.decode()


@pytest.mark.asyncio
async def test_missing_key_is_configuration_error() -> None:
    recorder = _Recorder(httpx.Response(200, json={}))
    client = _client(recorder, api_key=None)

    assert client.configured is False
    with pytest.raises(ConfigurationError):
        await client.approve("PAY-1")
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_upstream_failure_carries_status_and_body() -> None:
    recorder = _Recorder(httpx.Response(404, json={"error": "payment_not_found"}))

    with pytest.raises(UpstreamError) as exc_info:
        await _client(recorder).complete("PAY-1", "TX-1")

    assert exc_info.value.status_code == 404
    assert exc_info.value.body == {"error": "payment_not_found"}
    assert exc_info.value.message == "Payment completion failed"


@pytest.mark.asyncio
async def test_non_json_error_body_is_kept_as_text() -> None:
    recorder = _Recorder(httpx.Response(503, text="maintenance"))

    with pytest.raises(UpstreamError) as exc_info:
        await _client(recorder).get_incomplete("PAY-1")

    assert exc_info.value.body == "maintenance"


@pytest.mark.asyncio
async def test_transport_failure_maps_to_502() -> None:
    recorder = _Recorder(httpx.ConnectError("refused"))

    with pytest.raises(UpstreamError) as exc_info:
        await _client(recorder).approve("PAY-1")

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_non_object_success_body_is_wrapped() -> None:
    recorder = _Recorder(httpx.Response(200, json=["a", "b"]))
    assert await _client(recorder).approve("PAY-1") == {"data": ["a", "b"]}


@pytest.mark.asyncio
async def test_verify_user_uses_bearer_token() -> None:
    recorder = _Recorder(httpx.Response(200, json={"uid": "u-1", "username": "alice"}))

    user = await _client(recorder).verify_user("token-1")

    request = recorder.requests[0]
    assert request.url.path.endswith("/me")
    assert request.headers["Authorization"] == "Bearer token-1"
    assert user["username"] == "alice"


@pytest.mark.asyncio
async def test_verify_user_rejected_token() -> None:
    recorder = _Recorder(httpx.Response(401, json={"error": "invalid"}))

    with pytest.raises(InvalidTokenError) as exc_info:
        await _client(recorder).verify_user("bad")

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_verify_user_transport_failure_is_not_token_error() -> None:
    recorder = _Recorder(httpx.ReadTimeout("slow"))

    with pytest.raises(UpstreamError) as exc_info:
        await _client(recorder).verify_user("token-1")

    assert not isinstance(exc_info.value, InvalidTokenError)


@pytest.mark.asyncio
async def test_verify_user_requires_server_key() -> None:
    recorder = _Recorder(httpx.Response(200, json={}))
    with pytest.raises(ConfigurationError):
        await _client(recorder, api_key="").verify_user("token-1")
