"""Async client for the payment-authorization service.

Every call needs the server-held API key. A missing key raises
``ConfigurationError`` before any request is made; a non-2xx answer raises
``UpstreamError`` carrying the upstream status code and body.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from treasury_actions.errors import ConfigurationError, InvalidTokenError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.minepi.com/v2"

# Status reported when the service could not be reached at all.
_TRANSPORT_FAILURE_STATUS = 502


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class PaymentsClient:
    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or None
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    def _server_headers(self) -> dict[str, str]:
        if not self._api_key:
            logger.error("PI_API_KEY not configured")
            raise ConfigurationError("PI_API_KEY not configured")
        return {"Authorization": f"Key {self._api_key}"}

    async def approve(self, payment_id: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/payments/{quote(payment_id, safe='')}/approve",
            failure_message="Payment approval failed",
            headers=self._server_headers(),
        )

    async def complete(self, payment_id: str, txid: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/payments/{quote(payment_id, safe='')}/complete",
            failure_message="Payment completion failed",
            headers=self._server_headers(),
            json={"txid": txid},
        )

    async def get_incomplete(self, payment_id: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/payments/{quote(payment_id, safe='')}/incomplete",
            failure_message="Payment incomplete check failed",
            headers=self._server_headers(),
        )

    async def verify_user(self, auth_token: str) -> dict[str, Any]:
        """Resolve a user access token to the user's profile.

        The server key is not sent, but it must be configured: sign-in is
        refused on a server that cannot process payments.
        """
        self._server_headers()
        try:
            return await self._request(
                "GET",
                "/me",
                failure_message="Authentication failed",
                headers={"Authorization": f"Bearer {auth_token}"},
            )
        except UpstreamError as exc:
            if isinstance(exc.__cause__, httpx.HTTPError):
                raise
            raise InvalidTokenError(exc.status_code, exc.body) from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        failure_message: str,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=headers, json=json)
        except httpx.HTTPError as exc:
            logger.error("%s: %s", failure_message, exc)
            raise UpstreamError(
                failure_message, _TRANSPORT_FAILURE_STATUS, {"message": str(exc)}
            ) from exc

        body = _decode_body(response)
        if not response.is_success:
            logger.error("%s: status=%s body=%s", failure_message, response.status_code, body)
            raise UpstreamError(failure_message, response.status_code, body)
        if not isinstance(body, dict):
            return {"data": body}
        return body
