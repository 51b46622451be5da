"""Request audit logging middleware."""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Control character pattern for log injection prevention.
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")

_MAX_REQUEST_ID_LENGTH = 128


def _sanitize_log_value(value: str) -> str:
    """Replace control characters (newlines, tabs, etc.) to prevent log injection."""
    return _CONTROL_CHAR_RE.sub("_", value)


def get_client_ip(request: Request, trust_forwarded_headers: bool = False) -> str:
    if trust_forwarded_headers:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return _sanitize_log_value(forwarded_for.split(",")[0].strip())
    if request.client:
        return request.client.host
    return "unknown"


class AuditMiddleware(BaseHTTPMiddleware):
    """Logs one REQUEST_START and one REQUEST_END line per request.

    The request id is taken from ``x-request-id`` when present and echoed back
    on the response.
    """

    EXEMPT_PATHS = frozenset({"/api/health"})

    def __init__(
        self,
        app: Callable,
        enabled: bool = True,
        trust_forwarded_headers: bool = False,
    ) -> None:
        super().__init__(app)
        self.enabled = enabled
        self._trust_forwarded_headers = trust_forwarded_headers

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        request_id = _sanitize_log_value(
            request.headers.get("x-request-id", str(uuid.uuid4()))[:_MAX_REQUEST_ID_LENGTH]
        )
        start_time = time.time()
        safe_path = _sanitize_log_value(request.url.path)
        safe_ip = _sanitize_log_value(
            get_client_ip(request, trust_forwarded_headers=self._trust_forwarded_headers)
        )

        logger.info(
            "REQUEST_START request_id=%s method=%s path=%s client_ip=%s",
            request_id,
            request.method,
            safe_path,
            safe_ip,
        )

        error_message: str | None = None
        status_code: int = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response

        except Exception as e:
            error_message = _sanitize_log_value(str(e))
            raise

        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            if error_message:
                logger.error(
                    "REQUEST_END request_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d error=%s",
                    request_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                    error_message,
                )
            else:
                logger.info(
                    "REQUEST_END request_id=%s method=%s path=%s status=%s duration_ms=%d",
                    request_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                )
