"""
Request/response logging middleware.
"""
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from examhall.core.logging_config import request_id_context
from examhall.core.security import decode_token

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def identify_caller(authorization: str) -> str:
    """
    Short caller label for logs, never the token itself.

    Returns "<role>:<user_id>" for a verifiable bearer token, "invalid-token"
    for one that fails verification and "anonymous" otherwise.
    """
    if not authorization.startswith("Bearer "):
        return "anonymous"
    payload = decode_token(authorization[7:])
    if payload is None or payload.get("user_id") is None:
        return "invalid-token"
    return f"{payload.get('role', 'unknown')}:{payload['user_id']}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request and its response with a correlation id.

    The id is taken from an incoming X-Request-ID header or generated, stored
    in request_id_context for every log line emitted while handling the
    request, and echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_context.set(request_id)

        start_time = time.time()
        method = request.method
        path = str(request.url.path)
        client_host = request.client.host if request.client else "unknown"
        user_identifier = identify_caller(request.headers.get("Authorization", ""))

        logger.info(
            "Incoming request",
            extra={
                "method": method,
                "path": path,
                "client_host": client_host,
                "user_identifier": user_identifier,
            },
        )

        try:
            response = await call_next(request)

            duration_ms = round((time.time() - start_time) * 1000, 2)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id

            extra_fields = {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "client_host": client_host,
                "user_identifier": user_identifier,
            }
            if status_code >= 500:
                logger.error("Server error response", extra=extra_fields)
            elif status_code >= 400:
                logger.warning("Client error response", extra=extra_fields)
            else:
                logger.info("Request completed", extra=extra_fields)

            return response
        finally:
            request_id_context.reset(token)
