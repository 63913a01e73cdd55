"""
Logging middleware for request correlation and structured logging.
"""
import time
import uuid
from typing import Callable
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Bind a request ID (the caller's X-Request-ID when present) to every log
    line of the request and log HTTP request/response metadata.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None
        )

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "http_request_failed",
                duration_ms=round(duration_ms, 2),
                error=str(exc),
                error_type=type(exc).__name__
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "http_request_completed",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2)
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
