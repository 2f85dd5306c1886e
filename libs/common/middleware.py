"""Request correlation middleware for the checkout HTTP surface.

Every request gets an X-Request-ID (propagated from the caller when present).
The same ID is attached to outbound backend calls by the backend client, so a
checkout can be followed from the UI through to the order/payment backend.
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request context for logging and time each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get("X-Request-ID"),
            path=request.url.path,
            method=request.method,
        )
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Request failed with unhandled exception",
                extra={"extra_fields": {
                    "error": str(e),
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                }},
            )
            raise
        else:
            if request.url.path != "/health":
                duration_ms = (time.perf_counter() - start_time) * 1000
                log_level = "warning" if response.status_code >= 400 else "info"
                getattr(logger, log_level)(
                    "%s %s -> %d",
                    request.method,
                    request.url.path,
                    response.status_code,
                    extra={"extra_fields": {
                        "status_code": response.status_code,
                        "duration_ms": round(duration_ms, 2),
                    }},
                )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()


def add_observability_middleware(app: FastAPI) -> None:
    """
    Configure logging and add request correlation to a FastAPI app.
    """
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
