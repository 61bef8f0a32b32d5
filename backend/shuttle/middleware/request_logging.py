"""Per-request access log (method, path, status, duration, client) and status-class metrics."""
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from shuttle.monitoring.metrics import record_request

logger = logging.getLogger(__name__)

# Polled constantly by the map; counted but not logged
QUIET_PATHS = {"/health", "/vehicles", "/map/vehicles"}


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        record_request(response.status_code)
        if request.url.path in QUIET_PATHS and response.status_code < 400:
            return response
        logger.info(
            "request method=%s path=%s status=%s duration_ms=%.1f client=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
            client_ip(request),
        )
        return response
