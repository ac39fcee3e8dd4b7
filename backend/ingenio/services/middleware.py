"""Request tracing, timing and security-header middleware for the budget API."""
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("ingenio-api.middleware")

# Probes polled by load balancers and dashboards; not worth a log line each.
SKIP_LOG_PATHS = {"/health", "/metrics"}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    - Assigns a unique X-Request-ID (uuid4) to every request/response.
    - Measures end-to-end request duration in milliseconds (X-Process-Time).
    - Reports how many partidas a budget route handled, when the route sets
      ``request.state.line_item_count`` (X-Line-Item-Count + log field).
    - Emits one structured log line per request, WARNING for 4xx/5xx.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()

        request.state.request_id = request_id
        request.state.line_item_count = None

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        line_item_count = getattr(request.state, "line_item_count", None)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)
        if line_item_count is not None:
            response.headers["X-Line-Item-Count"] = str(line_item_count)

        if request.url.path not in SKIP_LOG_PATHS:
            extra = {
                "http_method": request.method,
                "http_path": request.url.path,
                "http_status": response.status_code,
                "request_id": request_id,
                "duration_ms": duration_ms,
            }
            if line_item_count is not None:
                extra["line_item_count"] = line_item_count
            level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(level, "request completed", extra=extra)

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response
