"""Request tracing middleware: request ids, timing headers, one log line per call."""
import logging
import os
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("scopeworks-api.middleware")

QUIET_PATHS = {"/health"}
SLOW_REQUEST_MS = float(os.getenv("SLOW_REQUEST_MS", "1500"))


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags every response with X-Request-ID / X-Process-Time and logs it.

    PDF exports and compare calls are the heavy endpoints; anything slower
    than SLOW_REQUEST_MS is logged at WARNING so it stands out.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        path = request.url.path
        if path in QUIET_PATHS:
            return response

        level = logging.WARNING if duration_ms > SLOW_REQUEST_MS else logging.INFO
        logger.log(
            level,
            "%s %s -> %s",
            request.method,
            path,
            response.status_code,
            extra={
                "http_method": request.method,
                "http_path": path,
                "http_status": response.status_code,
                "request_id": request_id,
                "duration_ms": duration_ms,
            },
        )
        return response
