import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from habitmomentum.core.logging import LOGGER_NAME, bound_request_id, latency_bucket_ms
from habitmomentum.core.metrics import http_requests_total, normalize_path

logger = logging.getLogger(LOGGER_NAME)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id (reusing the caller's), count it, log it."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = rid

        started = time.perf_counter()
        with bound_request_id(rid):
            response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[self.header_name] = rid
        route = normalize_path(request.url.path)
        http_requests_total.inc(
            {"method": request.method, "path": route, "status": str(response.status_code)}
        )
        logger.info(
            "request.complete",
            extra={
                "request_id": rid,
                "method": request.method,
                "path": route,
                "status": response.status_code,
                "latency_bucket": latency_bucket_ms(elapsed_ms),
            },
        )
        return response
