"""Request id propagation and per-request access logging."""

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Read by the log filter so store and repository logs carry the request id
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("orderhub.access")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its outcome.

    An incoming ``X-Request-ID`` header is reused, otherwise a new UUID is
    generated. The id is echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(req_id)
        request.state.request_id = req_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info(
                "%s %s",
                request.method,
                request.url.path,
                extra={
                    "route": request.url.path,
                    "status": response.status_code,
                    "latency_ms": int((time.perf_counter() - started) * 1000),
                },
            )
        finally:
            request_id_ctx.reset(token)
        response.headers["X-Request-ID"] = req_id
        return response
