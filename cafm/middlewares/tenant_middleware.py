import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from cafm.tenant.context import TenantContext

logger = logging.getLogger(__name__)


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Make sure no tenant leaks between requests and log how long each API call took.

    The tenant itself is bound by the ``get_current_user`` dependency once the
    bearer token is verified.
    """

    async def dispatch(self, request: Request, call_next):
        TenantContext.clear()
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            TenantContext.clear()

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Process-Time-Ms"] = f"{elapsed:.1f}"
        if request.url.path.startswith("/api/"):
            logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed:.1f} ms)")
        return response
