"""
Request Logging Middleware

- Assigns a unique request id to every internal API call (shares job_id_ctx)
- Sets tenant_id context from the /tenants/{tenant_id}/ path segment
- Logs request start & end with timing
"""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.logging_config import generate_job_id, job_id_ctx, tenant_id_ctx

logger = logging.getLogger("storefront.request")

_TENANT_PATH = re.compile(r"/tenants/([0-9a-fA-F-]{32,36})(?:/|$)")


def _extract_tenant_id(path: str) -> str:
    match = _TENANT_PATH.search(path)
    return match.group(1) if match else "-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        rid = generate_job_id()
        job_token = job_id_ctx.set(rid)
        tenant_token = tenant_id_ctx.set(_extract_tenant_id(request.url.path))

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "-"

        logger.info("→ %s %s from %s", method, path, client_ip)

        start = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed = (time.perf_counter() - start) * 1000
            response.headers["X-Request-ID"] = rid
            logger.info("← %s %s %d (%.1fms)", method, path, response.status_code, elapsed)
            return response
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.exception("✗ %s %s (%.1fms, unhandled exception)", method, path, elapsed)
            raise
        finally:
            tenant_id_ctx.reset(tenant_token)
            job_id_ctx.reset(job_token)
