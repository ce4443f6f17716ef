"""
Prometheus Metrics

HTTP (internal API):
  - http_requests_total           (counter)
  - http_request_duration_seconds (histogram)
  - app_info                      (info)

Domain reconciliation (Celery workers):
  - domain_checks_total{outcome}
  - domain_transitions_total{status}
  - domain_provider_calls_total{operation,result}
  - domain_rebuilds_total
  - domain_cert_retries_total{action}
"""

import re
import time

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP metrics ──
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
APP_INFO = Info("app", "Application metadata")

# ── Domain reconciliation metrics ──
DOMAIN_CHECKS = Counter(
    "domain_checks_total",
    "Monitoring-loop checks performed",
    ["outcome"],  # healthy, unhealthy, skipped, error
)
DOMAIN_TRANSITIONS = Counter(
    "domain_transitions_total",
    "monitoring_status transitions",
    ["status"],
)
DOMAIN_PROVIDER_CALLS = Counter(
    "domain_provider_calls_total",
    "Calls to the provisioning provider API",
    ["operation", "result"],
)
DOMAIN_REBUILDS = Counter(
    "domain_rebuilds_total",
    "Provider-side domain rebuilds started",
)
DOMAIN_CERT_RETRIES = Counter(
    "domain_cert_retries_total",
    "Certificate-propagation retry iterations",
    ["action"],  # verify, rebuild, resolved, abandoned
)

_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")


def _normalize_path(path: str) -> str:
    """Collapse UUID / numeric path segments to prevent cardinality explosion."""
    path = _UUID_RE.sub("{id}", path)
    return re.sub(r"/\d+", "/{id}", path)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        method = request.method
        path = _normalize_path(request.url.path)

        # Skip metrics endpoint itself
        if path == "/metrics":
            return await call_next(request)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            REQUEST_COUNT.labels(method=method, endpoint=path, status="500").inc()
            REQUEST_DURATION.labels(method=method, endpoint=path).observe(
                time.perf_counter() - start
            )
            raise

        REQUEST_COUNT.labels(method=method, endpoint=path, status=str(response.status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=path).observe(time.perf_counter() - start)
        return response


def metrics_endpoint(request: Request) -> Response:
    """Expose /metrics for Prometheus scraping."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def set_app_info(version: str = "1.0.0", env: str = "development") -> None:
    APP_INFO.info({"version": version, "environment": env})
