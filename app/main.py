from fastapi import FastAPI
from app.config import settings
from app.api.v1.api import api_router
from app.middleware.request_logging import RequestLoggingMiddleware
from app.middleware.metrics import PrometheusMiddleware, metrics_endpoint, set_app_info
from app.logging_config import setup_logging

# ── Initialize structured logging ──
setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# Request logging middleware – request ID, timing, tenant context
app.add_middleware(RequestLoggingMiddleware)

# Prometheus metrics middleware – request count, latency
app.add_middleware(PrometheusMiddleware)

# Mount internal API v1 (service-token protected)
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
def health_check():
    return {"status": "ok", "env": settings.APP_ENV}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)
set_app_info(version="1.0.0", env=settings.APP_ENV)
