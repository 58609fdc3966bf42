"""
Monitoring and metrics for the Lookup Portal API.
Psychology: Proactive observability with actionable metrics.
Intention: Count what the gate rejects and how upstream lookups behave.
"""
import logging
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from prometheus_client import REGISTRY, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

from lookup_api.database import ping

logger = logging.getLogger(__name__)

# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

REQUEST_COUNT = Counter(
    'lookup_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)

REQUEST_LATENCY = Histogram(
    'lookup_http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 20.0]
)

REQUEST_IN_PROGRESS = Gauge(
    'lookup_http_requests_in_progress',
    'Number of HTTP requests in progress',
    ['method']
)

GATE_REJECTIONS = Counter(
    'lookup_gate_rejections_total',
    'Requests rejected by the request gate',
    ['check', 'code']
)

UPSTREAM_REQUESTS = Counter(
    'lookup_upstream_requests_total',
    'Outbound lookup calls by service and outcome',
    ['service', 'outcome']
)

SEARCHES = Counter(
    'lookup_searches_total',
    'Completed searches by kind',
    ['kind']
)

SYSTEM_UPTIME = Gauge(
    'lookup_system_uptime_seconds',
    'System uptime in seconds'
)

SKIP_PATHS = {"/metrics", "/health"}


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware for request counting and latency"""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        method = request.method
        REQUEST_IN_PROGRESS.labels(method=method).inc()
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            endpoint = _route_template(request)
            REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=response.status_code).inc()
            REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(time.perf_counter() - start_time)
            return response
        finally:
            REQUEST_IN_PROGRESS.labels(method=method).dec()


class BusinessMetrics:
    """Collect business-specific metrics"""

    @staticmethod
    def track_gate_rejection(check: str, code: str):
        GATE_REJECTIONS.labels(check=check, code=code or "none").inc()

    @staticmethod
    def track_upstream(service: str, outcome: str):
        UPSTREAM_REQUESTS.labels(service=service, outcome=outcome).inc()

    @staticmethod
    def track_search(kind: str):
        SEARCHES.labels(kind=kind).inc()


def setup_monitoring(app: FastAPI):
    """Register /metrics and /health on the application."""
    app.state.start_time = datetime.now(timezone.utc)

    @app.get("/metrics", include_in_schema=False)
    async def metrics_endpoint():
        SYSTEM_UPTIME.set((datetime.now(timezone.utc) - app.state.start_time).total_seconds())
        return Response(content=generate_latest(REGISTRY), media_type="text/plain")

    @app.get("/health", tags=["health"])
    async def health():
        services = app.state.services
        database_ok = await ping(services.database)
        return {
            "status": "healthy" if database_ok else "degraded",
            "service": "lookup-api",
            "version": app.version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": "connected" if database_ok else "disconnected",
            "roleModel": services.settings.role_model,
        }

    return app
