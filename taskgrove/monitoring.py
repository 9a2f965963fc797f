"""
Monitoring and observability utilities for taskgrove.

Provides:
- Prometheus metrics for HTTP requests and forest resolutions
- Request tracing (unique request IDs)
- Health information for the /health endpoint
"""
import re
import time
import uuid
import logging
from typing import Callable, Dict, Any
from contextvars import ContextVar

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import Counter, Histogram, Gauge, generate_latest

# Request context variable for tracing
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

# Prometheus metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_errors_total = Counter(
    'http_errors_total',
    'Total number of HTTP errors',
    ['method', 'endpoint', 'status_code', 'error_type']
)

service_uptime_seconds = Gauge(
    'service_uptime_seconds',
    'Service uptime in seconds'
)

forest_resolutions_total = Counter(
    'forest_resolutions_total',
    'Task forest resolutions by outcome',
    ['status']
)

forest_resolution_duration_seconds = Histogram(
    'forest_resolution_duration_seconds',
    'Task forest resolution duration in seconds',
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

forest_anomalies_total = Counter(
    'forest_anomalies_total',
    'Data anomalies found while resolving task forests',
    ['kind']
)

forest_tasks_returned = Histogram(
    'forest_tasks_returned',
    'Number of tasks in each resolved forest',
    buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000)
)

service_start_time = time.time()

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get('')


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    request_id_var.set(request_id)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for collecting Prometheus metrics and request tracing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        set_request_id(request_id)

        endpoint = self._get_endpoint_path(request.url.path)
        start_time = time.time()
        service_uptime_seconds.set(time.time() - service_start_time)

        logger.debug(
            "Request started",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            logger.error(
                "Request failed with exception",
                exc_info=True,
                extra={
                    "method": request.method,
                    "endpoint": endpoint,
                    "duration_seconds": duration,
                    "exception_type": type(e).__name__,
                }
            )
            http_errors_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
                error_type="exception"
            ).inc()
            raise

        status_code = response.status_code
        duration = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} -> {status_code} ({duration:.3f}s)",
            extra={"endpoint": endpoint, "status_code": status_code, "duration_seconds": duration}
        )

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=status_code
        ).inc()
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=status_code
        ).observe(duration)

        if status_code >= 400:
            error_type = "client_error" if status_code < 500 else "server_error"
            http_errors_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
                error_type=error_type
            ).inc()

        response.headers["X-Request-ID"] = request_id
        return response

    @staticmethod
    def _get_endpoint_path(path: str) -> str:
        """Normalize endpoint path for metrics (remove IDs, etc.)."""
        path = re.sub(r'/\d+', '/{id}', path)
        if len(path) > 100:
            path = path[:100]
        return path


def record_forest_resolution(
    status_label: str,
    duration: float,
    task_count: int = 0,
    anomaly_kinds: tuple = (),
) -> None:
    """Record one forest resolution in the Prometheus metrics."""
    forest_resolutions_total.labels(status=status_label).inc()
    forest_resolution_duration_seconds.observe(duration)
    if status_label == "success":
        forest_tasks_returned.observe(task_count)
    for kind in anomaly_kinds:
        forest_anomalies_total.labels(kind=kind).inc()


def get_metrics() -> str:
    """Get Prometheus metrics in text format."""
    return generate_latest().decode('utf-8')


def check_database_health(db) -> Dict[str, Any]:
    """
    Check database connectivity.

    Args:
        db: TaskGroveDatabase instance

    Returns:
        Dictionary with database health status
    """
    start_time = time.time()
    try:
        conn = db._get_connection()
        try:
            cursor = conn.cursor()
            db._execute_with_logging(cursor, "SELECT 1")
            cursor.fetchone()
        finally:
            db.close(conn)
        return {
            "status": "healthy",
            "connectivity": "connected",
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
            "type": getattr(db, 'db_type', 'unknown')
        }
    except Exception as e:
        response_time_ms = round((time.time() - start_time) * 1000, 2)
        logger.warning(
            "Database health check failed",
            extra={
                "error_type": type(e).__name__,
                "error_message": str(e),
                "response_time_ms": response_time_ms
            }
        )
        return {
            "status": "unhealthy",
            "connectivity": "disconnected",
            "response_time_ms": response_time_ms,
            "error": str(e),
            "error_type": type(e).__name__
        }


def get_health_info(db=None) -> Dict[str, Any]:
    """Health information including uptime and database status."""
    uptime = time.time() - service_start_time
    components: Dict[str, Any] = {
        "service": {
            "status": "healthy",
            "uptime_seconds": uptime,
            "uptime_formatted": _format_uptime(uptime)
        }
    }
    overall_status = "healthy"

    if db is not None:
        db_health = check_database_health(db)
        components["database"] = db_health
        if db_health.get("status") == "unhealthy":
            overall_status = "unhealthy"

    return {
        "status": overall_status,
        "service": "taskgrove",
        "timestamp": time.time(),
        "uptime_seconds": uptime,
        "components": components
    }


def _format_uptime(seconds: float) -> str:
    """Format uptime in human-readable format."""
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if days > 0:
        return f"{days}d {hours}h {minutes}m {secs}s"
    elif hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
