"""
Prometheus metrics for the HTTP surface, socket events, reply providers
and the storage gateway, plus an in-process counter used by /health.
"""
import logging
import time
from collections import Counter as Tally
from typing import Any, Dict

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

PREFIX = "guardian"

# HTTP
http_requests = Counter(
    f"{PREFIX}_http_requests_total", "HTTP requests by route template",
    ["method", "route", "status"]
)
http_latency = Histogram(
    f"{PREFIX}_http_request_duration_seconds", "HTTP request latency",
    ["method", "route"]
)

# Realtime
socket_connections = Gauge(
    f"{PREFIX}_socket_connections", "Open realtime connections"
)
socket_events = Counter(
    f"{PREFIX}_socket_events_total", "Inbound realtime events",
    ["event", "outcome"]
)

# Replies
provider_calls = Counter(
    f"{PREFIX}_provider_calls_total", "Reply provider attempts",
    ["provider", "outcome"]
)
provider_latency = Histogram(
    f"{PREFIX}_provider_latency_seconds", "Reply provider latency",
    ["provider"]
)
reply_sources = Counter(
    f"{PREFIX}_reply_source_total", "Replies by the tier that produced them",
    ["source"]
)

# Storage
storage_operations = Counter(
    f"{PREFIX}_storage_operations_total", "Storage operations per backend",
    ["backend", "operation", "outcome"]
)
storage_failovers = Counter(
    f"{PREFIX}_storage_failovers_total", "Durable failures retried on the flat file",
    ["operation"]
)
durable_store_up = Gauge(
    f"{PREFIX}_durable_store_up", "1 while the durable store is healthy"
)


def _route_template(request: Request) -> str:
    # Templates rather than raw paths so booking ids don't explode cardinality
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def setup_telemetry(app: FastAPI) -> None:
    """Expose /metrics and record latency for every HTTP request."""

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.middleware("http")
    async def record_http_metrics(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        route = _route_template(request)

        http_requests.labels(request.method, route, response.status_code).inc()
        http_latency.labels(request.method, route).observe(time.perf_counter() - started)
        return response

    logger.info("Prometheus metrics exposed at /metrics")


def track_socket_event(event: str, outcome: str = "ok") -> None:
    socket_events.labels(event=event, outcome=outcome).inc()


def track_provider_call(provider: str, outcome: str, duration: float) -> None:
    """Record one provider attempt: success, error, timeout or circuit_open."""
    provider_calls.labels(provider=provider, outcome=outcome).inc()
    provider_latency.labels(provider=provider).observe(duration)


def track_reply_source(source: str) -> None:
    reply_sources.labels(source=source).inc()


def track_storage_operation(backend: str, operation: str, success: bool = True) -> None:
    outcome = "success" if success else "error"
    storage_operations.labels(backend=backend, operation=operation, outcome=outcome).inc()


def track_storage_failover(operation: str) -> None:
    storage_failovers.labels(operation=operation).inc()


def update_durable_store_health(healthy: bool) -> None:
    durable_store_up.set(1 if healthy else 0)


def update_websocket_connections(count: int) -> None:
    socket_connections.set(count)


class MetricsCollector:
    """Process-local message and error counts reported by the health routes."""

    def __init__(self):
        self.started = time.time()
        self.messages: Tally = Tally()
        self.errors = 0

    def record_message(self, channel: str = "text") -> None:
        self.messages[channel] += 1

    def record_error(self) -> None:
        self.errors += 1

    def get_stats(self) -> Dict[str, Any]:
        uptime = time.time() - self.started
        total = sum(self.messages.values())

        return {
            "uptime_seconds": uptime,
            "messages_processed": total,
            "messages_by_channel": dict(self.messages),
            "errors": self.errors,
            "messages_per_minute": (total / uptime) * 60 if uptime > 0 else 0
        }


metrics_collector = MetricsCollector()
