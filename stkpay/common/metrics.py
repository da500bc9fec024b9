"""Prometheus metric definitions for push initiation and reconciliation."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


stk_push_requests_total = Counter("stk_push_requests_total", "Total STK push initiation requests", ["service"])
stk_push_rejected_total = Counter(
    "stk_push_rejected_total",
    "STK push initiations not accepted by the gateway",
    ["service"],
)
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Outbound gateway call duration seconds",
    ["service", "operation", "outcome"],
)
token_refresh_total = Counter(
    "token_refresh_total",
    "Gateway credential refresh attempts",
    ["service", "outcome"],
)
reconciliation_total = Counter(
    "reconciliation_total",
    "Reconciliation results applied, by source and whether the status changed",
    ["service", "source", "outcome"],
)
transaction_terminal_total = Counter(
    "transaction_terminal_total",
    "Transactions that reached a terminal status",
    ["service", "status"],
)
transaction_e2e_seconds = Histogram(
    "transaction_e2e_seconds",
    "Seconds from push acknowledgment to terminal status",
    ["service", "terminal_state"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
