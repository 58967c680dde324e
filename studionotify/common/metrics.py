"""Prometheus metric definitions for the notification service."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


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
notifications_scheduled_total = Counter(
    "notifications_scheduled_total",
    "Notifications inserted as pending",
    ["service", "template_type"],
)
notifications_duplicate_skipped_total = Counter(
    "notifications_duplicate_skipped_total",
    "Scheduling requests absorbed by the deduplication guard",
    ["service", "template_type"],
)
notifications_rejected_total = Counter(
    "notifications_rejected_total",
    "Scheduling requests that did not create a row",
    ["service", "reason"],
)
notifications_sent_total = Counter(
    "notifications_sent_total",
    "Notifications delivered to the gateway",
    ["service", "template_type"],
)
notifications_failed_total = Counter(
    "notifications_failed_total",
    "Notifications that reached the failed state",
    ["service", "reason"],
)
template_render_fallback_total = Counter(
    "template_render_fallback_total",
    "Deliveries that fell back to the message rendered at schedule time",
    ["service", "template_type"],
)
sweeps_total = Counter("sweeps_total", "Delivery sweeps by outcome", ["service", "outcome"])
sweep_duration_seconds = Histogram("sweep_duration_seconds", "Delivery sweep duration seconds", ["service"])
gateway_latency_seconds = Histogram("gateway_latency_seconds", "Outbound gateway call latency", ["service"])
notification_queue_pending_total = Gauge(
    "notification_queue_pending_total",
    "Current count of pending notifications",
    ["service"],
)
notification_queue_oldest_due_age_seconds = Gauge(
    "notification_queue_oldest_due_age_seconds",
    "Age in seconds of the oldest pending notification already due",
    ["service"],
)
duplicate_events_skipped_total = Counter(
    "duplicate_events_skipped_total",
    "Duplicate inbox events skipped",
    ["service", "topic"],
)
event_queue_delay_seconds = Histogram(
    "event_queue_delay_seconds",
    "Event queue delay seconds between occurred_at and consume time",
    ["service", "topic"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
