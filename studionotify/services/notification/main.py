"""Notification service API + worker lifecycle.

Exposes the sweep trigger used by cron/admin actions, the scheduling call sites
used by booking flows, and read/resend/cancel endpoints for the dashboard.
"""

import asyncio
from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from studionotify.common.config import settings
from studionotify.common.db import SessionLocal
from studionotify.common.events import EventEnvelope, dispatch_envelope
from studionotify.common.logging import configure_logging, trace_id_ctx
from studionotify.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from studionotify.common.startup import log_startup_config
from studionotify.common.tracing import instrument_app, setup_tracing
from studionotify.services.notification.gateway import GatewayResolver, WhatsAppGateway
from studionotify.services.notification.locks import build_sweep_lock
from studionotify.services.notification.models import ScheduledNotification
from studionotify.services.notification.scheduler import Scheduler
from studionotify.services.notification.schemas import (
    CancelRequest,
    CancelResponse,
    NotificationResponse,
    ScheduleNotificationRequest,
    ScheduleResponse,
)
from studionotify.services.notification.service import NotificationEventService
from studionotify.services.notification.store import NotificationStore
from studionotify.services.notification.templates import TemplateRenderer
from studionotify.services.notification.worker import DeliveryWorker

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "POSTGRES_DSN",
        "KAFKA_BOOTSTRAP_SERVERS",
        "REDIS_URL",
        "SWEEP_LOCK_BACKEND",
        "SWEEP_INTERVAL_SECONDS",
        "SEND_INTERVAL_SECONDS",
        "SWEEP_BATCH_SIZE",
    ],
)
store = NotificationStore(SessionLocal)
renderer = TemplateRenderer(SessionLocal)
scheduler = Scheduler(store, renderer)
gateway = WhatsAppGateway()
worker = DeliveryWorker(store, renderer, GatewayResolver(SessionLocal), gateway, lock=build_sweep_lock())
events = NotificationEventService(SessionLocal, scheduler, service_name=settings.service_name)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run sweep loop + business event consumers with application lifecycle."""

    tasks = []
    if settings.sweep_interval_seconds > 0:
        tasks.append(asyncio.create_task(worker.run_forever()))
    if settings.kafka_consumers_enabled:
        tasks.append(asyncio.create_task(events.start_consumers()))
    yield
    for task in tasks:
        task.cancel()
    await gateway.close()


app = FastAPI(title="Studio Notification Service", lifespan=lifespan)
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def enforce_api_key(x_api_key: str | None) -> None:
    """Reject requests that do not provide the configured API key."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


def _bind_trace(x_trace_id: str | None) -> str:
    trace_id = x_trace_id or str(uuid4())
    trace_id_ctx.set(trace_id)
    return trace_id


def _to_response(row: ScheduledNotification) -> NotificationResponse:
    return NotificationResponse(
        id=row.id,
        tenant_id=row.tenant_id,
        business_event_id=row.business_event_id,
        template_type=row.template_type,
        recipient_name=row.recipient_name,
        recipient_phone=row.recipient_phone,
        rendered_message=row.rendered_message,
        status=row.status,
        scheduled_for=row.scheduled_for,
        sent_at=row.sent_at,
        error_message=row.error_message,
    )


@app.post("/send-scheduled-notifications")
async def send_scheduled_notifications(
    tenant_id: str | None = None,
    x_api_key: str | None = Header(default=None),
    x_trace_id: str | None = Header(default=None),
):
    """Run one delivery sweep and report what happened."""

    enforce_api_key(x_api_key)
    _bind_trace(x_trace_id)
    result = await worker.process_due(tenant_id)
    status_code = 200 if result.success else 400
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@app.post("/notifications", response_model=ScheduleResponse)
def schedule_notification(
    req: ScheduleNotificationRequest,
    x_api_key: str | None = Header(default=None),
    x_trace_id: str | None = Header(default=None),
):
    """Scheduling call site; answers `scheduled=false` instead of failing."""

    enforce_api_key(x_api_key)
    _bind_trace(x_trace_id)
    scheduled = scheduler.schedule_notification(
        req.event_id,
        req.template_type,
        req.recipient_phone,
        req.recipient_name,
        req.trigger_time,
        req.variables,
        req.tenant_id,
    )
    return ScheduleResponse(scheduled=scheduled)


@app.post("/events")
async def ingest_event(
    event: EventEnvelope,
    x_api_key: str | None = Header(default=None),
):
    """Accept a business event over HTTP; same handling as the Kafka topics."""

    enforce_api_key(x_api_key)
    outcome: dict = {}

    async def _handle(envelope: EventEnvelope) -> None:
        nonlocal outcome
        outcome = await events.handle_event(envelope)

    try:
        await dispatch_envelope("http", event, _handle)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"event_id": event.event_id, "duplicate": outcome is None, "outcome": outcome or {}}


@app.get("/notifications", response_model=list[NotificationResponse])
def list_notifications(
    tenant_id: str | None = None,
    event_id: str | None = None,
    status: str | None = None,
    limit: int = 100,
    x_api_key: str | None = Header(default=None),
):
    """List queued/sent notifications for a tenant."""

    enforce_api_key(x_api_key)
    rows = store.list_notifications(
        tenant_id or settings.default_tenant_id,
        business_event_id=event_id,
        status=status,
        limit=min(max(limit, 1), 500),
    )
    return [_to_response(row) for row in rows]


@app.get("/notifications/{notification_id}", response_model=NotificationResponse)
def get_notification(notification_id: str, x_api_key: str | None = Header(default=None)):
    """Fetch one notification."""

    enforce_api_key(x_api_key)
    row = store.get(notification_id)
    if row is None:
        raise HTTPException(status_code=404, detail="notification not found")
    return _to_response(row)


@app.post("/notifications/{notification_id}/resend", response_model=ScheduleResponse)
def resend_notification(
    notification_id: str,
    x_api_key: str | None = Header(default=None),
    x_trace_id: str | None = Header(default=None),
):
    """Queue a fresh copy of a sent/failed notification."""

    enforce_api_key(x_api_key)
    _bind_trace(x_trace_id)
    row = store.get(notification_id)
    if row is None:
        raise HTTPException(status_code=404, detail="notification not found")
    if row.status not in ("failed", "sent"):
        raise HTTPException(status_code=409, detail=f"cannot resend a notification in status {row.status}")
    return ScheduleResponse(scheduled=scheduler.resend(notification_id))


@app.post("/notifications/cancel", response_model=CancelResponse)
def cancel_notifications(
    req: CancelRequest,
    x_api_key: str | None = Header(default=None),
):
    """Cancel every pending notification of a business event."""

    enforce_api_key(x_api_key)
    return CancelResponse(cancelled=scheduler.cancel_event_notifications(req.event_id, req.tenant_id))


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
