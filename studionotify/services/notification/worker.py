"""Delivery sweep: pending due rows -> WhatsApp gateway -> sent/failed.

A sweep is sequential on purpose: one message at a time with a fixed pause in
between keeps the tenant under the gateway's rate limit. Failed rows are not
re-queued; an admin resend creates a new row instead.
"""

import asyncio
from time import perf_counter

from studionotify.common.config import settings
from studionotify.common.db import utcnow
from studionotify.common.logging import logger, notification_id_ctx, tenant_id_ctx
from studionotify.common.metrics import (
    notifications_failed_total,
    notifications_sent_total,
    sweep_duration_seconds,
    sweeps_total,
    template_render_fallback_total,
)
from studionotify.common.tracing import tracer
from studionotify.services.notification.gateway import GatewayNotConfigured, GatewayResolver, WhatsAppGateway
from studionotify.services.notification.locks import InProcessSweepLock
from studionotify.services.notification.models import GatewayInstance, ScheduledNotification
from studionotify.services.notification.phone import InvalidPhoneNumber, normalize_phone
from studionotify.services.notification.schemas import SweepItemResult, SweepResult
from studionotify.services.notification.store import NotificationStore
from studionotify.services.notification.templates import TemplateRenderer


class DeliveryWorker:
    """Runs delivery sweeps for one tenant at a time."""

    def __init__(
        self,
        store: NotificationStore,
        renderer: TemplateRenderer,
        resolver: GatewayResolver,
        gateway: WhatsAppGateway,
        lock=None,
        batch_size: int | None = None,
        send_interval_seconds: float | None = None,
        clock=utcnow,
        sleep=asyncio.sleep,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.resolver = resolver
        self.gateway = gateway
        self.lock = lock or InProcessSweepLock()
        self.batch_size = settings.sweep_batch_size if batch_size is None else batch_size
        self.send_interval_seconds = (
            settings.send_interval_seconds if send_interval_seconds is None else send_interval_seconds
        )
        self.clock = clock
        self.sleep = sleep

    async def process_due(self, tenant_id: str | None = None, max_batch: int | None = None) -> SweepResult:
        """Run one sweep; never raises."""

        tenant_id = tenant_id or settings.default_tenant_id
        lock_name = f"notification-sweep:{tenant_id}"
        token = self.lock.acquire(lock_name)
        if token is None:
            logger.info("sweep already running, skipped tenant_id=%s", tenant_id)
            sweeps_total.labels(service=settings.service_name, outcome="skipped").inc()
            return SweepResult(skipped=True)

        tenant_token = tenant_id_ctx.set(tenant_id)
        started = perf_counter()
        try:
            with tracer.start_as_current_span("notification.sweep") as span:
                span.set_attribute("tenant_id", tenant_id)
                result = await self._sweep(tenant_id, self.batch_size if max_batch is None else max_batch)
                span.set_attribute("processed", result.processed)
            outcome = "ok" if result.success else "error"
            sweeps_total.labels(service=settings.service_name, outcome=outcome).inc()
            return result
        except Exception as exc:
            logger.exception("sweep aborted tenant_id=%s error=%s", tenant_id, exc)
            sweeps_total.labels(service=settings.service_name, outcome="error").inc()
            return SweepResult(success=False, error=f"internal error: {exc}")
        finally:
            sweep_duration_seconds.labels(service=settings.service_name).observe(max(0.0, perf_counter() - started))
            tenant_id_ctx.reset(tenant_token)
            self.lock.release(lock_name, token)

    async def _sweep(self, tenant_id: str, limit: int) -> SweepResult:
        now = self.clock()
        due = self.store.select_due(tenant_id, now, limit)
        logger.info("due notifications found count=%s", len(due))
        if not due:
            return SweepResult()

        try:
            instance = self.resolver.require_gateway(tenant_id)
        except GatewayNotConfigured as exc:
            # Rows stay pending: a missing channel is fixed by the tenant, not by giving up.
            logger.error("sweep cannot deliver, %s", exc)
            return SweepResult(success=False, error=str(exc))

        result = SweepResult()
        attempted = False
        for row in due:
            if not self._claim(row):
                continue
            if attempted and self.send_interval_seconds > 0:
                await self.sleep(self.send_interval_seconds)
            attempted = True
            item = await self._deliver_one(row, instance)
            result.processed += 1
            if item.status == "sent":
                result.sent += 1
            else:
                result.failed += 1
            result.results.append(item)

        self.store.update_backlog_metrics(tenant_id)
        logger.info(
            "sweep finished processed=%s sent=%s failed=%s", result.processed, result.sent, result.failed
        )
        return result

    def _claim(self, row: ScheduledNotification) -> bool:
        """`pending -> processing`; False when another sweep got it or the claim errored."""

        try:
            claimed = self.store.claim(row.id)
        except Exception as exc:
            logger.error("claim failed, row left for the next sweep notification_id=%s error=%s", row.id, exc)
            return False
        if not claimed:
            logger.info("notification already claimed by another sweep notification_id=%s", row.id)
        return claimed

    def _message_for(self, row: ScheduledNotification) -> str:
        """Live template first so template edits reach queued reminders."""

        try:
            return self.renderer.render(row.template_type, dict(row.template_variables or {}), row.tenant_id)
        except Exception as exc:
            logger.warning("live render failed, using stored message template_type=%s error=%s", row.template_type, exc)
            template_render_fallback_total.labels(
                service=settings.service_name, template_type=row.template_type
            ).inc()
            return row.rendered_message

    async def _deliver_one(self, row: ScheduledNotification, instance: GatewayInstance) -> SweepItemResult:
        """Deliver one claimed row."""

        notification_token = notification_id_ctx.set(row.id)
        started = perf_counter()

        def _elapsed_ms() -> int:
            return int((perf_counter() - started) * 1000)

        try:
            try:
                message = self._message_for(row)
                if not message:
                    return self._fail(row, "empty message", "invalid_data", _elapsed_ms)
                try:
                    number = normalize_phone(row.recipient_phone)
                except InvalidPhoneNumber as exc:
                    return self._fail(row, str(exc), "invalid_phone", _elapsed_ms)
                await self.gateway.send_text(instance, number, message)
            except Exception as exc:
                logger.error("notification delivery failed error=%s", exc)
                return self._fail(row, str(exc) or exc.__class__.__name__, "delivery", _elapsed_ms)

            # The gateway accepted the message; from here on it is never reported as failed.
            try:
                self.store.mark_sent(row.id, self.clock())
            except Exception as exc:
                logger.exception("delivered but sent status not recorded, row left processing error=%s", exc)
            notifications_sent_total.labels(service=settings.service_name, template_type=row.template_type).inc()
            logger.info("notification sent template_type=%s elapsed_ms=%s", row.template_type, _elapsed_ms())
            return SweepItemResult(id=row.id, status="sent", processing_time_ms=_elapsed_ms())
        finally:
            notification_id_ctx.reset(notification_token)

    def _fail(self, row: ScheduledNotification, error: str, reason: str, elapsed_ms) -> SweepItemResult:
        try:
            self.store.mark_failed(row.id, error)
        except Exception as exc:
            logger.exception("could not record failure error=%s", exc)
        notifications_failed_total.labels(service=settings.service_name, reason=reason).inc()
        return SweepItemResult(id=row.id, status="failed", processing_time_ms=elapsed_ms(), error=error)

    async def run_forever(self, interval_seconds: float | None = None, tenant_id: str | None = None) -> None:
        """Background sweep loop used by the app lifespan."""

        interval = settings.sweep_interval_seconds if interval_seconds is None else interval_seconds
        while True:
            await self.process_due(tenant_id)
            await asyncio.sleep(interval)
