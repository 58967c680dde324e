"""Business event routing and inbox deduplication."""

from datetime import timedelta

import pytest

from conftest import NOW
from studionotify.common.events import EventEnvelope, dispatch_envelope
from studionotify.common.logging import event_id_ctx, tenant_id_ctx
from studionotify.services.notification.scheduler import (
    GALLERY_READY,
    REMINDER_1_DAY_BEFORE,
    REMINDER_DAY_OF_SESSION,
    SELECTION_REMINDER,
    Scheduler,
)
from studionotify.services.notification.service import NotificationEventService
from studionotify.services.notification.store import NotificationStore
from studionotify.services.notification.templates import TemplateRenderer


def _appointment_payload(starts_in: timedelta, **extra) -> dict:
    payload = {
        "appointment": {
            "appointment_id": "appt-1",
            "scheduled_date": (NOW + starts_in).isoformat(),
            "client": {"name": "Ana", "phone": "+5511999990000"},
            "session_type": "familia",
            "total_amount": "350.00",
            "minimum_photos": 5,
        },
        "studio": {"address": "Rua A, 10"},
    }
    payload.update(extra)
    return payload


class TestNotificationEventService:
    @pytest.fixture(autouse=True)
    def setup(self, session_factory, clock, make_template):
        for template_type in (REMINDER_1_DAY_BEFORE, REMINDER_DAY_OF_SESSION, GALLERY_READY, SELECTION_REMINDER):
            make_template(template_type, "Olá {{client_name}}")
        self.store = NotificationStore(session_factory)
        scheduler = Scheduler(self.store, TemplateRenderer(session_factory), clock=clock)
        self.service = NotificationEventService(session_factory, scheduler)

    @pytest.mark.asyncio
    async def test_appointment_created_schedules_reminders(self):
        event = EventEnvelope(
            event_type="appointments.created",
            aggregate_id="appt-1",
            payload=_appointment_payload(timedelta(days=2)),
        )

        outcome = await self.service.handle_event(event)

        assert outcome == {REMINDER_1_DAY_BEFORE: True, REMINDER_DAY_OF_SESSION: True}
        assert len(self.store.list_notifications("default", business_event_id="appt-1")) == 2

    @pytest.mark.asyncio
    async def test_redelivered_event_is_skipped(self):
        event = EventEnvelope(
            event_type="galleries.ready",
            aggregate_id="appt-1",
            payload=_appointment_payload(-timedelta(days=1), gallery_token="tok", photo_count=8),
        )

        assert await self.service.handle_event(event) == {GALLERY_READY: True, SELECTION_REMINDER: True}
        assert await self.service.handle_event(event) is None
        assert len(self.store.list_notifications("default")) == 2

    @pytest.mark.asyncio
    async def test_cancellation_event(self):
        await self.service.handle_event(
            EventEnvelope(
                event_type="appointments.created",
                aggregate_id="appt-1",
                payload=_appointment_payload(timedelta(days=2)),
            )
        )

        outcome = await self.service.handle_event(
            EventEnvelope(event_type="appointments.cancelled", aggregate_id="appt-1")
        )

        assert outcome == {"cancelled": 2}
        assert {r.status for r in self.store.list_notifications("default")} == {"cancelled"}

    @pytest.mark.asyncio
    async def test_invalid_payload_is_dropped(self):
        outcome = await self.service.handle_event(
            EventEnvelope(event_type="galleries.ready", aggregate_id="appt-1", payload={"appointment": {}})
        )
        assert outcome == {"error": "invalid payload"}
        assert self.store.list_notifications("default") == []

    @pytest.mark.asyncio
    async def test_unknown_event_type(self):
        with pytest.raises(ValueError):
            await self.service.handle_event(EventEnvelope(event_type="invoices.created", aggregate_id="x"))


@pytest.mark.asyncio
async def test_dispatch_binds_and_resets_context():
    seen = {}

    async def handler(event):
        seen["event_id"] = event_id_ctx.get()
        seen["tenant_id"] = tenant_id_ctx.get()

    event = EventEnvelope(event_id="evt-7", event_type="payments.approved", aggregate_id="a", tenant_id="studio-b")
    await dispatch_envelope("payments.approved", event, handler)

    assert seen == {"event_id": "evt-7", "tenant_id": "studio-b"}
    assert event_id_ctx.get() == ""
    assert tenant_id_ctx.get() == ""
