"""Business event consumer that feeds the scheduler."""

import asyncio

from pydantic import ValidationError
from sqlalchemy import select

from studionotify.common.events import EventEnvelope, consume_forever
from studionotify.common.logging import logger
from studionotify.common.metrics import duplicate_events_skipped_total
from studionotify.services.notification.models import InboxEvent
from studionotify.services.notification.scheduler import Scheduler
from studionotify.services.notification.schemas import (
    AppointmentEventPayload,
    GalleryReadyPayload,
    SelectionSubmittedPayload,
)

TOPICS = (
    "appointments.created",
    "appointments.cancelled",
    "galleries.ready",
    "selections.submitted",
    "payments.approved",
)


class NotificationEventService:
    """Routes business events to scheduling rules, skipping redelivered events."""

    def __init__(self, session_factory, scheduler: Scheduler, service_name: str = "notification") -> None:
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.service_name = service_name

    def _inbox_seen(self, db, event_id: str) -> bool:
        return (
            db.execute(
                select(InboxEvent).where(
                    InboxEvent.event_id == event_id,
                    InboxEvent.consumed_by_service == self.service_name,
                )
            ).scalar_one_or_none()
            is not None
        )

    def _mark_inbox(self, db, event_id: str) -> None:
        db.add(InboxEvent(event_id=event_id, consumed_by_service=self.service_name))

    def _dispatch(self, event: EventEnvelope) -> dict:
        tenant_id = event.tenant_id
        if event.event_type == "appointments.created":
            body = AppointmentEventPayload(**event.payload)
            return self.scheduler.schedule_appointment_reminders(body.appointment, body.studio, tenant_id)
        if event.event_type == "appointments.cancelled":
            return {"cancelled": self.scheduler.cancel_event_notifications(event.aggregate_id, tenant_id)}
        if event.event_type == "galleries.ready":
            body = GalleryReadyPayload(**event.payload)
            return self.scheduler.schedule_gallery_ready(
                body.appointment, body.studio, body.gallery_token, body.photo_count, tenant_id
            )
        if event.event_type == "selections.submitted":
            body = SelectionSubmittedPayload(**event.payload)
            return self.scheduler.schedule_selection_received(
                body.appointment, body.studio, body.selected_count, tenant_id
            )
        if event.event_type == "payments.approved":
            body = AppointmentEventPayload(**event.payload)
            return self.scheduler.schedule_payment_confirmation(body.appointment, body.studio, tenant_id)
        raise ValueError(f"unsupported event_type: {event.event_type}")

    async def handle_event(self, event: EventEnvelope) -> dict | None:
        """Apply one business event once; None when it was already consumed."""

        with self.session_factory() as db:
            if self._inbox_seen(db, event.event_id):
                logger.info("duplicate event skipped topic=%s event_id=%s", event.event_type, event.event_id)
                duplicate_events_skipped_total.labels(
                    service=self.service_name,
                    topic=event.event_type,
                ).inc()
                return None

        try:
            outcome = self._dispatch(event)
        except ValidationError as exc:
            logger.warning("invalid event payload dropped event_type=%s error=%s", event.event_type, exc)
            outcome = {"error": "invalid payload"}

        with self.session_factory() as db:
            self._mark_inbox(db, event.event_id)
            db.commit()
        logger.info("event handled event_type=%s outcome=%s", event.event_type, outcome)
        return outcome

    async def start_consumers(self) -> None:
        """Start one consumer per business topic."""

        await asyncio.gather(
            *(consume_forever(topic, f"notification-{topic.replace('.', '-')}", self.handle_event) for topic in TOPICS)
        )
