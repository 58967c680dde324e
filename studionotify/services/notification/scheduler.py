"""Business event -> scheduled notification rows.

Scheduling is a side effect of booking, gallery upload, selection and payment
flows. None of the public methods here raise: a scheduling problem is logged
and reported as a boolean so the parent business operation never fails
because of it.
"""

from datetime import datetime, timedelta

from studionotify.common.config import settings
from studionotify.common.db import as_utc, utcnow
from studionotify.common.logging import logger
from studionotify.common.metrics import (
    notifications_duplicate_skipped_total,
    notifications_rejected_total,
    notifications_scheduled_total,
)
from studionotify.services.notification.dedupe import DeduplicationGuard
from studionotify.services.notification.schemas import AppointmentInfo, StudioInfo
from studionotify.services.notification.store import NotificationStore
from studionotify.services.notification.templates import RenderError, TemplateRenderer
from studionotify.services.notification.variables import appointment_variables, gallery_link, selection_variables

REMINDER_1_DAY_BEFORE = "reminder_1_day_before"
REMINDER_DAY_OF_SESSION = "reminder_day_of_session"
GALLERY_READY = "gallery_ready"
SELECTION_REMINDER = "selection_reminder"
SELECTION_RECEIVED = "selection_received"
DELIVERY_REMINDER = "delivery_reminder"
PAYMENT_CONFIRMATION = "payment_confirmation"

SELECTION_REMINDER_DELAY = timedelta(days=6)


class Scheduler:
    """Single entry point that turns business events into pending rows."""

    def __init__(
        self,
        store: NotificationStore,
        renderer: TemplateRenderer,
        guard: DeduplicationGuard | None = None,
        clock=utcnow,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.guard = guard or DeduplicationGuard(store)
        self.clock = clock

    def _reject(self, reason: str) -> bool:
        notifications_rejected_total.labels(service=settings.service_name, reason=reason).inc()
        return False

    def schedule_notification(
        self,
        event_id: str,
        template_type: str,
        recipient_phone: str,
        recipient_name: str,
        trigger_time: datetime | None = None,
        variables: dict[str, str] | None = None,
        tenant_id: str | None = None,
    ) -> bool:
        """Queue one notification; True when it is (or already was) scheduled.

        `trigger_time=None` means deliver as soon as possible. A trigger time
        already in the past is never backfilled.
        """

        try:
            return self._schedule(
                event_id,
                template_type,
                recipient_phone,
                recipient_name,
                trigger_time,
                variables or {},
                tenant_id or settings.default_tenant_id,
            )
        except Exception as exc:
            logger.exception(
                "scheduling failed event_id=%s template_type=%s error=%s", event_id, template_type, exc
            )
            return self._reject("error")

    def _schedule(
        self,
        event_id: str,
        template_type: str,
        recipient_phone: str,
        recipient_name: str,
        trigger_time: datetime | None,
        variables: dict[str, str],
        tenant_id: str,
    ) -> bool:
        if not (event_id and template_type and recipient_phone and recipient_name):
            logger.error(
                "missing required scheduling fields event_id=%r template_type=%r phone_set=%s name_set=%s",
                event_id,
                template_type,
                bool(recipient_phone),
                bool(recipient_name),
            )
            return self._reject("invalid")

        now = self.clock()
        scheduled_for = now if trigger_time is None else as_utc(trigger_time)
        if scheduled_for < now:
            logger.info(
                "trigger time in the past, not scheduling event_id=%s template_type=%s scheduled_for=%s",
                event_id,
                template_type,
                scheduled_for.isoformat(),
            )
            return self._reject("past_due")

        if self.guard.is_duplicate(event_id, template_type, tenant_id, now=now):
            logger.info("duplicate notification skipped event_id=%s template_type=%s", event_id, template_type)
            notifications_duplicate_skipped_total.labels(
                service=settings.service_name, template_type=template_type
            ).inc()
            return True

        try:
            message = self.renderer.render(template_type, variables, tenant_id)
        except RenderError as exc:
            logger.error("template render failed event_id=%s error=%s", event_id, exc)
            return self._reject("render")

        row = self.store.insert(
            tenant_id=tenant_id,
            business_event_id=event_id,
            template_type=template_type,
            recipient_phone=recipient_phone,
            recipient_name=recipient_name,
            rendered_message=message,
            scheduled_for=scheduled_for,
            template_variables=variables,
        )
        notifications_scheduled_total.labels(service=settings.service_name, template_type=template_type).inc()
        logger.info(
            "notification scheduled id=%s event_id=%s template_type=%s scheduled_for=%s",
            row.id,
            event_id,
            template_type,
            scheduled_for.isoformat(),
        )
        return True

    def _schedule_for_appointment(
        self,
        appointment: AppointmentInfo,
        template_type: str,
        trigger_time: datetime | None,
        variables: dict[str, str],
        tenant_id: str | None,
    ) -> bool:
        return self.schedule_notification(
            appointment.appointment_id,
            template_type,
            appointment.client.phone,
            appointment.client.name or "Cliente",
            trigger_time,
            variables,
            tenant_id,
        )

    def schedule_appointment_reminders(
        self, appointment: AppointmentInfo, studio: StudioInfo, tenant_id: str | None = None
    ) -> dict[str, bool]:
        """Day-before and two-hours-before reminders; past reminders are skipped."""

        results: dict[str, bool] = {}
        try:
            variables = appointment_variables(appointment, studio)
        except Exception as exc:
            logger.exception("reminder variables failed appointment_id=%s error=%s", appointment.appointment_id, exc)
            return results

        now = self.clock()
        starts_at = as_utc(appointment.scheduled_date)
        for template_type, offset in (
            (REMINDER_1_DAY_BEFORE, timedelta(hours=24)),
            (REMINDER_DAY_OF_SESSION, timedelta(hours=2)),
        ):
            trigger = starts_at - offset
            if trigger <= now:
                logger.info(
                    "reminder already past, skipped appointment_id=%s template_type=%s",
                    appointment.appointment_id,
                    template_type,
                )
                continue
            results[template_type] = self._schedule_for_appointment(
                appointment, template_type, trigger, variables, tenant_id
            )
        return results

    def schedule_gallery_ready(
        self,
        appointment: AppointmentInfo,
        studio: StudioInfo,
        gallery_token: str,
        photo_count: int,
        tenant_id: str | None = None,
    ) -> dict[str, bool]:
        """Immediate gallery alert plus a selection reminder six days later.

        Nothing is scheduled until the gallery holds at least the appointment's
        minimum number of photos.
        """

        minimum = appointment.minimum_photos or 5
        if photo_count < minimum:
            logger.info(
                "gallery below photo threshold appointment_id=%s photos=%s minimum=%s",
                appointment.appointment_id,
                photo_count,
                minimum,
            )
            return {}
        try:
            variables = appointment_variables(appointment, studio, gallery_link=gallery_link(gallery_token))
        except Exception as exc:
            logger.exception("gallery variables failed appointment_id=%s error=%s", appointment.appointment_id, exc)
            return {}

        now = self.clock()
        return {
            GALLERY_READY: self._schedule_for_appointment(appointment, GALLERY_READY, None, variables, tenant_id),
            SELECTION_REMINDER: self._schedule_for_appointment(
                appointment, SELECTION_REMINDER, now + SELECTION_REMINDER_DELAY, variables, tenant_id
            ),
        }

    def schedule_selection_received(
        self,
        appointment: AppointmentInfo,
        studio: StudioInfo,
        selected_count: int,
        tenant_id: str | None = None,
    ) -> dict[str, bool]:
        """Selection confirmation, only once the initial payment is approved."""

        if appointment.payment_status != "approved":
            logger.info(
                "initial payment not approved, selection saved without notification appointment_id=%s status=%s",
                appointment.appointment_id,
                appointment.payment_status,
            )
            return {}
        try:
            variables = selection_variables(appointment, studio, selected_count)
        except Exception as exc:
            logger.exception(
                "selection variables failed appointment_id=%s error=%s", appointment.appointment_id, exc
            )
            return {}

        results = {
            SELECTION_RECEIVED: self._schedule_for_appointment(
                appointment, SELECTION_RECEIVED, None, variables, tenant_id
            )
        }
        now = self.clock()
        delivery_at = now + timedelta(days=(studio.delivery_days or 7) - 1)
        if delivery_at > now:
            results[DELIVERY_REMINDER] = self._schedule_for_appointment(
                appointment, DELIVERY_REMINDER, delivery_at, variables, tenant_id
            )
        return results

    def schedule_payment_confirmation(
        self, appointment: AppointmentInfo, studio: StudioInfo, tenant_id: str | None = None
    ) -> dict[str, bool]:
        try:
            variables = appointment_variables(appointment, studio)
        except Exception as exc:
            logger.exception("payment variables failed appointment_id=%s error=%s", appointment.appointment_id, exc)
            return {}
        return {
            PAYMENT_CONFIRMATION: self._schedule_for_appointment(
                appointment, PAYMENT_CONFIRMATION, None, variables, tenant_id
            )
        }

    def resend(self, notification_id: str) -> bool:
        """Queue a fresh copy of a finished notification.

        The original row is left untouched; the copy goes through the same
        deduplication guard as any other scheduling call.
        """

        try:
            row = self.store.get(notification_id)
        except Exception as exc:
            logger.exception("resend lookup failed notification_id=%s error=%s", notification_id, exc)
            return False
        if row is None:
            logger.warning("resend requested for unknown notification_id=%s", notification_id)
            return False
        if row.status not in ("failed", "sent"):
            logger.warning("resend refused notification_id=%s status=%s", notification_id, row.status)
            return False
        return self.schedule_notification(
            row.business_event_id,
            row.template_type,
            row.recipient_phone,
            row.recipient_name,
            None,
            dict(row.template_variables or {}),
            row.tenant_id,
        )

    def cancel_event_notifications(self, event_id: str, tenant_id: str | None = None) -> int:
        """Cancel reminders still pending for a business event (e.g. a cancelled appointment)."""

        try:
            cancelled = self.store.cancel_pending(event_id, tenant_id or settings.default_tenant_id)
        except Exception as exc:
            logger.exception("cancel failed event_id=%s error=%s", event_id, exc)
            return 0
        logger.info("pending notifications cancelled event_id=%s count=%s", event_id, cancelled)
        return cancelled
