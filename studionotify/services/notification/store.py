"""Scheduled notification persistence.

Every state change is a single-row update guarded by the row's current status,
so two overlapping sweeps can never both move the same row forward.
"""

from datetime import datetime

from sqlalchemy import and_, func, or_, select, update

from studionotify.common.config import settings
from studionotify.common.db import as_utc, utcnow
from studionotify.common.logging import logger
from studionotify.common.metrics import notification_queue_oldest_due_age_seconds, notification_queue_pending_total
from studionotify.common.state_machine import validate_transition
from studionotify.services.notification.models import ScheduledNotification


class NotificationStore:
    """Insert/select/transition operations over `scheduled_notifications`."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def insert(
        self,
        tenant_id: str,
        business_event_id: str,
        template_type: str,
        recipient_phone: str,
        recipient_name: str,
        rendered_message: str,
        scheduled_for: datetime,
        template_variables: dict[str, str] | None = None,
    ) -> ScheduledNotification:
        with self.session_factory() as db:
            row = ScheduledNotification(
                tenant_id=tenant_id,
                business_event_id=business_event_id,
                template_type=template_type,
                recipient_phone=recipient_phone,
                recipient_name=recipient_name,
                rendered_message=rendered_message,
                template_variables=dict(template_variables or {}),
                scheduled_for=scheduled_for,
                status="pending",
            )
            db.add(row)
            db.commit()
            return row

    def get(self, notification_id: str) -> ScheduledNotification | None:
        with self.session_factory() as db:
            return db.get(ScheduledNotification, notification_id)

    def list_notifications(
        self,
        tenant_id: str,
        business_event_id: str | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[ScheduledNotification]:
        query = select(ScheduledNotification).where(ScheduledNotification.tenant_id == tenant_id)
        if business_event_id is not None:
            query = query.where(ScheduledNotification.business_event_id == business_event_id)
        if status is not None:
            query = query.where(ScheduledNotification.status == status)
        query = query.order_by(ScheduledNotification.scheduled_for).limit(limit)
        with self.session_factory() as db:
            return list(db.execute(query).scalars().all())

    def select_due(self, tenant_id: str, now: datetime, limit: int) -> list[ScheduledNotification]:
        """Pending rows already due, earliest first."""

        with self.session_factory() as db:
            return list(
                db.execute(
                    select(ScheduledNotification)
                    .where(
                        ScheduledNotification.tenant_id == tenant_id,
                        ScheduledNotification.status == "pending",
                        ScheduledNotification.scheduled_for <= now,
                    )
                    .order_by(ScheduledNotification.scheduled_for, ScheduledNotification.created_at)
                    .limit(limit)
                )
                .scalars()
                .all()
            )

    def exists_active(
        self,
        tenant_id: str,
        business_event_id: str,
        template_type: str,
        sent_since: datetime,
    ) -> bool:
        """True when the pair is queued, in flight, or was sent at/after `sent_since`."""

        with self.session_factory() as db:
            row_id = db.execute(
                select(ScheduledNotification.id)
                .where(
                    ScheduledNotification.tenant_id == tenant_id,
                    ScheduledNotification.business_event_id == business_event_id,
                    ScheduledNotification.template_type == template_type,
                    or_(
                        ScheduledNotification.status.in_(("pending", "processing")),
                        and_(
                            ScheduledNotification.status == "sent",
                            ScheduledNotification.sent_at >= sent_since,
                        ),
                    ),
                )
                .limit(1)
            ).scalar_one_or_none()
            return row_id is not None

    def _transition(self, db, notification_id: str, current: str, new: str, **values) -> bool:
        validate_transition(current, new)
        result = db.execute(
            update(ScheduledNotification)
            .where(ScheduledNotification.id == notification_id, ScheduledNotification.status == current)
            .values(status=new, updated_at=utcnow(), **values)
        )
        return result.rowcount == 1

    def claim(self, notification_id: str) -> bool:
        """Move one row `pending -> processing`; False when another sweep got it first."""

        with self.session_factory() as db:
            claimed = self._transition(db, notification_id, "pending", "processing")
            db.commit()
        return claimed

    def mark_sent(self, notification_id: str, sent_at: datetime | None = None) -> bool:
        with self.session_factory() as db:
            done = self._transition(
                db, notification_id, "processing", "sent", sent_at=sent_at or utcnow(), error_message=None
            )
            db.commit()
        if not done:
            logger.warning("mark_sent ignored, row not processing notification_id=%s", notification_id)
        return done

    def mark_failed(self, notification_id: str, error_message: str) -> bool:
        with self.session_factory() as db:
            done = self._transition(db, notification_id, "processing", "failed", error_message=error_message[:2000])
            db.commit()
        if not done:
            logger.warning("mark_failed ignored, row not processing notification_id=%s", notification_id)
        return done

    def cancel_pending(self, business_event_id: str, tenant_id: str) -> int:
        """Cancel every still-pending row spawned by one business event."""

        validate_transition("pending", "cancelled")
        with self.session_factory() as db:
            result = db.execute(
                update(ScheduledNotification)
                .where(
                    ScheduledNotification.tenant_id == tenant_id,
                    ScheduledNotification.business_event_id == business_event_id,
                    ScheduledNotification.status == "pending",
                )
                .values(status="cancelled", updated_at=utcnow(), error_message="cancelled with business event")
            )
            db.commit()
        return result.rowcount

    def update_backlog_metrics(self, tenant_id: str, now: datetime | None = None) -> None:
        """Update gauges for pending queue depth and oldest overdue age."""

        now = now or utcnow()
        with self.session_factory() as db:
            pending_count = db.execute(
                select(func.count())
                .select_from(ScheduledNotification)
                .where(ScheduledNotification.tenant_id == tenant_id, ScheduledNotification.status == "pending")
            ).scalar_one()
            oldest_due = db.execute(
                select(func.min(ScheduledNotification.scheduled_for)).where(
                    ScheduledNotification.tenant_id == tenant_id,
                    ScheduledNotification.status == "pending",
                    ScheduledNotification.scheduled_for <= now,
                )
            ).scalar_one()
        age_seconds = 0.0
        if oldest_due is not None:
            age_seconds = max(0.0, (now - as_utc(oldest_due)).total_seconds())
        notification_queue_pending_total.labels(service=settings.service_name).set(float(pending_count))
        notification_queue_oldest_due_age_seconds.labels(service=settings.service_name).set(age_seconds)
