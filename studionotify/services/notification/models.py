"""Notification service database models.

`scheduled_notifications` is the source of truth for "has this been sent".
Templates and gateway instances are tenant configuration owned by the admin
dashboard; this service only reads them.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from studionotify.common.db import Base, utcnow


class NotificationTemplate(Base):
    """Tenant-editable message template keyed by notification type."""

    __tablename__ = "notification_templates"
    __table_args__ = (UniqueConstraint("tenant_id", "type", name="uq_template_tenant_type"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    type: Mapped[str] = mapped_column(String)
    message_template: Mapped[str] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class ScheduledNotification(Base):
    """One message to one recipient, due at `scheduled_for`."""

    __tablename__ = "scheduled_notifications"
    __table_args__ = (
        Index("ix_scheduled_notifications_due", "tenant_id", "status", "scheduled_for"),
        Index("ix_scheduled_notifications_event_type", "tenant_id", "business_event_id", "template_type"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    tenant_id: Mapped[str] = mapped_column(String)
    business_event_id: Mapped[str] = mapped_column(String)
    template_type: Mapped[str] = mapped_column(String)
    recipient_phone: Mapped[str] = mapped_column(String)
    recipient_name: Mapped[str] = mapped_column(String)
    template_variables: Mapped[dict] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), default=dict)
    rendered_message: Mapped[str] = mapped_column(Text)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String, default="pending")
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class GatewayInstance(Base):
    """Registered outbound WhatsApp channel for a tenant."""

    __tablename__ = "gateway_instances"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    instance_name: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="created")
    api_url: Mapped[str | None] = mapped_column(String, nullable=True)
    api_key: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class InboxEvent(Base):
    """Deduplication rows for consumed business events."""

    __tablename__ = "inbox_events"
    __table_args__ = (UniqueConstraint("event_id", "consumed_by_service", name="uq_inbox_consumer"),)

    event_id: Mapped[str] = mapped_column(String, primary_key=True)
    consumed_by_service: Mapped[str] = mapped_column(String, primary_key=True)
    consumed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
