"""Request/response and business-event payload schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ClientInfo(BaseModel):
    """Denormalized client contact carried on booking events."""

    name: str = ""
    phone: str = ""


class AppointmentInfo(BaseModel):
    """Snapshot of the appointment a notification is about."""

    appointment_id: str = Field(min_length=1)
    scheduled_date: datetime
    client: ClientInfo = Field(default_factory=ClientInfo)
    session_type: str = ""
    session_label: str | None = None
    total_amount: Decimal = Decimal("0")
    minimum_photos: int = 5
    payment_status: str = "pending"


class StudioInfo(BaseModel):
    """Studio profile values used inside message templates."""

    address: str = ""
    maps_url: str = ""
    delivery_days: int = 7
    price_per_photo: Decimal = Decimal("30")


class AppointmentEventPayload(BaseModel):
    appointment: AppointmentInfo
    studio: StudioInfo = Field(default_factory=StudioInfo)


class GalleryReadyPayload(AppointmentEventPayload):
    gallery_token: str = Field(min_length=1)
    photo_count: int = Field(ge=0)


class SelectionSubmittedPayload(AppointmentEventPayload):
    selected_count: int = Field(ge=0)


class ScheduleNotificationRequest(BaseModel):
    """Direct scheduling call used by booking/gallery/selection flows."""

    event_id: str
    template_type: str
    recipient_phone: str
    recipient_name: str
    trigger_time: datetime | None = None
    variables: dict[str, str] = Field(default_factory=dict)
    tenant_id: str | None = None


class ScheduleResponse(BaseModel):
    scheduled: bool


class CancelRequest(BaseModel):
    event_id: str = Field(min_length=1)
    tenant_id: str | None = None


class CancelResponse(BaseModel):
    cancelled: int


class NotificationResponse(BaseModel):
    """Admin view of one queued notification."""

    id: str
    tenant_id: str
    business_event_id: str
    template_type: str
    recipient_name: str
    recipient_phone: str
    rendered_message: str
    status: str
    scheduled_for: datetime
    sent_at: datetime | None = None
    error_message: str | None = None


class SweepItemResult(BaseModel):
    id: str
    status: str
    processing_time_ms: int
    error: str | None = None


class SweepResult(BaseModel):
    """Outcome of one delivery sweep, returned by the trigger endpoint."""

    success: bool = True
    processed: int = 0
    sent: int = 0
    failed: int = 0
    results: list[SweepItemResult] = Field(default_factory=list)
    error: str | None = None
    skipped: bool = False
