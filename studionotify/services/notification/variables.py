"""Template variable maps built from appointment and studio snapshots.

Every value is a display string; templates are written in Brazilian
Portuguese, so dates and money follow pt-BR conventions.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from studionotify.common.config import settings
from studionotify.common.db import as_utc
from studionotify.services.notification.schemas import AppointmentInfo, StudioInfo

WEEKDAYS_PT = (
    "segunda-feira",
    "terça-feira",
    "quarta-feira",
    "quinta-feira",
    "sexta-feira",
    "sábado",
    "domingo",
)
MONTHS_PT = (
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
)


def format_brl(amount: Decimal | int | float) -> str:
    """`1234.5` -> `R$ 1.234,50`."""

    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    grouped = f"{abs(value):,.2f}"
    return f"{sign}R$ " + grouped.replace(",", "_").replace(".", ",").replace("_", ".")


def _local(value: datetime, tz_name: str | None) -> datetime:
    return as_utc(value).astimezone(ZoneInfo(tz_name or settings.studio_timezone))


def format_long_date(value: datetime, tz_name: str | None = None) -> str:
    """`sábado, 15 de março de 2025` in the studio timezone."""

    local = _local(value, tz_name)
    return f"{WEEKDAYS_PT[local.weekday()]}, {local.day} de {MONTHS_PT[local.month - 1]} de {local.year}"


def format_time(value: datetime, tz_name: str | None = None) -> str:
    return _local(value, tz_name).strftime("%H:%M")


def gallery_link(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/gallery/{token}"


def appointment_variables(
    appointment: AppointmentInfo,
    studio: StudioInfo,
    tz_name: str | None = None,
    **extra: str,
) -> dict[str, str]:
    """Common variables shared by every appointment-related template."""

    variables = {
        "client_name": appointment.client.name or "Cliente",
        "amount": format_brl(appointment.total_amount),
        "session_type": appointment.session_label or appointment.session_type,
        "appointment_date": format_long_date(appointment.scheduled_date, tz_name),
        "appointment_time": format_time(appointment.scheduled_date, tz_name),
        "studio_address": studio.address,
        "studio_maps_url": studio.maps_url,
        "delivery_days": str(studio.delivery_days or 7),
        "price_per_photo": format_brl(studio.price_per_photo),
        "minimum_photos": str(appointment.minimum_photos or 5),
        "gallery_link": "",
    }
    variables.update(extra)
    return variables


def selection_variables(
    appointment: AppointmentInfo,
    studio: StudioInfo,
    selected_count: int,
    tz_name: str | None = None,
) -> dict[str, str]:
    """Appointment variables plus the extra-photo arithmetic of a selection."""

    minimum = appointment.minimum_photos or 5
    extra_photos = max(0, selected_count - minimum)
    return appointment_variables(
        appointment,
        studio,
        tz_name,
        selected_count=str(selected_count),
        extra_photos=str(extra_photos),
        extra_cost=format_brl(Decimal(extra_photos) * studio.price_per_photo),
    )
