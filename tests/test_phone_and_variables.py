"""Tests for phone normalization and template variable formatting."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from studionotify.services.notification.phone import InvalidPhoneNumber, normalize_phone
from studionotify.services.notification.schemas import AppointmentInfo, ClientInfo, StudioInfo
from studionotify.services.notification.variables import (
    appointment_variables,
    format_brl,
    format_long_date,
    format_time,
    selection_variables,
)


class TestNormalizePhone:
    def test_strips_formatting(self):
        assert normalize_phone("+55 (11) 99999-0000") == "5511999990000"

    def test_prepends_country_prefix(self):
        assert normalize_phone("11 99999-0000") == "5511999990000"

    def test_landline_length_is_valid(self):
        assert normalize_phone("1133334444") == "551133334444"

    @pytest.mark.parametrize("raw", ["123", "", "55119999900001234"])
    def test_rejects_out_of_range(self, raw):
        with pytest.raises(InvalidPhoneNumber) as exc_info:
            normalize_phone(raw)
        assert "invalid phone" in str(exc_info.value)


class TestFormatting:
    def test_format_brl(self):
        assert format_brl(Decimal("1234.5")) == "R$ 1.234,50"
        assert format_brl(30) == "R$ 30,00"
        assert format_brl(Decimal("0")) == "R$ 0,00"

    def test_long_date_uses_studio_timezone(self):
        # 02:30 UTC is still the previous evening in São Paulo.
        value = datetime(2025, 3, 16, 2, 30, tzinfo=timezone.utc)
        assert format_long_date(value, "America/Sao_Paulo") == "sábado, 15 de março de 2025"
        assert format_time(value, "America/Sao_Paulo") == "23:30"

    def test_naive_datetimes_are_utc(self):
        assert format_time(datetime(2025, 3, 15, 17, 0), "America/Sao_Paulo") == "14:00"


def _appointment(**overrides) -> AppointmentInfo:
    data = {
        "appointment_id": "appt-1",
        "scheduled_date": datetime(2025, 3, 15, 17, 0, tzinfo=timezone.utc),
        "client": ClientInfo(name="Ana", phone="+5511999990000"),
        "session_type": "newborn",
        "session_label": "Ensaio Newborn",
        "total_amount": Decimal("450"),
        "minimum_photos": 10,
    }
    data.update(overrides)
    return AppointmentInfo(**data)


def test_appointment_variables():
    variables = appointment_variables(
        _appointment(), StudioInfo(address="Rua A, 10", delivery_days=15), "America/Sao_Paulo"
    )
    assert variables["client_name"] == "Ana"
    assert variables["amount"] == "R$ 450,00"
    assert variables["session_type"] == "Ensaio Newborn"
    assert variables["appointment_date"] == "sábado, 15 de março de 2025"
    assert variables["appointment_time"] == "14:00"
    assert variables["studio_address"] == "Rua A, 10"
    assert variables["delivery_days"] == "15"
    assert variables["price_per_photo"] == "R$ 30,00"
    assert variables["minimum_photos"] == "10"
    assert variables["gallery_link"] == ""


def test_client_name_falls_back():
    variables = appointment_variables(_appointment(client=ClientInfo(name="", phone="1")), StudioInfo())
    assert variables["client_name"] == "Cliente"


def test_selection_variables_compute_extras():
    variables = selection_variables(_appointment(), StudioInfo(price_per_photo=Decimal("25")), selected_count=13)
    assert variables["selected_count"] == "13"
    assert variables["extra_photos"] == "3"
    assert variables["extra_cost"] == "R$ 75,00"


def test_selection_below_minimum_has_no_extras():
    variables = selection_variables(_appointment(), StudioInfo(), selected_count=4)
    assert variables["extra_photos"] == "0"
    assert variables["extra_cost"] == "R$ 0,00"
