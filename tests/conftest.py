"""Shared test fixtures.

Settings are read from the environment at import time, so the test
environment is pinned here before any `studionotify` module is imported.
A throwaway SQLite file stands in for Postgres.
"""

import os
import tempfile
from datetime import datetime, timezone

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="studionotify-tests-")
os.environ["POSTGRES_DSN"] = f"sqlite+pysqlite:///{_DB_DIR}/notifications.db"
os.environ["API_KEY"] = "test-key"
os.environ["SWEEP_LOCK_BACKEND"] = "memory"
os.environ["SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["SEND_INTERVAL_SECONDS"] = "0"
os.environ["KAFKA_CONSUMERS_ENABLED"] = "false"
os.environ["OTEL_ENABLED"] = "false"
os.environ["PUBLIC_BASE_URL"] = "https://x"
os.environ["DEFAULT_TENANT_ID"] = "default"

from studionotify.common.db import Base, SessionLocal, engine  # noqa: E402
from studionotify.services.notification import models  # noqa: E402,F401
from studionotify.services.notification.models import GatewayInstance, NotificationTemplate  # noqa: E402

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
API_HEADERS = {"x-api-key": "test-key"}


@pytest.fixture
def session_factory():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield SessionLocal
    Base.metadata.drop_all(engine)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def make_template(session_factory):
    def _make(template_type: str, text: str, tenant_id: str = "default", is_active: bool = True):
        with session_factory() as db:
            row = NotificationTemplate(
                tenant_id=tenant_id, type=template_type, message_template=text, is_active=is_active
            )
            db.add(row)
            db.commit()
            return row

    return _make


@pytest.fixture
def make_gateway(session_factory):
    def _make(
        instance_name: str = "studio-main",
        status: str = "connected",
        tenant_id: str = "default",
        api_url: str | None = "https://wa.example.com",
        api_key: str | None = "gw-key",
        created_at: datetime | None = None,
    ):
        with session_factory() as db:
            row = GatewayInstance(
                tenant_id=tenant_id,
                instance_name=instance_name,
                status=status,
                api_url=api_url,
                api_key=api_key,
                created_at=created_at or datetime.now(timezone.utc),
            )
            db.add(row)
            db.commit()
            return row

    return _make


class FakeGateway:
    """Records sends; raises for numbers listed in `fail_numbers`."""

    def __init__(self, fail_numbers: dict[str, Exception] | None = None) -> None:
        self.fail_numbers = fail_numbers or {}
        self.calls: list[tuple[str, str, str]] = []

    async def send_text(self, instance, number: str, text: str) -> dict:
        self.calls.append((instance.instance_name, number, text))
        if number in self.fail_numbers:
            raise self.fail_numbers[number]
        return {"key": {"id": f"msg-{len(self.calls)}"}}

    async def close(self) -> None:
        pass


@pytest.fixture
def fake_gateway():
    return FakeGateway()
