"""Idempotent scheduling check against the notification store."""

from datetime import datetime, timedelta

from studionotify.common.config import settings
from studionotify.common.db import utcnow
from studionotify.services.notification.store import NotificationStore


class DeduplicationGuard:
    """Vetoes a schedule request when the same event/template pair is live.

    "Live" means queued, in flight, or sent within `window_seconds`. The check
    and the later insert are not atomic; two schedule calls racing within a few
    milliseconds can both pass, which is accepted.
    """

    def __init__(self, store: NotificationStore, window_seconds: int | None = None) -> None:
        self.store = store
        self.window = timedelta(
            seconds=settings.dedupe_window_seconds if window_seconds is None else window_seconds
        )

    def is_duplicate(
        self,
        event_id: str,
        template_type: str,
        tenant_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        now = now or utcnow()
        return self.store.exists_active(
            tenant_id or settings.default_tenant_id,
            event_id,
            template_type,
            sent_since=now - self.window,
        )
