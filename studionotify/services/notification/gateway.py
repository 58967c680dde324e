"""Outbound WhatsApp gateway: active instance resolution + send client."""

from time import perf_counter

import httpx
from sqlalchemy import select

from studionotify.common.config import settings
from studionotify.common.logging import logger
from studionotify.common.metrics import gateway_latency_seconds
from studionotify.services.notification.models import GatewayInstance


class GatewayError(Exception):
    """The gateway did not accept a message."""


class GatewayNotConfigured(GatewayError):
    """No usable outbound channel is registered for the tenant."""


class GatewayResolver:
    """Picks the single instance a tenant's sweep delivers through."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def active_gateway(self, tenant_id: str | None = None) -> GatewayInstance | None:
        """First `connected`, else first `created`, else most recently created."""

        tenant_id = tenant_id or settings.default_tenant_id
        with self.session_factory() as db:
            instances = list(
                db.execute(
                    select(GatewayInstance)
                    .where(GatewayInstance.tenant_id == tenant_id)
                    .order_by(GatewayInstance.created_at.desc())
                )
                .scalars()
                .all()
            )
        for wanted in ("connected", "created"):
            for instance in instances:
                if instance.status == wanted:
                    return instance
        return instances[0] if instances else None

    def require_gateway(self, tenant_id: str | None = None) -> GatewayInstance:
        """Like `active_gateway` but raises when nothing usable is registered."""

        instance = self.active_gateway(tenant_id)
        if instance is None:
            raise GatewayNotConfigured("no active WhatsApp instance found")
        if not instance.api_url or not instance.api_key:
            raise GatewayNotConfigured(f"WhatsApp credentials not configured for instance {instance.instance_name}")
        return instance


class WhatsAppGateway:
    """Thin async client for the gateway's `sendText` endpoint."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float | None = None) -> None:
        self._client = client
        self._owns_client = client is None
        self.timeout = settings.gateway_timeout_seconds if timeout is None else timeout

    async def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send_text(self, instance: GatewayInstance, number: str, text: str) -> dict:
        """POST one text message; raise GatewayError on non-2xx or transport failure."""

        url = f"{instance.api_url.rstrip('/')}/message/sendText/{instance.instance_name}"
        client = await self.client()
        started = perf_counter()
        try:
            resp = await client.post(
                url,
                headers={"apikey": instance.api_key, "Accept": "application/json"},
                json={"number": number, "text": text},
            )
        except httpx.HTTPError as exc:
            raise GatewayError(f"gateway request failed: {exc.__class__.__name__}: {exc}") from exc
        finally:
            gateway_latency_seconds.labels(service=settings.service_name).observe(
                max(0.0, perf_counter() - started)
            )
        if not resp.is_success:
            logger.error("gateway rejected message status=%s instance=%s", resp.status_code, instance.instance_name)
            raise GatewayError(f"gateway returned HTTP {resp.status_code}: {resp.text[:500]}")
        try:
            return resp.json()
        except ValueError:
            return {}

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
