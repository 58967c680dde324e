"""`{{placeholder}}` rendering over tenant message templates."""

import re

from sqlalchemy import select

from studionotify.common.config import settings
from studionotify.common.logging import logger
from studionotify.services.notification.models import NotificationTemplate

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


class RenderError(Exception):
    """A message could not be produced for a notification."""


class TemplateNotFound(RenderError):
    def __init__(self, template_type: str, tenant_id: str) -> None:
        super().__init__(f"template {template_type!r} not found or inactive for tenant {tenant_id!r}")
        self.template_type = template_type
        self.tenant_id = tenant_id


def fill_placeholders(template: str, variables: dict[str, str]) -> tuple[str, list[str]]:
    """Substitute `{{key}}` occurrences in a single pass.

    Values are inserted verbatim, so a value that itself looks like a
    placeholder is never expanded again. Unknown keys stay in the output and
    are returned in order of first appearance.
    """

    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        if key not in missing:
            missing.append(key)
        return match.group(0)

    return PLACEHOLDER.sub(_replace, template), missing


class TemplateRenderer:
    """Looks up the active template for a type and fills it."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def get_template(self, template_type: str, tenant_id: str) -> NotificationTemplate | None:
        with self.session_factory() as db:
            return db.execute(
                select(NotificationTemplate).where(
                    NotificationTemplate.tenant_id == tenant_id,
                    NotificationTemplate.type == template_type,
                    NotificationTemplate.is_active.is_(True),
                )
            ).scalar_one_or_none()

    def render(self, template_type: str, variables: dict[str, str], tenant_id: str | None = None) -> str:
        tenant_id = tenant_id or settings.default_tenant_id
        template = self.get_template(template_type, tenant_id)
        if template is None:
            raise TemplateNotFound(template_type, tenant_id)
        message, missing = fill_placeholders(template.message_template, variables)
        if missing:
            logger.warning(
                "template variables not substituted template_type=%s missing=%s",
                template_type,
                ",".join(missing),
            )
        return message
