"""Tests for placeholder substitution and the template renderer."""

import logging

import pytest

from studionotify.services.notification.templates import (
    RenderError,
    TemplateNotFound,
    TemplateRenderer,
    fill_placeholders,
)


class TestFillPlaceholders:
    def test_replaces_every_occurrence(self):
        text, missing = fill_placeholders("{{name}} e {{name}}", {"name": "Ana"})
        assert text == "Ana e Ana"
        assert missing == []

    def test_unmatched_placeholders_are_kept(self):
        text, missing = fill_placeholders("Olá {{client_name}}, link: {{gallery_link}}", {"client_name": "Ana"})
        assert text == "Olá Ana, link: {{gallery_link}}"
        assert missing == ["gallery_link"]

    def test_values_are_not_expanded_again(self):
        text, _ = fill_placeholders("{{a}} {{b}}", {"a": "{{b}}", "b": "x"})
        assert text == "{{b}} x"

    def test_single_braces_untouched(self):
        text, missing = fill_placeholders("{client_name}", {"client_name": "Ana"})
        assert text == "{client_name}"
        assert missing == []


class TestTemplateRenderer:
    def test_render_active_template(self, make_template, session_factory):
        make_template("gallery_ready", "Olá {{client_name}}, acesse {{gallery_link}}")
        renderer = TemplateRenderer(session_factory)
        message = renderer.render(
            "gallery_ready", {"client_name": "Ana", "gallery_link": "https://x/g/tok"}, "default"
        )
        assert message == "Olá Ana, acesse https://x/g/tok"

    def test_missing_template(self, session_factory):
        renderer = TemplateRenderer(session_factory)
        with pytest.raises(TemplateNotFound):
            renderer.render("gallery_ready", {}, "default")

    def test_inactive_template_is_not_used(self, make_template, session_factory):
        make_template("gallery_ready", "Olá", is_active=False)
        renderer = TemplateRenderer(session_factory)
        with pytest.raises(RenderError):
            renderer.render("gallery_ready", {}, "default")

    def test_templates_are_tenant_scoped(self, make_template, session_factory):
        make_template("gallery_ready", "outro estúdio", tenant_id="studio-b")
        renderer = TemplateRenderer(session_factory)
        with pytest.raises(TemplateNotFound):
            renderer.render("gallery_ready", {}, "default")
        assert renderer.render("gallery_ready", {}, "studio-b") == "outro estúdio"

    def test_missing_variable_logs_warning(self, make_template, session_factory, caplog):
        make_template("reminder_1_day_before", "Amanhã às {{appointment_time}}")
        renderer = TemplateRenderer(session_factory)
        with caplog.at_level(logging.WARNING, logger="studionotify"):
            message = renderer.render("reminder_1_day_before", {}, "default")
        assert message == "Amanhã às {{appointment_time}}"
        assert "appointment_time" in caplog.text
