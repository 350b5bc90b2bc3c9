"""
Tests for email template loading and rendering.
"""

from src.notifications.domain import EmailTemplate
from src.notifications.infrastructure import BUILTIN_TEMPLATES, FALLBACK_TEMPLATE, TemplateRegistry
from src.notifications.infrastructure.templates import format_template, parse_template


class TestEmailTemplate:

    def test_render_replaces_every_occurrence(self):
        template = EmailTemplate(name="t", subject="Hi {Name}", body="{Name}, your ticket {Id} is ready. Bye {Name}")

        message = template.render({"Name": "Ana", "Id": 7})

        assert message.subject == "Hi Ana"
        assert message.body == "Ana, your ticket 7 is ready. Bye Ana"

    def test_render_leaves_unknown_placeholders(self):
        template = EmailTemplate(name="t", subject="{Greeting}", body="{Missing}")

        message = template.render({"Greeting": None, "Extra": "ignored"})

        assert message.subject == ""
        assert message.body == "{Missing}"

    def test_render_does_not_touch_template(self):
        template = BUILTIN_TEMPLATES["technician-assigned"]
        before = (template.subject, template.body)

        template.render({"RequestId": "SR-1", "TechnicianName": "Sam"})

        assert (template.subject, template.body) == before


class TestParseTemplate:

    def test_subject_line(self):
        template = parse_template("welcome", "SUBJECT:  Welcome aboard \n<p>Hello</p>\n<p>Bye</p>")

        assert template.subject == "Welcome aboard"
        assert template.body == "<p>Hello</p>\n<p>Bye</p>"

    def test_without_subject_line(self):
        template = parse_template("plain", "<p>Hello</p>")

        assert template.subject == "Notification"
        assert template.body == "<p>Hello</p>"

    def test_format_then_parse_keeps_builtin(self):
        original = BUILTIN_TEMPLATES["service-completed"]

        assert parse_template(original.name, format_template(original)) == original


class TestTemplateRegistry:

    def test_builtins_without_directory(self):
        registry = TemplateRegistry()

        assert registry.load() == 4
        assert registry.names == [
            "service-completed",
            "service-request-created",
            "technician-assigned",
            "urgent-request",
        ]

    def test_missing_directory_is_seeded(self, tmp_path):
        directory = tmp_path / "templates" / "email"
        registry = TemplateRegistry(directory)

        assert registry.load() == 4
        assert sorted(p.name for p in directory.glob("*.html")) == [
            "service-completed.html",
            "service-request-created.html",
            "technician-assigned.html",
            "urgent-request.html",
        ]
        assert registry.get("urgent-request") == BUILTIN_TEMPLATES["urgent-request"]

    def test_files_override_builtins(self, tmp_path):
        (tmp_path / "service-completed.html").write_text(
            "SUBJECT: Done - {RequestId}\n<p>All fixed, {CustomerName}.</p>", encoding="utf-8"
        )
        (tmp_path / "notes.txt").write_text("not a template", encoding="utf-8")
        registry = TemplateRegistry(tmp_path)

        assert registry.load() == 1
        assert "service-completed" in registry
        assert "notes" not in registry

        message = registry.render("service-completed", {"RequestId": "SR-3", "CustomerName": "Ana"})
        assert message.subject == "Done - SR-3"
        assert message.body == "<p>All fixed, Ana.</p>"

        # Names not on disk still resolve to the built-in set
        assert registry.resolve("urgent-request") == BUILTIN_TEMPLATES["urgent-request"]

    def test_unreadable_file_is_skipped(self, tmp_path):
        (tmp_path / "broken.html").write_bytes(b"\xff\xfe\xfa not utf-8")
        (tmp_path / "ok.html").write_text("SUBJECT: Ok\nbody", encoding="utf-8")
        registry = TemplateRegistry(tmp_path)

        assert registry.load() == 1
        assert registry.names == ["ok"]

    def test_unknown_name_falls_back(self):
        registry = TemplateRegistry()
        registry.load()

        assert registry.resolve("nope") is FALLBACK_TEMPLATE
        assert registry.resolve(None) is FALLBACK_TEMPLATE

        message = registry.render("nope", {"Message": "Plain text"})
        assert message.subject == "Notification"
        assert "Plain text" in message.body

    def test_reload_replaces_cache(self, tmp_path):
        registry = TemplateRegistry(tmp_path)
        registry.load()
        assert len(registry) == 0

        (tmp_path / "digest.html").write_text("SUBJECT: Digest\n...", encoding="utf-8")
        registry.load()

        assert registry.names == ["digest"]
