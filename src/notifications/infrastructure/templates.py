"""
Email Template Registry
=======================

Loads named email templates from a directory of ``<name>.html`` files.
A file may start with a ``SUBJECT: ...`` line; everything after it is the
body. When the directory does not exist it is created and seeded with the
built-in templates so operators have something to edit.

The cache is filled by load() and only ever replaced wholesale; rendering
returns new RenderedMessage objects and never touches cached templates.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union

from src.config import DEFAULT_TEMPLATE_NAME
from src.notifications.domain import EmailTemplate, RenderedMessage
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SUBJECT_PREFIX = "SUBJECT:"
DEFAULT_SUBJECT = "Notification"

FALLBACK_TEMPLATE = EmailTemplate(
    name=DEFAULT_TEMPLATE_NAME,
    subject=DEFAULT_SUBJECT,
    body="<div style='font-family: Arial, sans-serif; padding: 20px;'><p>{Message}</p></div>",
)

_FOOTER = """
    <div style='margin-top: 20px; padding: 20px; background: #f8f9fa; border-radius: 8px; text-align: center;'>
      <p style='margin: 0;'>Thank you,<br><strong>Service Desk Team</strong></p>
    </div>"""

BUILTIN_TEMPLATES: Mapping[str, EmailTemplate] = MappingProxyType({
    "service-request-created": EmailTemplate(
        name="service-request-created",
        subject="We received your service request - #{RequestId}",
        body="""<!DOCTYPE html>
<html>
<body style='font-family: Arial, sans-serif; line-height: 1.6; color: #333;'>
  <div style='max-width: 600px; margin: 0 auto; padding: 20px;'>
    <h2 style='color: #007bff;'>Hello {CustomerName},</h2>
    <p>Your service request '{RequestTitle}' has been received.</p>
    <table style='width: 100%; margin: 20px 0;'>
      <tr><td><strong>Request number:</strong></td><td>#{RequestId}</td></tr>
      <tr><td><strong>Category:</strong></td><td>{Category}</td></tr>
      <tr><td><strong>Priority:</strong></td><td>{Priority}</td></tr>
      <tr><td><strong>Created:</strong></td><td>{CreatedDate}</td></tr>
    </table>
    <p>We will get back to you shortly. You can follow the request from your dashboard.</p>""" + _FOOTER + """
  </div>
</body>
</html>""",
    ),
    "technician-assigned": EmailTemplate(
        name="technician-assigned",
        subject="Technician assigned - #{RequestId}",
        body="""<!DOCTYPE html>
<html>
<body style='font-family: Arial, sans-serif; line-height: 1.6; color: #333;'>
  <div style='max-width: 600px; margin: 0 auto; padding: 20px;'>
    <h2 style='color: #28a745;'>Technician assigned</h2>
    <p>Hello <strong>{CustomerName}</strong>,</p>
    <p><strong>{TechnicianName}</strong> has been assigned to your request '{RequestTitle}'.</p>
    <table style='width: 100%; margin: 20px 0;'>
      <tr><td><strong>Technician:</strong></td><td>{TechnicianName}</td></tr>
      <tr><td><strong>Specialization:</strong></td><td>{TechnicianSpecialization}</td></tr>
      <tr><td><strong>Request number:</strong></td><td>#{RequestId}</td></tr>
    </table>
    <p>The technician will contact you soon.</p>""" + _FOOTER + """
  </div>
</body>
</html>""",
    ),
    "service-completed": EmailTemplate(
        name="service-completed",
        subject="Service completed - #{RequestId}",
        body="""<!DOCTYPE html>
<html>
<body style='font-family: Arial, sans-serif; line-height: 1.6; color: #333;'>
  <div style='max-width: 600px; margin: 0 auto; padding: 20px;'>
    <h2 style='color: #28a745;'>Service completed</h2>
    <p>Hello <strong>{CustomerName}</strong>,</p>
    <p>Your service request '{RequestTitle}' has been completed.</p>
    <table style='width: 100%; margin: 20px 0;'>
      <tr><td><strong>Completed:</strong></td><td>{CompletedDate}</td></tr>
      <tr><td><strong>Technician:</strong></td><td>{TechnicianName}</td></tr>
      <tr><td><strong>Resolution:</strong></td><td>{Resolution}</td></tr>
    </table>
    <p>We would appreciate your feedback.</p>""" + _FOOTER + """
  </div>
</body>
</html>""",
    ),
    "urgent-request": EmailTemplate(
        name="urgent-request",
        subject="URGENT: critical priority service request - #{RequestId}",
        body="""<!DOCTYPE html>
<html>
<body style='font-family: Arial, sans-serif; line-height: 1.6; color: #333;'>
  <div style='max-width: 600px; margin: 0 auto; padding: 20px;'>
    <h2 style='color: #dc3545;'>URGENT: critical priority request</h2>
    <p><strong>A critical priority service request needs immediate attention.</strong></p>
    <table style='width: 100%; margin: 20px 0;'>
      <tr><td><strong>Customer:</strong></td><td>{CustomerName}</td></tr>
      <tr><td><strong>Request:</strong></td><td>'{RequestTitle}'</td></tr>
      <tr><td><strong>Request number:</strong></td><td>#{RequestId}</td></tr>
      <tr><td><strong>Category:</strong></td><td>{Category}</td></tr>
      <tr><td><strong>Description:</strong></td><td>{Description}</td></tr>
    </table>
  </div>
</body>
</html>""",
    ),
})


def parse_template(name: str, content: str) -> EmailTemplate:
    """Split a template file into subject and body."""
    lines = content.split("\n")
    if lines and lines[0].startswith(SUBJECT_PREFIX):
        subject = lines[0][len(SUBJECT_PREFIX):].strip()
        body = "\n".join(lines[1:])
        return EmailTemplate(name=name, subject=subject, body=body)
    return EmailTemplate(name=name, subject=DEFAULT_SUBJECT, body=content)


def format_template(template: EmailTemplate) -> str:
    return f"{SUBJECT_PREFIX} {template.subject}\n{template.body}"


class TemplateRegistry:
    """
    Cache of named email templates.

    Lookup order for render(): loaded templates, then the built-in set,
    then the generic fallback. Rendering never fails on an unknown name.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self._directory = Path(directory) if directory is not None else None
        self._cache: Mapping[str, EmailTemplate] = MappingProxyType({})

    def load(self) -> int:
        """
        Read every *.html file in the template directory into the cache.

        Returns the number of templates loaded. Unreadable files are logged
        and skipped.
        """
        if self._directory is None:
            self._cache = MappingProxyType(dict(BUILTIN_TEMPLATES))
            return len(self._cache)

        if not self._directory.exists():
            self._seed_defaults()

        loaded: Dict[str, EmailTemplate] = {}
        for path in sorted(self._directory.glob("*.html")):
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.error(
                    "Failed to load email template",
                    extra={"template_file": str(path), "error": str(e)}
                )
                continue
            loaded[path.stem] = parse_template(path.stem, content)

        self._cache = MappingProxyType(loaded)
        logger.info(
            "Email templates loaded",
            extra={"directory": str(self._directory), "count": len(loaded)}
        )
        return len(loaded)

    def get(self, name: str) -> Optional[EmailTemplate]:
        return self._cache.get(name) or BUILTIN_TEMPLATES.get(name)

    def resolve(self, name: Optional[str]) -> EmailTemplate:
        if not name:
            return FALLBACK_TEMPLATE
        return self.get(name) or FALLBACK_TEMPLATE

    def render(self, name: Optional[str], data: Optional[Mapping[str, object]] = None) -> RenderedMessage:
        template = self.resolve(name)
        if template is FALLBACK_TEMPLATE and name not in (None, DEFAULT_TEMPLATE_NAME):
            logger.warning("Unknown email template, using fallback", extra={"template_name": name})
        return template.render(data or {})

    @property
    def names(self) -> List[str]:
        return sorted(self._cache)

    def __contains__(self, name: object) -> bool:
        return name in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    def _seed_defaults(self) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        for template in BUILTIN_TEMPLATES.values():
            (self._directory / f"{template.name}.html").write_text(
                format_template(template), encoding="utf-8"
            )
        logger.info(
            "Default email templates created",
            extra={"directory": str(self._directory), "count": len(BUILTIN_TEMPLATES)}
        )
