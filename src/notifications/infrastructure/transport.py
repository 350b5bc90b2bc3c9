"""
Mail Transports
===============

Implementations of INotificationTransport:
- MockTransport: logs messages instead of sending them
- SMTPTransport: aiosmtplib with optional STARTTLS and login
- HttpRelayTransport: POSTs the message to an HTTP mail relay

Transient failures raise DeliveryException so the queue can retry them.
Missing credentials or endpoints raise ConfigurationException, which the
queue treats as permanent.
"""

import base64
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Dict, Optional, Sequence

import aiosmtplib
import httpx

from src.config import Settings
from src.core import ConfigurationException, DeliveryException
from src.notifications.application.services import INotificationTransport
from src.notifications.domain import Attachment
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class MockTransport(INotificationTransport):
    """Accepts every message and only logs it."""

    name = "mock"

    def __init__(self):
        self.sent_count = 0

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
        attachments: Sequence[Attachment] = ()
    ) -> None:
        self.sent_count += 1
        logger.info(
            "MOCK EMAIL",
            extra={
                "to": to,
                "subject": subject,
                "is_html": is_html,
                "attachments": len(attachments),
            }
        )

    async def check_health(self) -> bool:
        return True


def build_message(
    sender: str,
    to: str,
    subject: str,
    body: str,
    is_html: bool,
    attachments: Sequence[Attachment]
) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to
    message["Subject"] = subject
    message["Message-ID"] = make_msgid()

    if is_html:
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(body, subtype="html")
    else:
        message.set_content(body)

    for attachment in attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        message.add_attachment(
            attachment.content,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return message


class SMTPTransport(INotificationTransport):
    """
    Sends mail over SMTP with aiosmtplib.

    Port 465 uses implicit TLS; otherwise STARTTLS is negotiated when
    use_tls is set.
    """

    name = "smtp"

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.from_name = from_name
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _require_configuration(self) -> str:
        if not self.host:
            raise ConfigurationException("SMTP host is not configured", {"setting": "smtp_host"})
        if not self.from_email:
            raise ConfigurationException("Sender address is not configured", {"setting": "mail_from_email"})
        return formataddr((self.from_name or "", self.from_email))

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
        attachments: Sequence[Attachment] = ()
    ) -> None:
        sender = self._require_configuration()
        message = build_message(sender, to, subject, body, is_html, attachments)

        implicit_tls = self.port == 465
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=implicit_tls,
                start_tls=self.use_tls and not implicit_tls,
                timeout=self.timeout,
            )
        except aiosmtplib.SMTPException as e:
            raise DeliveryException(str(e), {"to": to, "host": self.host}) from e
        except OSError as e:
            raise DeliveryException(f"SMTP connection failed: {e}", {"to": to, "host": self.host}) from e

        logger.info("Email sent via SMTP", extra={"to": to, "message_id": message["Message-ID"]})

    async def check_health(self) -> bool:
        try:
            self._require_configuration()
        except ConfigurationException:
            return False
        return True


class HttpRelayTransport(INotificationTransport):
    """Posts messages as JSON to an HTTP mail relay."""

    name = "http_relay"

    def __init__(
        self,
        url: Optional[str],
        api_key: Optional[str],
        from_email: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def _payload(
        self,
        to: str,
        subject: str,
        body: str,
        is_html: bool,
        attachments: Sequence[Attachment]
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "to_email": to,
            "subject": subject,
            "body": body,
            "is_html": is_html,
            "from_address": self.from_email,
        }
        if attachments:
            payload["attachments"] = [
                {
                    "filename": a.filename,
                    "content_type": a.content_type,
                    "content": base64.b64encode(a.content).decode("ascii"),
                }
                for a in attachments
            ]
        return payload

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
        attachments: Sequence[Attachment] = ()
    ) -> None:
        if not self.url or not self.api_key:
            raise ConfigurationException(
                "Email relay is not configured",
                {"settings": ["email_relay_url", "email_relay_api_key"]}
            )

        client = await self._get_client()
        try:
            response = await client.post(
                self.url,
                json=self._payload(to, subject, body, is_html, attachments),
                headers={"X-API-Key": self.api_key},
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise DeliveryException("Email relay timeout", {"to": to}) from e
        except httpx.HTTPStatusError as e:
            raise DeliveryException(
                f"Email relay returned {e.response.status_code}",
                {"to": to, "status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            raise DeliveryException(f"Email relay request failed: {e}", {"to": to}) from e

        logger.info("Email sent via relay", extra={"to": to})

    async def check_health(self) -> bool:
        return bool(self.url and self.api_key)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def build_transport(settings: Settings) -> INotificationTransport:
    """Pick the transport the settings ask for."""
    if settings.use_mock_email:
        logger.info("Using mock email transport")
        return MockTransport()

    if settings.email_relay_url:
        logger.info("Using HTTP relay email transport", extra={"relay_url": settings.email_relay_url})
        return HttpRelayTransport(
            url=settings.email_relay_url,
            api_key=settings.email_relay_api_key,
            from_email=settings.mail_from_email,
            timeout=settings.smtp_timeout_seconds,
        )

    logger.info("Using SMTP email transport", extra={"smtp_host": settings.smtp_host})
    return SMTPTransport(
        host=settings.smtp_host,
        port=settings.smtp_port,
        from_email=settings.mail_from_email,
        from_name=settings.mail_from_name,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        timeout=settings.smtp_timeout_seconds,
    )
