"""
E-mail transports for account notifications.

Transports report delivery as a bool and must not raise for delivery
problems; the notifier still guards against ones that do.
"""
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional, Protocol

from archilex.core.config import settings
from archilex.models.notification import EmailContent

logger = logging.getLogger("archilex.notifications")


class NotificationTransport(Protocol):
    """Interface for outbound e-mail delivery."""

    def send(self, to: str, content: EmailContent) -> bool:
        """
        Deliver one message.

        Args:
            to: recipient address
            content: rendered subject and bodies

        Returns:
            True if the message was handed to the mail server
        """
        ...


class SmtpTransport:
    """SMTP delivery with optional STARTTLS and login."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        from_addr: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASS
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.from_addr = from_addr or settings.EMAIL_FROM
        self.timeout = timeout or settings.SMTP_TIMEOUT_SECONDS

    def _build(self, to: str, content: EmailContent) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = content.subject
        msg["From"] = self.from_addr
        msg["To"] = to
        msg.set_content(content.text)
        msg.add_alternative(content.html, subtype="html")
        return msg

    def send(self, to: str, content: EmailContent) -> bool:
        if not self.host:
            logger.warning("email.not_configured", extra={"reason": "SMTP_HOST missing"})
            return False
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(self._build(to, content))
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email.send_failed", extra={"error_type": type(e).__name__, "subject": content.subject})
            return False


class LogOnlyTransport:
    """Used when e-mail is disabled: logs the message instead of sending it."""

    def send(self, to: str, content: EmailContent) -> bool:
        logger.info("email.skipped", extra={"subject": content.subject, "reason": "email disabled"})
        return False


def get_transport() -> NotificationTransport:
    """SMTP when enabled and configured, otherwise log-only."""
    if settings.EMAIL_ENABLED and settings.SMTP_HOST:
        return SmtpTransport()
    return LogOnlyTransport()
