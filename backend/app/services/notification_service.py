"""Notification gateway: outbound email for the moderation workflow.

The workflow never waits on email. Messages are handed to a
``NotificationDispatcher``, which runs delivery as a FastAPI background task
after the response is sent. A failed or raising gateway only produces a log
entry; it never undoes the state change that triggered it.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

from fastapi import BackgroundTasks, Depends

from app.config import settings

logger = logging.getLogger(__name__)


class NotificationGateway(Protocol):
    def send(self, to: str, subject: str, html_body: str) -> bool:
        ...


class SmtpNotificationGateway:
    """Send HTML email via SMTP with STARTTLS.

    With no SMTP host configured the gateway runs in development mode: the
    message is logged and reported as sent.
    """

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        self.smtp_host = smtp_host if smtp_host is not None else settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.smtp_username = smtp_username if smtp_username is not None else settings.SMTP_USERNAME
        self.smtp_password = smtp_password if smtp_password is not None else settings.SMTP_PASSWORD
        self.from_email = from_email or settings.EMAIL_FROM
        self.from_name = from_name or settings.EMAIL_FROM_NAME
        self.enabled = bool(self.smtp_host)

    def send(self, to: str, subject: str, html_body: str) -> bool:
        if not self.enabled:
            logger.info("Email (dev mode, not sent) to=%s subject=%r length=%d", to, subject, len(html_body))
            return True

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls()
                if self.smtp_username:
                    server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s failed: %s", to, exc)
            return False
        logger.info("Email sent to %s: %s", to, subject)
        return True


_gateway: NotificationGateway = SmtpNotificationGateway()


def get_notification_gateway() -> NotificationGateway:
    """FastAPI dependency; tests override it with a recording fake."""
    return _gateway


def deliver(gateway: NotificationGateway, to: str, subject: str, html_body: str) -> None:
    """Send one message. Never raises."""
    try:
        sent = gateway.send(to, subject, html_body)
    except Exception:
        logger.exception("Notification gateway raised while sending %r to %s", subject, to)
        return
    if not sent:
        logger.error("Notification %r to %s was not delivered", subject, to)


class NotificationDispatcher:
    """Queue emails to go out after the current request has completed."""

    def __init__(self, gateway: NotificationGateway, background_tasks: Optional[BackgroundTasks] = None):
        self.gateway = gateway
        self.background_tasks = background_tasks

    def dispatch(self, to: Optional[str], subject: str, html_body: str) -> None:
        if not to:
            logger.warning("Dropping notification %r: no recipient", subject)
            return
        if self.background_tasks is not None:
            self.background_tasks.add_task(deliver, self.gateway, to, subject, html_body)
        else:
            deliver(self.gateway, to, subject, html_body)


def get_notifications(
    background_tasks: BackgroundTasks,
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> NotificationDispatcher:
    """Per-request dispatcher bound to the response's background tasks."""
    return NotificationDispatcher(gateway, background_tasks)
