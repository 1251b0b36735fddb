"""Tests for email delivery, dispatch and templates."""
import datetime as dt
import logging
import smtplib

from app.models.event import Event, EventCategory
from app.services import email_templates
from app.services.notification_service import NotificationDispatcher, SmtpNotificationGateway, deliver
from tests.conftest import RecordingGateway


def _event(**overrides):
    values = dict(
        event_id="evt-1",
        title="Diwali Night",
        description="Lights and food.",
        date=dt.date(2030, 11, 1),
        time=dt.time(19, 30),
        location_text="Leeds Town Hall",
        category=EventCategory.cultural,
        contact_email="organiser@example.com",
    )
    values.update(overrides)
    return Event(**values)


class _RecordingSMTP:
    """Context-manager stand-in for smtplib.SMTP."""

    instances = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port = host, port
        self.calls = []
        _RecordingSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, username, password):
        self.calls.append(("login", username))

    def send_message(self, msg):
        self.calls.append(("send", msg["To"], msg["Subject"]))


class TestSmtpGateway:
    def test_dev_mode_logs_instead_of_sending(self, caplog):
        gateway = SmtpNotificationGateway(smtp_host="")
        with caplog.at_level(logging.INFO, logger="app.services.notification_service"):
            assert gateway.send("someone@example.com", "Hello", "<p>hi</p>") is True
        assert "dev mode" in caplog.text

    def test_sends_with_starttls_and_login(self, monkeypatch):
        _RecordingSMTP.instances = []
        monkeypatch.setattr(smtplib, "SMTP", _RecordingSMTP)
        gateway = SmtpNotificationGateway(
            smtp_host="smtp.example.com", smtp_port=2525, smtp_username="mailer", smtp_password="pw"
        )
        assert gateway.send("someone@example.com", "Hello", "<p>hi</p>") is True

        server = _RecordingSMTP.instances[0]
        assert (server.host, server.port) == ("smtp.example.com", 2525)
        assert server.calls == ["starttls", ("login", "mailer"), ("send", "someone@example.com", "Hello")]

    def test_connection_failure_returns_false(self, monkeypatch):
        def _refuse(*args, **kwargs):
            raise ConnectionRefusedError("no route")

        monkeypatch.setattr(smtplib, "SMTP", _refuse)
        gateway = SmtpNotificationGateway(smtp_host="smtp.example.com")
        assert gateway.send("someone@example.com", "Hello", "<p>hi</p>") is False


class TestDispatch:
    def test_deliver_swallows_gateway_errors(self, caplog):
        gateway = RecordingGateway()
        gateway.raise_error = True
        with caplog.at_level(logging.ERROR):
            deliver(gateway, "someone@example.com", "Hello", "<p>hi</p>")
        assert "Notification gateway raised" in caplog.text

    def test_deliver_logs_failed_send(self, caplog):
        gateway = RecordingGateway()
        gateway.fail = True
        with caplog.at_level(logging.ERROR):
            deliver(gateway, "someone@example.com", "Hello", "<p>hi</p>")
        assert "was not delivered" in caplog.text

    def test_dispatch_inline_without_background_tasks(self):
        gateway = RecordingGateway()
        NotificationDispatcher(gateway).dispatch("someone@example.com", "Hello", "<p>hi</p>")
        assert [m.subject for m in gateway.sent] == ["Hello"]

    def test_dispatch_drops_missing_recipient(self):
        gateway = RecordingGateway()
        NotificationDispatcher(gateway).dispatch("", "Hello", "<p>hi</p>")
        NotificationDispatcher(gateway).dispatch(None, "Hello", "<p>hi</p>")
        assert gateway.sent == []


class TestTemplates:
    def test_pending_approval_contains_links(self):
        subject, body = email_templates.event_pending_approval(
            _event(), "http://x/api/events/approve-email/a", "http://x/api/events/reject-email/r", ttl_days=7
        )
        assert subject == "New Event Pending Approval: Diwali Night"
        assert 'href="http://x/api/events/approve-email/a"' in body
        assert 'href="http://x/api/events/reject-email/r"' in body
        assert "expire in 7 days" in body

    def test_user_content_is_escaped(self):
        event = _event(title="<script>alert(1)</script>", description="Tom & Jerry")
        _, body = email_templates.event_approved(event, "<b>Priya</b>")
        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert "Tom &amp; Jerry" in body
        assert "&lt;b&gt;Priya&lt;/b&gt;" in body

    def test_optional_links_rendered(self):
        event = _event(booking_link="https://tickets.example.com/d", image_url="https://cdn.example.com/d.jpg")
        _, body = email_templates.event_rejected(event, "Priya")
        assert "https://tickets.example.com/d" in body
        assert "https://cdn.example.com/d.jpg" in body

    def test_password_reset(self):
        subject, body = email_templates.password_reset("Priya", "http://app/reset-password?token=abc", 60)
        assert subject == "Password Reset Request"
        assert "reset-password?token=abc" in body
        assert "60 minutes" in body

    def test_confirmation_page_escapes_and_posts_back(self):
        page = email_templates.moderation_confirmation_page(_event(title="<b>Quiz</b>"), "approve")
        assert '<form method="post"' in page
        assert "Approve Event" in page
        assert "<b>Quiz</b>" not in page
        assert "&lt;b&gt;Quiz&lt;/b&gt;" in page
