"""Tests for the email notification service.

Tests verify:
- Subjects and bodies render from the template pairs
- Disabled SMTP and empty recipient lists skip sending
- Per-recipient failures are reported, never raised
- SMTP transport selection (plain, STARTTLS, implicit TLS)
"""

from __future__ import annotations

import smtplib
from unittest.mock import MagicMock, patch

import pytest
from pydantic import SecretStr

from shipment_portal.core.config import SMTPSettings
from shipment_portal.services.email import (
    DEFAULT_CHANGE_REQUEST_MESSAGE,
    EmailDeliveryError,
    LifecycleEvent,
    NotificationKind,
    NotificationStatus,
    ShipmentNotifier,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def smtp_settings() -> SMTPSettings:
    return SMTPSettings(
        enabled=True,
        host="localhost",
        port=1025,
        from_address="noreply@shipments.test",
        from_name="Shipment Portal Test",
    )


@pytest.fixture
def notifier(smtp_settings) -> ShipmentNotifier:
    return ShipmentNotifier(smtp_settings, frontend_url="https://portal.example/")


def _rejected_event(recipients=("creator@example.com",)) -> LifecycleEvent:
    return LifecycleEvent(
        kind=NotificationKind.SHIPMENT_REJECTED,
        recipients=recipients,
        shipment_code="SHP-20261019-00042",
        context={
            "shipment_id": "b6f1",
            "exporter_name": "Acme Exports",
            "receiver_name": "Receiver GmbH",
            "actor_name": "accounts-user",
            "reason": "Invoice total mismatch",
        },
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRender:
    """Tests for subject and body rendering."""

    def test_rejection_mail(self, notifier):
        subject, html_body, text_body = notifier.render(_rejected_event())

        assert subject == "Shipment Rejected - SHP-20261019-00042"
        assert "Invoice total mismatch" in text_body
        assert "https://portal.example/shipments/b6f1" in text_body
        assert "Invoice total mismatch" in html_body

    def test_changes_requested_default_message(self, notifier):
        event = LifecycleEvent(
            kind=NotificationKind.CHANGES_REQUESTED,
            recipients=("creator@example.com",),
            shipment_code="SHP-20261019-00042",
            context={"message": None},
        )

        subject, _, text_body = notifier.render(event)

        assert subject == "Changes Requested - SHP-20261019-00042"
        assert DEFAULT_CHANGE_REQUEST_MESSAGE in text_body

    def test_html_is_escaped(self, notifier):
        event = _rejected_event()
        event.context["reason"] = "<script>alert(1)</script>"

        _, html_body, _ = notifier.render(event)

        assert "<script>" not in html_body
        assert "&lt;script&gt;" in html_body

    @pytest.mark.parametrize("kind", list(NotificationKind))
    def test_every_kind_has_templates(self, notifier, kind):
        event = LifecycleEvent(kind=kind, recipients=("a@example.com",), shipment_code="SHP-1")
        subject, html_body, text_body = notifier.render(event)
        assert subject
        assert html_body
        assert text_body


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestNotify:
    """Tests for best-effort dispatch."""

    @pytest.mark.asyncio
    @patch("shipment_portal.services.email.ShipmentNotifier._send_email")
    async def test_sends_to_each_unique_recipient(self, mock_send, notifier):
        mock_send.return_value = "<id@shipments.test>"

        result = await notifier.notify(
            _rejected_event(("a@example.com", "b@example.com", "a@example.com", ""))
        )

        assert result.success
        assert result.status == NotificationStatus.SENT
        assert mock_send.call_count == 2
        assert result.message_ids == ("<id@shipments.test>", "<id@shipments.test>")
        assert result.sent_at is not None

    @pytest.mark.asyncio
    async def test_disabled_smtp_skips(self, smtp_settings):
        smtp_settings.enabled = False
        notifier = ShipmentNotifier(smtp_settings)

        with patch.object(ShipmentNotifier, "_send_email") as mock_send:
            result = await notifier.notify(_rejected_event())

        assert result.status == NotificationStatus.SKIPPED
        mock_send.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_recipients_skips(self, notifier):
        result = await notifier.notify(_rejected_event(()))
        assert result.status == NotificationStatus.SKIPPED

    @pytest.mark.asyncio
    @patch("shipment_portal.services.email.ShipmentNotifier._send_email")
    async def test_partial_failure(self, mock_send, notifier):
        mock_send.side_effect = ["<ok@shipments.test>", EmailDeliveryError("SMTP error: 550")]

        result = await notifier.notify(_rejected_event(("a@example.com", "b@example.com")))

        assert not result.success
        assert result.status == NotificationStatus.PARTIAL
        assert result.failed_recipients == ("b@example.com",)
        assert result.error == "SMTP error: 550"

    @pytest.mark.asyncio
    @patch("shipment_portal.services.email.ShipmentNotifier._send_email")
    async def test_total_failure_never_raises(self, mock_send, notifier):
        mock_send.side_effect = EmailDeliveryError("Connection error: refused")

        result = await notifier.notify(_rejected_event())

        assert result.status == NotificationStatus.FAILED
        assert result.failed_recipients == ("creator@example.com",)

    @pytest.mark.asyncio
    @patch("shipment_portal.services.email.ShipmentNotifier._send_email")
    async def test_password_reset_link(self, mock_send, notifier):
        mock_send.return_value = "<id@shipments.test>"

        await notifier.send_password_reset("user@example.com", "tok123", "Jo Doe")

        kwargs = mock_send.call_args.kwargs
        assert kwargs["to_email"] == "user@example.com"
        assert "https://portal.example/reset-password?token=tok123" in kwargs["text_body"]
        assert "Hello Jo Doe" in kwargs["text_body"]

    @pytest.mark.asyncio
    @patch("shipment_portal.services.email.ShipmentNotifier._send_email")
    async def test_welcome_contains_temporary_password(self, mock_send, notifier):
        mock_send.return_value = "<id@shipments.test>"

        await notifier.send_welcome("new@example.com", "newbie", "Tmp#Pass123")

        kwargs = mock_send.call_args.kwargs
        assert kwargs["subject"] == "Welcome to Shipment Portal"
        assert "Tmp#Pass123" in kwargs["text_body"]


# ---------------------------------------------------------------------------
# SMTP transport
# ---------------------------------------------------------------------------


class TestSendEmail:
    """Tests for the SMTP layer."""

    @patch("shipment_portal.services.email.smtplib.SMTP")
    def test_plain_smtp(self, mock_smtp, notifier):
        server = MagicMock()
        mock_smtp.return_value = server

        message_id = notifier._send_email(
            to_email="a@example.com", subject="S", html_body="<p>H</p>", text_body="T"
        )

        assert message_id.endswith("@shipments.test>")
        server.starttls.assert_not_called()
        server.sendmail.assert_called_once()
        assert server.sendmail.call_args.args[1] == ["a@example.com"]
        server.quit.assert_called_once()

    @patch("shipment_portal.services.email.smtplib.SMTP")
    def test_starttls_and_login(self, mock_smtp, smtp_settings):
        smtp_settings.use_tls = True
        smtp_settings.username = "mailer"
        smtp_settings.password = SecretStr("secret")
        server = MagicMock()
        mock_smtp.return_value = server

        ShipmentNotifier(smtp_settings)._send_email(
            to_email="a@example.com", subject="S", html_body="H", text_body="T"
        )

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "secret")

    @patch("shipment_portal.services.email.smtplib.SMTP_SSL")
    def test_implicit_tls(self, mock_smtp_ssl, smtp_settings):
        smtp_settings.use_ssl = True
        mock_smtp_ssl.return_value = MagicMock()

        ShipmentNotifier(smtp_settings)._send_email(
            to_email="a@example.com", subject="S", html_body="H", text_body="T"
        )

        mock_smtp_ssl.assert_called_once()

    @patch("shipment_portal.services.email.smtplib.SMTP")
    def test_smtp_error_wrapped(self, mock_smtp, notifier):
        mock_smtp.return_value.sendmail.side_effect = smtplib.SMTPRecipientsRefused({})

        with pytest.raises(EmailDeliveryError, match="SMTP error"):
            notifier._send_email(
                to_email="a@example.com", subject="S", html_body="H", text_body="T"
            )
