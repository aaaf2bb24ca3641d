"""Email notifications for shipment lifecycle and account events.

Notifications are best-effort. ``ShipmentNotifier.notify`` never raises:
SMTP or template failures are logged and reported through the returned
NotificationResult, so a mail outage can never fail or undo a transition.

Usage:
    notifier = ShipmentNotifier(settings.smtp, frontend_url=settings.frontend_url)
    result = await notifier.notify(
        LifecycleEvent(
            kind=NotificationKind.SHIPMENT_APPROVED,
            recipients=("agent@example.com",),
            shipment_code="SHP-20261019-01234",
            context={"exporter_name": "ACME"},
        )
    )
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import smtplib
import ssl
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, PackageLoader, select_autoescape

if TYPE_CHECKING:
    from shipment_portal.core.config import SMTPSettings

logger = logging.getLogger(__name__)

DEFAULT_CHANGE_REQUEST_MESSAGE = "Please review and update your shipment."


class NotificationKind(str, Enum):
    """Kinds of outbound mail, each with its own template pair."""

    SHIPMENT_CREATED = "shipment_created"
    SHIPMENT_APPROVED = "shipment_approved"
    SHIPMENT_REJECTED = "shipment_rejected"
    CHANGES_REQUESTED = "changes_requested"
    PASSWORD_RESET = "password_reset"
    WELCOME = "welcome"
    TEMPORARY_PASSWORD = "temporary_password"


class NotificationStatus(str, Enum):
    """Outcome of one notification."""

    SENT = "sent"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


SUBJECTS: dict[NotificationKind, str] = {
    NotificationKind.SHIPMENT_CREATED: "New Shipment Created - {shipment_code}",
    NotificationKind.SHIPMENT_APPROVED: "Shipment Approved - {shipment_code}",
    NotificationKind.SHIPMENT_REJECTED: "Shipment Rejected - {shipment_code}",
    NotificationKind.CHANGES_REQUESTED: "Changes Requested - {shipment_code}",
    NotificationKind.PASSWORD_RESET: "Password Reset Request - {app_name}",
    NotificationKind.WELCOME: "Welcome to {app_name}",
    NotificationKind.TEMPORARY_PASSWORD: "Your {app_name} password has been reset",
}


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """A notification to dispatch.

    Attributes:
        kind: Selects the subject and template.
        recipients: Resolved email addresses.
        shipment_code: Human-facing shipment code, if about a shipment.
        context: Extra template variables.
    """

    kind: NotificationKind
    recipients: tuple[str, ...]
    shipment_code: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NotificationResult:
    """What happened to one notification.

    Attributes:
        success: True when every recipient was sent the mail.
        status: Overall status.
        kind: Which notification was attempted.
        message_ids: SMTP message IDs of the mails that went out.
        failed_recipients: Addresses that could not be sent to.
        error: Last error message, if any.
        sent_at: When the last mail went out.
    """

    success: bool
    status: NotificationStatus
    kind: NotificationKind
    message_ids: tuple[str, ...] = ()
    failed_recipients: tuple[str, ...] = ()
    error: str | None = None
    sent_at: datetime | None = None


class EmailError(Exception):
    """Mail could not be rendered or sent."""


class EmailDeliveryError(EmailError):
    """The SMTP server refused the message or was unreachable."""


class ShipmentNotifier:
    """Render and send notification mails over SMTP.

    Attributes:
        smtp_settings: Server, credentials and sender identity.
        frontend_url: Base URL used to build links back to the portal.
        app_name: Product name shown in subjects and bodies.
    """

    def __init__(
        self,
        smtp_settings: SMTPSettings,
        *,
        frontend_url: str = "http://localhost:3000",
        app_name: str = "Shipment Portal",
    ) -> None:
        self.smtp_settings = smtp_settings
        self.frontend_url = frontend_url.rstrip("/")
        self.app_name = app_name

        self._env = Environment(
            loader=PackageLoader("shipment_portal", "templates/email"),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def notify(self, event: LifecycleEvent) -> NotificationResult:
        """Dispatch one notification to all of its recipients.

        Never raises. Failures are logged and reflected in the result.
        """
        recipients = tuple(dict.fromkeys(r for r in event.recipients if r))

        if not self.smtp_settings.enabled:
            logger.info(
                "Email disabled, skipping notification",
                extra={"kind": event.kind.value, "shipment_code": event.shipment_code},
            )
            return NotificationResult(
                success=False, status=NotificationStatus.SKIPPED, kind=event.kind
            )

        if not recipients:
            logger.info(
                "No recipients for notification",
                extra={"kind": event.kind.value, "shipment_code": event.shipment_code},
            )
            return NotificationResult(
                success=False, status=NotificationStatus.SKIPPED, kind=event.kind
            )

        try:
            subject, html_body, text_body = self.render(event)
        except Exception as e:
            logger.error(
                "Failed to render notification",
                extra={"kind": event.kind.value, "error": str(e)},
            )
            return NotificationResult(
                success=False,
                status=NotificationStatus.FAILED,
                kind=event.kind,
                failed_recipients=recipients,
                error=str(e),
            )

        message_ids: list[str] = []
        failed: list[str] = []
        error: str | None = None

        for recipient in recipients:
            try:
                message_id = await asyncio.to_thread(
                    self._send_email,
                    to_email=recipient,
                    subject=subject,
                    html_body=html_body,
                    text_body=text_body,
                )
                message_ids.append(message_id)
            except Exception as e:
                failed.append(recipient)
                error = str(e)
                logger.error(
                    "Failed to send notification",
                    extra={
                        "kind": event.kind.value,
                        "shipment_code": event.shipment_code,
                        "error": error,
                    },
                )

        if not failed:
            status = NotificationStatus.SENT
        elif message_ids:
            status = NotificationStatus.PARTIAL
        else:
            status = NotificationStatus.FAILED

        logger.info(
            "Notification dispatched",
            extra={
                "kind": event.kind.value,
                "shipment_code": event.shipment_code,
                "sent": len(message_ids),
                "failed": len(failed),
            },
        )

        return NotificationResult(
            success=not failed,
            status=status,
            kind=event.kind,
            message_ids=tuple(message_ids),
            failed_recipients=tuple(failed),
            error=error,
            sent_at=datetime.now(UTC) if message_ids else None,
        )

    def render(self, event: LifecycleEvent) -> tuple[str, str, str]:
        """Render an event to (subject, html_body, text_body)."""
        context = {
            "app_name": self.app_name,
            "frontend_url": self.frontend_url,
            "shipment_code": event.shipment_code,
            **event.context,
        }
        if event.kind == NotificationKind.CHANGES_REQUESTED and not context.get("message"):
            context["message"] = DEFAULT_CHANGE_REQUEST_MESSAGE

        subject = SUBJECTS[event.kind].format(**context)
        html_body = self._env.get_template(f"{event.kind.value}.html").render(**context)
        text_body = self._env.get_template(f"{event.kind.value}.txt").render(**context)
        return subject, html_body, text_body

    # -------------------------------------------------------------------
    # Account mails
    # -------------------------------------------------------------------

    async def send_password_reset(
        self, email: str, token: str, full_name: str | None = None
    ) -> NotificationResult:
        """Send a password reset link."""
        return await self.notify(
            LifecycleEvent(
                kind=NotificationKind.PASSWORD_RESET,
                recipients=(email,),
                context={
                    "full_name": full_name,
                    "reset_link": f"{self.frontend_url}/reset-password?token={token}",
                },
            )
        )

    async def send_welcome(
        self, email: str, username: str, temporary_password: str, full_name: str | None = None
    ) -> NotificationResult:
        """Send login details to a newly created account."""
        return await self.notify(
            LifecycleEvent(
                kind=NotificationKind.WELCOME,
                recipients=(email,),
                context={
                    "full_name": full_name,
                    "username": username,
                    "temporary_password": temporary_password,
                    "login_link": f"{self.frontend_url}/login",
                },
            )
        )

    async def send_temporary_password(
        self, email: str, username: str, temporary_password: str, full_name: str | None = None
    ) -> NotificationResult:
        """Send a password issued by an administrator."""
        return await self.notify(
            LifecycleEvent(
                kind=NotificationKind.TEMPORARY_PASSWORD,
                recipients=(email,),
                context={
                    "full_name": full_name,
                    "username": username,
                    "temporary_password": temporary_password,
                    "login_link": f"{self.frontend_url}/login",
                },
            )
        )

    # -------------------------------------------------------------------
    # SMTP
    # -------------------------------------------------------------------

    def _send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> str:
        """Hand one message to the SMTP server.

        Returns:
            SMTP message ID.

        Raises:
            EmailDeliveryError: The server rejected the message or the connection failed.
        """
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.smtp_settings.from_name} <{self.smtp_settings.from_address}>"
        msg["To"] = to_email

        message_id = f"<{secrets.token_hex(16)}@{self._get_domain()}>"
        msg["Message-ID"] = message_id

        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            if self.smtp_settings.use_ssl:
                # Implicit TLS (port 465)
                server = smtplib.SMTP_SSL(
                    self.smtp_settings.host,
                    self.smtp_settings.port,
                    timeout=self.smtp_settings.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(
                    self.smtp_settings.host,
                    self.smtp_settings.port,
                    timeout=self.smtp_settings.timeout,
                )
                if self.smtp_settings.use_tls:
                    server.starttls(context=ssl.create_default_context())

            if self.smtp_settings.username and self.smtp_settings.password:
                server.login(
                    self.smtp_settings.username,
                    self.smtp_settings.password.get_secret_value(),
                )

            server.sendmail(
                self.smtp_settings.from_address,
                [to_email],
                msg.as_string(),
            )
            server.quit()

            return message_id

        except smtplib.SMTPException as e:
            msg = f"SMTP error: {e}"
            raise EmailDeliveryError(msg) from e
        except OSError as e:
            msg = f"Connection error: {e}"
            raise EmailDeliveryError(msg) from e

    def _get_domain(self) -> str:
        return self.smtp_settings.from_address.split("@")[-1]
