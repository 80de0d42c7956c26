"""
Outbound email.

Write paths hand an OutboundMessage to deliver() after their transaction has
committed. Delivery is fire-and-forget: failures are logged and swallowed so
the caller's result never depends on the mail provider.

Backends:
- log: writes the message to the application log and keeps it in `outbox`
  (development and tests)
- ses: AWS SES via boto3
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from html import escape

logger = logging.getLogger(__name__)


class NotifierError(RuntimeError):
    pass


@dataclass(frozen=True)
class OutboundMessage:
    to: str
    subject: str
    html: str
    text: str = ""


class Notifier:
    def send(self, message: OutboundMessage) -> None:
        raise NotImplementedError


@dataclass
class LogNotifier(Notifier):
    outbox: list[OutboundMessage] = field(default_factory=list)

    def send(self, message: OutboundMessage) -> None:
        self.outbox.append(message)
        logger.info("Email (log backend) to=%s subject=%r\n%s", message.to, message.subject, message.text or message.html)


@dataclass
class SesNotifier(Notifier):
    region: str
    from_email: str
    from_name: str = ""
    _client: object | None = field(default=None, repr=False)

    @property
    def client(self):
        if self._client is None:
            import boto3

            self._client = boto3.client("ses", region_name=self.region or None)
        return self._client

    @property
    def source(self) -> str:
        if self.from_name:
            return f'"{self.from_name}" <{self.from_email}>'
        return self.from_email

    def send(self, message: OutboundMessage) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        body: dict[str, dict[str, str]] = {"Html": {"Data": message.html, "Charset": "UTF-8"}}
        if message.text:
            body["Text"] = {"Data": message.text, "Charset": "UTF-8"}
        try:
            response = self.client.send_email(
                Source=self.source,
                Destination={"ToAddresses": [message.to]},
                Message={"Subject": {"Data": message.subject, "Charset": "UTF-8"}, "Body": body},
            )
        except (BotoCoreError, ClientError) as e:
            raise NotifierError(f"SES send to {message.to} failed: {e}") from e
        logger.info("Email sent to=%s message_id=%s", message.to, response.get("MessageId"))


def notifier_from_config(config: dict) -> Notifier:
    backend = (config.get("MAIL_BACKEND") or "log").strip().lower()
    if backend == "ses":
        return SesNotifier(
            region=(config.get("SES_REGION") or "").strip(),
            from_email=(config.get("MAIL_FROM_EMAIL") or "").strip(),
            from_name=(config.get("MAIL_FROM_NAME") or "").strip(),
        )
    if backend != "log":
        logger.warning("Unknown MAIL_BACKEND %r; falling back to log backend", backend)
    return LogNotifier()


def deliver(notifier: Notifier | None, message: OutboundMessage) -> bool:
    """Send without ever raising. Returns True when the backend accepted the message."""
    if notifier is None:
        logger.warning("No notifier configured; dropping email to %s (%s)", message.to, message.subject)
        return False
    try:
        notifier.send(message)
    except Exception:
        logger.exception("Email delivery failed to=%s subject=%r", message.to, message.subject)
        return False
    return True


# ---------- Message builders ----------

def registration_confirmation(*, name: str, to: str, event_title: str, event_type: str,
                              date_label: str, location: str, description: str) -> OutboundMessage:
    snippet = description[:200]
    html = (
        "<h1>Event Application Confirmation</h1>"
        f"<p>Dear {escape(name)},</p>"
        f"<p>You have successfully applied for the event: <strong>{escape(event_title)}</strong>.</p>"
        "<p>Here are the event details:</p>"
        "<ul>"
        f"<li><strong>Event:</strong> {escape(event_title)}</li>"
        f"<li><strong>Type:</strong> {escape(event_type)}</li>"
        f"<li><strong>Date:</strong> {escape(date_label)}</li>"
        f"<li><strong>Location:</strong> {escape(location)}</li>"
        f"<li><strong>Description:</strong> {escape(snippet)}...</li>"
        "</ul>"
        "<p>We look forward to seeing you there!</p>"
        "<p>Regards,<br>The Palette Art Club Team</p>"
    )
    text = (
        f"Dear {name},\n\n"
        f"You have successfully applied for the event: {event_title}.\n\n"
        f"Type: {event_type}\nDate: {date_label}\nLocation: {location}\n\n"
        "We look forward to seeing you there!\nThe Palette Art Club Team\n"
    )
    return OutboundMessage(to=to, subject=f"Confirmation: Applied for {event_title}", html=html, text=text)


def verification_code_message(*, name: str, to: str, code: str, ttl_minutes: int) -> OutboundMessage:
    html = (
        f"<p>Hello {escape(name)},</p>"
        "<p>Thank you for registering for a Palette account.</p>"
        f"<p>Your verification code is: <strong>{escape(code)}</strong></p>"
        f"<p>This code will expire in {ttl_minutes} minutes.</p>"
        "<p>If you did not create this account, you can safely ignore this email.</p>"
        "<p>Best,<br>The Palette Team</p>"
    )
    text = (
        f"Hello {name},\n\nYour Palette verification code is: {code}\n"
        f"This code will expire in {ttl_minutes} minutes.\n"
    )
    return OutboundMessage(to=to, subject="Verify your Palette Account Email", html=html, text=text)
