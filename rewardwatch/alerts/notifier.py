"""Digest delivery to the configured recipient list."""

from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Protocol, Sequence

import requests

from rewardwatch.config import Settings
from rewardwatch.digest import Digest, render_digest
from rewardwatch.errors import DeliveryError
from rewardwatch.logging_config import get_logger
from rewardwatch.models import Product


LOGGER = get_logger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass(frozen=True)
class Sender:
    name: str
    address: str


class MailTransport(Protocol):
    def send(self, sender: Sender, recipient: str, subject: str, html_body: str) -> None: ...


class LogTransport:
    """Records deliveries in the log without sending anything."""

    name = "log"

    def send(self, sender: Sender, recipient: str, subject: str, html_body: str) -> None:
        LOGGER.info(
            "Mail noop: %s -> %s | %s (%d bytes)",
            sender.address,
            recipient,
            subject,
            len(html_body),
        )


class SendGridTransport:
    name = "sendgrid"

    def __init__(self, api_key: str, *, timeout: float = 8.0) -> None:
        self._api_key = api_key
        self._timeout = timeout

    def send(self, sender: Sender, recipient: str, subject: str, html_body: str) -> None:
        payload: dict[str, Any] = {
            "from": {"email": sender.address, "name": sender.name},
            "personalizations": [
                {
                    "to": [{"email": recipient}],
                    "subject": subject,
                }
            ],
            "content": [
                {
                    "type": "text/html",
                    "value": html_body,
                }
            ],
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
        }
        try:
            response = requests.post(
                SENDGRID_URL,
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise DeliveryError(f"SendGrid request failed: {exc}", recipient=recipient) from exc
        if not (200 <= response.status_code < 300):
            raise DeliveryError(
                f"SendGrid responded with {response.status_code}: {response.text}",
                recipient=recipient,
            )


class SmtpTransport:
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        username: str | None = None,
        password: str | None = None,
        starttls: bool = True,
        timeout: float = 20.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._starttls = starttls
        self._timeout = timeout

    def send(self, sender: Sender, recipient: str, subject: str, html_body: str) -> None:
        message = EmailMessage()
        message["From"] = formataddr((sender.name, sender.address))
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content("This digest requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as client:
                if self._starttls:
                    client.starttls()
                if self._username and self._password:
                    client.login(self._username, self._password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"SMTP delivery failed: {exc}", recipient=recipient) from exc


_noop_logged = False


def build_transport(settings: Settings) -> MailTransport:
    """Pick the mail transport from configuration, falling back to logging only."""

    global _noop_logged
    mode = (settings.mail_transport or "").strip().lower()
    if not mode:
        if settings.sendgrid_api_key:
            mode = "sendgrid"
        elif settings.smtp_host:
            mode = "smtp"
        else:
            mode = "log"

    if mode == "sendgrid" and settings.sendgrid_api_key:
        LOGGER.info("Notifier configured for SendGrid delivery")
        return SendGridTransport(settings.sendgrid_api_key)
    if mode == "smtp" and settings.smtp_host:
        LOGGER.info("Notifier configured for SMTP delivery via %s", settings.smtp_host)
        return SmtpTransport(
            settings.smtp_host,
            settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
        )
    if mode != "log":
        LOGGER.warning("Mail transport %r is missing credentials; falling back to log", mode)
    if not _noop_logged:
        LOGGER.warning("No mail transport configured; digests will be logged only")
        _noop_logged = True
    return LogTransport()


@dataclass
class DeliveryReport:
    subject: str
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class ThresholdResult:
    min_points: int
    digest: Digest | None
    report: DeliveryReport | None = None

    @property
    def skipped(self) -> bool:
        return self.digest is None


class Notifier:
    """Fan a product diff out to every points threshold and recipient."""

    def __init__(
        self,
        transport: MailTransport,
        sender: Sender,
        *,
        retailer_name: str = "Sephora",
        image_host: str = "https://www.sephora.com",
    ) -> None:
        self._transport = transport
        self._sender = sender
        self._retailer_name = retailer_name
        self._image_host = image_host

    @classmethod
    def from_settings(cls, settings: Settings) -> "Notifier":
        return cls(
            build_transport(settings),
            Sender(settings.sender_name, settings.sender_address),
            retailer_name=settings.retailer_name,
            image_host=settings.image_host,
        )

    def render(self, new_products: Sequence[Product], min_points: int) -> Digest | None:
        return render_digest(
            new_products,
            min_points,
            retailer_name=self._retailer_name,
            image_host=self._image_host,
        )

    def send_digest(self, digest: Digest, recipients: Sequence[str]) -> DeliveryReport:
        """Attempt one delivery per recipient; failures are logged, not raised."""

        report = DeliveryReport(subject=digest.subject)
        for recipient in recipients:
            extra = {"recipient": recipient, "threshold": digest.min_points}
            try:
                self._transport.send(self._sender, recipient, digest.subject, digest.html)
            except Exception as exc:
                LOGGER.error(
                    "Failed to send digest to %r: %s", recipient, exc, extra=extra
                )
                report.failed.append(recipient)
                continue
            LOGGER.info("Email sent to %s with subject %s", recipient, digest.subject, extra=extra)
            report.sent.append(recipient)
        return report

    def notify_all(
        self,
        new_products: Sequence[Product],
        thresholds: Sequence[int],
        recipients: Sequence[str],
    ) -> list[ThresholdResult]:
        results: list[ThresholdResult] = []
        for min_points in thresholds:
            digest = self.render(new_products, min_points)
            if digest is None:
                LOGGER.info("No new products above %d points; skipping", min_points)
                results.append(ThresholdResult(min_points=min_points, digest=None))
                continue
            LOGGER.info(
                "Sending digest of %d products above %d points to %d recipients",
                digest.product_count,
                min_points,
                len(recipients),
            )
            report = self.send_digest(digest, recipients)
            results.append(ThresholdResult(min_points=min_points, digest=digest, report=report))
        return results
