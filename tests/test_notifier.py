from __future__ import annotations

import pytest
import requests

from conftest import RecordingTransport, make_product

from rewardwatch.alerts import notifier as notifier_module
from rewardwatch.alerts.notifier import (
    LogTransport,
    Notifier,
    Sender,
    SendGridTransport,
    SmtpTransport,
    build_transport,
)
from rewardwatch.config import Settings
from rewardwatch.digest import render_digest
from rewardwatch.errors import DeliveryError


SENDER = Sender("Rewards Bot", "bot@example.com")


def test_failed_recipient_does_not_stop_the_batch() -> None:
    transport = RecordingTransport(failing={"second@example.com"})
    notifier = Notifier(transport, SENDER)
    digest = render_digest([make_product("1", productName="Kit")], 0)
    assert digest is not None

    report = notifier.send_digest(
        digest, ["first@example.com", "second@example.com", "third@example.com"]
    )

    assert [recipient for recipient, _ in transport.sent] == [
        "first@example.com",
        "third@example.com",
    ]
    assert report.failed == ["second@example.com"]
    assert report.sent == ["first@example.com", "third@example.com"]


def test_unexpected_transport_errors_are_isolated() -> None:
    class ExplodingTransport(RecordingTransport):
        def send(self, sender, recipient, subject, html_body):  # type: ignore[override]
            if recipient == "boom@example.com":
                raise RuntimeError("socket closed")
            super().send(sender, recipient, subject, html_body)

    transport = ExplodingTransport()
    digest = render_digest([make_product("1")], 0)
    assert digest is not None

    report = Notifier(transport, SENDER).send_digest(digest, ["boom@example.com", "ok@example.com"])

    assert report.failed == ["boom@example.com"]
    assert report.sent == ["ok@example.com"]


def test_notify_all_fans_out_per_threshold() -> None:
    transport = RecordingTransport()
    notifier = Notifier(transport, SENDER)
    products = [make_product("1", points=100), make_product("2", points=900)]

    results = notifier.notify_all(products, [0, 600, 2000], ["a@example.com", "b@example.com"])

    assert [result.min_points for result in results] == [0, 600, 2000]
    assert results[2].skipped is True
    assert results[0].digest is not None and results[0].digest.product_count == 2
    assert results[1].digest is not None and results[1].digest.product_count == 1
    assert transport.sent == [
        ("a@example.com", "New Sephora Products above 0 points"),
        ("b@example.com", "New Sephora Products above 0 points"),
        ("a@example.com", "New Sephora Products above 600 points"),
        ("b@example.com", "New Sephora Products above 600 points"),
    ]


def test_failure_in_one_threshold_does_not_block_the_next() -> None:
    transport = RecordingTransport(failing={"a@example.com"})
    notifier = Notifier(transport, SENDER)

    results = notifier.notify_all([make_product("1", points=900)], [0, 600], ["a@example.com", "b@example.com"])

    assert [result.report.failed for result in results if result.report] == [
        ["a@example.com"],
        ["a@example.com"],
    ]
    assert len(transport.sent) == 2


def test_build_transport_prefers_configured_provider(monkeypatch) -> None:
    monkeypatch.setattr(notifier_module, "_noop_logged", True)

    assert isinstance(build_transport(Settings()), LogTransport)
    assert isinstance(build_transport(Settings(sendgrid_api_key="key")), SendGridTransport)
    assert isinstance(build_transport(Settings(smtp_host="smtp.example.com")), SmtpTransport)
    assert isinstance(
        build_transport(Settings(mail_transport="sendgrid", smtp_host="smtp.example.com")),
        LogTransport,
    )


class _Response:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


def test_sendgrid_posts_one_personalization_per_recipient(monkeypatch) -> None:
    calls = []

    def fake_post(url, json, headers, timeout):
        calls.append((url, json, headers))
        return _Response(202)

    monkeypatch.setattr(requests, "post", fake_post)

    SendGridTransport("secret").send(SENDER, "a@example.com", "Subject", "<p>hi</p>")

    url, payload, headers = calls[0]
    assert url == notifier_module.SENDGRID_URL
    assert payload["personalizations"] == [{"to": [{"email": "a@example.com"}], "subject": "Subject"}]
    assert payload["from"] == {"email": "bot@example.com", "name": "Rewards Bot"}
    assert payload["content"][0] == {"type": "text/html", "value": "<p>hi</p>"}
    assert headers["Authorization"] == "Bearer secret"


def test_sendgrid_error_status_raises_delivery_error(monkeypatch) -> None:
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: _Response(401, "unauthorized"))

    with pytest.raises(DeliveryError) as exc:
        SendGridTransport("secret").send(SENDER, "a@example.com", "Subject", "<p>hi</p>")

    assert exc.value.recipient == "a@example.com"
    assert "401" in str(exc.value)


def test_sendgrid_network_failure_raises_delivery_error(monkeypatch) -> None:
    def fake_post(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", fake_post)

    with pytest.raises(DeliveryError):
        SendGridTransport("secret").send(SENDER, "a@example.com", "Subject", "<p>hi</p>")


def test_smtp_transport_sends_html_message(monkeypatch) -> None:
    sent = []

    class FakeSMTP:
        def __init__(self, host, port, timeout):
            self.host = host
            self.port = port

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            return False

        def starttls(self):
            sent.append("starttls")

        def login(self, username, password):
            sent.append(("login", username))

        def send_message(self, message):
            sent.append(message)

    monkeypatch.setattr(notifier_module.smtplib, "SMTP", FakeSMTP)

    SmtpTransport("smtp.example.com", username="user", password="pw").send(
        SENDER, "a@example.com", "Subject", "<p>hi</p>"
    )

    assert sent[0] == "starttls"
    assert sent[1] == ("login", "user")
    message = sent[2]
    assert message["To"] == "a@example.com"
    assert message["Subject"] == "Subject"
    assert "Rewards Bot" in message["From"]
    assert message.get_body(preferencelist=("html",)).get_content().strip() == "<p>hi</p>"
