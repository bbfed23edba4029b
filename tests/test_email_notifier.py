import email

import pytest

from adas_ops.notifications import EmailNotifier, build_mime_message, deliverable_attachments
from adas_ops.notifications import email_notifier
from adas_ops.schemas import Attachment, OutboundMessage


def _message(**overrides) -> OutboundMessage:
    data = {
        "to": "shop@example.com",
        "cc": "billing@example.com",
        "subject": "RO 12345 – ADAS Calibration Required",
        "html_body": "<p>Hello</p>",
        "text_body": "Hello",
        "attachments": [
            Attachment(filename="RevvADAS_Report_12345.pdf", content=b"%PDF-1.4 report"),
            Attachment(filename="Invoice_12345.pdf", content=b""),
            Attachment(filename="PostScan_12345.pdf", content=None),
        ],
    }
    data.update(overrides)
    return OutboundMessage(**data)


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host, port, timeout=None, **kwargs):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, username, password):
        self.logged_in = (username, password)

    def sendmail(self, from_addr, recipients, body):
        self.sent.append((from_addr, recipients, body))

    def quit(self):
        pass


class BrokenSMTP(FakeSMTP):
    def login(self, username, password):
        raise OSError("connection reset")


@pytest.fixture(autouse=True)
def reset_fake_smtp():
    FakeSMTP.instances = []


def _notifier(**overrides) -> EmailNotifier:
    settings = {
        "from_address": "ADAS F1RST <ops@adasf1rst.com>",
        "smtp_host": "smtp.example.com",
        "smtp_port": 587,
        "smtp_username": "ops@adasf1rst.com",
        "smtp_password": "app-password",
        "smtp_use_tls": True,
        "resend_api_key": None,
    }
    settings.update(overrides)
    return EmailNotifier(**settings)


def test_empty_attachments_are_skipped():
    kept = deliverable_attachments(_message().attachments)
    assert [a.filename for a in kept] == ["RevvADAS_Report_12345.pdf"]


def test_mime_message_layout():
    message = _message()
    mime = build_mime_message(message, "ADAS F1RST <ops@adasf1rst.com>", deliverable_attachments(message.attachments))

    parsed = email.message_from_string(mime.as_string())
    assert parsed.get_content_type() == "multipart/mixed"
    assert parsed["Cc"] == "billing@example.com"
    assert parsed["Message-ID"].endswith("@adasf1rst.com>")

    parts = parsed.get_payload()
    assert parts[0].get_content_type() == "multipart/alternative"
    assert [p.get_content_type() for p in parts[0].get_payload()] == ["text/plain", "text/html"]
    assert parts[1].get_filename() == "RevvADAS_Report_12345.pdf"
    assert parts[1].get_payload(decode=True) == b"%PDF-1.4 report"
    assert len(parts) == 2


async def test_send_via_smtp(monkeypatch):
    monkeypatch.setattr(email_notifier.smtplib, "SMTP", FakeSMTP)

    result = await _notifier().send(_message())

    assert result.success is True
    assert result.message_id
    server = FakeSMTP.instances[0]
    assert server.started_tls is True
    assert server.logged_in == ("ops@adasf1rst.com", "app-password")
    from_addr, recipients, _ = server.sent[0]
    assert from_addr == "ops@adasf1rst.com"
    assert recipients == ["shop@example.com", "billing@example.com"]


async def test_smtp_failure_without_fallback_is_reported(monkeypatch):
    monkeypatch.setattr(email_notifier.smtplib, "SMTP", BrokenSMTP)

    result = await _notifier().send(_message())

    assert result.success is False
    assert "connection reset" in result.error


async def test_smtp_failure_falls_back_to_resend(monkeypatch):
    monkeypatch.setattr(email_notifier.smtplib, "SMTP", BrokenSMTP)
    captured = {}

    def fake_send(params):
        captured.update(params)
        return {"id": "re_123"}

    monkeypatch.setattr(email_notifier.resend.Emails, "send", fake_send)

    result = await _notifier(resend_api_key="re_key").send(_message())

    assert result.success is True
    assert result.message_id == "re_123"
    assert captured["to"] == ["shop@example.com"]
    assert captured["cc"] == ["billing@example.com"]
    assert [a["filename"] for a in captured["attachments"]] == ["RevvADAS_Report_12345.pdf"]


async def test_resend_exception_becomes_failed_result(monkeypatch):
    def exploding_send(params):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(email_notifier.resend.Emails, "send", exploding_send)

    result = await _notifier(smtp_username=None, resend_api_key="re_key").send(_message())

    assert result.success is False
    assert "rate limited" in result.error


async def test_nothing_configured():
    result = await _notifier(smtp_password=None).send(_message())
    assert result.success is False
    assert result.error == "Email service not configured"
