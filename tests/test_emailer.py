import base64
import json
import os
import smtplib
from types import SimpleNamespace

import httpx
import pytest

from honorhub import emailer
from honorhub.emailer import (
    EmailConfigError,
    EmailDispatchError,
    EmailRateLimitError,
    send_certificate_email,
    send_test_email,
)
from honorhub.shared.settings_store import update_settings

EMPLOYEE = SimpleNamespace(name="Jane Doe", email="jane.doe@example.com")
TIER = SimpleNamespace(name="Top Performer")
SENDER = SimpleNamespace(name="Mona Manager")
PDF_BYTES = b"%PDF-1.4 fake certificate"


class FakeSMTP:
    instances = []
    fail_with = None
    tls_fails_with = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        self.closed = False
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def starttls(self):
        if FakeSMTP.tls_fails_with is not None:
            raise FakeSMTP.tls_fails_with
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, msg):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.sent.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    FakeSMTP.tls_fails_with = None
    monkeypatch.setattr(emailer.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(emailer.smtplib, "SMTP_SSL", FakeSMTP)
    return FakeSMTP


@pytest.fixture
def pdf_path(app):
    cert_dir = os.path.join(app.config["SITE_ROOT"], "uploads", "certificates")
    os.makedirs(cert_dir, exist_ok=True)
    with open(os.path.join(cert_dir, "abc.pdf"), "wb") as handle:
        handle.write(PDF_BYTES)
    return "/uploads/certificates/abc.pdf"


def _mock_http(monkeypatch, handler):
    captured = []

    def wrapped(request):
        captured.append(request)
        return handler(request)

    monkeypatch.setattr(
        emailer,
        "_http_client",
        lambda timeout: httpx.Client(transport=httpx.MockTransport(wrapped), timeout=timeout),
    )
    return captured


def _smtp_settings(**extra):
    values = {
        "email_provider": "smtp",
        "company_name": "Integrant",
        "smtp_host": "smtp.example.com",
        "smtp_port": "587",
        "smtp_user": "mailer@example.com",
        "smtp_pass": "secret",
        "email_subject_template": "Congrats {employee_name}, you earned {tier}!",
        "email_body_template": "Dear {employee_name},\\n\\n{custom_message}\\n{sender_name}, {company_name}",
    }
    values.update(extra)
    update_settings(values)


def test_smtp_send_substitutes_and_attaches(app, fake_smtp, pdf_path, caplog):
    caplog.set_level("INFO", logger="honorhub.mailer")
    _smtp_settings()

    result = send_certificate_email(
        employee=EMPLOYEE,
        tier=TIER,
        sender=SENDER,
        custom_message="Great work",
        pdf_path=pdf_path,
    )

    assert result["ok"] is True
    server = fake_smtp.instances[0]
    assert server.started_tls is True
    assert server.logged_in == ("mailer@example.com", "secret")
    assert server.timeout == app.config["MAIL_TIMEOUT_SECONDS"]
    msg = server.sent[0]
    assert msg["Subject"] == "Congrats Jane Doe, you earned Top Performer!"
    assert msg["To"] == "jane.doe@example.com"
    assert msg["From"] == "HonorHub <mailer@example.com>"
    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert "Dear Jane Doe,\n\nGreat work\nMona Manager, Integrant" in text
    attachments = list(msg.iter_attachments())
    assert attachments[0].get_filename() == "Certificate_Jane_Doe.pdf"
    assert attachments[0].get_content() == PDF_BYTES
    assert "[MAIL-OUT]" in caplog.text


def test_smtp_missing_attachment_still_sends(app, fake_smtp):
    _smtp_settings()

    send_certificate_email(
        employee=EMPLOYEE, tier=TIER, sender=SENDER, pdf_path="/uploads/certificates/gone.pdf"
    )

    msg = fake_smtp.instances[0].sent[0]
    assert list(msg.iter_attachments()) == []


def test_smtp_not_configured_fails_before_connecting(app, fake_smtp):
    update_settings({"email_provider": "smtp", "smtp_host": "", "smtp_user": ""})

    with pytest.raises(EmailConfigError):
        send_certificate_email(employee=EMPLOYEE, tier=TIER, sender=SENDER)
    assert fake_smtp.instances == []


def test_smtp_throttle_is_tagged(app, fake_smtp):
    _smtp_settings()
    fake_smtp.fail_with = smtplib.SMTPResponseException(421, b"Too many messages")

    with pytest.raises(EmailRateLimitError) as excinfo:
        send_certificate_email(employee=EMPLOYEE, tier=TIER, sender=SENDER)

    assert excinfo.value.rate_limited is True
    assert str(excinfo.value).startswith("rate_limited")


def test_smtp_auth_failure_surfaces_message(app, fake_smtp):
    _smtp_settings()
    fake_smtp.fail_with = smtplib.SMTPResponseException(535, b"Bad credentials")

    with pytest.raises(EmailDispatchError) as excinfo:
        send_certificate_email(employee=EMPLOYEE, tier=TIER, sender=SENDER)

    assert "Bad credentials" in str(excinfo.value)
    assert excinfo.value.rate_limited is False


def test_unknown_provider_defaults_to_smtp(app, fake_smtp):
    _smtp_settings(email_provider="carrier-pigeon")

    send_test_email("ops@example.com")

    assert fake_smtp.instances[0].sent[0]["Subject"] == "HonorHub - Test Email"


def test_resend_posts_base64_attachment(app, monkeypatch, pdf_path):
    update_settings(
        {
            "email_provider": "resend",
            "resend_api_key": "re_123",
            "resend_from_email": "awards@example.com",
        }
    )
    captured = _mock_http(monkeypatch, lambda request: httpx.Response(200, json={"id": "msg_1"}))

    result = send_certificate_email(
        employee=EMPLOYEE, tier=TIER, sender=SENDER, pdf_path=pdf_path
    )

    assert result == {"ok": True, "provider": "resend", "id": "msg_1"}
    request = captured[0]
    assert str(request.url) == emailer.RESEND_API_URL
    assert request.headers["Authorization"] == "Bearer re_123"
    body = json.loads(request.content)
    assert body["from"] == "HonorHub <awards@example.com>"
    assert body["to"] == ["jane.doe@example.com"]
    assert body["subject"] == "Congratulations! You have been recognized as Top Performer"
    assert body["attachments"][0]["filename"] == "Certificate_Jane_Doe.pdf"
    assert base64.b64decode(body["attachments"][0]["content"]) == PDF_BYTES


def test_resend_missing_key_is_config_error(app):
    update_settings({"email_provider": "resend", "resend_api_key": ""})

    with pytest.raises(EmailConfigError):
        send_test_email("ops@example.com")


def test_resend_429_is_rate_limited(app, monkeypatch):
    update_settings({"email_provider": "resend", "resend_api_key": "re_123"})
    _mock_http(
        monkeypatch,
        lambda request: httpx.Response(429, json={"message": "Too many requests"}),
    )

    with pytest.raises(EmailRateLimitError) as excinfo:
        send_test_email("ops@example.com")

    assert "Too many requests" in str(excinfo.value)


def test_resend_error_message_is_surfaced(app, monkeypatch):
    update_settings({"email_provider": "resend", "resend_api_key": "re_123"})
    _mock_http(
        monkeypatch,
        lambda request: httpx.Response(422, json={"message": "Invalid `from` field"}),
    )

    with pytest.raises(EmailDispatchError) as excinfo:
        send_test_email("ops@example.com")

    assert str(excinfo.value) == "Invalid `from` field"


def test_mailgun_eu_multipart(app, monkeypatch, pdf_path):
    update_settings(
        {
            "email_provider": "mailgun",
            "mailgun_api_key": "key-abc",
            "mailgun_domain": "mg.example.com",
            "mailgun_region": "eu",
        }
    )
    captured = _mock_http(monkeypatch, lambda request: httpx.Response(200, json={"id": "<1@mg>"}))

    result = send_certificate_email(
        employee=EMPLOYEE, tier=TIER, sender=SENDER, pdf_path=pdf_path
    )

    assert result["provider"] == "mailgun"
    request = captured[0]
    assert request.url.host == "api.eu.mailgun.net"
    assert request.url.path == "/v3/mg.example.com/messages"
    expected_auth = base64.b64encode(b"api:key-abc").decode()
    assert request.headers["Authorization"] == f"Basic {expected_auth}"
    content = request.read()
    assert b'filename="Certificate_Jane_Doe.pdf"' in content
    assert PDF_BYTES in content
    assert b"HonorHub <noreply@mg.example.com>" in content


def test_mailgun_network_error_is_dispatch_error(app, monkeypatch):
    update_settings(
        {"email_provider": "mailgun", "mailgun_api_key": "k", "mailgun_domain": "mg.example.com"}
    )

    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    _mock_http(monkeypatch, boom)

    with pytest.raises(EmailDispatchError) as excinfo:
        send_test_email("ops@example.com")

    assert "connection refused" in str(excinfo.value)


def test_invalid_recipient_rejected(app, fake_smtp):
    _smtp_settings()

    with pytest.raises(EmailDispatchError):
        send_test_email("not-an-address")
    assert fake_smtp.instances == []


def test_starttls_failure_closes_connection(app, fake_smtp):
    _smtp_settings()
    fake_smtp.tls_fails_with = smtplib.SMTPNotSupportedError("STARTTLS extension not supported")

    with pytest.raises(EmailDispatchError) as excinfo:
        send_test_email("ops@example.com")

    assert "STARTTLS" in str(excinfo.value)
    assert fake_smtp.instances[0].closed is True


def test_smtp_header_with_linebreak_is_dispatch_error(app, fake_smtp):
    _smtp_settings()
    tier = SimpleNamespace(name="Top\nPerformer")

    with pytest.raises(EmailDispatchError):
        send_certificate_email(employee=EMPLOYEE, tier=tier, sender=SENDER)
    assert fake_smtp.instances == []


def test_recipient_with_linebreak_is_rejected(app, fake_smtp):
    _smtp_settings()
    employee = SimpleNamespace(name="Jane Doe", email="jane@example.com\nBcc: x@y.io")

    with pytest.raises(EmailDispatchError):
        send_certificate_email(employee=employee, tier=TIER, sender=SENDER)
    assert fake_smtp.instances == []


@pytest.mark.parametrize("provider", ["resend", "mailgun"])
def test_accepted_non_json_body_counts_as_sent(app, monkeypatch, provider):
    update_settings(
        {
            "email_provider": provider,
            "resend_api_key": "re_123",
            "mailgun_api_key": "key-abc",
            "mailgun_domain": "mg.example.com",
        }
    )
    _mock_http(monkeypatch, lambda request: httpx.Response(200, text="OK"))

    result = send_test_email("ops@example.com")

    assert result == {"ok": True, "provider": provider, "id": None}


def test_unreadable_attachment_is_dispatch_error(app, monkeypatch, fake_smtp, pdf_path):
    _smtp_settings()

    def unreadable(*args, **kwargs):
        raise PermissionError("permission denied")

    monkeypatch.setattr(emailer, "open", unreadable, raising=False)

    with pytest.raises(EmailDispatchError) as excinfo:
        send_certificate_email(employee=EMPLOYEE, tier=TIER, sender=SENDER, pdf_path=pdf_path)

    assert "permission denied" in str(excinfo.value)
    assert fake_smtp.instances == []
