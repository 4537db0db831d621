import base64
import json
import logging
import os
import smtplib
import sys
from email.message import EmailMessage
from typing import NamedTuple, Sequence

import httpx
from flask import current_app

from .shared.mail_utils import (
    attachment_filename,
    body_to_html,
    format_from,
    normalize_recipients,
    substitute_placeholders,
    unescape_newlines,
)
from .shared.settings_store import (
    DEFAULT_COMPANY_NAME,
    DEFAULT_FROM_NAME,
    PROVIDER_MAILGUN,
    PROVIDER_RESEND,
    AppSettings,
)
from .shared.storage import resolve_public_path

logger = logging.getLogger("honorhub.mailer")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

RESEND_API_URL = "https://api.resend.com/emails"
MAILGUN_API_URLS = {
    "us": "https://api.mailgun.net",
    "eu": "https://api.eu.mailgun.net",
}
SMTP_THROTTLE_CODES = frozenset({421, 450, 451, 452})


class EmailDispatchError(RuntimeError):
    """Raised when a provider rejects or cannot deliver a message."""

    rate_limited = False


class EmailConfigError(EmailDispatchError):
    """Raised before any network I/O when provider credentials are missing."""


class EmailRateLimitError(EmailDispatchError):
    """Raised when the provider signals throttling."""

    rate_limited = True


class Attachment(NamedTuple):
    filename: str
    content: bytes
    content_type: str = "application/pdf"


class OutgoingMessage(NamedTuple):
    from_addr: str
    to: list[str]
    subject: str
    text: str
    html: str
    attachments: tuple[Attachment, ...] = ()


def _stringify_envelope(recipients: Sequence[str]) -> str:
    return json.dumps(list(recipients))


def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def _http_error_message(response: httpx.Response, fallback: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return response.text.strip() or f"{fallback} (HTTP {response.status_code})"


def _response_id(response: httpx.Response) -> str | None:
    """Message id from an accepted response; a body that is not JSON means no id."""
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload.get("id") if isinstance(payload, dict) else None


def _raise_for_response(response: httpx.Response, provider: str) -> None:
    if response.status_code < 400:
        return
    detail = _http_error_message(response, f"{provider} request failed")
    if response.status_code == 429:
        raise EmailRateLimitError(f"rate_limited: {detail}")
    raise EmailDispatchError(detail)


class SmtpProvider:
    name = "SMTP"

    def __init__(self, settings: AppSettings, timeout: float):
        if not settings.smtp_host or not settings.smtp_user:
            raise EmailConfigError("SMTP settings not configured")
        self.settings = settings
        self.timeout = timeout

    def from_address(self) -> str:
        return format_from(
            self.settings.smtp_from_name or DEFAULT_FROM_NAME,
            self.settings.smtp_from_email or self.settings.smtp_user,
        )

    @property
    def implicit_tls(self) -> bool:
        return self.settings.smtp_secure or self.settings.smtp_port == 465

    def _connect(self) -> smtplib.SMTP:
        host = self.settings.smtp_host
        port = self.settings.smtp_port
        if self.implicit_tls:
            return smtplib.SMTP_SSL(host, port, timeout=self.timeout)
        return smtplib.SMTP(host, port, timeout=self.timeout)

    @staticmethod
    def _build(message: OutgoingMessage) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = message.from_addr
        msg["To"] = ", ".join(message.to)
        msg.set_content(message.text)
        msg.add_alternative(message.html, subtype="html")
        for attachment in message.attachments:
            maintype, subtype = attachment.content_type.split("/", 1)
            msg.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
            )
        return msg

    def send(self, message: OutgoingMessage) -> dict:
        try:
            msg = self._build(message)
            with self._connect() as server:
                if not self.implicit_tls and self.settings.smtp_port == 587:
                    server.starttls()
                if self.settings.smtp_user and self.settings.smtp_pass:
                    server.login(self.settings.smtp_user, self.settings.smtp_pass)
                server.send_message(msg)
        except smtplib.SMTPResponseException as exc:
            detail = exc.smtp_error
            if isinstance(detail, bytes):
                detail = detail.decode("utf-8", "replace")
            if exc.smtp_code in SMTP_THROTTLE_CODES:
                raise EmailRateLimitError(f"rate_limited: {detail}") from exc
            raise EmailDispatchError(f"{exc.smtp_code} {detail}") from exc
        except (smtplib.SMTPException, OSError, ValueError) as exc:
            raise EmailDispatchError(str(exc) or exc.__class__.__name__) from exc
        return {"provider": "smtp", "id": msg.get("Message-ID")}


class ResendProvider:
    name = "Resend"

    def __init__(self, settings: AppSettings, timeout: float):
        if not settings.resend_api_key:
            raise EmailConfigError("Resend API key not configured")
        self.settings = settings
        self.timeout = timeout

    def from_address(self) -> str:
        return format_from(
            self.settings.resend_from_name or DEFAULT_FROM_NAME,
            self.settings.resend_from_email or "onboarding@resend.dev",
        )

    def send(self, message: OutgoingMessage) -> dict:
        payload = {
            "from": message.from_addr,
            "to": list(message.to),
            "subject": message.subject,
            "text": message.text,
            "html": message.html,
        }
        if message.attachments:
            payload["attachments"] = [
                {
                    "filename": attachment.filename,
                    "content": base64.b64encode(attachment.content).decode("ascii"),
                }
                for attachment in message.attachments
            ]
        headers = {"Authorization": f"Bearer {self.settings.resend_api_key}"}
        try:
            with _http_client(self.timeout) as client:
                response = client.post(RESEND_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise EmailDispatchError(str(exc) or exc.__class__.__name__) from exc
        _raise_for_response(response, "Resend")
        return {"provider": "resend", "id": _response_id(response)}


class MailgunProvider:
    name = "Mailgun"

    def __init__(self, settings: AppSettings, timeout: float):
        if not settings.mailgun_api_key or not settings.mailgun_domain:
            raise EmailConfigError("Mailgun settings not configured")
        self.settings = settings
        self.timeout = timeout

    def from_address(self) -> str:
        return format_from(
            self.settings.mailgun_from_name or DEFAULT_FROM_NAME,
            self.settings.mailgun_from_email
            or f"noreply@{self.settings.mailgun_domain}",
        )

    def send(self, message: OutgoingMessage) -> dict:
        base_url = MAILGUN_API_URLS[self.settings.mailgun_region]
        url = f"{base_url}/v3/{self.settings.mailgun_domain}/messages"
        data = {
            "from": message.from_addr,
            "to": list(message.to),
            "subject": message.subject,
            "text": message.text,
            "html": message.html,
        }
        files = [
            ("attachment", (a.filename, a.content, a.content_type))
            for a in message.attachments
        ]
        try:
            with _http_client(self.timeout) as client:
                response = client.post(
                    url,
                    data=data,
                    files=files or None,
                    auth=("api", self.settings.mailgun_api_key),
                )
        except httpx.HTTPError as exc:
            raise EmailDispatchError(str(exc) or exc.__class__.__name__) from exc
        _raise_for_response(response, "Mailgun")
        return {"provider": "mailgun", "id": _response_id(response)}


def build_provider(settings: AppSettings, timeout: float | None = None):
    """Select the provider named by the ``email_provider`` setting."""

    if timeout is None:
        timeout = current_app.config.get("MAIL_TIMEOUT_SECONDS", 30)
    if settings.email_provider == PROVIDER_RESEND:
        return ResendProvider(settings, timeout)
    if settings.email_provider == PROVIDER_MAILGUN:
        return MailgunProvider(settings, timeout)
    return SmtpProvider(settings, timeout)


def _dispatch(provider, message: OutgoingMessage) -> dict:
    try:
        result = provider.send(message)
    except EmailDispatchError as exc:
        logger.warning(
            "[MAIL-FAIL] provider=%s envelope=%s subject=\"%s\" rate_limited=%s error=%s",
            provider.name,
            _stringify_envelope(message.to),
            message.subject,
            exc.rate_limited,
            exc,
        )
        raise
    logger.info(
        "[MAIL-OUT] provider=%s envelope=%s subject=\"%s\" attachments=%d result=sent",
        provider.name,
        _stringify_envelope(message.to),
        message.subject,
        len(message.attachments),
    )
    return {"ok": True, **result}


def _recipients(address: str | None) -> list[str]:
    envelope, _ = normalize_recipients(address)
    if not envelope:
        raise EmailDispatchError(f"No valid recipient address: {address!r}")
    return envelope


def _load_attachment(pdf_path: str | None, employee_name: str | None) -> tuple[Attachment, ...]:
    if not pdf_path:
        return ()
    site_root = current_app.config.get("SITE_ROOT", "/srv")
    absolute = resolve_public_path(site_root, pdf_path)
    if not absolute or not os.path.isfile(absolute):
        logger.warning("[MAIL-NO-ATTACHMENT] path=%s", pdf_path)
        return ()
    try:
        with open(absolute, "rb") as handle:
            content = handle.read()
    except OSError as exc:
        logger.warning("[MAIL-NO-ATTACHMENT] path=%s error=%s", pdf_path, exc)
        raise EmailDispatchError(f"Could not read attachment {pdf_path}: {exc}") from exc
    return (Attachment(attachment_filename(employee_name), content),)


def send_certificate_email(
    *,
    employee,
    tier,
    sender,
    custom_message: str | None = None,
    pdf_path: str | None = None,
) -> dict:
    """Email one certificate to its employee using the configured provider.

    Raises EmailDispatchError (or a subclass) on any failure; never retries.
    """

    settings = AppSettings.load()
    provider = build_provider(settings)

    replacements = {
        "{tier}": tier.name,
        "{employee_name}": employee.name,
        "{custom_message}": custom_message or "",
        "{sender_name}": getattr(sender, "name", "") or "",
        "{company_name}": settings.company_name or DEFAULT_COMPANY_NAME,
    }
    subject = substitute_placeholders(settings.email_subject_template, replacements)
    body = unescape_newlines(
        substitute_placeholders(settings.email_body_template, replacements)
    )

    message = OutgoingMessage(
        from_addr=provider.from_address(),
        to=_recipients(employee.email),
        subject=subject,
        text=body,
        html=body_to_html(body),
        attachments=_load_attachment(pdf_path, employee.name),
    )
    return _dispatch(provider, message)


def send_test_email(address: str) -> dict:
    settings = AppSettings.load()
    provider = build_provider(settings)
    text = (
        f"This is a test email from HonorHub using {provider.name}. "
        "If you received this, your email configuration is working correctly!"
    )
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        "<h2>HonorHub Test Email</h2>"
        f"<p>This is a test email from HonorHub using <strong>{provider.name}</strong>.</p>"
        "<p>If you received this, your email configuration is working correctly!</p>"
        "</div>"
    )
    message = OutgoingMessage(
        from_addr=provider.from_address(),
        to=_recipients(address),
        subject="HonorHub - Test Email",
        text=text,
        html=html,
    )
    return _dispatch(provider, message)
