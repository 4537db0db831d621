"""Typed access to the flat ``settings`` key/value table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from ..app import db
from ..models import Setting

SECRET_KEYS = frozenset({"smtp_pass", "resend_api_key", "mailgun_api_key"})
MASKED_VALUE = "********"

PROVIDER_SMTP = "smtp"
PROVIDER_RESEND = "resend"
PROVIDER_MAILGUN = "mailgun"
EMAIL_PROVIDERS = (PROVIDER_SMTP, PROVIDER_RESEND, PROVIDER_MAILGUN)

DEFAULT_FROM_NAME = "HonorHub"
DEFAULT_COMPANY_NAME = "Your Company"
DEFAULT_SUBJECT_TEMPLATE = "Congratulations! You have been recognized as {tier}"
DEFAULT_BODY_TEMPLATE = "Dear {employee_name},\\n\\nCongratulations!"


def get_setting(key: str, default: str | None = None) -> str | None:
    row = Setting.query.filter_by(key=key).one_or_none()
    if row is None or row.value is None:
        return default
    return row.value


def set_setting(key: str, value: str | None) -> None:
    existing = Setting.query.filter_by(key=key).one_or_none()
    if existing:
        existing.value = value
    else:
        db.session.add(Setting(key=key, value=value))


def update_settings(values: Mapping[str, str | None]) -> None:
    """Upsert every key, skipping secrets that come back masked."""

    for key, value in values.items():
        if key in SECRET_KEYS and value == MASKED_VALUE:
            continue
        set_setting(key, None if value is None else str(value))
    db.session.commit()


def all_settings(mask_secrets: bool = False) -> dict[str, str | None]:
    result: dict[str, str | None] = {}
    for row in Setting.query.order_by(Setting.key).all():
        if mask_secrets and row.key in SECRET_KEYS:
            result[row.key] = MASKED_VALUE if row.value else ""
        else:
            result[row.key] = row.value
    return result


def _clean(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


def _as_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class AppSettings:
    company_name: str | None = None
    company_logo: str | None = None
    global_signature_name: str | None = None
    global_signature_title: str | None = None

    email_provider: str = PROVIDER_SMTP
    email_subject_template: str = DEFAULT_SUBJECT_TEMPLATE
    email_body_template: str = DEFAULT_BODY_TEMPLATE

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: str | None = None
    smtp_pass: str | None = None
    smtp_from_name: str | None = None
    smtp_from_email: str | None = None

    resend_api_key: str | None = None
    resend_from_name: str | None = None
    resend_from_email: str | None = None

    mailgun_api_key: str | None = None
    mailgun_domain: str | None = None
    mailgun_region: str = "us"
    mailgun_from_name: str | None = None
    mailgun_from_email: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, str | None]) -> "AppSettings":
        provider = (raw.get("email_provider") or "").strip().lower()
        if provider not in EMAIL_PROVIDERS:
            provider = PROVIDER_SMTP
        region = (raw.get("mailgun_region") or "").strip().lower()
        return cls(
            company_name=_clean(raw.get("company_name")),
            company_logo=_clean(raw.get("company_logo")),
            global_signature_name=_clean(raw.get("global_signature_name")),
            global_signature_title=_clean(raw.get("global_signature_title")),
            email_provider=provider,
            email_subject_template=raw.get("email_subject_template")
            or DEFAULT_SUBJECT_TEMPLATE,
            email_body_template=raw.get("email_body_template") or DEFAULT_BODY_TEMPLATE,
            smtp_host=_clean(raw.get("smtp_host")),
            smtp_port=_as_int(raw.get("smtp_port"), 587),
            smtp_secure=(raw.get("smtp_secure") or "").strip().lower() == "true",
            smtp_user=_clean(raw.get("smtp_user")),
            smtp_pass=raw.get("smtp_pass") or None,
            smtp_from_name=_clean(raw.get("smtp_from_name")),
            smtp_from_email=_clean(raw.get("smtp_from_email")),
            resend_api_key=_clean(raw.get("resend_api_key")),
            resend_from_name=_clean(raw.get("resend_from_name")),
            resend_from_email=_clean(raw.get("resend_from_email")),
            mailgun_api_key=_clean(raw.get("mailgun_api_key")),
            mailgun_domain=_clean(raw.get("mailgun_domain")),
            mailgun_region=region if region == "eu" else "us",
            mailgun_from_name=_clean(raw.get("mailgun_from_name")),
            mailgun_from_email=_clean(raw.get("mailgun_from_email")),
        )

    @classmethod
    def load(cls) -> "AppSettings":
        """Read the current settings table; nothing is cached between calls."""
        return cls.from_mapping(all_settings())
