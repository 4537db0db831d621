from __future__ import annotations

import os
import uuid
from functools import reduce
from typing import Any, Iterable, Mapping, NamedTuple

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from .. import emailer
from ..app import db
from ..models import Certificate, Employee, Template, Tier, User
from ..shared.certificates import render_certificate, resolve_signature
from ..shared.settings_store import AppSettings
from ..shared.storage import resolve_public_path
from ..shared.time import fmt_iso, now_utc

__all__ = [
    "BulkResult",
    "CertificateError",
    "CertificateNotFound",
    "CertificateSpec",
    "DispatchFailed",
    "NotAuthorized",
    "PersistFailed",
    "ReferenceNotFound",
    "RenderFailed",
    "create_certificate",
    "create_certificates_bulk",
    "delete_certificate",
    "get_certificate_detail",
    "get_stats_overview",
    "list_certificates",
    "resend_certificate_email",
]


class CertificateError(RuntimeError):
    reason = "certificate_error"


class ReferenceNotFound(CertificateError):
    """Raised when an employee, tier or template id does not resolve."""

    reason = "reference_not_found"

    def __init__(self, reference: str, ref_id: Any):
        self.reference = reference
        self.ref_id = ref_id
        super().__init__(f"{reference.capitalize()} not found (id={ref_id})")


class RenderFailed(CertificateError):
    reason = "render_failed"


class PersistFailed(CertificateError):
    reason = "persist_failed"


class CertificateNotFound(CertificateError):
    reason = "not_found"


class NotAuthorized(CertificateError):
    reason = "not_authorized"


class DispatchFailed(CertificateError):
    reason = "dispatch_failed"

    def __init__(self, message: str, rate_limited: bool = False):
        self.rate_limited = rate_limited
        super().__init__(message)


def _as_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


class CertificateSpec(NamedTuple):
    employee_id: Any
    tier_id: Any
    template_id: Any
    custom_message: str | None = None
    achievement_description: str | None = None
    period: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "CertificateSpec":
        return cls(
            employee_id=data.get("employee_id"),
            tier_id=data.get("tier_id"),
            template_id=data.get("template_id"),
            custom_message=_as_text(data.get("custom_message")),
            achievement_description=_as_text(data.get("achievement_description")),
            period=_as_text(data.get("period")),
        )

    def to_payload(self) -> dict:
        return self._asdict()


class IssueOutcome(NamedTuple):
    certificate: Certificate
    employee: Employee
    email_error: str | None = None


class BulkResult(NamedTuple):
    success: int = 0
    failed: int = 0
    errors: tuple[dict, ...] = ()
    certificates: tuple[dict, ...] = ()

    def to_dict(self) -> dict:
        return {
            "message": f"Created {self.success} certificates",
            "success": self.success,
            "failed": self.failed,
            "errors": list(self.errors),
            "certificates": list(self.certificates),
        }


def _lookup(model, reference: str, raw_id: Any):
    ref_id = _as_id(raw_id)
    row = db.session.get(model, ref_id) if ref_id is not None else None
    if row is None:
        raise ReferenceNotFound(reference, raw_id)
    return row


def _resolve_references(spec: CertificateSpec) -> tuple[Employee, Tier, Template]:
    employee = _lookup(Employee, "employee", spec.employee_id)
    tier = _lookup(Tier, "tier", spec.tier_id)
    template = _lookup(Template, "template", spec.template_id)
    return employee, tier, template


def _discard_pdf(pdf_path: str) -> None:
    absolute = resolve_public_path(current_app.config.get("SITE_ROOT", "/srv"), pdf_path)
    if absolute and os.path.exists(absolute):
        os.remove(absolute)


def _mark_sent(certificate: Certificate) -> None:
    certificate.email_sent = True
    certificate.sent_at = now_utc()
    db.session.commit()


def _deliver_quietly(certificate: Certificate, employee, tier, sender) -> str | None:
    """Send the certificate email; failures are logged and returned, never raised."""

    try:
        emailer.send_certificate_email(
            employee=employee,
            tier=tier,
            sender=sender,
            custom_message=certificate.custom_message,
            pdf_path=certificate.pdf_path,
        )
        _mark_sent(certificate)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception(
            "[CERT-FAIL] certificate=%s email=%s", certificate.id, employee.email
        )
        tag = "rate_limited" if getattr(exc, "rate_limited", False) else "dispatch_failed"
        message = str(exc)
        return message if message.startswith(tag) else f"{tag}: {message}"
    return None


def _issue(spec: CertificateSpec, sender: User, send_email: bool) -> IssueOutcome:
    employee, tier, template = _resolve_references(spec)

    certificate_id = str(uuid.uuid4())
    settings = AppSettings.load()
    signature_name = resolve_signature(
        sender.signature_name, settings.global_signature_name
    )
    signature_title = resolve_signature(
        sender.signature_title, settings.global_signature_title
    )

    try:
        pdf_path = render_certificate(
            certificate_id=certificate_id,
            employee=employee,
            tier=tier,
            template=template,
            sender=sender,
            custom_message=spec.custom_message,
            achievement_description=spec.achievement_description,
            period=spec.period,
            company_name=settings.company_name,
            company_logo_path=settings.company_logo,
            signature_name=signature_name,
            signature_title=signature_title,
        )
    except Exception as exc:
        current_app.logger.exception(
            "[CERT-FAIL] render employee=%s tier=%s", employee.id, tier.id
        )
        raise RenderFailed(f"Certificate creation failed: {exc}") from exc

    certificate = Certificate(
        certificate_id=certificate_id,
        employee_id=employee.id,
        tier_id=tier.id,
        template_id=template.id,
        sent_by=sender.id,
        custom_message=spec.custom_message,
        achievement_description=spec.achievement_description,
        period=spec.period,
        pdf_path=pdf_path,
        email_sent=False,
        sent_at=None,
    )
    try:
        db.session.add(certificate)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("[CERT-FAIL] persist certificate_id=%s", certificate_id)
        _discard_pdf(pdf_path)
        raise PersistFailed(f"Certificate creation failed: {exc}") from exc

    email_error = None
    if send_email:
        email_error = _deliver_quietly(certificate, employee, tier, sender)
    return IssueOutcome(certificate, employee, email_error)


def serialize_certificate(certificate: Certificate) -> dict:
    employee = certificate.employee
    tier = certificate.tier
    template = certificate.template
    sender = certificate.sender
    return {
        "id": certificate.id,
        "certificate_id": certificate.certificate_id,
        "employee_id": certificate.employee_id,
        "tier_id": certificate.tier_id,
        "template_id": certificate.template_id,
        "sent_by": certificate.sent_by,
        "custom_message": certificate.custom_message,
        "achievement_description": certificate.achievement_description,
        "period": certificate.period,
        "pdf_path": certificate.pdf_path,
        "email_sent": bool(certificate.email_sent),
        "sent_at": fmt_iso(certificate.sent_at),
        "created_at": fmt_iso(certificate.created_at),
        "employee_name": employee.name if employee else None,
        "employee_email": employee.email if employee else None,
        "employee_department": employee.department if employee else None,
        "tier_name": tier.name if tier else None,
        "tier_color": tier.color if tier else None,
        "template_name": template.name if template else None,
        "sender_name": sender.name if sender else None,
    }


def create_certificate(
    spec: CertificateSpec, sender: User, send_email: bool = False
) -> dict:
    """Issue one certificate: validate, render, persist, optionally email.

    Raises ReferenceNotFound, RenderFailed or PersistFailed. Email failures
    only show up as ``email_sent=False`` plus ``email_error`` in the result.
    """

    outcome = _issue(spec, sender, send_email)
    data = serialize_certificate(outcome.certificate)
    data["email_error"] = outcome.email_error
    return data


def _fold_item(sender: User, send_email: bool):
    def step(result: BulkResult, spec: CertificateSpec) -> BulkResult:
        try:
            outcome = _issue(spec, sender, send_email)
        except CertificateError as exc:
            current_app.logger.warning("[CERT-BULK] item failed spec=%s error=%s", spec, exc)
            error = {"cert": spec.to_payload(), "error": str(exc), "reason": exc.reason}
            return result._replace(failed=result.failed + 1, errors=result.errors + (error,))
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("[CERT-BULK] unexpected failure spec=%s", spec)
            error = {"cert": spec.to_payload(), "error": str(exc), "reason": "unexpected"}
            return result._replace(failed=result.failed + 1, errors=result.errors + (error,))
        summary = {
            "id": outcome.certificate.id,
            "certificate_id": outcome.certificate.certificate_id,
            "employee_name": outcome.employee.name,
            "email_sent": bool(outcome.certificate.email_sent),
            "email_error": outcome.email_error,
        }
        return result._replace(
            success=result.success + 1, certificates=result.certificates + (summary,)
        )

    return step


def create_certificates_bulk(
    specs: Iterable[CertificateSpec], sender: User, send_email: bool = False
) -> BulkResult:
    """Issue certificates one after another; a failing item never stops the rest."""

    result = reduce(_fold_item(sender, send_email), specs, BulkResult())
    current_app.logger.info(
        "[CERT-BULK] sender=%s success=%s failed=%s", sender.id, result.success, result.failed
    )
    return result


def _get_certificate(certificate_id: Any) -> Certificate:
    cert_pk = _as_id(certificate_id)
    certificate = db.session.get(Certificate, cert_pk) if cert_pk is not None else None
    if certificate is None:
        raise CertificateNotFound("Certificate not found")
    return certificate


def resend_certificate_email(certificate_id: Any, sender: User) -> Certificate:
    """Re-send the stored PDF without re-rendering; failures are raised."""

    certificate = _get_certificate(certificate_id)
    try:
        emailer.send_certificate_email(
            employee=certificate.employee,
            tier=certificate.tier,
            sender=sender,
            custom_message=certificate.custom_message,
            pdf_path=certificate.pdf_path,
        )
    except emailer.EmailDispatchError as exc:
        current_app.logger.warning(
            "[CERT-FAIL] resend certificate=%s error=%s", certificate.id, exc
        )
        raise DispatchFailed(f"Failed to send email: {exc}", rate_limited=exc.rate_limited) from exc
    _mark_sent(certificate)
    return certificate


def delete_certificate(certificate_id: Any, requester: User) -> None:
    certificate = _get_certificate(certificate_id)
    if not (requester.is_admin or certificate.sent_by == requester.id):
        raise NotAuthorized("Not authorized to delete this certificate")
    cert_pk, pdf_path = certificate.id, certificate.pdf_path
    db.session.delete(certificate)
    db.session.commit()
    current_app.logger.info(
        "[CERT] deleted id=%s by user=%s path=%s", cert_pk, requester.id, pdf_path
    )


def list_certificates(
    employee_id: int | None = None,
    tier_id: int | None = None,
    sent_by: int | None = None,
) -> list[dict]:
    query = Certificate.query
    if employee_id is not None:
        query = query.filter(Certificate.employee_id == employee_id)
    if tier_id is not None:
        query = query.filter(Certificate.tier_id == tier_id)
    if sent_by is not None:
        query = query.filter(Certificate.sent_by == sent_by)
    rows = query.order_by(Certificate.created_at.desc(), Certificate.id.desc()).all()
    return [serialize_certificate(row) for row in rows]


def get_certificate_detail(certificate_id: Any) -> dict:
    certificate = _get_certificate(certificate_id)
    data = serialize_certificate(certificate)
    data["employee_position"] = certificate.employee.position
    data["tier_description"] = certificate.tier.description
    data["design_config"] = certificate.template.design
    return data


def get_stats_overview(limit: int | None = None) -> dict:
    if limit is None:
        limit = current_app.config.get("RECENT_CERTIFICATES_LIMIT", 5)

    total_certificates = db.session.query(func.count(Certificate.id)).scalar() or 0
    total_employees = db.session.query(func.count(Employee.id)).scalar() or 0

    by_tier_rows = (
        db.session.query(
            Tier.id, Tier.name, Tier.color, func.count(Certificate.id)
        )
        .outerjoin(Certificate, Certificate.tier_id == Tier.id)
        .group_by(Tier.id, Tier.name, Tier.color, Tier.rank)
        .order_by(Tier.rank, Tier.id)
        .all()
    )

    recent_rows = (
        Certificate.query.order_by(Certificate.created_at.desc(), Certificate.id.desc())
        .limit(limit)
        .all()
    )

    return {
        "totalCertificates": int(total_certificates),
        "totalEmployees": int(total_employees),
        "certificatesByTier": [
            {"id": tier_id, "name": name, "color": color, "count": int(count)}
            for tier_id, name, color, count in by_tier_rows
        ],
        "recentCertificates": [serialize_certificate(row) for row in recent_rows],
    }
