from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..services.certificates import (
    CertificateNotFound,
    CertificateSpec,
    DispatchFailed,
    NotAuthorized,
    PersistFailed,
    ReferenceNotFound,
    RenderFailed,
    create_certificate,
    create_certificates_bulk,
    delete_certificate,
    get_certificate_detail,
    get_stats_overview,
    list_certificates,
    resend_certificate_email,
)
from ..shared.rbac import login_required

bp = Blueprint("certificates", __name__, url_prefix="/api/certificates")


@bp.get("")
@login_required
def index(current_user):
    return jsonify(
        list_certificates(
            employee_id=request.args.get("employee_id", type=int),
            tier_id=request.args.get("tier_id", type=int),
            sent_by=request.args.get("sent_by", type=int),
        )
    )


@bp.get("/stats/overview")
@login_required
def stats_overview(current_user):
    return jsonify(get_stats_overview())


@bp.get("/<int:cert_id>")
@login_required
def detail(cert_id: int, current_user):
    try:
        return jsonify(get_certificate_detail(cert_id))
    except CertificateNotFound as exc:
        return jsonify({"error": str(exc)}), 404


@bp.post("")
@login_required
def create(current_user):
    data = request.get_json(silent=True) or {}
    if not all(data.get(key) for key in ("employee_id", "tier_id", "template_id")):
        return jsonify({"error": "employee_id, tier_id and template_id are required"}), 400
    spec = CertificateSpec.from_payload(data)
    try:
        result = create_certificate(
            spec, current_user, send_email=bool(data.get("send_email"))
        )
    except ReferenceNotFound as exc:
        return jsonify({"error": str(exc), "reference": exc.reference}), 400
    except (RenderFailed, PersistFailed) as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify(result), 201


@bp.post("/bulk")
@login_required
def bulk(current_user):
    data = request.get_json(silent=True) or {}
    items = data.get("certificates")
    if not isinstance(items, list) or not items:
        return jsonify({"error": "certificates must be a non-empty list"}), 400
    specs = [
        CertificateSpec.from_payload(item if isinstance(item, dict) else {})
        for item in items
    ]
    result = create_certificates_bulk(
        specs, current_user, send_email=bool(data.get("send_email"))
    )
    return jsonify(result.to_dict())


@bp.post("/<int:cert_id>/resend")
@login_required
def resend(cert_id: int, current_user):
    try:
        resend_certificate_email(cert_id, current_user)
    except CertificateNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except DispatchFailed as exc:
        return jsonify({"error": str(exc), "rate_limited": exc.rate_limited}), 502
    return jsonify({"message": "Email sent successfully"})


@bp.delete("/<int:cert_id>")
@login_required
def remove(cert_id: int, current_user):
    try:
        delete_certificate(cert_id, current_user)
    except CertificateNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except NotAuthorized as exc:
        current_app.logger.info(
            "[CERT] delete refused id=%s user=%s", cert_id, current_user.id
        )
        return jsonify({"error": str(exc)}), 403
    return jsonify({"message": "Certificate deleted"})
