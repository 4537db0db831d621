from flask import Blueprint, jsonify, request

from ..emailer import EmailDispatchError, send_test_email
from ..shared.rbac import admin_required, login_required
from ..shared.settings_store import all_settings, update_settings

bp = Blueprint("settings_mail", __name__, url_prefix="/api/settings")


@bp.get("")
@login_required
def index(current_user):
    return jsonify(all_settings(mask_secrets=not current_user.is_admin))


@bp.put("")
@admin_required
def update(current_user):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected a JSON object"}), 400
    update_settings(data)
    return jsonify({"message": "Settings updated"})


@bp.post("/test-email")
@admin_required
def test_email(current_user):
    data = request.get_json(silent=True) or {}
    address = (data.get("email") or "").strip()
    if not address:
        return jsonify({"error": "Email address is required"}), 400
    try:
        send_test_email(address)
    except EmailDispatchError as exc:
        return jsonify({"error": f"Failed to send test email: {exc}"}), 502
    return jsonify({"message": f"Test email sent to {address}"})
