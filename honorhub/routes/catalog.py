from flask import Blueprint, jsonify

from ..services.catalog import (
    CatalogNotFound,
    DefaultTemplateProtected,
    TemplateInUse,
    TierInUse,
    delete_template,
    delete_tier,
    set_default_template,
)
from ..shared.rbac import admin_required

bp = Blueprint("catalog", __name__, url_prefix="/api")


@bp.post("/templates/<int:template_id>/default")
@admin_required
def make_default(template_id: int, current_user):
    try:
        template = set_default_template(template_id)
    except CatalogNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify({"id": template.id, "is_default": True})


@bp.delete("/templates/<int:template_id>")
@admin_required
def remove_template(template_id: int, current_user):
    try:
        delete_template(template_id)
    except CatalogNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except (DefaultTemplateProtected, TemplateInUse) as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"message": "Template deleted"})


@bp.delete("/tiers/<int:tier_id>")
@admin_required
def remove_tier(tier_id: int, current_user):
    try:
        delete_tier(tier_id)
    except CatalogNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except TierInUse as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"message": "Tier deleted"})
