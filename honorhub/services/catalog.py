from __future__ import annotations

from flask import current_app

from ..app import db
from ..models import Certificate, Template, Tier


class CatalogError(RuntimeError):
    pass


class CatalogNotFound(CatalogError):
    pass


class TierInUse(CatalogError):
    pass


class TemplateInUse(CatalogError):
    pass


class DefaultTemplateProtected(CatalogError):
    pass


def _get(model, label: str, row_id: int):
    row = db.session.get(model, row_id)
    if row is None:
        raise CatalogNotFound(f"{label} not found")
    return row


def set_default_template(template_id: int) -> Template:
    """Make one template the default; every other template is cleared."""

    template = _get(Template, "Template", template_id)
    Template.query.filter(Template.id != template.id).update(
        {Template.is_default: False}, synchronize_session=False
    )
    template.is_default = True
    db.session.commit()
    current_app.logger.info("[TEMPLATE] default set id=%s", template.id)
    return template


def delete_template(template_id: int) -> None:
    template = _get(Template, "Template", template_id)
    if template.is_default:
        raise DefaultTemplateProtected("Cannot delete default template")
    if Certificate.query.filter_by(template_id=template.id).count():
        raise TemplateInUse("Cannot delete template with existing certificates")
    db.session.delete(template)
    db.session.commit()


def delete_tier(tier_id: int) -> None:
    tier = _get(Tier, "Tier", tier_id)
    if Certificate.query.filter_by(tier_id=tier.id).count():
        raise TierInUse("Cannot delete tier with existing certificates")
    db.session.delete(tier)
    db.session.commit()
