"""Default tiers, templates and settings for a fresh database."""

from __future__ import annotations

import json
import logging

from ..app import db
from ..models import Setting, Template, Tier
from .settings_store import DEFAULT_SUBJECT_TEMPLATE

logger = logging.getLogger(__name__)

DEFAULT_TIERS = (
    ("Top Performer", "Exceptional performance exceeding all expectations", "#F59E0B", "trophy", 1),
    ("Performer Plus", "Outstanding performance above expectations", "#8B5CF6", "star", 2),
    ("Star Performer", "Excellent performance meeting high standards", "#3B82F6", "award", 3),
    ("Rising Star", "Promising performance showing great potential", "#10B981", "trending-up", 4),
)

DEFAULT_TEMPLATES = (
    (
        "Classic Gold",
        "Elegant gold-bordered certificate",
        {"layout": "classic", "borderColor": "#B45309", "accentColor": "#B45309"},
        True,
    ),
    (
        "Modern Blue",
        "Clean, modern design with blue accents",
        {"layout": "modern", "borderColor": "#1D4ED8", "accentColor": "#1D4ED8"},
        False,
    ),
    (
        "Executive Purple",
        "Premium executive design",
        {"layout": "executive", "borderColor": "#6D28D9", "accentColor": "#6D28D9"},
        False,
    ),
    (
        "Integrant",
        "Company branded design",
        {"layout": "integrant", "borderColor": "#F7941D", "accentColor": "#00B8E6"},
        False,
    ),
)

DEFAULT_BODY = (
    "Dear {employee_name},\\n\\n"
    "Congratulations! We are delighted to recognize you as a {tier}.\\n\\n"
    "{custom_message}\\n\\n"
    "Your certificate is attached to this email.\\n\\n"
    "Best regards,\\n{sender_name}\\n{company_name}"
)

DEFAULT_SETTINGS = {
    "company_name": "Integrant",
    "company_logo": "",
    "global_signature_name": "Yousef Awad",
    "global_signature_title": "CEO",
    "email_provider": "smtp",
    "email_subject_template": DEFAULT_SUBJECT_TEMPLATE,
    "email_body_template": DEFAULT_BODY,
    "smtp_host": "",
    "smtp_port": "587",
    "smtp_secure": "false",
    "smtp_user": "",
    "smtp_pass": "",
    "smtp_from_name": "HonorHub",
    "smtp_from_email": "",
}


def seed_defaults() -> dict[str, int]:
    """Insert missing defaults; existing rows are never overwritten."""

    counts = {"tiers": 0, "templates": 0, "settings": 0}

    if Tier.query.count() == 0:
        for name, description, color, icon, rank in DEFAULT_TIERS:
            db.session.add(
                Tier(name=name, description=description, color=color, icon=icon, rank=rank)
            )
            counts["tiers"] += 1

    if Template.query.count() == 0:
        for name, description, design, is_default in DEFAULT_TEMPLATES:
            db.session.add(
                Template(
                    name=name,
                    description=description,
                    design_config=json.dumps(design),
                    is_default=is_default,
                )
            )
            counts["templates"] += 1

    existing = {key for (key,) in db.session.query(Setting.key).all()}
    for key, value in DEFAULT_SETTINGS.items():
        if key not in existing:
            db.session.add(Setting(key=key, value=value))
            counts["settings"] += 1

    db.session.commit()
    logger.info("[SEED] %s", counts)
    return counts
