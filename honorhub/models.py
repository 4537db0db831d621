from __future__ import annotations

import json

from sqlalchemy.orm import validates

from .app import db

ROLE_ADMIN = "admin"
ROLE_USER = "user"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)
    signature_name = db.Column(db.String(255))
    signature_title = db.Column(db.String(255))
    department = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower()

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(64), unique=True)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(255))
    position = db.Column(db.String(255))
    manager_name = db.Column(db.String(255))
    account = db.Column(db.String(255))
    employee_type = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, server_default=db.func.now())


class Tier(db.Model):
    __tablename__ = "tiers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    description = db.Column(db.Text)
    color = db.Column(db.String(16), default="#4F46E5")
    icon = db.Column(db.String(64), default="star")
    rank = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, server_default=db.func.now())


class Template(db.Model):
    __tablename__ = "templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    design_config = db.Column(db.Text, nullable=False, default="{}")
    thumbnail_path = db.Column(db.String(512))
    is_default = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.text("false")
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    @property
    def design(self) -> dict:
        try:
            value = json.loads(self.design_config or "{}")
        except (TypeError, ValueError):
            return {}
        return value if isinstance(value, dict) else {}


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    certificate_id = db.Column(db.String(36), nullable=False, unique=True)
    employee_id = db.Column(
        db.Integer, db.ForeignKey("employees.id"), nullable=False
    )
    tier_id = db.Column(db.Integer, db.ForeignKey("tiers.id"), nullable=False)
    template_id = db.Column(
        db.Integer, db.ForeignKey("templates.id"), nullable=False
    )
    sent_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    custom_message = db.Column(db.Text)
    achievement_description = db.Column(db.Text)
    period = db.Column(db.String(64))
    pdf_path = db.Column(db.String(512))
    email_sent = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.text("false")
    )
    sent_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    employee = db.relationship("Employee")
    tier = db.relationship("Tier")
    template = db.relationship("Template")
    sender = db.relationship("User")


class Setting(db.Model):
    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(120), nullable=False, unique=True)
    value = db.Column(db.Text)
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )
