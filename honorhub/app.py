import logging
import os

from flask import Flask, send_from_directory
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from . import models  # noqa: E402,F401  registers tables on db.metadata


def create_app():
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "honorhub")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "honorhub")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 25 * 1024 * 1024

    app.config["SITE_ROOT"] = os.getenv("SITE_ROOT", "/srv")
    app.config["MAIL_TIMEOUT_SECONDS"] = float(os.getenv("MAIL_TIMEOUT_SECONDS", "30"))
    app.config["RECENT_CERTIFICATES_LIMIT"] = int(
        os.getenv("RECENT_CERTIFICATES_LIMIT", "5")
    )

    db.init_app(app)

    @app.get("/uploads/<path:filename>")
    def uploaded_file(filename: str):
        upload_dir = os.path.join(app.config["SITE_ROOT"], "uploads")
        return send_from_directory(upload_dir, filename)

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    from .routes.catalog import bp as catalog_bp
    from .routes.certificates import bp as certificates_bp
    from .routes.reports import bp as reports_bp
    from .routes.settings_mail import bp as settings_mail_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_mail_bp)

    with app.app_context():
        if os.getenv("SEED_DEFAULTS"):
            seed_defaults_safely()

    return app


def seed_defaults_safely() -> None:
    """Seed tiers, templates and settings if their tables exist and are empty."""

    from sqlalchemy import inspect

    from .shared.seed import seed_defaults

    try:
        insp = inspect(db.engine)
        if "settings" not in insp.get_table_names():
            logging.info("seed skipped (tables missing)")
            return
        seed_defaults()
    except Exception:  # pragma: no cover - defensive
        db.session.rollback()
        logging.exception("seed_defaults_safely failed")
