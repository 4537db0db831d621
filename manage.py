import json
import os

import click
from flask import current_app
from flask.cli import FlaskGroup

from honorhub.app import create_app, db
from honorhub.emailer import EmailDispatchError, send_test_email
from honorhub.models import Certificate, User
from honorhub.services.certificates import (
    CertificateError,
    CertificateSpec,
    create_certificate,
    get_stats_overview,
)
from honorhub.shared.seed import seed_defaults
from honorhub.shared.storage import certificate_public_path, certificates_dir

cli = FlaskGroup(create_app=create_app)


@cli.command("init_db")
@click.option("--no-seed", is_flag=True, help="Create tables without default rows")
def init_db(no_seed: bool):
    """Create tables and seed default tiers, templates and settings."""
    db.create_all()
    if no_seed:
        click.echo("Tables created")
        return
    counts = seed_defaults()
    click.echo(f"Tables created; seeded {counts}")


@cli.command("issue_cert")
@click.option("--sender", "sender_email", required=True)
@click.option("--employee", "employee_id", required=True, type=int)
@click.option("--tier", "tier_id", required=True, type=int)
@click.option("--template", "template_id", required=True, type=int)
@click.option("--period")
@click.option("--message", "custom_message")
@click.option("--send-email", is_flag=True)
def issue_cert(sender_email, employee_id, tier_id, template_id, period, custom_message, send_email):
    """Issue one certificate on behalf of a user."""
    sender = User.query.filter_by(email=sender_email.lower()).one_or_none()
    if not sender:
        click.echo("Sender not found", err=True)
        raise SystemExit(1)
    spec = CertificateSpec(
        employee_id=employee_id,
        tier_id=tier_id,
        template_id=template_id,
        custom_message=custom_message,
        period=period,
    )
    try:
        result = create_certificate(spec, sender, send_email=send_email)
    except CertificateError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1)
    click.echo(result["pdf_path"])
    if result["email_error"]:
        click.echo(f"email not sent: {result['email_error']}", err=True)


@cli.command("test_mail")
@click.option("--to", "address", required=True)
def test_mail(address: str):
    """Send a test email through the configured provider."""
    try:
        result = send_test_email(address)
    except EmailDispatchError as exc:
        click.echo(f"failed: {exc}", err=True)
        raise SystemExit(1)
    click.echo(f"sent via {result.get('provider')} id={result.get('id')}")


@cli.command("stats")
def stats():
    click.echo(json.dumps(get_stats_overview(), indent=2))


@cli.command("purge_orphan_certs")
@click.option(
    "--dry-run", is_flag=True, help="List orphaned certificate PDFs without deleting"
)
def purge_orphan_certs(dry_run: bool):
    cert_root = certificates_dir(current_app.config.get("SITE_ROOT", "/srv"))
    if not os.path.isdir(cert_root):
        click.echo("Certificate directory missing", err=True)
        return

    total = deleted = kept = 0
    for name in sorted(os.listdir(cert_root)):
        if not name.lower().endswith(".pdf"):
            continue
        total += 1
        public_path = certificate_public_path(name[: -len(".pdf")])
        if db.session.query(Certificate.id).filter_by(pdf_path=public_path).first():
            kept += 1
            continue
        full_path = os.path.join(cert_root, name)
        click.echo(full_path)
        if not dry_run:
            os.remove(full_path)
            deleted += 1
    summary = f"scanned={total} deleted={deleted} kept={kept}"
    click.echo(summary)
    current_app.logger.info("[CERT-PURGE] %s", summary)


if __name__ == "__main__":
    cli()
