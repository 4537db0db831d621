import os
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from honorhub.app import create_app, db
from honorhub.models import ROLE_ADMIN, Employee, Template, Tier, User
from honorhub.shared.seed import seed_defaults


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def app(tmp_path):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    os.environ["SITE_ROOT"] = str(tmp_path)
    os.environ.pop("SEED_DEFAULTS", None)
    application = create_app()
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded(app):
    seed_defaults()
    return app


@pytest.fixture
def sender(app):
    user = User(
        email="manager@example.com",
        name="Mona Manager",
        role="user",
        signature_name="Mona Manager",
        signature_title="Delivery Lead",
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin(app):
    user = User(email="admin@example.com", name="Ada Admin", role=ROLE_ADMIN)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def employee(app):
    emp = Employee(
        employee_id="E-100",
        email="jane.doe@example.com",
        name="Jane Doe",
        department="Engineering",
        position="Engineer",
        manager_name="Mona Manager",
        account="Acme",
    )
    db.session.add(emp)
    db.session.commit()
    return emp


@pytest.fixture
def top_tier(seeded):
    return Tier.query.filter_by(name="Top Performer").one()


@pytest.fixture
def default_template(seeded):
    return Template.query.filter_by(is_default=True).one()


def login(client, user):
    with client.session_transaction() as sess:
        sess["user_id"] = user.id
