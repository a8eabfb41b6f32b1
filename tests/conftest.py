from __future__ import annotations

import itertools
import sys
from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure the repo root is on sys.path so `import app`, `models`, `utils` work in tests.
ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

from app import create_app  # noqa: E402
from extensions import db  # noqa: E402
from models import Opportunity, User  # noqa: E402
from utils.security import issue_access_token  # noqa: E402

PASSWORD = "Passw0rd!"


@pytest.fixture
def app():
    app = create_app("testing")
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Create a user and return a plain record with its bearer headers.

    No app context stays open between requests, so Flask-Login resolves the
    user afresh on every call.
    """
    counter = itertools.count(1)

    def _make(role: str = "user", password: str = PASSWORD, **fields):
        n = next(counter)
        with app.app_context():
            user = User(
                name=fields.pop("name", f"Test User {n}"),
                email=fields.pop("email", f"user{n}-{role}@example.com"),
                role=role,
                **fields,
            )
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            token = issue_access_token(user.id)
            return SimpleNamespace(
                id=user.id,
                email=user.email,
                role=user.role,
                token=token,
                headers={"Authorization": f"Bearer {token}"},
            )

    return _make


@pytest.fixture
def make_opportunity(app):
    def _make(owner, status: str = "approved", **fields):
        with app.app_context():
            opportunity = Opportunity(
                title=fields.pop("title", "Graduate Engineering Bursary"),
                description=fields.pop("description", "Full-cost bursary for engineering students in the Eastern Cape."),
                category=fields.pop("category", "bursary"),
                organization=fields.pop("organization", "Eastern Cape Development Trust"),
                contact_email=fields.pop("contact_email", "bursaries@ecdt.org.za"),
                status=status,
                created_by_id=owner.id if owner else None,
                **fields,
            )
            db.session.add(opportunity)
            db.session.commit()
            return opportunity.id

    return _make


@pytest.fixture
def fetch(app):
    """Run ``fn`` against a fresh session and return its result."""

    def _fetch(fn):
        with app.app_context():
            return fn()

    return _fetch


def days_from_now(days: int) -> datetime:
    return datetime.utcnow() + timedelta(days=days)
