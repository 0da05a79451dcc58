"""
Shared pytest fixtures for the ChurchDesk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org: church with one section, two departments and a user per role
    - app_owner: platform operator account

Builders live in tests/factories.py.
"""

import pytest

from churchdesk import create_app
from churchdesk.models import db as _db
from churchdesk.models.auth import ROLE_APP_OWNER
from tests.factories import make_org, make_user


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def org():
    return make_org()


@pytest.fixture()
def app_owner():
    user = make_user("Olive Owner", ROLE_APP_OWNER, email="owner@platform.example.org")
    _db.session.commit()
    return user
