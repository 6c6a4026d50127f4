"""
Shared fixtures: an in-memory SQLite database, the store and identity
provider on top of it, and a Flask test client wired to both.
"""

import pytest

from bloodbank.api.app import create_app
from bloodbank.config import ROLE_MEDICAL_STAFF, ROLE_REGULAR_USER
from bloodbank.database import create_schema, make_engine
from bloodbank.identity import JwtIdentityProvider
from bloodbank.rbac import set_role
from bloodbank.store import SqlDocumentStore

HOOK_SECRET = "hook-secret"
JWT_SECRET = "test-secret-key-with-enough-bytes-0123456789"


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return SqlDocumentStore(engine)


@pytest.fixture
def identity(engine):
    return JwtIdentityProvider(engine, secret_key=JWT_SECRET, expiry_hours=1)


@pytest.fixture
def app(engine, store, identity):
    app = create_app(store=store, identity=identity, hook_secret=HOOK_SECRET, engine=engine)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(identity, store):
    """Create a directory user, optionally with a role; return auth headers."""
    def _make(uid, role=None):
        identity.create_user(uid)
        if role:
            set_role(store, uid, role)
        return {"Authorization": f"Bearer {identity.issue_token(uid)}"}
    return _make


@pytest.fixture
def staff_headers(make_user):
    return make_user("staff-1", ROLE_MEDICAL_STAFF)


@pytest.fixture
def user_headers(make_user):
    return make_user("user-1", ROLE_REGULAR_USER)
