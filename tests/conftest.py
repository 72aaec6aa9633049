# =============================================================================================
# TESTS/CONFTEST.PY - SHARED FIXTURES
# =============================================================================================
# Every test gets its own app built from its own Settings:
# - in-memory SQLite (StaticPool, so all sessions share one database)
# - freshly generated signing secrets (no test can lean on another's tokens)
# - bcrypt rounds = 4 (minimum) so hashing doesn't dominate the run time
# =============================================================================================

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from masterymap.core.config import Settings
from masterymap.core.db import Base, init_db
from masterymap.main import create_app
from masterymap.models.user import Role, User

PASSWORD = "Secret123!"


def build_settings(**overrides) -> Settings:
    values = {
        "ENVIRONMENT": "test",
        "DATABASE_URL": "sqlite://",
        "JWT_ACCESS_SECRET": f"test-access-{uuid4().hex}",
        "JWT_REFRESH_SECRET": f"test-refresh-{uuid4().hex}",
        "BCRYPT_ROUNDS": 4,
        "LOG_LEVEL": "DEBUG",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def make_settings():
    """make_settings(**overrides) → Settings with fresh secrets."""
    return build_settings


@pytest.fixture
def make_app():
    """Factory: make_app(**settings_overrides) → app with tables created."""
    apps = []

    def _make(**overrides):
        app = create_app(build_settings(**overrides))
        init_db(app.state.engine)
        apps.append(app)
        return app

    yield _make

    for app in apps:
        Base.metadata.drop_all(bind=app.state.engine)
        app.state.engine.dispose()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def settings(app) -> Settings:
    return app.state.settings


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def register(client):
    """register(email, **fields) → response; cookies land in `client`."""

    def _register(email="student@example.com", password=PASSWORD, role="student", **fields):
        body = {"email": email, "password": password, "role": role, **fields}
        return client.post("/auth/register", json=body)

    return _register


@pytest.fixture
def stored_user(db):
    """stored_user(email, role) → User row created straight in the store."""

    def _create(email="ledger@example.com", role=Role.student, school_id=None):
        user = User(email=email, password_hash="not-a-real-hash", role=role, school_id=school_id)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _create
