"""pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tunetrails import create_app  # noqa: E402
from tunetrails.extensions import db  # noqa: E402
from tunetrails.models import Instrument  # noqa: E402


@pytest.fixture
def app():
    flask_app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "ZOOM_ACCOUNT_ID": None,
        "ZOOM_CLIENT_ID": None,
        "ZOOM_CLIENT_SECRET": None,
        "AVATAR_BUCKET": None,
    })

    with flask_app.app_context():
        db.create_all()

    yield flask_app

    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register_user(client):
    """Sign up through the API and return (user_id, auth headers)."""

    def _register(email: str, role: str = "student", full_name: str = "Test User", **extra):
        response = client.post(
            "/auth/register",
            json={"full_name": full_name, "email": email, "password": "s3cret-pass", "role": role, **extra},
        )
        assert response.status_code == 201, response.get_json()
        body = response.get_json()
        return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}

    return _register


@pytest.fixture
def instruments(app):
    """Seed a small catalogue and return {name: instrument_id}."""
    with app.app_context():
        rows = [
            Instrument(name="Piano", category="Keyboard"),
            Instrument(name="Guitar", category="Strings"),
            Instrument(name="Nyatiti", category="Strings"),
        ]
        db.session.add_all(rows)
        db.session.commit()
        return {row.name: row.instrument_id for row in rows}
