"""Tests for sign-up, sign-in and token handling."""
from __future__ import annotations

from tunetrails.models import Profile, TeacherProfile, Wallet


def test_register_creates_profile_role_and_wallet(app, client) -> None:
    response = client.post(
        "/auth/register",
        json={"full_name": "Amani Otieno", "email": "Amani@Example.com", "password": "pw12345"},
    )

    assert response.status_code == 201
    data = response.get_json()
    assert data["token"]
    assert data["user"]["email"] == "amani@example.com"
    assert data["user"]["roles"] == ["student"]

    with app.app_context():
        profile = Profile.query.filter_by(email="amani@example.com").one()
        assert Wallet.query.filter_by(user_id=profile.user_id).count() == 1
        assert TeacherProfile.query.filter_by(user_id=profile.user_id).count() == 0


def test_register_teacher_creates_teacher_profile(app, client) -> None:
    response = client.post(
        "/auth/register",
        json={
            "full_name": "Wanjiru Kamau",
            "email": "wanjiru@example.com",
            "password": "pw12345",
            "role": "teacher",
            "hourly_rate": 1200,
        },
    )

    assert response.status_code == 201
    user_id = response.get_json()["user"]["id"]

    with app.app_context():
        teacher = TeacherProfile.query.filter_by(user_id=user_id).one()
        assert float(teacher.hourly_rate) == 1200.0


def test_register_duplicate_email_is_conflict(client, register_user) -> None:
    register_user("dup@example.com")

    response = client.post(
        "/auth/register",
        json={"full_name": "Someone Else", "email": "dup@example.com", "password": "pw12345"},
    )

    assert response.status_code == 409
    assert response.get_json()["message"] == "This email is already registered. Try logging in instead."


def test_register_rejects_unknown_role(client) -> None:
    response = client.post(
        "/auth/register",
        json={"full_name": "X", "email": "x@example.com", "password": "pw", "role": "admin"},
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_role"


def test_register_requires_fields(client) -> None:
    response = client.post("/auth/register", json={"email": "x@example.com"})

    assert response.status_code == 400


def test_login_success_and_me(client, register_user) -> None:
    register_user("login@example.com", role="teacher", full_name="Lena Teacher")

    response = client.post("/auth/login", json={"email": "login@example.com", "password": "s3cret-pass"})
    assert response.status_code == 200
    token = response.get_json()["token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    user = me.get_json()["user"]
    assert user["full_name"] == "Lena Teacher"
    assert user["roles"] == ["teacher"]
    assert user["teacher_profile_id"] is not None


def test_login_wrong_password_uses_friendly_message(client, register_user) -> None:
    register_user("wrong@example.com")

    response = client.post("/auth/login", json={"email": "wrong@example.com", "password": "nope"})

    assert response.status_code == 401
    assert response.get_json()["message"] == "Invalid email or password. Please try again."


def test_me_requires_token(client) -> None:
    assert client.get("/auth/me").status_code == 401


def test_me_rejects_tampered_token(client, register_user) -> None:
    _, headers = register_user("tamper@example.com")
    headers = {"Authorization": headers["Authorization"] + "x"}

    assert client.get("/auth/me", headers=headers).status_code == 401


def test_token_from_other_secret_is_rejected(app, client, register_user) -> None:
    from itsdangerous import URLSafeTimedSerializer

    user_id, _ = register_user("forged@example.com")
    forged = URLSafeTimedSerializer("other-secret", salt="auth-token").dumps({"user_id": user_id})

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {forged}"})

    assert response.status_code == 401


def test_register_teacher_with_fractional_rate(app, client) -> None:
    response = client.post(
        "/auth/register",
        json={
            "full_name": "Njeri Flute",
            "email": "njeri@example.com",
            "password": "pw12345",
            "role": "teacher",
            "hourly_rate": "750.50",
        },
    )

    user_id = response.get_json()["user"]["id"]
    with app.app_context():
        teacher = TeacherProfile.query.filter_by(user_id=user_id).one()
        assert float(teacher.hourly_rate) == 750.0
