"""Bearer tokens and caller identity.

Tokens are signed with ``URLSafeTimedSerializer`` and carry the user id and
roles. They stand in for the session a hosted auth provider would issue.
"""
from __future__ import annotations

from flask import current_app, jsonify, request
from itsdangerous import BadSignature, URLSafeTimedSerializer

from .extensions import db
from .models import Profile

TOKEN_SALT = "auth-token"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(payload: dict[str, object]) -> str:
    return _serializer().dumps(payload)


def get_current_user_id() -> int | None:
    """Extract and validate user_id from the Authorization header token.

    Returns the user_id if the token is valid, None if missing, invalid or expired.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # Remove "Bearer " prefix

    try:
        payload = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE"])
    except BadSignature:
        # Invalid or expired token
        return None

    user_id = payload.get("user_id") if isinstance(payload, dict) else None
    return int(user_id) if user_id is not None else None


def get_current_user() -> Profile | None:
    user_id = get_current_user_id()
    if user_id is None:
        return None
    return db.session.get(Profile, user_id)


def unauthorized(message: str = "Authentication required. Please log in to continue."):
    return jsonify({"error": "unauthorized", "message": message}), 401


def forbidden(message: str):
    return jsonify({"error": "forbidden", "message": message}), 403
