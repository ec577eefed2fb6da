"""HTTP routes for accounts, profiles, children and wallets."""
from __future__ import annotations

from datetime import date, datetime, timezone

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from . import storage
from .auth import build_token, forbidden, get_current_user, unauthorized
from .booking import DEFAULT_HOURLY_RATE, is_upcoming, local_now, whole_number
from .errors import friendly_message
from .extensions import db
from .models import (APP_ROLES, AuthAccount, ChildProfile, Instrument, Lesson,
                     Profile, TeacherProfile, UserRole, Wallet)

bp = Blueprint("api", __name__)


def register_routes(app) -> None:
    from .routes_gigs import bp_gigs
    from .routes_lessons import bp_lessons
    from .routes_messages import bp_messages

    app.register_blueprint(bp)
    app.register_blueprint(bp_lessons)
    app.register_blueprint(bp_gigs)
    app.register_blueprint(bp_messages)


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# ============================================================================
# Accounts
# ============================================================================

@bp.post("/auth/register")
def register_user() -> tuple[dict[str, object], int]:
    """Sign up as a student, teacher or parent.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            full_name:
              type: string
            email:
              type: string
            password:
              type: string
            role:
              type: string
              enum: [student, teacher, parent]
            hourly_rate:
              type: number
              description: Starting rate for teachers (KSH per hour)
          required:
            - full_name
            - email
            - password
    responses:
      201:
        description: Account created, returns an access token
      400:
        description: Invalid payload
      409:
        description: Email already registered
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}

    full_name = (payload.get("full_name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    role = (payload.get("role") or "student").strip().lower()

    if not full_name or not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "full_name, email, and password are required"}),
            400,
        )

    if role not in APP_ROLES:
        return (
            jsonify({"error": "invalid_role", "message": f"role must be one of: {', '.join(APP_ROLES)}"}),
            400,
        )

    if Profile.query.filter_by(email=email).first():
        return (
            jsonify({"error": "conflict", "message": friendly_message("User already registered")}),
            409,
        )

    try:
        new_user = Profile(email=email, full_name=full_name)
        db.session.add(new_user)
        db.session.flush()  # Get the new user_id before creating dependent rows

        db.session.add(AuthAccount(user_id=new_user.user_id, password_hash=generate_password_hash(password)))
        db.session.add(UserRole(user_id=new_user.user_id, role=role))
        db.session.add(Wallet(user_id=new_user.user_id, balance=0))

        if role == "teacher":
            hourly_rate = whole_number(payload.get("hourly_rate"), DEFAULT_HOURLY_RATE)
            db.session.add(TeacherProfile(user_id=new_user.user_id, hourly_rate=hourly_rate))

        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register new user", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Registered user %s as %s", new_user.user_id, role)
    token = build_token({"user_id": new_user.user_id, "roles": [role]})

    return jsonify({"token": token, "user": new_user.to_dict()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate a user by email/password and return an access token.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Login successful, returns access token
      400:
        description: Missing email or password
      401:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "email and password are required"}),
            400,
        )

    record = (
        db.session.query(Profile, AuthAccount)
        .join(AuthAccount, AuthAccount.user_id == Profile.user_id)
        .filter(Profile.email == email)
        .first()
    )

    if not record or not check_password_hash(record[1].password_hash, password):
        return jsonify({"error": "unauthorized", "message": friendly_message("Invalid login credentials")}), 401

    user, auth_account = record
    auth_account.last_login_at = datetime.now(timezone.utc)

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update last login timestamp", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    token = build_token({"user_id": user.user_id, "roles": user.role_names})

    return jsonify({"token": token, "user": user.to_dict()}), 200


@bp.get("/auth/me")
def get_me() -> tuple[dict[str, object], int]:
    """Return the signed-in user's profile and roles."""
    user = get_current_user()
    if not user:
        return unauthorized()

    teacher = TeacherProfile.query.filter_by(user_id=user.user_id).first()
    data = user.to_dict()
    data["teacher_profile_id"] = teacher.teacher_id if teacher else None
    return jsonify({"user": data}), 200


# ============================================================================
# Profiles
# ============================================================================

@bp.get("/profiles/<int:user_id>")
def get_profile(user_id: int) -> tuple[dict[str, object], int]:
    profile = db.session.get(Profile, user_id)
    if not profile:
        return jsonify({"error": "not_found", "message": "Profile not found"}), 404
    return jsonify({"profile": profile.to_dict()}), 200


@bp.put("/profiles/me")
def update_my_profile() -> tuple[dict[str, object], int]:
    """Update the signed-in user's name, phone, location and bio.
    ---
    tags:
      - Profiles
    responses:
      200:
        description: Profile updated
      400:
        description: Empty name
      401:
        description: Not signed in
      500:
        description: Database error
    """
    user = get_current_user()
    if not user:
        return unauthorized()

    payload = request.get_json(silent=True) or {}

    if "full_name" in payload:
        full_name = (payload.get("full_name") or "").strip()
        if not full_name:
            return jsonify({"error": "invalid_payload", "message": "full_name cannot be empty"}), 400
        user.full_name = full_name

    for field in ("phone", "location", "bio"):
        if field in payload:
            setattr(user, field, (payload.get(field) or "").strip() or None)

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update profile", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"profile": user.to_dict()}), 200


@bp.post("/profiles/me/avatar")
def upload_avatar() -> tuple[dict[str, object], int]:
    """Upload a profile picture to S3 and store its URL."""
    user = get_current_user()
    if not user:
        return unauthorized()

    bucket_name = current_app.config.get("AVATAR_BUCKET")
    if not bucket_name:
        return jsonify({"error": "storage_unavailable", "message": "Image upload service not configured"}), 503

    if "image" not in request.files:
        return jsonify({"error": "no_image_provided"}), 400

    file = request.files["image"]
    extension = storage.image_extension(file.filename or "")
    if not extension:
        return jsonify({"error": "invalid_image", "message": "Upload a png, jpg, gif or webp image"}), 400

    try:
        user.avatar_url = storage.upload_avatar(
            file, bucket_name, f"user-{user.user_id}", extension, file.content_type
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save avatar url", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    except Exception as exc:
        current_app.logger.exception("Failed to upload avatar", exc_info=exc)
        return jsonify({"error": "upload_failed", "message": "Failed to upload image"}), 502

    return jsonify({"profile": user.to_dict()}), 200


@bp.get("/wallets/me")
def get_my_wallet() -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    try:
        wallet = Wallet.query.filter_by(user_id=user.user_id).first()
        if wallet is None:
            wallet = Wallet(user_id=user.user_id, balance=0)
            db.session.add(wallet)
            db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to load wallet", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"wallet": wallet.to_dict()}), 200


@bp.get("/instruments")
def list_instruments() -> tuple[dict[str, object], int]:
    try:
        instruments = Instrument.query.order_by(Instrument.name.asc()).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch instruments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    return jsonify({"instruments": [i.to_dict() for i in instruments]}), 200


# ============================================================================
# Children (parent accounts)
# ============================================================================

def _parse_child_payload(payload: dict) -> tuple[dict[str, object] | None, str | None]:
    full_name = (payload.get("full_name") or "").strip()
    if not full_name:
        return None, "Please enter your child's name"

    dob_str = (payload.get("date_of_birth") or "").strip()
    try:
        date_of_birth = date.fromisoformat(dob_str) if dob_str else None
    except ValueError:
        return None, "date_of_birth must be in YYYY-MM-DD format"

    return {
        "full_name": full_name,
        "date_of_birth": date_of_birth,
        "notes": (payload.get("notes") or "").strip() or None,
    }, None


@bp.get("/children")
def list_children() -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    children = (
        ChildProfile.query.filter_by(parent_id=user.user_id)
        .order_by(ChildProfile.created_at.asc(), ChildProfile.child_id.asc())
        .all()
    )
    return jsonify({"children": [c.to_dict() for c in children]}), 200


@bp.post("/children")
def create_child() -> tuple[dict[str, object], int]:
    """Add a child profile to the signed-in parent's account.
    ---
    tags:
      - Children
    responses:
      201:
        description: Child added
      400:
        description: Missing name or bad date
      401:
        description: Not signed in
      403:
        description: Caller is not a parent
    """
    user = get_current_user()
    if not user:
        return unauthorized()
    if not user.has_role("parent"):
        return forbidden("Only parents can add children")

    fields, error = _parse_child_payload(request.get_json(silent=True) or {})
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        child = ChildProfile(parent_id=user.user_id, **fields)
        db.session.add(child)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to add child", exc_info=exc)
        return jsonify({"error": "database_error", "message": friendly_message(exc, "Failed to save")}), 500

    return jsonify({"child": child.to_dict()}), 201


def _own_child(user: Profile, child_id: int):
    child = db.session.get(ChildProfile, child_id)
    if not child:
        return None, (jsonify({"error": "not_found", "message": "Child not found"}), 404)
    if child.parent_id != user.user_id:
        return None, forbidden("This child is not on your account")
    return child, None


@bp.put("/children/<int:child_id>")
def update_child(child_id: int) -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    child, error_response = _own_child(user, child_id)
    if error_response:
        return error_response

    fields, error = _parse_child_payload(request.get_json(silent=True) or {})
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        for key, value in fields.items():
            setattr(child, key, value)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update child", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"child": child.to_dict()}), 200


@bp.delete("/children/<int:child_id>")
def delete_child(child_id: int) -> tuple[dict[str, object], int]:
    """Remove a child profile together with the child's lesson history."""
    user = get_current_user()
    if not user:
        return unauthorized()

    child, error_response = _own_child(user, child_id)
    if error_response:
        return error_response

    try:
        db.session.delete(child)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete child", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"status": "deleted"}), 200


@bp.get("/parents/me/dashboard")
def parent_dashboard() -> tuple[dict[str, object], int]:
    """Children with their recent lessons and per-child counts."""
    user = get_current_user()
    if not user:
        return unauthorized()

    try:
        children = (
            ChildProfile.query.filter_by(parent_id=user.user_id)
            .order_by(ChildProfile.created_at.asc(), ChildProfile.child_id.asc())
            .all()
        )
        child_ids = [c.child_id for c in children]
        lessons = []
        if child_ids:
            lessons = (
                Lesson.query.filter(Lesson.child_id.in_(child_ids))
                .order_by(Lesson.scheduled_at.desc())
                .limit(20)
                .all()
            )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to load parent dashboard", exc_info=exc)
        return jsonify({"error": "database_error", "message": friendly_message(exc, "Failed to load data")}), 500

    now = local_now()
    payload = []
    for child in children:
        child_lessons = [l for l in lessons if l.child_id == child.child_id]
        data = child.to_dict()
        data["lessons"] = [l.to_dict() for l in child_lessons]
        data["upcoming_lessons"] = sum(1 for l in child_lessons if is_upcoming(l.scheduled_at, l.status, now))
        data["completed_lessons"] = sum(1 for l in child_lessons if l.status == "completed")
        payload.append(data)

    return jsonify({"children": payload}), 200
