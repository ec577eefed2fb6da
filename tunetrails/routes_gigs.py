"""Performer (gig) profiles and gig bookings."""
from __future__ import annotations

import math
from datetime import date

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .auth import forbidden, get_current_user, unauthorized
from .booking import (DEFAULT_BASE_PRICE, DEFAULT_GIG_HOURS,
                      DEFAULT_PRICE_PER_HOUR, gig_total, parse_schedule,
                      status_change_error)
from .errors import friendly_message, is_unique_violation
from .extensions import db
from .models import GigBooking, GigProfile

bp_gigs = Blueprint("api_gigs", __name__)

MAX_GENRES = 5
MAX_MEDIA_URLS = 5


def _in_price_range(base_price: float, price_range: str) -> bool:
    if price_range == "under5k":
        return base_price < 5000
    if price_range == "5k-15k":
        return 5000 <= base_price <= 15000
    if price_range == "over15k":
        return base_price > 15000
    return True


def _clean_urls(urls) -> list[str]:
    return [u.strip() for u in (urls or []) if isinstance(u, str) and u.strip()]


def _price_or_default(value, default: int):
    try:
        price = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(price):
        return default
    return price or default


def _apply_gig_payload(gig: GigProfile, payload: dict, creating: bool):
    """Copy onboarding fields onto ``gig``. Returns an error message or None."""
    if creating or "stage_name" in payload:
        stage_name = (payload.get("stage_name") or "").strip()
        if not stage_name:
            return "Please enter your stage name"
        gig.stage_name = stage_name

    if creating or "genres" in payload:
        genres = [g.strip() for g in (payload.get("genres") or []) if isinstance(g, str) and g.strip()]
        if not genres:
            return "Please select at least one genre"
        if len(genres) > MAX_GENRES:
            return f"You can select up to {MAX_GENRES} genres"
        gig.genres = genres

    for field, label in (("video_urls", "video"), ("audio_urls", "audio")):
        if creating or field in payload:
            urls = _clean_urls(payload.get(field))
            if len(urls) > MAX_MEDIA_URLS:
                return f"You can add up to {MAX_MEDIA_URLS} {label} links"
            setattr(gig, field, urls)

    if creating or "base_price" in payload:
        gig.base_price = _price_or_default(payload.get("base_price"), DEFAULT_BASE_PRICE)
    if creating or "price_per_hour" in payload:
        gig.price_per_hour = _price_or_default(payload.get("price_per_hour"), DEFAULT_PRICE_PER_HOUR)

    for field in ("bio", "performer_type", "location", "setlist", "tech_rider"):
        if field in payload:
            setattr(gig, field, (payload.get(field) or "").strip() or None)

    if "is_available" in payload:
        gig.is_available = bool(payload.get("is_available"))
    elif creating:
        gig.is_available = True

    return None


# ============================================================================
# Gig profiles
# ============================================================================

@bp_gigs.get("/gigs")
def list_gigs() -> tuple[dict[str, object], int]:
    """Browse available performers.
    ---
    tags:
      - Gigs
    parameters:
      - name: query
        in: query
        type: string
        description: Matches stage name or any genre, case-insensitive
      - name: performer_type
        in: query
        type: string
        description: '"All Types" or empty means no filter'
      - name: price_range
        in: query
        type: string
        enum: [under5k, 5k-15k, over15k]
    responses:
      200:
        description: Available gig profiles, highest rated first
      500:
        description: Database error
    """
    query = request.args.get("query", "").strip().lower()
    performer_type = request.args.get("performer_type", "").strip()
    price_range = request.args.get("price_range", "").strip()

    try:
        gigs = (
            GigProfile.query.filter(GigProfile.is_available.is_(True))
            .order_by(GigProfile.rating.desc(), GigProfile.gig_profile_id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch gig profiles", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    results = []
    for gig in gigs:
        if query:
            in_name = query in (gig.stage_name or "").lower()
            in_genres = any(query in (g or "").lower() for g in (gig.genres or []))
            if not in_name and not in_genres:
                continue

        if performer_type and performer_type != "All Types" and gig.performer_type != performer_type:
            continue

        if price_range and not _in_price_range(float(gig.base_price), price_range):
            continue

        results.append(gig.to_dict())

    return jsonify({"gigs": results, "total": len(results)}), 200


@bp_gigs.get("/gigs/<int:gig_profile_id>")
def get_gig(gig_profile_id: int) -> tuple[dict[str, object], int]:
    gig = db.session.get(GigProfile, gig_profile_id)
    if not gig:
        return jsonify({"error": "not_found", "message": "Performer not found"}), 404
    return jsonify({"gig": gig.to_dict()}), 200


@bp_gigs.post("/gigs")
def create_gig_profile() -> tuple[dict[str, object], int]:
    """Create the caller's performer profile.
    ---
    tags:
      - Gigs
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            stage_name:
              type: string
            genres:
              type: array
              items:
                type: string
              maxItems: 5
            performer_type:
              type: string
            base_price:
              type: number
              default: 5000
            price_per_hour:
              type: number
              default: 2000
            video_urls:
              type: array
              items:
                type: string
              maxItems: 5
            audio_urls:
              type: array
              items:
                type: string
              maxItems: 5
          required:
            - stage_name
            - genres
    responses:
      201:
        description: Performer profile created
      400:
        description: Invalid payload
      401:
        description: Not signed in
      409:
        description: Caller already has a performer profile
    """
    user = get_current_user()
    if not user:
        return unauthorized()

    payload = request.get_json(silent=True) or {}

    gig = GigProfile(user_id=user.user_id)
    error = _apply_gig_payload(gig, payload, creating=True)
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        db.session.add(gig)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if is_unique_violation(exc):
            return jsonify({"error": "conflict", "message": friendly_message(exc)}), 409
        current_app.logger.exception("Failed to create gig profile", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create gig profile", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Gig profile %s created for user %s", gig.gig_profile_id, user.user_id)
    return jsonify({"gig": gig.to_dict()}), 201


@bp_gigs.put("/gigs/me")
def update_my_gig_profile() -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    gig = GigProfile.query.filter_by(user_id=user.user_id).first()
    if not gig:
        return jsonify({"error": "not_found", "message": "Performer profile not found"}), 404

    payload = request.get_json(silent=True) or {}
    error = _apply_gig_payload(gig, payload, creating=False)
    if error:
        db.session.rollback()
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update gig profile", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"gig": gig.to_dict()}), 200


# ============================================================================
# Gig bookings
# ============================================================================

@bp_gigs.post("/gigs/<int:gig_profile_id>/bookings")
def book_gig(gig_profile_id: int) -> tuple[dict[str, object], int]:
    """Request a performer for an event.
    ---
    tags:
      - Gigs
    parameters:
      - name: gig_profile_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            event_date:
              type: string
              format: date
            start_time:
              type: string
              example: "18:00"
            duration_hours:
              type: integer
              default: 2
            event_type:
              type: string
            venue:
              type: string
            location:
              type: string
            special_requests:
              type: string
          required:
            - event_date
            - start_time
            - event_type
    responses:
      201:
        description: Booking created with status pending
      400:
        description: Invalid payload
      401:
        description: Not signed in
      404:
        description: Performer not found
    """
    user = get_current_user()
    if not user:
        return unauthorized("Please log in to book a performer")

    payload = request.get_json(silent=True) or {}
    event_date_str = payload.get("event_date")
    start_time_str = payload.get("start_time")
    event_type = (payload.get("event_type") or "").strip()

    if not all([event_date_str, start_time_str, event_type]):
        return jsonify({"error": "invalid_payload", "message": "Please fill in all required fields"}), 400

    try:
        event_date = date.fromisoformat(event_date_str)
        start_time = parse_schedule(event_date_str, start_time_str).time()
        duration_hours = int(payload.get("duration_hours") or DEFAULT_GIG_HOURS)
    except (TypeError, ValueError):
        return (
            jsonify({"error": "invalid_payload", "message": "event_date, start_time and duration_hours are malformed"}),
            400,
        )

    if duration_hours <= 0:
        return jsonify({"error": "invalid_payload", "message": "duration_hours must be positive"}), 400

    try:
        gig = db.session.get(GigProfile, gig_profile_id)
        if not gig:
            return jsonify({"error": "not_found", "message": "Performer not found"}), 404

        booking = GigBooking(
            gig_profile_id=gig.gig_profile_id,
            client_id=user.user_id,
            event_date=event_date,
            start_time=start_time,
            duration_hours=duration_hours,
            event_type=event_type,
            venue=(payload.get("venue") or "").strip() or None,
            location=(payload.get("location") or "").strip() or None,
            special_requests=(payload.get("special_requests") or "").strip() or None,
            total_price=gig_total(gig.base_price, gig.price_per_hour, duration_hours),
            status="pending",
        )
        db.session.add(booking)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to book gig", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Failed to submit booking"}), 500

    return jsonify({
        "message": "Booking request sent! The performer will respond shortly.",
        "booking": booking.to_dict(),
    }), 201


@bp_gigs.get("/gig-bookings")
def list_gig_bookings() -> tuple[dict[str, object], int]:
    """Gig bookings the caller made, or with ``role=performer`` the ones they received."""
    user = get_current_user()
    if not user:
        return unauthorized()

    role = request.args.get("role", "client")

    try:
        query = GigBooking.query
        if role == "performer":
            gig = GigProfile.query.filter_by(user_id=user.user_id).first()
            if not gig:
                return jsonify({"bookings": []}), 200
            query = query.filter(GigBooking.gig_profile_id == gig.gig_profile_id)
        else:
            query = query.filter(GigBooking.client_id == user.user_id)

        bookings = query.order_by(GigBooking.event_date.desc(), GigBooking.start_time.desc()).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch gig bookings", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"bookings": [b.to_dict() for b in bookings]}), 200


@bp_gigs.put("/gig-bookings/<int:booking_id>/status")
def update_gig_booking_status(booking_id: int) -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    try:
        booking = db.session.get(GigBooking, booking_id)
        if not booking:
            return jsonify({"error": "not_found", "message": "Booking not found"}), 404

        gig = booking.gig_profile
        if not gig or gig.user_id != user.user_id:
            return forbidden("Only the performer can change this booking")

        data = request.get_json(silent=True) or {}
        if "status" not in data:
            return jsonify({"error": "invalid_input", "message": "status is required"}), 400

        new_status = data["status"]
        error = status_change_error(booking.status, new_status)
        if error:
            return jsonify({"error": error[0], "message": error[1]}), 400

        if booking.status != "completed" and new_status == "completed":
            gig.total_gigs = (gig.total_gigs or 0) + 1

        booking.status = new_status
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update gig booking", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": f"Booking {new_status}", "booking": booking.to_dict()}), 200
