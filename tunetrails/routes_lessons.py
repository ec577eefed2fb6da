"""Teacher listings, lesson booking and lesson meetings."""
from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from .auth import forbidden, get_current_user, unauthorized
from .booking import (DEFAULT_HOURLY_RATE, DEFAULT_LESSON_MINUTES,
                      available_slots, is_upcoming, lesson_price, local_now,
                      parse_schedule, status_change_error, whole_number)
from .extensions import db
from .meetings import MeetingProviderError, ZoomClient
from .models import (ChildProfile, Instrument, Lesson, TeacherInstrument,
                     TeacherProfile)

bp_lessons = Blueprint("api_lessons", __name__)


def _my_teacher_profile(user):
    """Return (teacher_profile, error_response) for a caller who must be a teacher."""
    if not user.has_role("teacher"):
        return None, forbidden("Only teachers can access this page")
    teacher = TeacherProfile.query.filter_by(user_id=user.user_id).first()
    if not teacher:
        return None, (jsonify({"error": "not_found", "message": "Teacher profile required"}), 404)
    return teacher, None


# ============================================================================
# Teachers
# ============================================================================

@bp_lessons.get("/teachers")
def list_teachers() -> tuple[dict[str, object], int]:
    """Browse teachers with search and filters.
    ---
    tags:
      - Teachers
    parameters:
      - name: query
        in: query
        type: string
        description: Case-insensitive match on name or bio
      - name: instrument_id
        in: query
        type: integer
      - name: location
        in: query
        type: string
      - name: min_price
        in: query
        type: number
        default: 0
      - name: max_price
        in: query
        type: number
        default: 10000
      - name: min_rating
        in: query
        type: number
        default: 0
    responses:
      200:
        description: Matching teachers
      400:
        description: Invalid parameters
      500:
        description: Database error
    """
    try:
        query = request.args.get("query", "").strip().lower()
        location = request.args.get("location", "").strip().lower()
        instrument_id = request.args.get("instrument_id", type=int)
        min_price = float(request.args.get("min_price", 0))
        max_price = float(request.args.get("max_price", 10000))
        min_rating = float(request.args.get("min_rating", 0))

        teachers = (
            TeacherProfile.query.options(
                joinedload(TeacherProfile.user),
                joinedload(TeacherProfile.instrument_links).joinedload(TeacherInstrument.instrument),
            )
            .order_by(TeacherProfile.rating.desc(), TeacherProfile.teacher_id.asc())
            .all()
        )
    except (ValueError, TypeError) as exc:
        current_app.logger.warning(f"Invalid teacher filter parameters: {exc}")
        return jsonify({"error": "invalid_parameters"}), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch teachers", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    results = []
    for teacher in teachers:
        profile = teacher.user
        if not profile:
            continue

        if query:
            name = (profile.full_name or "").lower()
            bio = (profile.bio or "").lower()
            if query not in name and query not in bio:
                continue

        if instrument_id and not any(
            link.instrument_id == instrument_id for link in teacher.instrument_links
        ):
            continue

        if location and location not in (profile.location or "").lower():
            continue

        rate = float(teacher.hourly_rate)
        if rate < min_price or rate > max_price:
            continue

        if min_rating > 0 and (teacher.rating or 0) < min_rating:
            continue

        results.append(teacher.to_dict())

    return jsonify({"teachers": results, "total": len(results)}), 200


@bp_lessons.get("/teachers/<int:teacher_id>")
def get_teacher(teacher_id: int) -> tuple[dict[str, object], int]:
    teacher = db.session.get(TeacherProfile, teacher_id)
    if not teacher:
        return jsonify({"error": "not_found", "message": "Teacher not found"}), 404
    return jsonify({"teacher": teacher.to_dict()}), 200


@bp_lessons.put("/teachers/me")
def update_my_teacher_profile() -> tuple[dict[str, object], int]:
    """Save onboarding or dashboard changes to the caller's teacher profile.

    Person fields (name, bio, location, phone) are saved on the profile row,
    teaching fields on the teacher row. Rates and experience that do not parse
    fall back to their defaults.
    """
    user = get_current_user()
    if not user:
        return unauthorized()

    teacher, error_response = _my_teacher_profile(user)
    if error_response:
        return error_response

    payload = request.get_json(silent=True) or {}

    if "full_name" in payload:
        full_name = (payload.get("full_name") or "").strip()
        if not full_name:
            return jsonify({"error": "invalid_payload", "message": "full_name cannot be empty"}), 400
        user.full_name = full_name
    for field in ("bio", "location", "phone"):
        if field in payload:
            setattr(user, field, (payload.get(field) or "").strip() or None)

    if "hourly_rate" in payload:
        teacher.hourly_rate = whole_number(payload.get("hourly_rate"), DEFAULT_HOURLY_RATE)
    if "experience_years" in payload:
        teacher.experience_years = whole_number(payload.get("experience_years"), 0)
    for field in ("teaching_style", "availability"):
        if field in payload:
            setattr(teacher, field, (payload.get(field) or "").strip() or None)
    for field in ("is_online_available", "is_in_person_available"):
        if field in payload:
            setattr(teacher, field, bool(payload.get(field)))

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save teacher profile", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Failed to save profile"}), 500

    return jsonify({"teacher": teacher.to_dict()}), 200


@bp_lessons.put("/teachers/me/instruments")
def set_my_instruments() -> tuple[dict[str, object], int]:
    """Replace the instruments the caller teaches.
    ---
    tags:
      - Teachers
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            instruments:
              type: array
              items:
                type: string
              description: Instrument names; unknown names are skipped
    responses:
      200:
        description: Instruments saved
      400:
        description: No instruments selected
      403:
        description: Caller is not a teacher
    """
    user = get_current_user()
    if not user:
        return unauthorized()

    teacher, error_response = _my_teacher_profile(user)
    if error_response:
        return error_response

    payload = request.get_json(silent=True) or {}
    names = [n.strip() for n in (payload.get("instruments") or []) if isinstance(n, str) and n.strip()]
    if not names:
        return (
            jsonify({"error": "invalid_payload", "message": "Please select at least one instrument you teach"}),
            400,
        )

    try:
        by_name = {i.name.lower(): i for i in Instrument.query.all()}

        TeacherInstrument.query.filter_by(teacher_id=teacher.teacher_id).delete()

        linked = set()
        for name in names:
            instrument = by_name.get(name.lower())
            # Only catalogue instruments can be linked
            if instrument is None or instrument.instrument_id in linked:
                continue
            db.session.add(TeacherInstrument(teacher_id=teacher.teacher_id, instrument_id=instrument.instrument_id))
            linked.add(instrument.instrument_id)

        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save teacher instruments", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Failed to update profile"}), 500

    db.session.refresh(teacher)
    return jsonify({"teacher": teacher.to_dict()}), 200


@bp_lessons.post("/teachers/me/instruments/<int:instrument_id>/toggle")
def toggle_my_instrument(instrument_id: int) -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    teacher, error_response = _my_teacher_profile(user)
    if error_response:
        return error_response

    if not db.session.get(Instrument, instrument_id):
        return jsonify({"error": "not_found", "message": "Instrument not found"}), 404

    try:
        link = TeacherInstrument.query.filter_by(
            teacher_id=teacher.teacher_id, instrument_id=instrument_id
        ).first()
        if link:
            db.session.delete(link)
            teaches = False
        else:
            db.session.add(TeacherInstrument(teacher_id=teacher.teacher_id, instrument_id=instrument_id))
            teaches = True
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to toggle instrument", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"instrument_id": instrument_id, "teaches": teaches}), 200


@bp_lessons.get("/teachers/<int:teacher_id>/availability")
def get_teacher_availability(teacher_id: int) -> tuple[dict[str, object], int]:
    """Open booking-form slots for a teacher on one day.
    ---
    tags:
      - Teachers
    parameters:
      - name: date
        in: query
        type: string
        required: true
        description: YYYY-MM-DD
      - name: duration_minutes
        in: query
        type: integer
        default: 60
    responses:
      200:
        description: Start times not overlapped by an existing booking
      400:
        description: Missing or malformed date
      404:
        description: Teacher not found
    """
    date_str = request.args.get("date")
    duration_minutes = request.args.get("duration_minutes", DEFAULT_LESSON_MINUTES, type=int)

    if not date_str:
        return jsonify({"error": "invalid_payload", "message": "date (YYYY-MM-DD) is required"}), 400

    try:
        target_date = date.fromisoformat(date_str)
    except ValueError:
        return jsonify({"error": "invalid_payload", "message": "date must be in YYYY-MM-DD format"}), 400

    if not db.session.get(TeacherProfile, teacher_id):
        return jsonify({"error": "not_found", "message": "Teacher not found"}), 404

    try:
        day_start = parse_schedule(target_date.isoformat(), "00:00")
        day_end = parse_schedule(target_date.isoformat(), "23:59")
        lessons = Lesson.query.filter(
            Lesson.teacher_id == teacher_id,
            Lesson.status != "cancelled",
            Lesson.scheduled_at >= day_start,
            Lesson.scheduled_at <= day_end,
        ).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to check availability", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "date": target_date.isoformat(),
        "available_slots": available_slots(target_date, lessons, duration_minutes),
    }), 200


# ============================================================================
# Lessons
# ============================================================================

@bp_lessons.post("/lessons")
def book_lesson() -> tuple[dict[str, object], int]:
    """Book a lesson with a teacher.
    ---
    tags:
      - Lessons
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            teacher_id:
              type: integer
            instrument_id:
              type: integer
            date:
              type: string
              format: date
            time:
              type: string
              example: "14:00"
            duration_minutes:
              type: integer
              default: 60
            lesson_type:
              type: string
              enum: [online, in_person]
            notes:
              type: string
            child_id:
              type: integer
              description: Book on behalf of one of the caller's children
          required:
            - teacher_id
            - instrument_id
            - date
            - time
    responses:
      201:
        description: Lesson created with status pending
      400:
        description: Invalid payload
      401:
        description: Not signed in
      404:
        description: Teacher, instrument or child not found
      500:
        description: Server error
    """
    user = get_current_user()
    if not user:
        return unauthorized("Please log in to book a lesson")

    payload = request.get_json(silent=True) or {}

    teacher_id = payload.get("teacher_id")
    instrument_id = payload.get("instrument_id")
    date_str = payload.get("date")
    time_str = payload.get("time")
    lesson_type = (payload.get("lesson_type") or "online").strip()
    notes = (payload.get("notes") or "").strip() or None
    child_id = payload.get("child_id")

    if not all([teacher_id, instrument_id, date_str, time_str]):
        return jsonify({"error": "invalid_payload", "message": "Please fill in all required fields"}), 400

    try:
        duration_minutes = int(payload.get("duration_minutes") or DEFAULT_LESSON_MINUTES)
        scheduled_at = parse_schedule(date_str, time_str)
    except (TypeError, ValueError):
        return (
            jsonify({"error": "invalid_payload", "message": "date, time and duration_minutes are malformed"}),
            400,
        )

    if duration_minutes <= 0:
        return jsonify({"error": "invalid_payload", "message": "duration_minutes must be positive"}), 400

    if lesson_type not in ("online", "in_person"):
        return jsonify({"error": "invalid_payload", "message": "lesson_type must be online or in_person"}), 400

    try:
        teacher = db.session.get(TeacherProfile, teacher_id)
        if not teacher:
            return jsonify({"error": "not_found", "message": "Teacher not found"}), 404

        if not db.session.get(Instrument, instrument_id):
            return jsonify({"error": "not_found", "message": "Instrument not found"}), 404

        if child_id is not None:
            child = db.session.get(ChildProfile, child_id)
            if not child or child.parent_id != user.user_id:
                return jsonify({"error": "not_found", "message": "Child not found"}), 404

        lesson = Lesson(
            student_id=user.user_id,
            teacher_id=teacher.teacher_id,
            instrument_id=instrument_id,
            child_id=child_id,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            price=lesson_price(teacher.hourly_rate, duration_minutes),
            lesson_type=lesson_type,
            notes=notes,
            status="pending",
        )
        db.session.add(lesson)
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to book lesson", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Failed to book lesson. Please try again."}), 500

    current_app.logger.info("Lesson %s booked with teacher %s", lesson.lesson_id, teacher.teacher_id)
    return jsonify({
        "message": "Lesson booked successfully! The teacher will confirm shortly.",
        "lesson": lesson.to_dict(),
    }), 201


@bp_lessons.get("/lessons")
def list_my_lessons() -> tuple[dict[str, object], int]:
    """Lessons for the caller, newest first. ``role=teacher`` lists lessons they teach."""
    user = get_current_user()
    if not user:
        return unauthorized()

    role = request.args.get("role", "student")

    try:
        query = Lesson.query
        if role == "teacher":
            teacher = TeacherProfile.query.filter_by(user_id=user.user_id).first()
            if not teacher:
                return jsonify({"lessons": []}), 200
            query = query.filter(Lesson.teacher_id == teacher.teacher_id)
        else:
            query = query.filter(Lesson.student_id == user.user_id)

        lessons = query.order_by(Lesson.scheduled_at.desc()).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch lessons", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"lessons": [l.to_dict() for l in lessons]}), 200


@bp_lessons.put("/lessons/<int:lesson_id>/status")
def update_lesson_status(lesson_id: int) -> tuple[dict[str, object], int]:
    """Confirm, complete or cancel a lesson (teacher only).
    ---
    tags:
      - Lessons
    parameters:
      - in: path
        name: lesson_id
        required: true
        schema:
          type: integer
      - in: body
        name: body
        required: true
        schema:
          properties:
            status:
              type: string
              enum: [pending, confirmed, completed, cancelled]
    responses:
      200:
        description: Lesson status updated
      400:
        description: Invalid status or transition
      401:
        description: Not signed in
      403:
        description: Caller does not teach this lesson
      404:
        description: Lesson not found
      500:
        description: Database error
    """
    user = get_current_user()
    if not user:
        return unauthorized()

    try:
        lesson = db.session.get(Lesson, lesson_id)
        if not lesson:
            return jsonify({"error": "not_found", "message": "Lesson not found"}), 404

        if not lesson.teacher or lesson.teacher.user_id != user.user_id:
            return forbidden("Only the lesson's teacher can change its status")

        data = request.get_json(silent=True) or {}
        if "status" not in data:
            return jsonify({"error": "invalid_input", "message": "status is required"}), 400

        new_status = data["status"]
        error = status_change_error(lesson.status, new_status)
        if error:
            return jsonify({"error": error[0], "message": error[1]}), 400

        if lesson.status != "completed" and new_status == "completed":
            lesson.teacher.total_lessons = (lesson.teacher.total_lessons or 0) + 1

        lesson.status = new_status
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update lesson status", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Failed to update lesson"}), 500

    return jsonify({"message": f"Lesson {new_status}", "lesson": lesson.to_dict()}), 200


# ============================================================================
# Dashboards
# ============================================================================

@bp_lessons.get("/students/me/dashboard")
def student_dashboard() -> tuple[dict[str, object], int]:
    """Upcoming and past lessons plus totals for the signed-in student."""
    user = get_current_user()
    if not user:
        return unauthorized()

    try:
        lessons = (
            Lesson.query.filter(Lesson.student_id == user.user_id)
            .order_by(Lesson.scheduled_at.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to load student dashboard", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    now = local_now()
    upcoming = [l for l in lessons if is_upcoming(l.scheduled_at, l.status, now)]
    past = [l for l in lessons if l.scheduled_at <= now or l.status == "completed"]

    return jsonify({
        "upcoming": [l.to_dict() for l in upcoming],
        "past": [l.to_dict() for l in past],
        "stats": {
            "totalLessons": len(lessons),
            "upcomingLessons": len(upcoming),
            "completedLessons": sum(1 for l in lessons if l.status == "completed"),
            "totalSpent": float(sum((l.price or 0) for l in lessons)),
        },
    }), 200


@bp_lessons.get("/teachers/me/dashboard")
def teacher_dashboard() -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    teacher, error_response = _my_teacher_profile(user)
    if error_response:
        return error_response

    try:
        lessons = (
            Lesson.query.filter(Lesson.teacher_id == teacher.teacher_id)
            .order_by(Lesson.scheduled_at.desc())
            .all()
        )
        instruments = Instrument.query.order_by(Instrument.name.asc()).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to load teacher dashboard", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    now = local_now()
    return jsonify({
        "teacher": teacher.to_dict(),
        "lessons": [l.to_dict() for l in lessons],
        "upcoming": [l.to_dict() for l in lessons if is_upcoming(l.scheduled_at, l.status, now)],
        "pending": [l.to_dict() for l in lessons if l.status == "pending"],
        "all_instruments": [i.to_dict() for i in instruments],
    }), 200


# ============================================================================
# Meetings
# ============================================================================

@bp_lessons.post("/meetings")
def create_meeting() -> tuple[dict[str, object], int]:
    """Create a Zoom meeting for an online lesson (teachers only).
    ---
    tags:
      - Meetings
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            topic:
              type: string
            start_time:
              type: string
              format: date-time
            duration:
              type: integer
            agenda:
              type: string
            lesson_id:
              type: integer
              description: Store the join URL on this lesson
          required:
            - start_time
    responses:
      200:
        description: Meeting created
      400:
        description: Missing start_time or Zoom not configured
      401:
        description: Not signed in
      403:
        description: Caller is not a teacher, or does not teach the lesson
      502:
        description: Zoom rejected the request
    """
    user = get_current_user()
    if not user:
        return unauthorized()
    if not user.has_role("teacher"):
        return forbidden("Only teachers can create meetings")

    payload = request.get_json(silent=True) or {}
    start_time = payload.get("start_time")
    lesson_id = payload.get("lesson_id")

    if not start_time:
        return jsonify({"error": "invalid_payload", "message": "start_time is required"}), 400

    lesson = None
    if lesson_id is not None:
        lesson = db.session.get(Lesson, lesson_id)
        if not lesson:
            return jsonify({"error": "not_found", "message": "Lesson not found"}), 404
        if not lesson.teacher or lesson.teacher.user_id != user.user_id:
            return forbidden("You do not teach this lesson")

    zoom = ZoomClient.from_config(current_app.config)
    if zoom is None:
        current_app.logger.warning("Zoom credentials not configured")
        return jsonify({
            "error": "Zoom integration not configured",
            "message": "Please configure ZOOM_ACCOUNT_ID, ZOOM_CLIENT_ID, and ZOOM_CLIENT_SECRET",
        }), 400

    current_app.logger.info("Creating Zoom meeting for user %s at %s", user.user_id, start_time)

    try:
        meeting = zoom.create_meeting(
            start_time=start_time,
            topic=payload.get("topic"),
            duration=payload.get("duration"),
            agenda=payload.get("agenda"),
        )
    except MeetingProviderError as exc:
        current_app.logger.error("Error creating Zoom meeting: %s", exc)
        return jsonify({"error": str(exc)}), 502

    if lesson is not None:
        try:
            lesson.meeting_link = meeting["join_url"]
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Failed to save meeting link", exc_info=exc)
            return jsonify({"error": "database_error"}), 500

    return jsonify(meeting), 200
