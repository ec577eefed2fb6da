"""Tests for lesson booking, status changes and dashboards."""
from __future__ import annotations

from datetime import date, timedelta

from tunetrails.extensions import db
from tunetrails.models import Lesson, TeacherProfile


def _teacher(client, register_user, email="teacher@example.com", rate=1200):
    _, headers = register_user(email, role="teacher", full_name="Wanjiku Strings", hourly_rate=rate)
    teacher_id = client.get("/auth/me", headers=headers).get_json()["user"]["teacher_profile_id"]
    return teacher_id, headers


def _book(client, headers, teacher_id, instrument_id, days_ahead=3, **extra):
    payload = {
        "teacher_id": teacher_id,
        "instrument_id": instrument_id,
        "date": (date.today() + timedelta(days=days_ahead)).isoformat(),
        "time": "14:00",
        **extra,
    }
    return client.post("/lessons", json=payload, headers=headers)


def test_booking_inserts_one_pending_lesson_priced_by_duration(app, client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user, rate=1200)
    student_id, student = register_user("student@example.com", full_name="Juma Student")

    response = _book(client, student, teacher_id, instruments["Piano"], duration_minutes=90, notes=" beginner ")

    assert response.status_code == 201
    lesson = response.get_json()["lesson"]
    assert lesson["status"] == "pending"
    assert lesson["price"] == 1800.0
    assert lesson["student_name"] == "Juma Student"
    assert lesson["teacher_name"] == "Wanjiku Strings"
    assert lesson["instrument_name"] == "Piano"
    assert lesson["lesson_type"] == "online"
    assert lesson["notes"] == "beginner"
    assert lesson["scheduled_at"].endswith("T14:00:00")

    with app.app_context():
        rows = Lesson.query.filter_by(student_id=student_id).all()
        assert len(rows) == 1
        assert rows[0].status == "pending"


def test_booking_defaults_to_an_hour(client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user, rate=500)
    _, student = register_user("hour@example.com")

    lesson = _book(client, student, teacher_id, instruments["Guitar"]).get_json()["lesson"]

    assert lesson["duration_minutes"] == 60
    assert lesson["price"] == 500.0


def test_booking_requires_login(client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user)

    response = _book(client, {}, teacher_id, instruments["Piano"])

    assert response.status_code == 401
    assert response.get_json()["message"] == "Please log in to book a lesson"


def test_booking_requires_fields(client, register_user) -> None:
    _, student = register_user("fields@example.com")

    response = client.post("/lessons", json={"teacher_id": 1}, headers=student)

    assert response.status_code == 400
    assert response.get_json()["message"] == "Please fill in all required fields"


def test_booking_rejects_malformed_time_and_type(client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user)
    _, student = register_user("malformed@example.com")

    assert _book(client, student, teacher_id, instruments["Piano"], time="2pm").status_code == 400
    assert _book(client, student, teacher_id, instruments["Piano"], lesson_type="carrier_pigeon").status_code == 400


def test_booking_unknown_teacher_or_instrument(client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user)
    _, student = register_user("unknown@example.com")

    assert _book(client, student, 9999, instruments["Piano"]).status_code == 404
    assert _book(client, student, teacher_id, 9999).status_code == 404


def test_booking_for_someone_elses_child_is_rejected(client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user)
    _, parent = register_user("parent@example.com", role="parent")
    _, other = register_user("other@example.com", role="parent")
    child_id = client.post("/children", json={"full_name": "Tumaini"}, headers=parent).get_json()["child"]["id"]

    response = _book(client, other, teacher_id, instruments["Piano"], child_id=child_id)

    assert response.status_code == 404


def test_same_slot_can_be_booked_twice(app, client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user)
    _, first = register_user("first@example.com")
    _, second = register_user("second@example.com")

    assert _book(client, first, teacher_id, instruments["Piano"]).status_code == 201
    assert _book(client, second, teacher_id, instruments["Piano"]).status_code == 201

    with app.app_context():
        assert Lesson.query.filter_by(teacher_id=teacher_id).count() == 2


def test_list_lessons_by_role(client, register_user, instruments) -> None:
    teacher_id, teacher = _teacher(client, register_user)
    _, student = register_user("lister@example.com")
    _book(client, student, teacher_id, instruments["Piano"], days_ahead=2)
    _book(client, student, teacher_id, instruments["Guitar"], days_ahead=6)

    as_student = client.get("/lessons", headers=student).get_json()["lessons"]
    as_teacher = client.get("/lessons?role=teacher", headers=teacher).get_json()["lessons"]

    assert [l["instrument_name"] for l in as_student] == ["Guitar", "Piano"]
    assert len(as_teacher) == 2
    assert client.get("/lessons?role=teacher", headers=student).get_json()["lessons"] == []


def test_teacher_moves_lesson_through_statuses(app, client, register_user, instruments) -> None:
    teacher_id, teacher = _teacher(client, register_user)
    _, student = register_user("status@example.com")
    lesson_id = _book(client, student, teacher_id, instruments["Piano"]).get_json()["lesson"]["id"]

    confirmed = client.put(f"/lessons/{lesson_id}/status", json={"status": "confirmed"}, headers=teacher)
    assert confirmed.status_code == 200
    assert confirmed.get_json()["lesson"]["status"] == "confirmed"

    completed = client.put(f"/lessons/{lesson_id}/status", json={"status": "completed"}, headers=teacher)
    assert completed.status_code == 200

    with app.app_context():
        assert db.session.get(TeacherProfile, teacher_id).total_lessons == 1

    reopened = client.put(f"/lessons/{lesson_id}/status", json={"status": "cancelled"}, headers=teacher)
    assert reopened.status_code == 400
    assert reopened.get_json()["error"] == "invalid_transition"


def test_cancelled_lesson_is_terminal(client, register_user, instruments) -> None:
    teacher_id, teacher = _teacher(client, register_user)
    _, student = register_user("cancel@example.com")
    lesson_id = _book(client, student, teacher_id, instruments["Piano"]).get_json()["lesson"]["id"]

    client.put(f"/lessons/{lesson_id}/status", json={"status": "cancelled"}, headers=teacher)
    response = client.put(f"/lessons/{lesson_id}/status", json={"status": "confirmed"}, headers=teacher)

    assert response.status_code == 400
    assert response.get_json()["message"] == "Cannot change status of a cancelled booking"


def test_only_the_teacher_changes_lesson_status(client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user)
    _, other_teacher = _teacher(client, register_user, email="other-teacher@example.com")
    _, student = register_user("nosy@example.com")
    lesson_id = _book(client, student, teacher_id, instruments["Piano"]).get_json()["lesson"]["id"]

    assert client.put(f"/lessons/{lesson_id}/status", json={"status": "confirmed"}, headers=student).status_code == 403
    assert (
        client.put(f"/lessons/{lesson_id}/status", json={"status": "confirmed"}, headers=other_teacher).status_code
        == 403
    )


def test_invalid_status_value(client, register_user, instruments) -> None:
    teacher_id, teacher = _teacher(client, register_user)
    _, student = register_user("invalid@example.com")
    lesson_id = _book(client, student, teacher_id, instruments["Piano"]).get_json()["lesson"]["id"]

    response = client.put(f"/lessons/{lesson_id}/status", json={"status": "done"}, headers=teacher)

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_status"
    assert client.put("/lessons/9999/status", json={"status": "confirmed"}, headers=teacher).status_code == 404


def test_student_dashboard_splits_upcoming_and_past(client, register_user, instruments) -> None:
    teacher_id, teacher = _teacher(client, register_user, rate=1000)
    _, student = register_user("dash@example.com")

    past_id = _book(client, student, teacher_id, instruments["Piano"], days_ahead=-2).get_json()["lesson"]["id"]
    _book(client, student, teacher_id, instruments["Piano"], days_ahead=2)
    cancelled_id = _book(client, student, teacher_id, instruments["Guitar"], days_ahead=4).get_json()["lesson"]["id"]

    client.put(f"/lessons/{past_id}/status", json={"status": "completed"}, headers=teacher)
    client.put(f"/lessons/{cancelled_id}/status", json={"status": "cancelled"}, headers=teacher)

    response = client.get("/students/me/dashboard", headers=student)

    assert response.status_code == 200
    body = response.get_json()
    assert len(body["upcoming"]) == 1
    assert [l["id"] for l in body["past"]] == [past_id]
    assert body["stats"] == {
        "totalLessons": 3,
        "upcomingLessons": 1,
        "completedLessons": 1,
        "totalSpent": 3000.0,
    }


def test_teacher_dashboard_lists_pending(client, register_user, instruments) -> None:
    teacher_id, teacher = _teacher(client, register_user)
    _, student = register_user("pending@example.com")
    first = _book(client, student, teacher_id, instruments["Piano"], days_ahead=1).get_json()["lesson"]["id"]
    _book(client, student, teacher_id, instruments["Piano"], days_ahead=2)
    client.put(f"/lessons/{first}/status", json={"status": "confirmed"}, headers=teacher)

    body = client.get("/teachers/me/dashboard", headers=teacher).get_json()

    assert len(body["lessons"]) == 2
    assert len(body["upcoming"]) == 2
    assert len(body["pending"]) == 1
    assert body["pending"][0]["student_name"] == "Test User"


def test_booking_rejects_non_string_time(client, register_user, instruments) -> None:
    teacher_id, _ = _teacher(client, register_user)
    _, student = register_user("numeric-time@example.com")

    response = _book(client, student, teacher_id, instruments["Piano"], time=1400)

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"
