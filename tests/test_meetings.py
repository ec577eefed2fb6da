"""Tests for Zoom meeting creation."""
from __future__ import annotations

from datetime import date, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests

from tunetrails.extensions import db
from tunetrails.meetings import MeetingProviderError, ZoomClient
from tunetrails.models import Lesson

ZOOM_CONFIG = {
    "ZOOM_ACCOUNT_ID": "acct-1",
    "ZOOM_CLIENT_ID": "client-1",
    "ZOOM_CLIENT_SECRET": "secret-1",
}


def _response(ok=True, payload=None, text=""):
    resp = MagicMock()
    resp.ok = ok
    resp.json.return_value = payload or {}
    resp.text = text
    return resp


def _zoom_ok():
    return [
        _response(payload={"access_token": "tok-123"}),
        _response(payload={
            "id": 8812345,
            "join_url": "https://zoom.us/j/8812345",
            "start_url": "https://zoom.us/s/8812345",
            "password": "abc123",
        }),
    ]


def test_client_exchanges_token_then_creates_meeting() -> None:
    zoom = ZoomClient("acct-1", "client-1", "secret-1")

    with patch("tunetrails.meetings.requests.post", side_effect=_zoom_ok()) as mock_post:
        meeting = zoom.create_meeting(start_time="2030-01-05T10:00:00")

    assert meeting == {
        "meeting_id": 8812345,
        "join_url": "https://zoom.us/j/8812345",
        "start_url": "https://zoom.us/s/8812345",
        "password": "abc123",
    }

    token_call, meeting_call = mock_post.call_args_list
    assert token_call.args[0] == "https://zoom.us/oauth/token"
    assert token_call.kwargs["params"] == {"grant_type": "account_credentials", "account_id": "acct-1"}
    assert token_call.kwargs["auth"] == ("client-1", "secret-1")

    assert meeting_call.args[0] == "https://api.zoom.us/v2/users/me/meetings"
    assert meeting_call.kwargs["headers"] == {"Authorization": "Bearer tok-123"}
    body = meeting_call.kwargs["json"]
    assert body["type"] == 2
    assert body["topic"] == "Music Lesson"
    assert body["duration"] == 60
    assert body["timezone"] == "Africa/Nairobi"
    assert body["agenda"] == "Music lesson via Tunetrails"


def test_client_raises_when_token_rejected() -> None:
    zoom = ZoomClient("acct-1", "client-1", "secret-1")

    with patch("tunetrails.meetings.requests.post", return_value=_response(ok=False, text="invalid_client")):
        with pytest.raises(MeetingProviderError, match="Failed to authenticate with Zoom"):
            zoom.get_access_token()


def test_client_wraps_network_errors() -> None:
    zoom = ZoomClient("acct-1", "client-1", "secret-1")

    with patch("tunetrails.meetings.requests.post", side_effect=requests.ConnectionError("down")):
        with pytest.raises(MeetingProviderError):
            zoom.get_access_token()


def test_from_config_needs_every_credential() -> None:
    assert ZoomClient.from_config({"ZOOM_ACCOUNT_ID": "a", "ZOOM_CLIENT_ID": "b"}) is None
    assert isinstance(ZoomClient.from_config(ZOOM_CONFIG), ZoomClient)


def test_meeting_endpoint_requires_teacher(client, register_user) -> None:
    _, student = register_user("student@example.com")

    assert client.post("/meetings", json={"start_time": "2030-01-05T10:00:00"}).status_code == 401
    assert client.post("/meetings", json={"start_time": "2030-01-05T10:00:00"}, headers=student).status_code == 403


def test_meeting_endpoint_not_configured(client, register_user) -> None:
    _, teacher = register_user("unconfigured@example.com", role="teacher")

    response = client.post("/meetings", json={"start_time": "2030-01-05T10:00:00"}, headers=teacher)

    assert response.status_code == 400
    assert response.get_json()["error"] == "Zoom integration not configured"


def test_meeting_endpoint_stores_join_url_on_lesson(app, client, register_user, instruments) -> None:
    app.config.update(ZOOM_CONFIG)
    _, teacher = register_user("zoom-teacher@example.com", role="teacher")
    _, student = register_user("zoom-student@example.com")
    teacher_id = client.get("/auth/me", headers=teacher).get_json()["user"]["teacher_profile_id"]
    lesson_id = client.post(
        "/lessons",
        json={
            "teacher_id": teacher_id,
            "instrument_id": instruments["Piano"],
            "date": (date.today() + timedelta(days=1)).isoformat(),
            "time": "16:00",
        },
        headers=student,
    ).get_json()["lesson"]["id"]

    with patch("tunetrails.meetings.requests.post", side_effect=_zoom_ok()):
        response = client.post(
            "/meetings",
            json={"start_time": "2030-01-05T10:00:00", "topic": "Piano basics", "lesson_id": lesson_id},
            headers=teacher,
        )

    assert response.status_code == 200
    assert response.get_json()["join_url"] == "https://zoom.us/j/8812345"

    with app.app_context():
        assert db.session.get(Lesson, lesson_id).meeting_link == "https://zoom.us/j/8812345"


def test_meeting_endpoint_rejects_other_teachers_lesson(app, client, register_user, instruments) -> None:
    app.config.update(ZOOM_CONFIG)
    _, owner = register_user("owner-teacher@example.com", role="teacher")
    _, intruder = register_user("intruder-teacher@example.com", role="teacher")
    _, student = register_user("owner-student@example.com")
    teacher_id = client.get("/auth/me", headers=owner).get_json()["user"]["teacher_profile_id"]
    lesson_id = client.post(
        "/lessons",
        json={
            "teacher_id": teacher_id,
            "instrument_id": instruments["Guitar"],
            "date": (date.today() + timedelta(days=1)).isoformat(),
            "time": "16:00",
        },
        headers=student,
    ).get_json()["lesson"]["id"]

    with patch("tunetrails.meetings.requests.post") as mock_post:
        response = client.post(
            "/meetings",
            json={"start_time": "2030-01-05T10:00:00", "lesson_id": lesson_id},
            headers=intruder,
        )

    assert response.status_code == 403
    mock_post.assert_not_called()


def test_meeting_endpoint_maps_provider_failure(app, client, register_user) -> None:
    app.config.update(ZOOM_CONFIG)
    _, teacher = register_user("fail-teacher@example.com", role="teacher")

    failures = [_response(payload={"access_token": "tok"}), _response(ok=False, text="quota exceeded")]
    with patch("tunetrails.meetings.requests.post", side_effect=failures):
        response = client.post("/meetings", json={"start_time": "2030-01-05T10:00:00"}, headers=teacher)

    assert response.status_code == 502
    assert response.get_json()["error"] == "Failed to create Zoom meeting"


def test_client_raises_when_token_body_has_no_access_token() -> None:
    zoom = ZoomClient("acct-1", "client-1", "secret-1")

    with patch("tunetrails.meetings.requests.post", return_value=_response(payload={"error": "nope"})):
        with pytest.raises(MeetingProviderError, match="Failed to authenticate with Zoom"):
            zoom.get_access_token()


def test_client_raises_when_token_body_is_not_json() -> None:
    zoom = ZoomClient("acct-1", "client-1", "secret-1")
    resp = _response(text="<html>gateway</html>")
    resp.json.side_effect = ValueError("not json")

    with patch("tunetrails.meetings.requests.post", return_value=resp):
        with pytest.raises(MeetingProviderError):
            zoom.get_access_token()


def test_meeting_endpoint_maps_malformed_meeting_body(app, client, register_user) -> None:
    app.config.update(ZOOM_CONFIG)
    _, teacher = register_user("malformed-teacher@example.com", role="teacher")

    replies = [_response(payload={"access_token": "tok"}), _response(payload={"id": 1})]
    with patch("tunetrails.meetings.requests.post", side_effect=replies):
        response = client.post("/meetings", json={"start_time": "2030-01-05T10:00:00"}, headers=teacher)

    assert response.status_code == 502
    assert response.get_json()["error"] == "Failed to create Zoom meeting"
