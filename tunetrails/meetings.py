"""Zoom client used to create video meetings for online lessons.

Uses a server-to-server OAuth app: each call exchanges the account
credentials for a short-lived access token, then creates a scheduled meeting
on the account owner's calendar.
"""
from __future__ import annotations

import logging

import requests

logger = logging.getLogger(__name__)

TOKEN_URL = "https://zoom.us/oauth/token"
MEETINGS_URL = "https://api.zoom.us/v2/users/me/meetings"

SCHEDULED_MEETING = 2
MEETING_TIMEZONE = "Africa/Nairobi"

DEFAULT_TOPIC = "Music Lesson"
DEFAULT_AGENDA = "Music lesson via Tunetrails"
DEFAULT_DURATION = 60

MEETING_SETTINGS = {
    "host_video": True,
    "participant_video": True,
    "join_before_host": True,
    "mute_upon_entry": False,
    "waiting_room": False,
    "auto_recording": "none",
}


class MeetingProviderError(Exception):
    """Raised when Zoom rejects a token exchange or meeting request."""


class ZoomClient:
    def __init__(self, account_id: str, client_id: str, client_secret: str, timeout: int = 15):
        self.account_id = account_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "ZoomClient | None":
        """Build a client from app config, or None when credentials are missing."""
        account_id = config.get("ZOOM_ACCOUNT_ID")
        client_id = config.get("ZOOM_CLIENT_ID")
        client_secret = config.get("ZOOM_CLIENT_SECRET")
        if not (account_id and client_id and client_secret):
            return None
        return cls(account_id, client_id, client_secret, timeout=config.get("ZOOM_TIMEOUT", 15))

    def get_access_token(self) -> str:
        try:
            resp = requests.post(
                TOKEN_URL,
                params={"grant_type": "account_credentials", "account_id": self.account_id},
                auth=(self.client_id, self.client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise MeetingProviderError("Failed to authenticate with Zoom") from exc

        if not resp.ok:
            logger.error("Failed to get Zoom token: %s", resp.text)
            raise MeetingProviderError("Failed to authenticate with Zoom")

        try:
            return resp.json()["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("Zoom token response missing access_token: %s", resp.text)
            raise MeetingProviderError("Failed to authenticate with Zoom") from exc

    def create_meeting(
        self,
        start_time: str,
        topic: str | None = None,
        duration: int | None = None,
        agenda: str | None = None,
    ) -> dict[str, object]:
        """Create a scheduled meeting and return its id, join/start URLs and password."""
        access_token = self.get_access_token()

        body = {
            "topic": topic or DEFAULT_TOPIC,
            "type": SCHEDULED_MEETING,
            "start_time": start_time,
            "duration": duration or DEFAULT_DURATION,
            "timezone": MEETING_TIMEZONE,
            "agenda": agenda or DEFAULT_AGENDA,
            "settings": MEETING_SETTINGS,
        }

        try:
            resp = requests.post(
                MEETINGS_URL,
                json=body,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise MeetingProviderError("Failed to create Zoom meeting") from exc

        if not resp.ok:
            logger.error("Failed to create Zoom meeting: %s", resp.text)
            raise MeetingProviderError("Failed to create Zoom meeting")

        try:
            meeting = resp.json()
            join_url = meeting["join_url"]
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("Unexpected Zoom meeting response: %s", resp.text)
            raise MeetingProviderError("Failed to create Zoom meeting") from exc

        logger.info("Zoom meeting created successfully: %s", meeting.get("id"))

        return {
            "meeting_id": meeting.get("id"),
            "join_url": join_url,
            "start_url": meeting.get("start_url"),
            "password": meeting.get("password"),
        }
