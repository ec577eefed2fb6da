"""User-facing wording for errors returned by the auth layer and the database."""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

# (substring of the raw error, friendlier text) checked in order
FRIENDLY_MESSAGES = [
    ("Invalid login credentials", "Invalid email or password. Please try again."),
    ("already registered", "This email is already registered. Try logging in instead."),
    ("gig_profiles.user_id", "You already have a performer profile"),
    ("gig_profiles_user_id", "You already have a performer profile"),
    ("uq_conversations_pair", "This conversation already exists"),
]


def friendly_message(raw: str | BaseException, default: str | None = None) -> str:
    """Map a raw provider or database error to text suitable for a notification."""
    text = str(getattr(raw, "orig", None) or raw)
    for needle, message in FRIENDLY_MESSAGES:
        if needle.lower() in text.lower():
            return message
    return default or text


def is_unique_violation(exc: BaseException) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    text = str(exc.orig).lower()
    # sqlite reports "UNIQUE constraint failed", postgres reports sqlstate 23505
    return "unique" in text or getattr(exc.orig, "pgcode", None) == "23505"
