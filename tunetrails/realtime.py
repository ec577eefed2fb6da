"""In-process change events for chat.

The message endpoints publish here after each commit. Events are
fire-and-forget: a subscriber that is not connected misses them and is
expected to catch up through the regular queries (``refresh()`` below, or the
REST endpoints). Delivery to browsers is outside this module.
"""
from __future__ import annotations

import logging

from blinker import Namespace
from sqlalchemy import or_

from .extensions import db
from .models import Conversation, Message

logger = logging.getLogger(__name__)

_signals = Namespace()

# sender: the Message row that was inserted
message_created = _signals.signal("message-created")
# sender: the Conversation; kwargs: reader_id, count
messages_read = _signals.signal("messages-read")


def publish_message_created(message: Message) -> None:
    message_created.send(message)


def publish_messages_read(conversation: Conversation, reader_id: int, count: int) -> None:
    if count:
        messages_read.send(conversation, reader_id=reader_id, count=count)


def count_unread(user_id: int) -> int:
    """Unread messages sent by others in conversations the user takes part in."""
    return (
        Message.query.join(Conversation, Conversation.conversation_id == Message.conversation_id)
        .filter(
            Message.sender_id != user_id,
            Message.is_read.is_(False),
            or_(
                Conversation.participant_one == user_id,
                Conversation.participant_two == user_id,
            ),
        )
        .count()
    )


class ConversationFeed:
    """Collects messages inserted into one conversation, in arrival order."""

    def __init__(self, conversation_id: int, initial: list[dict[str, object]] | None = None):
        self.conversation_id = conversation_id
        self.messages: list[dict[str, object]] = list(initial or [])
        message_created.connect(self._on_message, weak=False)

    def _on_message(self, message: Message, **_) -> None:
        if message.conversation_id != self.conversation_id:
            return
        self.messages.append(message.to_dict())

    def close(self) -> None:
        message_created.disconnect(self._on_message)


class UnreadCounter:
    """Best-effort unread badge for one user.

    Seeded from a count query, then nudged by events. Two counters for the
    same user (two open tabs) drift independently; the value is clamped at
    zero and ``refresh()`` resynchronises it with the database.
    """

    def __init__(self, user_id: int):
        self.user_id = user_id
        self.count = count_unread(user_id)
        message_created.connect(self._on_message, weak=False)
        messages_read.connect(self._on_read, weak=False)

    def _on_message(self, message: Message, **_) -> None:
        if message.sender_id == self.user_id:
            return
        conversation = db.session.get(Conversation, message.conversation_id)
        if conversation is None or not conversation.includes(self.user_id):
            return
        self.count += 1

    def _on_read(self, conversation: Conversation, reader_id: int, count: int, **_) -> None:
        if reader_id != self.user_id:
            return
        self.count = max(0, self.count - count)

    def refresh(self) -> int:
        self.count = count_unread(self.user_id)
        return self.count

    def close(self) -> None:
        message_created.disconnect(self._on_message)
        messages_read.disconnect(self._on_read)
        logger.debug("Unread counter for user %s closed at %s", self.user_id, self.count)
