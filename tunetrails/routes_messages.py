"""Two-party conversations and their messages."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .auth import forbidden, get_current_user, unauthorized
from .extensions import db
from .models import Conversation, Message, Profile, utc_now
from .realtime import count_unread, publish_message_created, publish_messages_read

bp_messages = Blueprint("api_messages", __name__)


def _ordered_messages(conversation_id: int) -> list[Message]:
    return (
        Message.query.filter_by(conversation_id=conversation_id)
        .order_by(Message.created_at.asc(), Message.message_id.asc())
        .all()
    )


def _conversation_for(user: Profile, conversation_id: int):
    """Return (conversation, error_response); only participants may open a thread."""
    conversation = db.session.get(Conversation, conversation_id)
    if not conversation:
        return None, (jsonify({"error": "not_found", "message": "Conversation not found"}), 404)
    if not conversation.includes(user.user_id):
        return None, forbidden("You are not part of this conversation")
    return conversation, None


@bp_messages.post("/conversations")
def open_conversation() -> tuple[dict[str, object], int]:
    """Load or start the conversation between the caller and another user.
    ---
    tags:
      - Messages
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            recipient_id:
              type: integer
          required:
            - recipient_id
    responses:
      200:
        description: Existing conversation with its messages, oldest first
      201:
        description: New conversation
      400:
        description: Missing recipient, or recipient is the caller
      401:
        description: Not signed in
      404:
        description: Recipient not found
    """
    user = get_current_user()
    if not user:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    try:
        recipient_id = int(payload.get("recipient_id"))
    except (TypeError, ValueError):
        return jsonify({"error": "invalid_payload", "message": "recipient_id is required"}), 400

    if recipient_id == user.user_id:
        return jsonify({"error": "invalid_payload", "message": "You cannot message yourself"}), 400

    if not db.session.get(Profile, recipient_id):
        return jsonify({"error": "not_found", "message": "User not found"}), 404

    first, second = sorted((user.user_id, recipient_id))
    created = False

    try:
        conversation = Conversation.query.filter_by(participant_one=first, participant_two=second).first()
        if conversation is None:
            conversation = Conversation(participant_one=first, participant_two=second)
            db.session.add(conversation)
            db.session.commit()
            created = True
    except IntegrityError:
        # Another request created the pair first
        db.session.rollback()
        conversation = Conversation.query.filter_by(participant_one=first, participant_two=second).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to open conversation", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    other = db.session.get(Profile, recipient_id)
    data = conversation.to_dict()
    data["other_user"] = other.to_dict_basic()
    data["messages"] = [m.to_dict() for m in _ordered_messages(conversation.conversation_id)]

    return jsonify({"conversation": data}), 201 if created else 200


@bp_messages.get("/conversations")
def list_conversations() -> tuple[dict[str, object], int]:
    """The caller's conversations, most recently active first."""
    user = get_current_user()
    if not user:
        return unauthorized()

    try:
        conversations = (
            Conversation.query.filter(
                or_(
                    Conversation.participant_one == user.user_id,
                    Conversation.participant_two == user.user_id,
                )
            )
            .order_by(Conversation.updated_at.desc(), Conversation.conversation_id.desc())
            .all()
        )

        results = []
        for conversation in conversations:
            other = db.session.get(Profile, conversation.other_participant(user.user_id))
            last = (
                Message.query.filter_by(conversation_id=conversation.conversation_id)
                .order_by(Message.created_at.desc(), Message.message_id.desc())
                .first()
            )
            unread = Message.query.filter(
                Message.conversation_id == conversation.conversation_id,
                Message.sender_id != user.user_id,
                Message.is_read.is_(False),
            ).count()

            data = conversation.to_dict()
            data["other_user"] = (
                other.to_dict_basic()
                if other
                else {"id": conversation.other_participant(user.user_id), "full_name": "Unknown User", "avatar_url": None}
            )
            data["last_message"] = last.content if last else "No messages yet"
            data["last_message_at"] = last.created_at.isoformat() if last else None
            data["unread_count"] = unread
            results.append(data)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch conversations", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"conversations": results}), 200


@bp_messages.get("/conversations/<int:conversation_id>/messages")
def list_messages(conversation_id: int) -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    conversation, error_response = _conversation_for(user, conversation_id)
    if error_response:
        return error_response

    messages = _ordered_messages(conversation.conversation_id)
    return jsonify({"messages": [m.to_dict() for m in messages]}), 200


@bp_messages.post("/conversations/<int:conversation_id>/messages")
def send_message(conversation_id: int) -> tuple[dict[str, object], int]:
    """Send a message into a conversation.
    ---
    tags:
      - Messages
    parameters:
      - name: conversation_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            content:
              type: string
    responses:
      201:
        description: Message stored and broadcast
      400:
        description: Empty message
      403:
        description: Caller is not a participant
    """
    user = get_current_user()
    if not user:
        return unauthorized()

    conversation, error_response = _conversation_for(user, conversation_id)
    if error_response:
        return error_response

    payload = request.get_json(silent=True) or {}
    content = (payload.get("content") or "").strip()
    if not content:
        return jsonify({"error": "invalid_payload", "message": "Message cannot be empty"}), 400

    try:
        message = Message(
            conversation_id=conversation.conversation_id,
            sender_id=user.user_id,
            content=content,
        )
        db.session.add(message)
        conversation.updated_at = utc_now()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to send message", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Failed to send message"}), 500

    publish_message_created(message)

    return jsonify({"message": message.to_dict()}), 201


@bp_messages.put("/conversations/<int:conversation_id>/read")
def mark_conversation_read(conversation_id: int) -> tuple[dict[str, object], int]:
    """Mark every message the other participant sent as read."""
    user = get_current_user()
    if not user:
        return unauthorized()

    conversation, error_response = _conversation_for(user, conversation_id)
    if error_response:
        return error_response

    try:
        marked = (
            Message.query.filter(
                Message.conversation_id == conversation.conversation_id,
                Message.sender_id != user.user_id,
                Message.is_read.is_(False),
            )
            .update({Message.is_read: True}, synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark messages read", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    publish_messages_read(conversation, reader_id=user.user_id, count=marked)

    return jsonify({"marked_read": marked}), 200


@bp_messages.get("/messages/unread-count")
def unread_count() -> tuple[dict[str, object], int]:
    user = get_current_user()
    if not user:
        return unauthorized()

    try:
        count = count_unread(user.user_id)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to count unread messages", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"unread_count": count}), 200
