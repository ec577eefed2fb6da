"""Database models for the Tunetrails backend."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _money(value) -> float | None:
    return float(value) if value is not None else None


BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled")
APP_ROLES = ("student", "teacher", "parent")


class Profile(db.Model):
    """A person on the marketplace. Roles live in ``user_roles``."""

    __tablename__ = "profiles"

    user_id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(30))
    location = db.Column(db.String(150))
    bio = db.Column(db.Text)
    avatar_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    auth_account = db.relationship("AuthAccount", back_populates="user", uselist=False)
    roles = db.relationship("UserRole", back_populates="user", cascade="all, delete-orphan")
    children = db.relationship(
        "ChildProfile",
        back_populates="parent",
        cascade="all, delete-orphan",
        order_by="ChildProfile.created_at",
    )
    wallet = db.relationship("Wallet", back_populates="user", uselist=False)

    @property
    def role_names(self) -> list[str]:
        return sorted(role.role for role in self.roles)

    def has_role(self, role: str) -> bool:
        return any(r.role == role for r in self.roles)

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
        }

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "location": self.location,
            "bio": self.bio,
            "avatar_url": self.avatar_url,
            "roles": self.role_names,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("Profile", back_populates="auth_account")


class UserRole(db.Model):
    __tablename__ = "user_roles"
    __table_args__ = (db.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    role_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    role = db.Column(
        db.Enum(
            *APP_ROLES,
            name="app_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    user = db.relationship("Profile", back_populates="roles")


class ChildProfile(db.Model):
    """A child a parent books lessons for."""

    __tablename__ = "child_profiles"

    child_id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    date_of_birth = db.Column(db.Date)
    notes = db.Column(db.Text)
    avatar_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    parent = db.relationship("Profile", back_populates="children")
    # Removing a child removes their lesson history
    lessons = db.relationship("Lesson", back_populates="child", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.child_id,
            "parent_id": self.parent_id,
            "full_name": self.full_name,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "notes": self.notes,
            "avatar_url": self.avatar_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Instrument(db.Model):
    __tablename__ = "instruments"

    instrument_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    category = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.instrument_id,
            "name": self.name,
            "category": self.category,
        }


class TeacherProfile(db.Model):
    """Teaching details for a user holding the teacher role."""

    __tablename__ = "teacher_profiles"

    teacher_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), unique=True, nullable=False)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=False, default=500)
    experience_years = db.Column(db.Integer, default=0)
    teaching_style = db.Column(db.Text)
    availability = db.Column(db.Text)
    is_online_available = db.Column(db.Boolean, default=True)
    is_in_person_available = db.Column(db.Boolean, default=True)
    rating = db.Column(db.Float, default=0)
    total_lessons = db.Column(db.Integer, nullable=False, default=0)
    total_reviews = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    user = db.relationship("Profile")
    instrument_links = db.relationship(
        "TeacherInstrument",
        back_populates="teacher",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.teacher_id,
            "user_id": self.user_id,
            "hourly_rate": _money(self.hourly_rate),
            "experience_years": self.experience_years,
            "teaching_style": self.teaching_style,
            "availability": self.availability,
            "is_online_available": self.is_online_available,
            "is_in_person_available": self.is_in_person_available,
            "rating": self.rating,
            "total_lessons": self.total_lessons,
            "total_reviews": self.total_reviews,
            "profile": self.user.to_dict() if self.user else None,
            "instruments": [link.to_dict() for link in self.instrument_links],
        }


class TeacherInstrument(db.Model):
    __tablename__ = "teacher_instruments"
    __table_args__ = (
        db.UniqueConstraint("teacher_id", "instrument_id", name="uq_teacher_instruments_pair"),
    )

    link_id = db.Column(db.Integer, primary_key=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("teacher_profiles.teacher_id"), nullable=False)
    instrument_id = db.Column(db.Integer, db.ForeignKey("instruments.instrument_id"), nullable=False)
    proficiency_level = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    teacher = db.relationship("TeacherProfile", back_populates="instrument_links")
    instrument = db.relationship("Instrument")

    def to_dict(self) -> dict[str, object]:
        return {
            "instrument_id": self.instrument_id,
            "name": self.instrument.name if self.instrument else None,
            "proficiency_level": self.proficiency_level,
        }


class Lesson(db.Model):
    """A lesson booked by a student (or a parent for a child) with a teacher."""

    __tablename__ = "lessons"

    lesson_id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey("teacher_profiles.teacher_id"), nullable=False)
    instrument_id = db.Column(db.Integer, db.ForeignKey("instruments.instrument_id"), nullable=False)
    child_id = db.Column(db.Integer, db.ForeignKey("child_profiles.child_id"), nullable=True)
    # Wall-clock time in the marketplace timezone
    scheduled_at = db.Column(db.DateTime, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    lesson_type = db.Column(
        db.Enum(
            "online",
            "in_person",
            name="lesson_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="online",
    )
    notes = db.Column(db.Text)
    meeting_link = db.Column(db.String(500))
    status = db.Column(
        db.Enum(
            *BOOKING_STATUSES,
            name="lesson_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    student = db.relationship("Profile")
    teacher = db.relationship("TeacherProfile")
    instrument = db.relationship("Instrument")
    child = db.relationship("ChildProfile", back_populates="lessons")

    def to_dict(self) -> dict[str, object]:
        teacher_user = self.teacher.user if self.teacher else None
        return {
            "id": self.lesson_id,
            "student_id": self.student_id,
            "student_name": self.student.full_name if self.student else None,
            "teacher_id": self.teacher_id,
            "teacher_name": teacher_user.full_name if teacher_user else None,
            "instrument_id": self.instrument_id,
            "instrument_name": self.instrument.name if self.instrument else None,
            "child_id": self.child_id,
            "child_name": self.child.full_name if self.child else None,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "duration_minutes": self.duration_minutes,
            "price": _money(self.price),
            "lesson_type": self.lesson_type,
            "notes": self.notes,
            "meeting_link": self.meeting_link,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class GigProfile(db.Model):
    """A performer listing that clients can hire for events."""

    __tablename__ = "gig_profiles"

    gig_profile_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), unique=True, nullable=False)
    stage_name = db.Column(db.String(150), nullable=False)
    bio = db.Column(db.Text)
    performer_type = db.Column(db.String(100))
    location = db.Column(db.String(150))
    genres = db.Column(db.JSON, nullable=False, default=list)
    base_price = db.Column(db.Numeric(10, 2), nullable=False, default=5000)
    price_per_hour = db.Column(db.Numeric(10, 2), nullable=False, default=2000)
    video_urls = db.Column(db.JSON, nullable=False, default=list)
    audio_urls = db.Column(db.JSON, nullable=False, default=list)
    setlist = db.Column(db.Text)
    tech_rider = db.Column(db.Text)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    rating = db.Column(db.Float, default=0)
    total_gigs = db.Column(db.Integer, nullable=False, default=0)
    total_reviews = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    user = db.relationship("Profile")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.gig_profile_id,
            "user_id": self.user_id,
            "stage_name": self.stage_name,
            "bio": self.bio,
            "performer_type": self.performer_type,
            "location": self.location,
            "genres": self.genres or [],
            "base_price": _money(self.base_price),
            "price_per_hour": _money(self.price_per_hour),
            "video_urls": self.video_urls or [],
            "audio_urls": self.audio_urls or [],
            "setlist": self.setlist,
            "tech_rider": self.tech_rider,
            "is_available": self.is_available,
            "rating": self.rating,
            "total_gigs": self.total_gigs,
            "total_reviews": self.total_reviews,
            "owner": self.user.to_dict_basic() if self.user else None,
        }


class GigBooking(db.Model):
    __tablename__ = "gig_bookings"

    booking_id = db.Column(db.Integer, primary_key=True)
    gig_profile_id = db.Column(
        db.Integer, db.ForeignKey("gig_profiles.gig_profile_id"), nullable=False
    )
    client_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    event_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    duration_hours = db.Column(db.Integer, nullable=False, default=2)
    event_type = db.Column(db.String(100), nullable=False)
    venue = db.Column(db.String(200))
    location = db.Column(db.String(200))
    special_requests = db.Column(db.Text)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    meeting_link = db.Column(db.String(500))
    status = db.Column(
        db.Enum(
            *BOOKING_STATUSES,
            name="gig_booking_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    gig_profile = db.relationship("GigProfile")
    client = db.relationship("Profile")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.booking_id,
            "gig_profile_id": self.gig_profile_id,
            "stage_name": self.gig_profile.stage_name if self.gig_profile else None,
            "client_id": self.client_id,
            "client_name": self.client.full_name if self.client else None,
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "duration_hours": self.duration_hours,
            "event_type": self.event_type,
            "venue": self.venue,
            "location": self.location,
            "special_requests": self.special_requests,
            "total_price": _money(self.total_price),
            "meeting_link": self.meeting_link,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Conversation(db.Model):
    """Two-party message thread; participants are stored in sorted order."""

    __tablename__ = "conversations"
    __table_args__ = (
        db.UniqueConstraint("participant_one", "participant_two", name="uq_conversations_pair"),
        db.CheckConstraint("participant_one < participant_two", name="ck_conversations_sorted"),
    )

    conversation_id = db.Column(db.Integer, primary_key=True)
    participant_one = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    participant_two = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    messages = db.relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.message_id",
    )

    def includes(self, user_id: int) -> bool:
        return user_id in (self.participant_one, self.participant_two)

    def other_participant(self, user_id: int) -> int:
        return self.participant_two if self.participant_one == user_id else self.participant_one

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.conversation_id,
            "participant_one": self.participant_one,
            "participant_two": self.participant_two,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Message(db.Model):
    __tablename__ = "messages"

    message_id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(
        db.Integer, db.ForeignKey("conversations.conversation_id"), nullable=False, index=True
    )
    sender_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    conversation = db.relationship("Conversation", back_populates="messages")
    sender = db.relationship("Profile")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.message_id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Wallet(db.Model):
    __tablename__ = "wallets"

    wallet_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), unique=True, nullable=False)
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("Profile", back_populates="wallet")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.wallet_id,
            "user_id": self.user_id,
            "balance": _money(self.balance),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
