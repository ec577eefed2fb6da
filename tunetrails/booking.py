"""Pricing, scheduling and status rules shared by lesson and gig bookings."""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from flask import current_app

from .models import BOOKING_STATUSES

DEFAULT_HOURLY_RATE = 500
DEFAULT_BASE_PRICE = 5000
DEFAULT_PRICE_PER_HOUR = 2000
DEFAULT_LESSON_MINUTES = 60
DEFAULT_GIG_HOURS = 2

# Hourly start times offered on the booking form
LESSON_TIME_SLOTS = [f"{hour:02d}:00" for hour in range(9, 21)]

TERMINAL_STATUSES = ("completed", "cancelled")

_CENTS = Decimal("0.01")


def _to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def lesson_price(hourly_rate, duration_minutes: int) -> Decimal:
    """Price of a lesson: the teacher's hourly rate scaled by the lesson length."""
    price = _to_decimal(hourly_rate) * Decimal(duration_minutes) / Decimal(60)
    return price.quantize(_CENTS, rounding=ROUND_HALF_UP)


def gig_total(base_price, price_per_hour, duration_hours: int) -> Decimal:
    """Total for a gig: flat booking fee plus the hourly rate for each hour played."""
    total = _to_decimal(base_price) + _to_decimal(price_per_hour) * Decimal(duration_hours)
    return total.quantize(_CENTS, rounding=ROUND_HALF_UP)


def whole_number(value, default: int) -> int:
    """Leading whole number of ``value`` ('750.50' gives 750), or ``default`` when missing or zero."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return int(number) or default


def local_now() -> datetime:
    """Current wall-clock time in the marketplace timezone, without tzinfo."""
    tz = ZoneInfo(current_app.config.get("TIMEZONE", "Africa/Nairobi"))
    return datetime.now(tz).replace(tzinfo=None)


def parse_schedule(date_str: str, time_str: str) -> datetime:
    """Combine a YYYY-MM-DD date and an HH:MM time into one datetime.

    Raises ValueError when either part is malformed.
    """
    if not isinstance(date_str, str) or not isinstance(time_str, str):
        raise ValueError("date and time must be strings")
    day = date.fromisoformat(date_str)
    hours, minutes = time_str.split(":")[:2]
    return datetime.combine(day, time(int(hours), int(minutes)))


def is_upcoming(scheduled_at: datetime, status: str | None, now: datetime) -> bool:
    return scheduled_at > now and status != "cancelled"


def status_change_error(current: str | None, new: str) -> tuple[str, str] | None:
    """Return an (error, message) pair when moving from ``current`` to ``new`` is not allowed."""
    if new not in BOOKING_STATUSES:
        return (
            "invalid_status",
            f"Status must be one of: {', '.join(BOOKING_STATUSES)}",
        )
    if current in TERMINAL_STATUSES and new != current:
        return (
            "invalid_transition",
            f"Cannot change status of a {current} booking",
        )
    return None


def available_slots(target_date: date, lessons, duration_minutes: int = DEFAULT_LESSON_MINUTES) -> list[str]:
    """Booking-form slots on ``target_date`` not overlapped by any of ``lessons``.

    ``lessons`` are the teacher's existing bookings; cancelled ones are ignored.
    """
    busy = [
        (lesson.scheduled_at, lesson.scheduled_at + timedelta(minutes=lesson.duration_minutes or 0))
        for lesson in lessons
        if lesson.status != "cancelled"
    ]

    slots = []
    for label in LESSON_TIME_SLOTS:
        slot_start = parse_schedule(target_date.isoformat(), label)
        slot_end = slot_start + timedelta(minutes=duration_minutes)
        if any(start < slot_end and end > slot_start for start, end in busy):
            continue
        slots.append(label)
    return slots
