"""
Booking rules enforced by the server when a booking is created or changes
status. Thresholds come from the system_config table so administrators can
tune them without a deploy.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from models import db
from models.booking import Booking, BOOKING_STATUSES
from models.payment import Payment
from models.room import Room
from models.user import User
from utils import config_store
from utils.errors import ApiError, BookingConflictError, BookingRuleError, ForbiddenError, NotFoundError
from utils.validators import coerce_int, parse_date, parse_time


def _minutes(t) -> int:
    return t.hour * 60 + t.minute


def booking_amount(room: Room, minutes: int) -> Decimal:
    """Room price is hourly in cents; the payment is stored in currency units."""
    amount = Decimal(room.price) * Decimal(minutes) / Decimal(60) / Decimal(100)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_booking_payload(data: dict):
    room_id = coerce_int(data.get("roomId"))
    day = parse_date(data.get("date"))
    start = parse_time(data.get("startTime"))
    end = parse_time(data.get("endTime"))
    notes = data.get("notes")

    errors = []
    if room_id is None:
        errors.append("roomId is required")
    if day is None:
        errors.append("date must use YYYY-MM-DD")
    if start is None or end is None:
        errors.append("startTime and endTime must use HH:MM")
    elif end <= start:
        errors.append("endTime must be after startTime")
    if notes is not None and not isinstance(notes, str):
        errors.append("notes must be text")

    if errors:
        raise BookingRuleError("Invalid booking data", code="INVALID_BOOKING", details=errors)
    return room_id, day, start, end, (notes or "").strip() or None


def find_conflict(room_id: int, day, start, end, exclude_id=None):
    """First non-cancelled booking of the room that overlaps [start, end)."""
    q = Booking.query.filter(
        Booking.room_id == room_id,
        Booking.date == day,
        Booking.status != "cancelled",
        Booking.start_time < end,
        Booking.end_time > start,
    )
    if exclude_id is not None:
        q = q.filter(Booking.id != exclude_id)
    return q.first()


def check_opening_hours(room: Room, day, start, end):
    location = room.location
    if location is not None and location.schedule:
        today = next((s for s in location.schedule if s.day_of_week == day.isoweekday()), None)
        if today is None:
            raise BookingRuleError(
                f"{location.name} is closed on that day",
                code="OUTSIDE_OPENING_HOURS",
            )
        if start < today.open_time or end > today.close_time:
            raise BookingRuleError(
                f"{location.name} is open from {today.open_time:%H:%M} to {today.close_time:%H:%M}",
                code="OUTSIDE_OPENING_HOURS",
            )

    if room.availability:
        # room rows count days from Sunday = 0
        weekday = day.isoweekday() % 7
        row = next((a for a in room.availability if a.day_of_week == weekday), None)
        if row is None or row.is_closed:
            raise BookingRuleError(f"{room.name} is not available on that day", code="OUTSIDE_OPENING_HOURS")
        if start < row.open_time or end > row.close_time:
            raise BookingRuleError(
                f"{room.name} is available from {row.open_time:%H:%M} to {row.close_time:%H:%M}",
                code="OUTSIDE_OPENING_HOURS",
            )


def active_booking_count(user_id: int, today) -> int:
    return Booking.query.filter(
        Booking.user_id == user_id,
        Booking.status == "confirmed",
        Booking.date >= today,
    ).count()


def resolve_target_user(acting_user: User, data: dict) -> User:
    requested = coerce_int(data.get("userId"))
    if requested is None or requested == acting_user.id:
        return acting_user
    if not acting_user.is_admin:
        raise ForbiddenError("Only administrators can book for another therapist")
    target = db.session.get(User, requested)
    if target is None or not target.is_active:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return target


def create_booking(acting_user: User, data: dict, now: datetime = None):
    """
    Validate every rule, then insert the booking and its pending payment in
    one transaction. Returns (booking, payment).
    """
    now = now or datetime.now()
    target = resolve_target_user(acting_user, data)
    on_behalf = target.id != acting_user.id

    if target.documentation_status != "approved":
        raise BookingRuleError(
            "Your documentation must be approved before booking",
            status=403,
            code="DOCUMENTATION_REQUIRED",
            documentationRequired=True,
        )

    room_id, day, start, end, notes = parse_booking_payload(data)

    # Row lock serializes concurrent bookings of the same room where supported
    room = Room.query.filter_by(id=room_id).with_for_update().first()
    if room is None or not room.is_active:
        db.session.rollback()
        raise NotFoundError("Room not found", code="ROOM_NOT_FOUND")

    try:
        starts_at = datetime.combine(day, start)
        if starts_at < now:
            raise BookingRuleError("Bookings cannot be made in the past", code="BOOKING_IN_PAST")

        advance_days = config_store.get_int("advance_booking_days", 0)
        if not on_behalf and (starts_at - now).total_seconds() / 86400 < advance_days:
            raise BookingRuleError(
                f"Bookings must be made at least {advance_days} days in advance",
                code="ADVANCE_NOTICE",
                advanceBookingDays=advance_days,
            )

        minutes = _minutes(end) - _minutes(start)
        max_hours = config_store.get_int("max_booking_duration_hours", 4)
        if minutes > max_hours * 60:
            raise BookingRuleError(
                f"Bookings longer than {max_hours} consecutive hours are not allowed",
                code="MAX_DURATION",
                maxBookingDurationHours=max_hours,
            )

        check_opening_hours(room, day, start, end)

        quota = config_store.active_booking_quota(target.role)
        if not on_behalf and active_booking_count(target.id, now.date()) >= quota:
            raise BookingRuleError(
                f"You reached the limit of {quota} active bookings",
                code="MAX_ACTIVE_BOOKINGS",
                maxActiveBookings=quota,
            )

        conflict = find_conflict(room.id, day, start, end)
        if conflict is not None:
            raise BookingConflictError(
                "Room is already booked for this time",
                conflictingBookingId=conflict.id,
            )

        pending = Payment.query.filter_by(user_id=target.id, status="pending").count()
        if pending > quota:
            raise ApiError("You have pending payments", status=409, code="PENDING_PAYMENTS")
    except ApiError:
        db.session.rollback()
        raise

    booking = Booking(
        room_id=room.id,
        user_id=target.id,
        date=day,
        start_time=start,
        end_time=end,
        notes=notes,
        status="confirmed",
    )
    db.session.add(booking)
    db.session.flush()

    payment = Payment(
        user_id=target.id,
        booking_id=booking.id,
        amount=booking_amount(room, minutes),
        concept=f"Rental of {room.name} by {target.full_name} on {day.isoformat()} {start:%H:%M}",
        status="pending",
    )
    db.session.add(payment)
    db.session.commit()
    return booking, payment


def change_status(booking: Booking, new_status: str, acting_user: User, now: datetime = None) -> Booking:
    now = now or datetime.now()

    if new_status not in BOOKING_STATUSES:
        raise BookingRuleError("Invalid booking status", code="INVALID_STATUS")
    if booking.user_id != acting_user.id and not acting_user.is_admin:
        raise ForbiddenError("Not allowed to modify this booking")
    if booking.status == new_status:
        return booking
    if booking.status != "confirmed":
        raise ApiError(
            f"A {booking.status} booking cannot become {new_status}",
            status=409,
            code="INVALID_TRANSITION",
        )

    if new_status == "completed" and not acting_user.is_admin:
        raise ForbiddenError("Only administrators can mark bookings as completed")

    if new_status == "cancelled":
        if not acting_user.is_admin:
            notice = config_store.get_int("cancellation_hours_notice", 24)
            hours_left = (booking.starts_at - now).total_seconds() / 3600
            if hours_left < notice:
                raise BookingRuleError(
                    f"Bookings can only be cancelled at least {notice} hours in advance",
                    code="CANCELLATION_NOTICE",
                    cancellationHoursNotice=notice,
                )
        booking.cancelled_at = datetime.utcnow()
        for payment in Payment.query.filter_by(booking_id=booking.id, status="pending").all():
            payment.status = "cancelled"

    if new_status == "completed":
        booking.user.booking_count = (booking.user.booking_count or 0) + 1

    booking.status = new_status
    db.session.commit()
    return booking


def complete_past_bookings(now: datetime = None) -> int:
    """Mark confirmed bookings that already ended as completed."""
    now = now or datetime.now()
    candidates = Booking.query.filter(
        Booking.status == "confirmed",
        Booking.date <= now.date(),
    ).all()

    done = 0
    for booking in candidates:
        if datetime.combine(booking.date, booking.end_time) > now:
            continue
        booking.status = "completed"
        booking.user.booking_count = (booking.user.booking_count or 0) + 1
        done += 1
    db.session.commit()
    return done


def apply_penalty(booking_id: int, percentage) -> Payment:
    payment = Payment.query.filter_by(booking_id=booking_id).first()
    if payment is None:
        raise NotFoundError("No payment is linked to this booking", code="PAYMENT_NOT_FOUND")
    return apply_discount(payment, percentage)


def apply_discount(payment: Payment, percentage) -> Payment:
    try:
        pct = Decimal(str(percentage))
    except (ArithmeticError, ValueError):
        raise BookingRuleError("Invalid percentage", code="INVALID_PERCENTAGE")
    if not pct.is_finite() or pct < 0 or pct > 100:
        raise BookingRuleError("Percentage must be between 0 and 100", code="INVALID_PERCENTAGE")

    amount = Decimal(payment.amount)
    payment.amount = (amount - amount * pct / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    db.session.commit()
    return payment
