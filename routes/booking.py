from flask import Blueprint, request, jsonify, g

from models import db
from models.booking import Booking, BOOKING_STATUSES
from security.rbac import admin_required
from utils import booking_rules
from utils.audit import log_event
from utils.auth_context import login_required
from utils.emailer import send_booking_email
from utils.serializers import booking_to_dict, payment_to_dict, public_payment_to_dict
from utils.validators import coerce_int, parse_date

booking_bp = Blueprint("booking", __name__, url_prefix="/api")


def _visible(b: Booking) -> dict:
    """Other therapists see the slot as taken, not its notes."""
    out = booking_to_dict(b)
    if b.user_id != g.user.id and not g.user.is_admin:
        out["notes"] = None
    return out


def _no_cache(resp):
    resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp


@booking_bp.get("/bookings")
@login_required
def list_bookings():
    args = request.args
    q = Booking.query

    if args.get("userId"):
        user_id = coerce_int(args.get("userId"))
        if user_id is None:
            return jsonify(error="Invalid userId", code="VALIDATION_ERROR"), 400
        q = q.filter(Booking.user_id == user_id)

    if args.get("roomId"):
        room_id = coerce_int(args.get("roomId"))
        if room_id is None:
            return jsonify(error="Invalid roomId", code="VALIDATION_ERROR"), 400
        q = q.filter(Booking.room_id == room_id)

    if args.get("date"):
        day = parse_date(args.get("date"))
        if day is None:
            return jsonify(error="Invalid date. Use YYYY-MM-DD", code="VALIDATION_ERROR"), 400
        q = q.filter(Booking.date == day)

    if args.get("startDate") or args.get("endDate"):
        start = parse_date(args.get("startDate"))
        end = parse_date(args.get("endDate"))
        if start is None or end is None:
            return jsonify(error="startDate and endDate must both use YYYY-MM-DD", code="VALIDATION_ERROR"), 400
        if start > end:
            return jsonify(error="startDate must not be after endDate", code="VALIDATION_ERROR"), 400
        q = q.filter(Booking.date >= start, Booking.date <= end)

    status = args.get("status")
    if status:
        if status not in BOOKING_STATUSES:
            return jsonify(error="Invalid status", code="INVALID_STATUS"), 400
        q = q.filter(Booking.status == status)

    rows = q.order_by(Booking.date, Booking.start_time).all()
    return _no_cache(jsonify([_visible(b) for b in rows])), 200


@booking_bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        return jsonify(error="Booking not found", code="BOOKING_NOT_FOUND"), 404
    return _no_cache(jsonify(_visible(booking))), 200


@booking_bp.post("/bookings")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    booking, payment = booking_rules.create_booking(g.user, data)

    log_event(
        "INFO",
        f"Booking {booking.id} created for user {booking.user_id} in room {booking.room_id} "
        f"on {booking.date.isoformat()} {booking.start_time:%H:%M}-{booking.end_time:%H:%M}",
    )

    sent, err = send_booking_email(booking)
    if not sent:
        log_event("WARN", f"Booking {booking.id} confirmation email not sent: {err}")

    out = booking_to_dict(booking)
    out["payment"] = public_payment_to_dict(payment)
    return jsonify(out), 201


@booking_bp.patch("/bookings/<int:booking_id>/status")
@login_required
def update_booking_status(booking_id: int):
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        return jsonify(error="Booking not found", code="BOOKING_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    previous = booking.status
    booking = booking_rules.change_status(booking, data.get("status"), g.user)

    if booking.status != previous:
        log_event("INFO", f"Booking {booking.id} changed from {previous} to {booking.status}")
    return jsonify(booking_to_dict(booking)), 200


@booking_bp.post("/bookings/<int:booking_id>/penalize")
@admin_required
def penalize_booking(booking_id: int):
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        return jsonify(error="Booking not found", code="BOOKING_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    percentage = data.get("percentage")
    if percentage is None or isinstance(percentage, bool):
        return jsonify(error="percentage is required", code="INVALID_PERCENTAGE"), 400

    payment = booking_rules.apply_penalty(booking.id, percentage)
    log_event("WARN", f"Booking {booking.id} penalized {percentage}% on payment {payment.id}")
    return jsonify(message=f"Discount of {percentage}% applied", payment=payment_to_dict(payment)), 200
