from datetime import date, datetime

from flask import Blueprint, request, jsonify, g

from models import db
from models.booking import Booking
from models.location import Location
from models.payment import Payment
from models.room import Room, RoomAvailability
from security.rbac import admin_required
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import booking_to_dict, room_availability_to_dict, room_to_dict
from utils.validators import coerce_bool, coerce_int, parse_schedule

rooms_bp = Blueprint("rooms", __name__, url_prefix="/api")

TEXT_FIELDS = {
    "name": "name",
    "description": "description",
    "imageUrl": "image_url",
}


def _room_errors(data: dict, partial: bool) -> list:
    errors = []
    for key in TEXT_FIELDS:
        if key not in data and partial:
            continue
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{key} is required")

    if "price" in data or not partial:
        price = data.get("price")
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            errors.append("price must be a non-negative integer amount of cents")

    if "features" in data:
        features = data.get("features")
        if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
            errors.append("features must be a list of strings")

    if "locationId" in data or not partial:
        if coerce_int(data.get("locationId")) is None:
            errors.append("locationId is required")
    return errors


def _future_bookings(room_id: int):
    return (
        Booking.query
        .filter(
            Booking.room_id == room_id,
            Booking.status == "confirmed",
            Booking.date >= date.today(),
        )
        .order_by(Booking.date, Booking.start_time)
        .all()
    )


@rooms_bp.get("/rooms")
@login_required
def list_rooms():
    q = Room.query.filter_by(is_active=True)
    location_id = request.args.get("locationId")
    if location_id:
        lid = coerce_int(location_id)
        if lid is None:
            return jsonify(error="Invalid locationId", code="VALIDATION_ERROR"), 400
        q = q.filter(Room.location_id == lid)
    return jsonify([room_to_dict(r) for r in q.order_by(Room.id).all()]), 200


@rooms_bp.get("/rooms/all")
@login_required
def list_all_rooms():
    return jsonify([room_to_dict(r) for r in Room.query.order_by(Room.id).all()]), 200


@rooms_bp.get("/rooms/<int:room_id>")
@login_required
def get_room(room_id: int):
    room = db.session.get(Room, room_id)
    if room is None:
        return jsonify(error="Room not found", code="ROOM_NOT_FOUND"), 404
    return jsonify(room_to_dict(room)), 200


@rooms_bp.get("/rooms/<int:room_id>/future-bookings")
@login_required
def room_future_bookings(room_id: int):
    room = db.session.get(Room, room_id)
    if room is None:
        return jsonify(error="Room not found", code="ROOM_NOT_FOUND"), 404
    return jsonify([booking_to_dict(b) for b in _future_bookings(room.id)]), 200


@rooms_bp.get("/rooms/<int:room_id>/availability")
@login_required
def room_availability(room_id: int):
    room = db.session.get(Room, room_id)
    if room is None:
        return jsonify(error="Room not found", code="ROOM_NOT_FOUND"), 404
    return jsonify([room_availability_to_dict(a) for a in room.availability]), 200


@rooms_bp.post("/rooms/<int:room_id>/availability")
@admin_required
def add_room_availability(room_id: int):
    room = db.session.get(Room, room_id)
    if room is None:
        return jsonify(error="Room not found", code="ROOM_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    rows, errors = parse_schedule([data], 0, 6)
    if errors:
        return jsonify(error="Invalid availability", code="VALIDATION_ERROR", details=errors), 400

    day, open_t, close_t = rows[0]
    if RoomAvailability.query.filter_by(room_id=room.id, day_of_week=day).first():
        return jsonify(error="That day already has availability", code="SCHEDULE_EXISTS"), 409

    row = RoomAvailability(
        room_id=room.id,
        day_of_week=day,
        open_time=open_t,
        close_time=close_t,
        is_closed=coerce_bool(data.get("isClosed", False)),
    )
    db.session.add(row)
    db.session.commit()

    log_event("INFO", f"Availability for day {day} added to room {room.id}", user_id=g.user.id)
    return jsonify(room_availability_to_dict(row)), 201


@rooms_bp.post("/rooms")
@admin_required
def create_room():
    data = request.get_json(silent=True) or {}
    errors = _room_errors(data, partial=False)
    if errors:
        return jsonify(error="Invalid room data", code="VALIDATION_ERROR", details=errors), 400

    location = db.session.get(Location, coerce_int(data["locationId"]))
    if location is None:
        return jsonify(error="Location not found", code="LOCATION_NOT_FOUND"), 404

    room = Room(
        location_id=location.id,
        name=data["name"].strip(),
        description=data["description"].strip(),
        price=data["price"],
        image_url=data["imageUrl"].strip(),
        features=list(data.get("features") or []),
        is_active=coerce_bool(data.get("isActive", True)),
    )
    db.session.add(room)
    db.session.commit()

    log_event("INFO", f"Room created: {room.name}", user_id=g.user.id)
    return jsonify(room_to_dict(room)), 201


@rooms_bp.patch("/rooms/<int:room_id>")
@admin_required
def update_room(room_id: int):
    room = db.session.get(Room, room_id)
    if room is None:
        return jsonify(error="Room not found", code="ROOM_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    errors = _room_errors(data, partial=True)
    if errors:
        return jsonify(error="Invalid room data", code="VALIDATION_ERROR", details=errors), 400

    if "locationId" in data:
        location = db.session.get(Location, coerce_int(data["locationId"]))
        if location is None:
            return jsonify(error="Location not found", code="LOCATION_NOT_FOUND"), 404
        room.location_id = location.id

    for key, column in TEXT_FIELDS.items():
        if key in data:
            setattr(room, column, data[key].strip())
    if "price" in data:
        room.price = data["price"]
    if "features" in data:
        room.features = list(data["features"])
    if "isActive" in data:
        room.is_active = coerce_bool(data["isActive"])

    db.session.commit()
    log_event("INFO", f"Room {room.id} updated", user_id=g.user.id)
    return jsonify(room_to_dict(room)), 200


@rooms_bp.delete("/rooms/<int:room_id>")
@admin_required
def delete_room(room_id: int):
    """Logical deletion; ?force=true cancels the room's upcoming bookings first."""
    room = db.session.get(Room, room_id)
    if room is None:
        return jsonify(error="Room not found", code="ROOM_NOT_FOUND"), 404
    if not room.is_active:
        return jsonify(error="Room is already inactive", code="ROOM_INACTIVE"), 400

    force = coerce_bool(request.args.get("force", "false"))
    upcoming = _future_bookings(room.id)
    if upcoming and not force:
        return jsonify(
            error="Room has upcoming bookings",
            code="ROOM_HAS_BOOKINGS",
            futureBookings=len(upcoming),
        ), 409

    now = datetime.utcnow()
    for booking in upcoming:
        booking.status = "cancelled"
        booking.cancelled_at = now
        for payment in Payment.query.filter_by(booking_id=booking.id, status="pending").all():
            payment.status = "cancelled"

    room.is_active = False
    db.session.commit()

    log_event(
        "WARN" if upcoming else "INFO",
        f"Room {room.id} deactivated, {len(upcoming)} bookings cancelled",
        user_id=g.user.id,
    )
    return jsonify(message="Room deactivated", cancelledBookings=len(upcoming), room=room_to_dict(room)), 200
