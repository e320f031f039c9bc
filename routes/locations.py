from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.location import Location, LocationAvailability
from security.rbac import admin_required
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import location_availability_to_dict, location_to_dict
from utils.validators import coerce_bool, coerce_int, parse_schedule

locations_bp = Blueprint("locations", __name__, url_prefix="/api")

TEXT_FIELDS = {
    "name": "name",
    "description": "description",
    "address": "address",
    "imageUrl": "image_url",
}


def _text_errors(data: dict, partial: bool) -> list:
    errors = []
    for key in TEXT_FIELDS:
        if key not in data and partial:
            continue
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{key} is required")
    return errors


def _replace_schedule(location: Location, rows):
    # old rows must be gone before new ones hit uq_location_day
    if location.schedule:
        location.schedule.clear()
        db.session.flush()
    location.schedule.extend(
        LocationAvailability(day_of_week=day, open_time=open_t, close_time=close_t)
        for day, open_t, close_t in rows
    )


@locations_bp.get("/locations")
@login_required
def list_locations():
    rows = Location.query.order_by(Location.name).all()
    return jsonify([location_to_dict(loc, with_schedule=True) for loc in rows]), 200


@locations_bp.get("/locations/<int:location_id>")
@login_required
def get_location(location_id: int):
    loc = db.session.get(Location, location_id)
    if loc is None:
        return jsonify(error="Location not found", code="LOCATION_NOT_FOUND"), 404
    return jsonify(location_to_dict(loc, with_schedule=True)), 200


@locations_bp.post("/locations")
@admin_required
def create_location():
    data = request.get_json(silent=True) or {}
    errors = _text_errors(data, partial=False)
    rows, schedule_errors = parse_schedule(data.get("availability"), 1, 7)
    errors.extend(schedule_errors)
    if errors:
        return jsonify(error="Invalid location data", code="VALIDATION_ERROR", details=errors), 400

    name = data["name"].strip()
    if Location.query.filter_by(name=name).first():
        return jsonify(error="A location with that name already exists", code="LOCATION_EXISTS"), 409

    loc = Location(
        name=name,
        description=data["description"].strip(),
        address=data["address"].strip(),
        image_url=data["imageUrl"].strip(),
        is_active=coerce_bool(data.get("isActive", True)),
    )
    _replace_schedule(loc, rows)
    db.session.add(loc)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="A location with that name already exists", code="LOCATION_EXISTS"), 409

    log_event("INFO", f"Location created: {loc.name}", user_id=g.user.id)
    return jsonify(location_to_dict(loc, with_schedule=True)), 201


@locations_bp.patch("/locations/<int:location_id>")
@admin_required
def update_location(location_id: int):
    loc = db.session.get(Location, location_id)
    if loc is None:
        return jsonify(error="Location not found", code="LOCATION_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    errors = _text_errors(data, partial=True)
    rows, schedule_errors = [], []
    if "availability" in data:
        rows, schedule_errors = parse_schedule(data.get("availability"), 1, 7)
    errors.extend(schedule_errors)
    if errors:
        return jsonify(error="Invalid location data", code="VALIDATION_ERROR", details=errors), 400

    if "name" in data:
        name = data["name"].strip()
        clash = Location.query.filter(Location.name == name, Location.id != loc.id).first()
        if clash:
            return jsonify(error="A location with that name already exists", code="LOCATION_EXISTS"), 409

    for key, column in TEXT_FIELDS.items():
        if key in data:
            setattr(loc, column, data[key].strip())
    if "isActive" in data:
        loc.is_active = coerce_bool(data["isActive"])
    if "availability" in data:
        _replace_schedule(loc, rows)

    db.session.commit()
    log_event("INFO", f"Location {loc.id} updated", user_id=g.user.id)
    return jsonify(location_to_dict(loc, with_schedule=True)), 200


@locations_bp.get("/locations/<int:location_id>/availability")
@login_required
def location_availability(location_id: int):
    loc = db.session.get(Location, location_id)
    if loc is None:
        return jsonify(error="Location not found", code="LOCATION_NOT_FOUND"), 404
    return jsonify([location_availability_to_dict(a) for a in loc.schedule]), 200


@locations_bp.post("/location-availability")
@admin_required
def add_location_availability():
    data = request.get_json(silent=True) or {}
    location_id = coerce_int(data.get("locationId"))
    rows, errors = parse_schedule([data], 1, 7)
    if location_id is None:
        errors.insert(0, "locationId is required")
    if errors:
        return jsonify(error="Invalid schedule", code="VALIDATION_ERROR", details=errors), 400

    loc = db.session.get(Location, location_id)
    if loc is None:
        return jsonify(error="Location not found", code="LOCATION_NOT_FOUND"), 404

    day, open_t, close_t = rows[0]
    if LocationAvailability.query.filter_by(location_id=loc.id, day_of_week=day).first():
        return jsonify(error="That day already has a schedule", code="SCHEDULE_EXISTS"), 409

    row = LocationAvailability(location_id=loc.id, day_of_week=day, open_time=open_t, close_time=close_t)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="That day already has a schedule", code="SCHEDULE_EXISTS"), 409

    log_event("INFO", f"Schedule for day {day} added to location {loc.id}", user_id=g.user.id)
    return jsonify(location_availability_to_dict(row)), 201
