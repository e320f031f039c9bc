from datetime import datetime

from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.system_config import SystemConfig
from security.rbac import admin_required
from utils.audit import log_event
from utils.auth_context import login_required
from utils.config_store import validate_value
from utils.serializers import config_to_dict

config_bp = Blueprint("system_config", __name__, url_prefix="/api")


def _as_text(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value).strip()
    return None


@config_bp.get("/config")
@login_required
def list_config():
    rows = SystemConfig.query.order_by(SystemConfig.key).all()
    return jsonify([config_to_dict(c) for c in rows]), 200


@config_bp.get("/config/<key>")
@login_required
def get_config(key: str):
    row = SystemConfig.query.filter_by(key=key).first()
    if row is None:
        return jsonify(error="Configuration key not found", code="CONFIG_NOT_FOUND"), 404
    return jsonify(config_to_dict(row)), 200


@config_bp.put("/config/<key>")
@admin_required
def update_config(key: str):
    row = SystemConfig.query.filter_by(key=key).first()
    if row is None:
        return jsonify(error="Configuration key not found", code="CONFIG_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    value = _as_text(data.get("value"))
    if not value:
        return jsonify(error="value is required", code="VALIDATION_ERROR"), 400
    problem = validate_value(key, value)
    if problem:
        return jsonify(error=problem, code="VALIDATION_ERROR"), 400

    previous = row.value
    row.value = value
    if isinstance(data.get("description"), str) and data["description"].strip():
        row.description = data["description"].strip()
    row.updated_at = datetime.utcnow()
    row.updated_by = g.user.id
    db.session.commit()

    log_event("INFO", f"Config {key} changed from {previous} to {value}", user_id=g.user.id)
    return jsonify(config_to_dict(row)), 200


@config_bp.post("/config")
@admin_required
def create_config():
    data = request.get_json(silent=True) or {}
    key = (data.get("key") or "").strip() if isinstance(data.get("key"), str) else ""
    value = _as_text(data.get("value"))
    description = data.get("description") if isinstance(data.get("description"), str) else ""

    if not key or not value:
        return jsonify(error="key and value are required", code="VALIDATION_ERROR"), 400
    problem = validate_value(key, value)
    if problem:
        return jsonify(error=problem, code="VALIDATION_ERROR"), 400

    if SystemConfig.query.filter_by(key=key).first():
        return jsonify(error="Configuration key already exists", code="CONFIG_EXISTS"), 409

    row = SystemConfig(key=key, value=value, description=description.strip(), updated_by=g.user.id)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Configuration key already exists", code="CONFIG_EXISTS"), 409

    log_event("INFO", f"Config {key} created", user_id=g.user.id)
    return jsonify(config_to_dict(row)), 201
