from datetime import datetime

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.user import User
from security.password import hash_password, verify_password, password_errors
from security.session import create_session, revoke_session, revoke_all_sessions
from security.csrf import issue_csrf_token
from utils.account import effective_payment_status
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import user_to_dict
from utils.validators import is_valid_email, text_field

auth_bp = Blueprint("auth", __name__, url_prefix="/api")

PROFESSIONAL_TYPES = ("psychologist", "nutritionist", "doctor", "other")

# optional profile fields accepted on sign-up: body key -> column
PROFILE_FIELDS = {
    "phone": "phone",
    "specialty": "specialty",
    "bio": "bio",
    "professionalType": "professional_type",
    "professionalTypeDetails": "professional_type_details",
    "professionalLicense": "professional_license",
    "profileImageUrl": "profile_image_url",
    "identificationUrl": "identification_url",
    "diplomaUrl": "diploma_url",
}


def _cookie_name():
    return current_app.config.get("AUTH_COOKIE_NAME", "sati_session")


def _start_session(user: User, status: int):
    """Rotate the user's sessions and answer with fresh session and CSRF cookies."""
    revoked_count = revoke_all_sessions(user.id, reason="rotated")
    raw_token = create_session(user.id)

    payload = user_to_dict(user)
    payload["paymentStatus"] = effective_payment_status(user)

    resp = jsonify(payload)
    resp.set_cookie(
        _cookie_name(),
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 7 * 24 * 60 * 60),
        path="/",
    )
    resp = issue_csrf_token(resp)
    return resp, status, revoked_count


def validate_profile(data: dict) -> list:
    errors = []
    for key in PROFILE_FIELDS:
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"{key} must be text")
    ptype = data.get("professionalType")
    if ptype and ptype not in PROFESSIONAL_TYPES:
        errors.append("professionalType must be one of " + ", ".join(PROFESSIONAL_TYPES))
    return errors


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    username = text_field(data, "username")
    password = data.get("password") or ""
    full_name = text_field(data, "fullName")
    email = text_field(data, "email").lower()

    errors = []
    if not (4 <= len(username) <= 50):
        errors.append("Username must be between 4 and 50 characters")
    errors.extend(password_errors(password))
    if len(full_name) < 3:
        errors.append("Full name must be at least 3 characters")
    if not is_valid_email(email):
        errors.append("Invalid email")
    errors.extend(validate_profile(data))
    if errors:
        return jsonify(error="Invalid registration data", code="VALIDATION_ERROR", details=errors), 400

    if User.query.filter_by(username=username).first():
        return jsonify(error="Username already exists", code="USERNAME_TAKEN"), 400
    if User.query.filter_by(email=email).first():
        return jsonify(error="Email already registered", code="EMAIL_TAKEN"), 409

    user = User(
        username=username,
        password_hash=hash_password(password),
        full_name=full_name,
        email=email,
        role="standard",
        payment_status="inactive",
    )
    for key, column in PROFILE_FIELDS.items():
        value = data.get(key)
        if value:
            setattr(user, column, value.strip())
    user.documentation_status = "pending" if (user.identification_url or user.diploma_url) else "none"

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Username or email already registered", code="USERNAME_TAKEN"), 409

    log_event("INFO", f"User registered: {user.username}", user_id=user.id)
    resp, status, _ = _start_session(user, 201)
    return resp, status


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    username = text_field(data, "username")
    password = data.get("password") or ""

    user = User.query.filter_by(username=username).first() if username else None
    if not user or not verify_password(password, user.password_hash):
        log_event("WARN", f"Failed login for {username or '<empty>'}", user_id=user.id if user else None)
        return jsonify(error="Invalid username or password", code="INVALID_CREDENTIALS"), 401

    if not user.is_active:
        log_event("WARN", f"Login attempt on disabled account {user.username}", user_id=user.id)
        return jsonify(error="Account disabled", code="ACCOUNT_DISABLED"), 403

    resp, status, revoked = _start_session(user, 200)
    log_event("INFO", f"Login OK (revoked {revoked} previous sessions)", user_id=user.id)
    return resp, status


@auth_bp.post("/logout")
@login_required
def logout():
    revoke_session(request.cookies.get(_cookie_name()), reason="logout")
    log_event("INFO", "Logout", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(_cookie_name(), path="/")
    return resp, 200


@auth_bp.post("/logout/all")
@login_required
def logout_all():
    count = revoke_all_sessions(g.user.id, reason="logout_all")
    log_event("INFO", f"Logout from all devices ({count} sessions)", user_id=g.user.id)

    resp = jsonify(message="Logged out everywhere", revokedSessions=count)
    resp.delete_cookie(_cookie_name(), path="/")
    return resp, 200


@auth_bp.post("/logout/inactive")
def logout_inactive():
    """Called by the client when its own inactivity timer fires."""
    user = getattr(g, "user", None)
    raw_token = request.cookies.get(_cookie_name())
    if raw_token:
        revoke_session(raw_token, reason="idle")
    if user is not None:
        log_event("INFO", "Logout due to inactivity", user_id=user.id)

    resp = jsonify(message="Session closed due to inactivity")
    resp.delete_cookie(_cookie_name(), path="/")
    return resp, 200


@auth_bp.post("/session/touch")
@login_required
def touch_session():
    # load_current_user already slid last_seen_at forward
    idle = current_app.config.get("IDLE_TIMEOUT_SECONDS", 30 * 60)
    last = g.session.last_seen_at or datetime.utcnow()
    return jsonify(lastActivity=last.isoformat(), timeoutMs=idle * 1000), 200


@auth_bp.get("/user")
@login_required
def current_user():
    payload = user_to_dict(g.user)
    payload["paymentStatus"] = effective_payment_status(g.user)
    return jsonify(payload), 200
