from flask import Blueprint, request, jsonify, current_app, g, send_from_directory
from sqlalchemy.exc import IntegrityError
from werkzeug.utils import secure_filename

from models import db
from models.booking import Booking
from models.user import User
from routes.auth import PROFILE_FIELDS, validate_profile
from security.password import hash_password, verify_password, password_errors
from security.rbac import ROLES, admin_required, is_owner_or_admin
from security.session import revoke_all_sessions
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import booking_to_dict, user_to_dict
from utils.uploads import DOCUMENT_FIELDS, check_files, store_user_files
from utils.validators import coerce_bool, is_valid_email, text_field

users_bp = Blueprint("users", __name__, url_prefix="/api")

DOCUMENTATION_STATUSES = ("none", "pending", "approved", "rejected")
PAYMENT_STATUSES = ("active", "pending", "inactive")

# editable by the owner: body key -> column
SELF_FIELDS = dict(PROFILE_FIELDS, fullName="full_name", email="email")


def _payload():
    """JSON body, or the form fields of a multipart request."""
    if request.mimetype == "multipart/form-data":
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


def _get_user_or_404(user_id: int):
    user = db.session.get(User, user_id)
    if user is None:
        return None, (jsonify(error="User not found", code="USER_NOT_FOUND"), 404)
    if not is_owner_or_admin(user.id):
        return None, (jsonify(error="Forbidden", code="FORBIDDEN"), 403)
    return user, None


def _documents(user: User):
    return {
        "userId": user.id,
        "identificationUrl": user.identification_url,
        "diplomaUrl": user.diploma_url,
        "documentationStatus": user.documentation_status,
    }


@users_bp.get("/users")
@admin_required
def list_users():
    users = User.query.order_by(User.id).all()
    return jsonify([user_to_dict(u) for u in users]), 200


@users_bp.get("/users/public")
@login_required
def list_public_users():
    users = User.query.order_by(User.full_name).all()
    return jsonify([
        {
            "id": u.id,
            "fullName": u.full_name,
            "professionalType": u.professional_type,
            "isActive": u.is_active,
        }
        for u in users
    ]), 200


@users_bp.post("/users")
@admin_required
def create_user():
    data = _payload()
    username = text_field(data, "username")
    password = data.get("password") or ""
    full_name = text_field(data, "fullName")
    email = text_field(data, "email").lower()
    role = data.get("role") or "standard"

    errors = []
    if not (4 <= len(username) <= 50):
        errors.append("Username must be between 4 and 50 characters")
    errors.extend(password_errors(password))
    if len(full_name) < 3:
        errors.append("Full name must be at least 3 characters")
    if not is_valid_email(email):
        errors.append("Invalid email")
    if role not in ROLES:
        errors.append("role must be one of " + ", ".join(ROLES))
    errors.extend(validate_profile(data))
    errors.extend(check_files(request.files))
    if errors:
        return jsonify(error="Invalid user data", code="VALIDATION_ERROR", details=errors), 400

    if User.query.filter_by(username=username).first():
        return jsonify(error="Username already exists", code="USERNAME_TAKEN"), 400
    if User.query.filter_by(email=email).first():
        return jsonify(error="Email already registered", code="EMAIL_TAKEN"), 409

    user = User(
        username=username,
        password_hash=hash_password(password),
        full_name=full_name,
        email=email,
        role=role,
    )
    for key, column in PROFILE_FIELDS.items():
        value = data.get(key)
        if value:
            setattr(user, column, value.strip())
    if "isActive" in data:
        user.is_active = coerce_bool(data.get("isActive"))

    stored = store_user_files(user, request.files)
    if any(f in DOCUMENT_FIELDS for f in stored) or user.identification_url or user.diploma_url:
        user.documentation_status = "pending"

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Username or email already registered", code="USERNAME_TAKEN"), 409

    log_event("INFO", f"User {user.username} created by admin", user_id=g.user.id)
    return jsonify(user_to_dict(user)), 201


@users_bp.get("/users/<int:user_id>")
@login_required
def get_user(user_id: int):
    user, failure = _get_user_or_404(user_id)
    if failure:
        return failure
    return jsonify(user_to_dict(user)), 200


@users_bp.patch("/users/<int:user_id>")
@login_required
def update_user(user_id: int):
    user, failure = _get_user_or_404(user_id)
    if failure:
        return failure

    data = request.get_json(silent=True) or {}
    errors = validate_profile(data)

    if "fullName" in data and len(text_field(data, "fullName")) < 3:
        errors.append("Full name must be at least 3 characters")

    email = None
    if "email" in data:
        email = text_field(data, "email").lower()
        if not is_valid_email(email):
            errors.append("Invalid email")
        elif User.query.filter(User.email == email, User.id != user.id).first():
            return jsonify(error="Email already registered", code="EMAIL_TAKEN"), 409

    admin_fields = ("role", "documentationStatus", "paymentStatus", "isActive")
    if not g.user.is_admin and any(k in data for k in admin_fields):
        log_event("WARN", f"Non-admin tried to change protected fields of user {user.id}")
        return jsonify(error="Only administrators can change role, status or activity", code="FORBIDDEN"), 403

    if "role" in data and data["role"] not in ROLES:
        errors.append("role must be one of " + ", ".join(ROLES))
    if "documentationStatus" in data and data["documentationStatus"] not in DOCUMENTATION_STATUSES:
        errors.append("documentationStatus must be one of " + ", ".join(DOCUMENTATION_STATUSES))
    if "paymentStatus" in data and data["paymentStatus"] not in PAYMENT_STATUSES:
        errors.append("paymentStatus must be one of " + ", ".join(PAYMENT_STATUSES))
    if errors:
        return jsonify(error="Invalid user data", code="VALIDATION_ERROR", details=errors), 400

    for key, column in SELF_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if key == "email":
            value = email
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(user, column, value)

    if "role" in data:
        user.role = data["role"]
    if "documentationStatus" in data:
        user.documentation_status = data["documentationStatus"]
    if "paymentStatus" in data:
        user.payment_status = data["paymentStatus"]
    if "isActive" in data:
        user.is_active = coerce_bool(data["isActive"])
        if not user.is_active:
            revoke_all_sessions(user.id, reason="logout_all")

    db.session.commit()
    log_event("INFO", f"User {user.id} updated")
    return jsonify(user_to_dict(user)), 200


@users_bp.post("/users/<int:user_id>/change-password")
@login_required
def change_password(user_id: int):
    user, failure = _get_user_or_404(user_id)
    if failure:
        return failure

    data = request.get_json(silent=True) or {}
    current_password = data.get("currentPassword") or ""
    new_password = data.get("newPassword") or ""

    resetting_other = g.user.is_admin and g.user.id != user.id
    if not resetting_other and not verify_password(current_password, user.password_hash):
        log_event("WARN", "Password change with wrong current password")
        return jsonify(error="Current password is incorrect", code="INVALID_CREDENTIALS"), 401

    errors = password_errors(new_password)
    if errors:
        return jsonify(error="Password does not meet policy", code="VALIDATION_ERROR", details=errors), 400

    user.password_hash = hash_password(new_password)
    db.session.commit()
    log_event("INFO", f"Password changed for user {user.id}")
    return jsonify(message="Password updated"), 200


@users_bp.post("/users/<int:user_id>/documents")
@login_required
def upload_documents(user_id: int):
    user, failure = _get_user_or_404(user_id)
    if failure:
        return failure

    errors = check_files(request.files, fields=DOCUMENT_FIELDS)
    if errors:
        return jsonify(error="Invalid documents", code="VALIDATION_ERROR", details=errors), 400

    stored = store_user_files(user, request.files, fields=DOCUMENT_FIELDS)
    if not stored:
        return jsonify(error="Upload identification and/or diploma", code="VALIDATION_ERROR"), 400

    if user.documentation_status != "approved":
        user.documentation_status = "pending"
    db.session.commit()

    log_event("INFO", f"Documents uploaded for user {user.id}: {', '.join(stored)}")
    return jsonify(_documents(user)), 200


@users_bp.get("/users/<int:user_id>/documents")
@login_required
def get_documents(user_id: int):
    user, failure = _get_user_or_404(user_id)
    if failure:
        return failure
    return jsonify(_documents(user)), 200


@users_bp.post("/users/<int:user_id>/documents/validate")
@admin_required
def validate_documents(user_id: int):
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify(error="User not found", code="USER_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    action = data.get("action")
    if action not in ("approve", "reject"):
        return jsonify(error="action must be approve or reject", code="VALIDATION_ERROR"), 400
    if not user.identification_url and not user.diploma_url:
        return jsonify(error="User has no documents to validate", code="NO_DOCUMENTS"), 400

    user.documentation_status = "approved" if action == "approve" else "rejected"
    db.session.commit()

    log_event("INFO", f"Documentation of user {user.id} {user.documentation_status}")
    return jsonify(_documents(user)), 200


@users_bp.get("/users/<int:user_id>/bookings")
@login_required
def user_bookings(user_id: int):
    user, failure = _get_user_or_404(user_id)
    if failure:
        return failure
    rows = (
        Booking.query
        .filter_by(user_id=user.id)
        .order_by(Booking.date.desc(), Booking.start_time.desc())
        .all()
    )
    return jsonify([booking_to_dict(b) for b in rows]), 200


@users_bp.get("/uploads/<path:filename>")
@login_required
def uploaded_file(filename: str):
    safe = secure_filename(filename)
    if not safe or safe != filename:
        return jsonify(error="File not found", code="NOT_FOUND"), 404
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], safe)
