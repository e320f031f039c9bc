from functools import wraps
from flask import g, jsonify

ROLES = ("admin", "standard", "trusted", "vip", "monthly")


def is_owner_or_admin(user_id: int) -> bool:
    user = getattr(g, "user", None)
    if user is None:
        return False
    return user.id == user_id or user.is_admin


def require_roles(*role_names: str):
    """
    Usage: @require_roles("admin")
    admin passes every role check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required", code="AUTH_REQUIRED"), 401

            if not user.is_admin and user.role not in role_names:
                return jsonify(error="Forbidden", code="FORBIDDEN"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator


admin_required = require_roles("admin")
