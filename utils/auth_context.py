from functools import wraps
from flask import g, jsonify
from models import db
from models.user import User
from security.session import get_session_from_request
from utils.audit import log_event


def load_current_user():
    g.user = None
    g.session = None
    g.session_idle_expired = False

    sess, idle_expired = get_session_from_request()
    if not sess:
        return
    if idle_expired:
        g.session_idle_expired = True
        log_event("INFO", "Logout due to inactivity", user_id=sess.user_id)
        return

    user = db.session.get(User, sess.user_id)
    if user is None or not user.is_active:
        return
    g.session = sess
    g.user = user


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            if getattr(g, "session_idle_expired", False):
                return jsonify(error="Your session ended due to inactivity", code="SESSION_IDLE"), 401
            return jsonify(error="Authentication required", code="AUTH_REQUIRED"), 401
        return fn(*args, **kwargs)
    return wrapper
