import hashlib
import secrets
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.session import Session

def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def create_session(user_id: int) -> str:
    """
    Creates a server-side session and returns the RAW token (to set as cookie).
    Only the hash is stored in DB.
    """
    raw_token = secrets.token_urlsafe(32)

    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 7 * 24 * 60 * 60)
    now = datetime.utcnow()

    row = Session(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        created_at=now,
        last_seen_at=now,
        expires_at=now + timedelta(seconds=lifetime),
        ip=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    )
    db.session.add(row)
    db.session.commit()
    return raw_token

def get_session_from_request():
    """
    Returns (session, idle_expired). A session that went idle is revoked
    here so the caller can tell the user why they were logged out.
    """
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "sati_session")
    raw_token = request.cookies.get(cookie_name)
    if not raw_token:
        return None, False

    sess = (
        Session.query
        .filter_by(token_hash=_hash_token(raw_token), revoked=False)
        .first()
    )
    if not sess:
        return None, False

    now = datetime.utcnow()

    # Absolute expiry
    if sess.expires_at <= now:
        return None, False

    # Idle timeout
    idle_seconds = current_app.config.get("IDLE_TIMEOUT_SECONDS", 30 * 60)
    if sess.last_seen_at + timedelta(seconds=idle_seconds) <= now:
        sess.revoked = True
        sess.revoked_reason = "idle"
        db.session.commit()
        return sess, True

    # Sliding activity window
    sess.last_seen_at = now
    db.session.commit()

    return sess, False


def revoke_session(raw_token: str, reason: str = "logout") -> bool:
    if not raw_token:
        return False
    sess = Session.query.filter_by(token_hash=_hash_token(raw_token)).first()
    if not sess:
        return False
    sess.revoked = True
    sess.revoked_reason = reason
    db.session.commit()
    return True

def revoke_all_sessions(user_id: int, reason: str = "logout_all") -> int:
    sessions = Session.query.filter_by(user_id=user_id, revoked=False).all()
    for s in sessions:
        s.revoked = True
        s.revoked_reason = reason
    db.session.commit()
    return len(sessions)
