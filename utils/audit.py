from flask import request, g, has_request_context
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.system_log import SystemLog
from utils.logger import logger

_LOGURU_LEVELS = {"INFO": "INFO", "WARN": "WARNING", "ERROR": "ERROR", "CRITICAL": "CRITICAL"}


def log_event(severity: str, message: str, user_id=None, endpoint=None, stack=None):
    """
    Persist an event in system_logs and echo it to the process log.
    A failure to persist never breaks the calling request.
    """
    severity = severity if severity in _LOGURU_LEVELS else "INFO"
    url = None
    user_agent = None

    if has_request_context():
        endpoint = endpoint or request.path
        url = request.url[:500]
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None
        if user_id is None and getattr(g, "user", None) is not None:
            user_id = g.user.id

    logger.log(_LOGURU_LEVELS[severity], "{} [{}] user={}", message, endpoint, user_id)

    row = SystemLog(
        severity=severity,
        message=message,
        stack=stack,
        endpoint=endpoint,
        user_id=user_id,
        user_agent=user_agent,
        url=url,
    )
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Could not persist system log: {}", exc)
