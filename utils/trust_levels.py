"""
Automatic promotion and demotion of therapists between the standard, trusted
and vip roles, driven by their booking history and the trust_* keys of
system_config.
"""
from datetime import datetime, timedelta

from sqlalchemy import func

from models import db
from models.booking import Booking
from models.user import User
from utils import config_store
from utils.audit import log_event

LADDER = ("standard", "trusted", "vip")


def _thresholds():
    return {
        "promotion_enabled": config_store.get_bool("trust_promotion_enabled", True),
        "for_trusted": config_store.get_int("trust_bookings_for_trusted", 5),
        "for_vip": config_store.get_int("trust_bookings_for_vip", 20),
        "degradation_enabled": config_store.get_bool("trust_degradation_enabled", True),
        "cancellations": config_store.get_int("trust_cancellations_for_degradation", 5),
        "period_days": config_store.get_int("trust_degradation_period_days", 30),
    }


def proposed_role(role: str, completed: int, recent_cancellations: int, rules: dict):
    """Returns (new_role, reason) or (role, None) when nothing changes."""
    if role not in LADDER:
        return role, None
    level = LADDER.index(role)

    if rules["degradation_enabled"] and level > 0 and rules["cancellations"] > 0 \
            and recent_cancellations >= rules["cancellations"]:
        return LADDER[level - 1], f"{recent_cancellations} cancellations in {rules['period_days']} days"

    if rules["promotion_enabled"]:
        if role == "standard" and completed >= rules["for_trusted"]:
            return "trusted", f"{completed} completed bookings"
        if role == "trusted" and completed >= rules["for_vip"]:
            return "vip", f"{completed} completed bookings"

    return role, None


def evaluate(now: datetime = None):
    """Compute the role change each eligible user would get, without saving."""
    now = now or datetime.utcnow()
    rules = _thresholds()
    since = now - timedelta(days=rules["period_days"])

    completed = dict(
        db.session.query(Booking.user_id, func.count(Booking.id))
        .filter(Booking.status == "completed")
        .group_by(Booking.user_id)
        .all()
    )
    cancelled = dict(
        db.session.query(Booking.user_id, func.count(Booking.id))
        .filter(Booking.status == "cancelled", Booking.cancelled_at >= since)
        .group_by(Booking.user_id)
        .all()
    )

    changes = []
    for user in User.query.filter(User.role.in_(LADDER)).order_by(User.id).all():
        done = max(completed.get(user.id, 0), user.booking_count or 0)
        recent = cancelled.get(user.id, 0)
        new_role, reason = proposed_role(user.role, done, recent, rules)
        if new_role != user.role:
            changes.append({
                "userId": user.id,
                "username": user.username,
                "fullName": user.full_name,
                "currentRole": user.role,
                "newRole": new_role,
                "completedBookings": done,
                "recentCancellations": recent,
                "reason": reason,
            })
    return changes


def apply_changes(changes, acting_user_id=None):
    for change in changes:
        user = db.session.get(User, change["userId"])
        if user is None or user.role != change["currentRole"]:
            continue
        user.role = change["newRole"]
        log_event(
            "INFO",
            f"Trust level of {user.username} changed from {change['currentRole']} "
            f"to {change['newRole']} ({change['reason']})",
            user_id=acting_user_id,
        )
    db.session.commit()
    return changes
