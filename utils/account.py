import re
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func

from models import db
from models.payment import Payment
from utils.serializers import public_payment_to_dict

PAID_STATUSES = ("succeeded", "paid")
OPEN_STATUSES = ("pending", "requires_payment_method", "processing")
BILLING_CYCLE_DAYS = 30

# history filter aliases -> stored statuses
STATUS_ALIASES = {
    "succeeded": ("succeeded",),
    "paid": ("paid",),
    "successful": PAID_STATUSES,
    "pending": ("pending",),
    "canceled": ("canceled", "cancelled"),
    "cancelled": ("canceled", "cancelled"),
    "failed": ("canceled", "cancelled", "failed"),
    "refunded": ("refunded",),
}

_PLAN_RE = re.compile(r"subscription\s*-\s*(.+)", re.IGNORECASE)


def _sum(user_id: int, statuses) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.user_id == user_id, Payment.status.in_(statuses))
        .scalar()
    )
    return Decimal(total or 0)


def last_paid_payment(user_id: int):
    return (
        Payment.query
        .filter(Payment.user_id == user_id, Payment.status.in_(PAID_STATUSES))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .first()
    )


def effective_payment_status(user, now: datetime = None) -> str:
    """
    active: a settled payment exists and the subscription has not ended.
    pending: open charges exist. inactive otherwise.
    """
    now = now or datetime.utcnow()
    ended = user.subscription_end_date is not None and user.subscription_end_date < now
    if last_paid_payment(user.id) is not None and not ended:
        return "active"
    if Payment.query.filter(Payment.user_id == user.id, Payment.status.in_(OPEN_STATUSES)).count():
        return "pending"
    return "inactive"


def account_summary(user_id: int) -> dict:
    pending = _sum(user_id, OPEN_STATUSES)
    paid = _sum(user_id, PAID_STATUSES)

    movements = (
        Payment.query
        .filter_by(user_id=user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(10)
        .all()
    )

    last = last_paid_payment(user_id)
    next_date = (last.created_at + timedelta(days=BILLING_CYCLE_DAYS)).isoformat() if last else None

    summary = {
        "balance": f"{pending:.2f}",
        "totalPaid": f"{paid:.2f}",
        "pendingCharges": f"{pending:.2f}",
        "upcomingPayments": {"nextPaymentDate": next_date},
        "recentMovements": [public_payment_to_dict(p) for p in movements],
        "hasMovements": bool(movements),
    }
    if not movements:
        summary["message"] = "There are no movements in your account."
    return summary


def payment_history(user_id: int, statuses=None, date_from=None, date_to=None, page=1, page_size=20):
    q = Payment.query.filter(Payment.user_id == user_id)
    if statuses:
        q = q.filter(Payment.status.in_(statuses))
    if date_from:
        q = q.filter(Payment.created_at >= date_from)
    if date_to:
        q = q.filter(Payment.created_at <= date_to)

    total = q.count()
    rows = (
        q.order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return rows, total


def cancel_subscription(user, now: datetime = None):
    now = now or datetime.utcnow()
    user.payment_status = "inactive"
    user.subscription_end_date = now + timedelta(days=BILLING_CYCLE_DAYS)
    db.session.commit()
    return user.subscription_end_date


def parse_plan(concept: str):
    concept = (concept or "").strip()
    m = _PLAN_RE.search(concept)
    return (m.group(1) if m else concept).strip()


def subscription_summary(user) -> dict:
    last = last_paid_payment(user.id)
    status = "active" if last is not None else "inactive"
    last_date = user.last_payment_date or (last.created_at if last else None)

    next_date = None
    if status == "active" and last_date:
        next_date = (last_date + timedelta(days=BILLING_CYCLE_DAYS)).isoformat()

    plan = None
    if last is not None:
        name = parse_plan(last.concept)
        if name:
            plan = {"name": name, "price": float(last.amount)}

    return {
        "paymentStatus": status,
        "lastPaymentDate": last_date.isoformat() if last_date else None,
        "subscriptionEndDate": user.subscription_end_date.isoformat() if user.subscription_end_date else None,
        "nextPaymentDate": next_date,
        "plan": plan,
    }


def activate_user_payment(user, now: datetime = None):
    """A settled payment reactivates the therapist's subscription."""
    user.payment_status = "active"
    user.last_payment_date = now or datetime.utcnow()
    user.subscription_end_date = None
