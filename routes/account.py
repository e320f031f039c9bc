from flask import Blueprint, request, jsonify, g

from utils import account
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import public_payment_to_dict, user_to_dict
from utils.validators import coerce_int, parse_datetime

account_bp = Blueprint("account", __name__, url_prefix="/api")


def _foreign_user_requested():
    """True when the query string asks for somebody else's account."""
    requested = request.args.get("userId")
    return bool(requested) and coerce_int(requested) != g.user.id


@account_bp.get("/account/summary")
@login_required
def account_summary():
    if _foreign_user_requested():
        log_event("WARN", f"Attempt to read another user's account summary requested={request.args.get('userId')}")
        return jsonify(error="Access denied", code="FORBIDDEN"), 403

    summary = account.account_summary(g.user.id)
    log_event("INFO", "Account summary viewed")
    return jsonify(summary), 200


@account_bp.get("/account/history")
@login_required
def account_history():
    if _foreign_user_requested():
        log_event("WARN", f"Attempt to read another user's payment history requested={request.args.get('userId')}")
        return jsonify(error="Access denied", code="FORBIDDEN"), 403

    args = request.args
    page = max(1, coerce_int(args.get("page")) or 1)
    page_size = min(100, max(1, coerce_int(args.get("limit")) or 20))

    date_from = parse_datetime(args.get("dateFrom"))
    date_to = parse_datetime(args.get("dateTo"))
    if date_from and date_to and date_from > date_to:
        log_event("WARN", "Invalid date range on payment history")
        return jsonify(error="dateFrom must not be after dateTo", code="VALIDATION_ERROR"), 400

    status = (args.get("status") or "").lower()
    statuses = account.STATUS_ALIASES.get(status) if status else None
    if status and statuses is None:
        return jsonify(error="Invalid status", code="VALIDATION_ERROR"), 400

    rows, total = account.payment_history(g.user.id, statuses, date_from, date_to, page, page_size)
    body = {
        "data": [public_payment_to_dict(p) for p in rows],
        "total": total,
        "page": page,
        "pageSize": page_size,
    }
    if total == 0:
        body["message"] = "There are no payments yet."

    log_event("INFO", f"Payment history viewed total={total}")
    return jsonify(body), 200


@account_bp.post("/subscription/cancel")
@login_required
def cancel_subscription():
    end = account.cancel_subscription(g.user)
    log_event("INFO", f"Subscription cancelled, ends {end.isoformat()}")
    return jsonify(ok=True, subscriptionEndDate=end.isoformat(), user=user_to_dict(g.user)), 200


@account_bp.get("/subscription/summary")
@login_required
def subscription_summary():
    return jsonify(account.subscription_summary(g.user)), 200
