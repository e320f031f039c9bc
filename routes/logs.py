import re

from flask import Blueprint, request, jsonify, g

from models.system_log import SystemLog, SEVERITIES
from security.rbac import admin_required
from utils.audit import log_event
from utils.serializers import log_to_dict
from utils.validators import coerce_int, parse_datetime

logs_bp = Blueprint("logs", __name__, url_prefix="/api")

MAX_TEXT = 20000

_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9\-_.~+/=]+", re.IGNORECASE)
_SECRET_PARAM_RE = re.compile(r"(password|token|authorization|apiKey)=([^&\s]+)", re.IGNORECASE)


def mask_secrets(text):
    if not text:
        return text
    text = _BEARER_RE.sub("Bearer ***", text)
    text = _SECRET_PARAM_RE.sub(r"\1=***", text)
    return text[:MAX_TEXT]


@logs_bp.get("/logs")
@admin_required
def list_logs():
    args = request.args
    q = SystemLog.query

    from_date = parse_datetime(args.get("fromDate"))
    to_date = parse_datetime(args.get("toDate"))
    if args.get("fromDate") and from_date is None or args.get("toDate") and to_date is None:
        return jsonify(error="Invalid date filter", code="VALIDATION_ERROR"), 400
    if from_date:
        q = q.filter(SystemLog.created_at >= from_date)
    if to_date:
        q = q.filter(SystemLog.created_at <= to_date)

    severity = args.get("severity")
    if severity:
        if severity not in SEVERITIES:
            return jsonify(error="Invalid severity", code="VALIDATION_ERROR"), 400
        q = q.filter(SystemLog.severity == severity)

    module = args.get("module")
    if module:
        q = q.filter(SystemLog.endpoint.contains(module, autoescape=True))

    if args.get("user"):
        user_id = coerce_int(args.get("user"))
        if user_id is None:
            return jsonify(error="Invalid user", code="VALIDATION_ERROR"), 400
        q = q.filter(SystemLog.user_id == user_id)

    page = max(1, coerce_int(args.get("page")) or 1)
    page_size = min(100, max(1, coerce_int(args.get("pageSize")) or 20))

    column = SystemLog.severity if args.get("sort") == "severity" else SystemLog.created_at
    order = column.asc() if args.get("dir") == "asc" else column.desc()

    total = q.count()
    rows = q.order_by(order, SystemLog.id.desc()).offset((page - 1) * page_size).limit(page_size).all()

    data = []
    for r in rows:
        item = log_to_dict(r)
        item["message"] = mask_secrets(item["message"])
        item["stack"] = mask_secrets(item["stack"])
        data.append(item)
    return jsonify(data=data, total=total, page=page, pageSize=page_size), 200


@logs_bp.post("/logs")
def report_client_error():
    """Errors captured by the web client."""
    data = request.get_json(silent=True) or {}
    message = data.get("message")
    severity = data.get("severity") or "ERROR"

    if not isinstance(message, str) or not message.strip():
        return jsonify(error="message is required", code="VALIDATION_ERROR"), 400
    if severity not in SEVERITIES:
        return jsonify(error="Invalid severity", code="VALIDATION_ERROR"), 400

    stack = data.get("stack") if isinstance(data.get("stack"), str) else None
    endpoint = data.get("endpoint") if isinstance(data.get("endpoint"), str) else None
    user = getattr(g, "user", None)

    log_event(
        severity,
        mask_secrets(message.strip()),
        user_id=user.id if user else None,
        endpoint=(endpoint or request.path)[:255],
        stack=mask_secrets(stack),
    )
    return jsonify(message="Logged"), 201
