from datetime import date, timedelta

from flask import Blueprint, jsonify, g, request

from security.rbac import admin_required
from utils import monitoring, trust_levels
from utils.audit import log_event
from utils.validators import coerce_bool, parse_date

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/monitoring")
@admin_required
def monitoring_report():
    today = date.today()
    start_raw = request.args.get("startDate")
    end_raw = request.args.get("endDate")

    start = parse_date(start_raw) if start_raw else today - timedelta(days=30)
    end = parse_date(end_raw) if end_raw else today
    if start is None or end is None:
        return jsonify(error="Invalid date. Use YYYY-MM-DD", code="VALIDATION_ERROR"), 400
    if start > end:
        return jsonify(error="startDate must not be after endDate", code="VALIDATION_ERROR"), 400

    report = monitoring.build_report(start, end)
    log_event("INFO", f"Monitoring report {start.isoformat()}..{end.isoformat()}", user_id=g.user.id)
    return jsonify(report), 200


@admin_bp.get("/trust-levels")
@admin_required
def trust_level_preview():
    changes = trust_levels.evaluate()
    return jsonify(changes=changes, total=len(changes)), 200


@admin_bp.post("/trust-levels/evaluate")
@admin_required
def trust_level_evaluate():
    data = request.get_json(silent=True) or {}
    dry_run = coerce_bool(data.get("dryRun", False))

    changes = trust_levels.evaluate()
    if not dry_run:
        trust_levels.apply_changes(changes, acting_user_id=g.user.id)

    log_event(
        "INFO",
        f"Trust levels evaluated: {len(changes)} changes{' (dry run)' if dry_run else ''}",
        user_id=g.user.id,
    )
    return jsonify(changes=changes, total=len(changes), applied=not dry_run), 200
