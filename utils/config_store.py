from flask import current_app

from models.system_config import SystemConfig

# keys whose values must be non-negative integers
INTEGER_KEYS = {
    "max_active_bookings",
    "max_active_bookings_trusted",
    "max_active_bookings_vip",
    "max_active_bookings_monthly",
    "advance_booking_days",
    "cancellation_hours_notice",
    "max_booking_duration_hours",
    "trust_bookings_for_trusted",
    "trust_bookings_for_vip",
    "trust_cancellations_for_degradation",
    "trust_degradation_period_days",
}
BOOLEAN_KEYS = {"trust_promotion_enabled", "trust_degradation_enabled"}


def _default(key: str):
    defaults = current_app.config.get("DEFAULT_BOOKING_RULES", {})
    entry = defaults.get(key)
    return entry[0] if entry else None


def get_value(key: str):
    row = SystemConfig.query.filter_by(key=key).first()
    if row is not None:
        return row.value
    return _default(key)


def get_int(key: str, fallback: int = 0) -> int:
    raw = get_value(key)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return fallback


def get_bool(key: str, fallback: bool = False) -> bool:
    raw = get_value(key)
    if raw is None:
        return fallback
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


def validate_value(key: str, value: str):
    """Returns an error message, or None when the value fits the key."""
    if key in INTEGER_KEYS:
        try:
            number = int(str(value).strip())
        except ValueError:
            return f"{key} must be an integer"
        if number < 0:
            return f"{key} must not be negative"
    if key in BOOLEAN_KEYS and str(value).strip().lower() not in ("true", "false"):
        return f"{key} must be true or false"
    return None


def active_booking_quota(role: str) -> int:
    base = get_int("max_active_bookings", 8)
    if role in ("trusted", "vip", "monthly"):
        return get_int(f"max_active_bookings_{role}", base)
    return base
