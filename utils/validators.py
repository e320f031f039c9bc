import re
from datetime import date, datetime, time

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_date(value):
    """YYYY-MM-DD -> date, or None when malformed."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_time(value):
    """HH:MM (24h) -> time, or None when malformed."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None
    m = _TIME_RE.match(value.strip())
    if not m:
        return None
    return time(int(m.group(1)), int(m.group(2)))


def parse_datetime(value):
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


def text_field(data: dict, key: str) -> str:
    """Stripped text value of `key`, or "" when it is missing or not a string."""
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def is_valid_email(email) -> bool:
    return isinstance(email, str) and len(email) <= 255 and bool(_EMAIL_RE.match(email))


def coerce_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def coerce_int(value):
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_schedule(entries, min_day: int, max_day: int):
    """
    Validate a weekly schedule: list of {dayOfWeek, openTime, closeTime}.
    Returns (rows, errors) where rows are (day, open, close) tuples.
    """
    if entries is None:
        return [], []
    if not isinstance(entries, list):
        return [], ["availability must be a list"]

    rows, errors, seen = [], [], set()
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append(f"availability[{i}] must be an object")
            continue
        day = coerce_int(entry.get("dayOfWeek"))
        open_t = parse_time(entry.get("openTime"))
        close_t = parse_time(entry.get("closeTime"))
        if day is None or not (min_day <= day <= max_day):
            errors.append(f"availability[{i}].dayOfWeek must be between {min_day} and {max_day}")
            continue
        if open_t is None or close_t is None:
            errors.append(f"availability[{i}] times must use HH:MM")
            continue
        if open_t >= close_t:
            errors.append(f"availability[{i}] openTime must be before closeTime")
            continue
        if day in seen:
            errors.append(f"availability[{i}] repeats dayOfWeek {day}")
            continue
        seen.add(day)
        rows.append((day, open_t, close_t))
    return rows, errors
