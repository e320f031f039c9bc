from flask import current_app

from models import db
from models.system_config import SystemConfig


def seed_config():
    """Insert default booking rules that are missing. Existing values are kept."""
    defaults = current_app.config.get("DEFAULT_BOOKING_RULES", {})
    existing = {c.key for c in SystemConfig.query.all()}
    added = []
    for key, (value, description) in defaults.items():
        if key not in existing:
            db.session.add(SystemConfig(key=key, value=value, description=description))
            added.append(key)
    db.session.commit()
    return added
