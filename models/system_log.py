from datetime import datetime
from models.db import db

SEVERITIES = ("INFO", "WARN", "ERROR", "CRITICAL")


class SystemLog(db.Model):
    __tablename__ = "system_logs"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    severity = db.Column(db.String(10), nullable=False)
    message = db.Column(db.Text, nullable=False)
    stack = db.Column(db.Text, nullable=True)

    endpoint = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)  # nullable for unauth events
    user_agent = db.Column(db.String(255), nullable=True)
    url = db.Column(db.String(500), nullable=True)
