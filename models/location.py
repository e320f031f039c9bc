from datetime import datetime
from models.db import db


class Location(db.Model):
    __tablename__ = "locations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=False)
    address = db.Column(db.String(255), nullable=False)
    image_url = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=datetime.utcnow)

    rooms = db.relationship("Room", back_populates="location", lazy="dynamic")
    schedule = db.relationship(
        "LocationAvailability",
        back_populates="location",
        cascade="all, delete-orphan",
        order_by="LocationAvailability.day_of_week",
    )


class LocationAvailability(db.Model):
    __tablename__ = "location_availability"

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # ISO weekday: 1 = Monday ... 7 = Sunday
    day_of_week = db.Column(db.Integer, nullable=False)
    open_time = db.Column(db.Time, nullable=False)
    close_time = db.Column(db.Time, nullable=False)

    location = db.relationship("Location", back_populates="schedule")

    __table_args__ = (
        db.UniqueConstraint("location_id", "day_of_week", name="uq_location_day"),
    )
