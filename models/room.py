from models.db import db


class Room(db.Model):
    __tablename__ = "rooms"

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False)
    price = db.Column(db.Integer, nullable=False)  # per hour, in cents
    image_url = db.Column(db.String(255), nullable=False)
    features = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    location = db.relationship("Location", back_populates="rooms")
    availability = db.relationship(
        "RoomAvailability",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="RoomAvailability.day_of_week",
    )


class RoomAvailability(db.Model):
    __tablename__ = "availability"

    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=False, index=True)

    # 0 = Sunday ... 6 = Saturday
    day_of_week = db.Column(db.Integer, nullable=False)
    open_time = db.Column(db.Time, nullable=False)
    close_time = db.Column(db.Time, nullable=False)
    is_closed = db.Column(db.Boolean, default=False, nullable=False)

    room = db.relationship("Room", back_populates="availability")
