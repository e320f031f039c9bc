from datetime import datetime
from models.db import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(160), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(30), nullable=True)

    # admin, standard, trusted, vip, monthly
    role = db.Column(db.String(20), nullable=False, default="standard")

    # psychologist, nutritionist, doctor, other
    professional_type = db.Column(db.String(40), nullable=True)
    professional_type_details = db.Column(db.String(255), nullable=True)
    professional_license = db.Column(db.String(80), nullable=True)
    specialty = db.Column(db.String(120), nullable=True)
    bio = db.Column(db.Text, nullable=True)

    profile_image_url = db.Column(db.String(255), nullable=True)
    identification_url = db.Column(db.String(255), nullable=True)
    diploma_url = db.Column(db.String(255), nullable=True)
    # none, pending, approved, rejected
    documentation_status = db.Column(db.String(20), nullable=False, default="none")

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    # active, pending, inactive
    payment_status = db.Column(db.String(20), nullable=False, default="inactive")
    last_payment_date = db.Column(db.DateTime, nullable=True)
    subscription_end_date = db.Column(db.DateTime, nullable=True)

    # completed bookings, feeds the trust-level rules
    booking_count = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=datetime.utcnow)

    bookings = db.relationship("Booking", back_populates="user", lazy="dynamic")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
