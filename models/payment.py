from datetime import datetime
from models.db import db


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="mxn")
    concept = db.Column(db.String(500), nullable=False)

    # pending, paid, cancelled, refunded or a Stripe PaymentIntent status
    status = db.Column(db.String(40), nullable=False, default="pending")
    method = db.Column(db.String(40), nullable=True)
    payment_date = db.Column(db.DateTime, nullable=True)

    payment_intent_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    idempotency_key = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship("User")


class PaymentEvent(db.Model):
    __tablename__ = "payment_events"

    id = db.Column(db.Integer, primary_key=True)
    # Stripe event id, processed once
    event_id = db.Column(db.String(255), unique=True, nullable=False)
    payment_intent_id = db.Column(db.String(255), nullable=True)
    type = db.Column(db.String(80), nullable=False)
    payload = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
