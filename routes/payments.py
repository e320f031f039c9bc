import csv
import io
import json
import time
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import stripe
from flask import Blueprint, Response, request, jsonify, current_app, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.payment import Payment, PaymentEvent
from models.user import User
from security.rbac import admin_required
from utils.account import activate_user_payment
from utils.audit import log_event
from utils.auth_context import login_required
from utils.booking_rules import apply_discount
from utils.errors import ApiError, ForbiddenError, NotFoundError, PaymentProviderError
from utils.logger import logger
from utils.serializers import payment_to_dict
from utils.validators import coerce_int, parse_datetime, text_field

payments_bp = Blueprint("payments", __name__, url_prefix="/api")

MANUAL_STATUSES = ("pending", "paid", "cancelled", "refunded", "failed")
CSV_COLUMNS = (
    "id", "createdAt", "payment_date", "userId", "userFullName", "email", "amount",
    "currency", "status", "method", "concept", "paymentIntentId",
)


def _stripe():
    secret = current_app.config.get("STRIPE_SECRET_KEY")
    if not secret:
        raise PaymentProviderError("Stripe is not configured")
    stripe.api_key = secret
    return stripe


def _parse_amount(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _metadata_user_id(metadata):
    try:
        return int(metadata["userId"])
    except (KeyError, TypeError, ValueError):
        return None


def _sync_intent(intent_id: str, status: str, metadata=None):
    """Copy a PaymentIntent status onto the local row and activate the payer on success."""
    payment = Payment.query.filter_by(payment_intent_id=intent_id).first()
    if payment is not None:
        payment.status = status
        if status == "succeeded" and payment.payment_date is None:
            payment.payment_date = datetime.utcnow()

    if status == "succeeded":
        user_id = _metadata_user_id(metadata) if metadata is not None else None
        if user_id is None and payment is not None:
            user_id = payment.user_id
        user = db.session.get(User, user_id) if user_id is not None else None
        if user is not None:
            activate_user_payment(user)
    return payment


def _csv_cell(value):
    if value is None:
        return ""
    text = str(value)
    # spreadsheet formula injection
    if text[:1] in ("=", "+", "-", "@"):
        text = "'" + text
    return text


def _listing_row(payment: Payment, user: User) -> dict:
    return {
        "id": payment.id,
        "createdAt": payment.created_at.isoformat() if payment.created_at else None,
        "payment_date": payment.payment_date.isoformat() if payment.payment_date else None,
        "userId": payment.user_id,
        "userFullName": user.full_name if user else None,
        "email": user.email if user else None,
        "amount": f"{payment.amount:.2f}",
        "currency": payment.currency,
        "status": payment.status,
        "method": payment.method,
        "concept": (payment.concept or "")[:500],
        "paymentIntentId": payment.payment_intent_id,
    }


@payments_bp.post("/payments/create-intent")
@login_required
def create_intent():
    client = _stripe()
    data = request.get_json(silent=True) or {}

    amount = _parse_amount(data.get("amount"))
    if amount is None:
        return jsonify(error="Invalid amount", code="INVALID_AMOUNT"), 400

    currency = str(data.get("currency") or "mxn").lower()
    if currency not in current_app.config.get("ALLOWED_CURRENCIES", ("mxn",)):
        return jsonify(error="Currency not allowed", code="INVALID_CURRENCY"), 400

    booking_id = coerce_int(data.get("bookingId"))
    if data.get("bookingId") not in (None, "") and booking_id is None:
        return jsonify(error="Invalid bookingId", code="VALIDATION_ERROR"), 400
    if booking_id is not None:
        booking = db.session.get(Booking, booking_id)
        if booking is None:
            return jsonify(error="Booking not found", code="BOOKING_NOT_FOUND"), 404
        if booking.user_id != g.user.id and not g.user.is_admin:
            return jsonify(error="Forbidden", code="FORBIDDEN"), 403

    concept = data.get("concept")
    if not isinstance(concept, str) or not concept.strip():
        concept = "Payment"
    concept = concept.strip()[:500]
    idem_key = data.get("idempotencyKey") or (
        f"pi_{g.user.id}_{booking_id or 'na'}_{amount}_{int(time.time() * 1000)}"
    )

    try:
        intent = client.PaymentIntent.create(
            amount=int(amount * 100),
            currency=currency,
            automatic_payment_methods={"enabled": True},
            metadata={
                "userId": str(g.user.id),
                "bookingId": str(booking_id) if booking_id else "",
                "concept": concept,
            },
            idempotency_key=idem_key,
        )
    except stripe.StripeError as exc:
        log_event("ERROR", f"Stripe PaymentIntent creation failed: {exc}")
        raise PaymentProviderError("Payment provider error", status=502)

    if Payment.query.filter_by(payment_intent_id=intent.id).first() is None:
        # attach to the booking's open charge instead of adding a second one
        payment = None
        if booking_id is not None:
            payment = Payment.query.filter_by(
                booking_id=booking_id, status="pending", payment_intent_id=None
            ).first()
        if payment is None:
            payment = Payment(user_id=g.user.id, booking_id=booking_id, amount=amount, concept=concept)
            db.session.add(payment)
        payment.currency = currency
        payment.payment_intent_id = intent.id
        payment.idempotency_key = idem_key
        payment.status = intent.status
        payment.method = "stripe"
        db.session.commit()

    log_event("INFO", f"PaymentIntent {intent.id} created for {amount} {currency}")
    return jsonify(
        clientSecret=intent.client_secret,
        paymentIntentId=intent.id,
        status=intent.status,
        amount=intent.amount,
        currency=intent.currency,
        idempotencyKey=idem_key,
    ), 201


@payments_bp.get("/payments/intent/<intent_id>")
@login_required
def get_intent(intent_id: str):
    client = _stripe()

    local = Payment.query.filter_by(payment_intent_id=intent_id).first()
    if local is not None and local.user_id != g.user.id and not g.user.is_admin:
        raise ForbiddenError("Not allowed to view this payment")

    try:
        intent = client.PaymentIntent.retrieve(intent_id)
    except stripe.StripeError as exc:
        logger.warning("PaymentIntent {} lookup failed: {}", intent_id, exc)
        raise NotFoundError("PaymentIntent not found", code="PAYMENT_NOT_FOUND")

    if local is None and _metadata_user_id(intent.metadata) != g.user.id and not g.user.is_admin:
        raise ForbiddenError("Not allowed to view this payment")

    _sync_intent(intent.id, intent.status, intent.metadata)
    db.session.commit()
    return jsonify(
        id=intent.id,
        status=intent.status,
        amount=intent.amount,
        currency=intent.currency,
        clientSecret=intent.client_secret,
    ), 200


@payments_bp.post("/payments/webhook")
def stripe_webhook():
    client = _stripe()
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not endpoint_secret:
        raise PaymentProviderError("Stripe is not configured")

    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        return jsonify(error="Missing Stripe-Signature header", code="INVALID_SIGNATURE"), 400

    payload = request.get_data()
    try:
        client.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        log_event("WARN", f"Rejected Stripe webhook: {exc}")
        return jsonify(error="Invalid webhook signature", code="INVALID_SIGNATURE"), 400

    event = json.loads(payload)
    event_id = event.get("id")
    event_type = event.get("type") or ""
    obj = (event.get("data") or {}).get("object") or {}

    if PaymentEvent.query.filter_by(event_id=event_id).first():
        return jsonify(received=True, duplicate=True), 200

    db.session.add(PaymentEvent(
        event_id=event_id,
        payment_intent_id=obj.get("id"),
        type=event_type,
        payload=json.dumps(obj)[:4000],
    ))

    if event_type.startswith("payment_intent."):
        _sync_intent(obj.get("id"), obj.get("status"), obj.get("metadata") or {})
    elif event_type in ("charge.refunded", "charge.refund.updated"):
        intent_id = obj.get("payment_intent")
        payment = Payment.query.filter_by(payment_intent_id=intent_id).first() if intent_id else None
        if payment is not None:
            payment.status = "refunded"

    try:
        db.session.commit()
    except IntegrityError:
        # same event delivered twice concurrently
        db.session.rollback()
        return jsonify(received=True, duplicate=True), 200

    log_event("INFO", f"Stripe event {event_type} processed ({event_id})")
    return jsonify(received=True), 200


@payments_bp.post("/payment")
@admin_required
def create_manual_payment():
    data = request.get_json(silent=True) or {}

    user_id = coerce_int(data.get("userId"))
    amount = _parse_amount(data.get("amount"))
    concept = data.get("concept")
    status = data.get("status") or "pending"

    errors = []
    if user_id is None:
        errors.append("userId is required")
    if amount is None:
        errors.append("amount must be greater than zero")
    if not isinstance(concept, str) or not concept.strip():
        errors.append("concept is required")
    if status not in MANUAL_STATUSES:
        errors.append("status must be one of " + ", ".join(MANUAL_STATUSES))
    if errors:
        return jsonify(error="Invalid payment data", code="VALIDATION_ERROR", details=errors), 400

    user = db.session.get(User, user_id)
    if user is None:
        return jsonify(error="User not found", code="USER_NOT_FOUND"), 404

    booking_id = coerce_int(data.get("bookingId"))
    if booking_id is not None and db.session.get(Booking, booking_id) is None:
        return jsonify(error="Booking not found", code="BOOKING_NOT_FOUND"), 404

    payment = Payment(
        user_id=user.id,
        booking_id=booking_id,
        amount=amount,
        concept=concept.strip()[:500],
        currency=str(data.get("currency") or "mxn").lower(),
        status=status,
        method=text_field(data, "method") or "manual",
        payment_date=datetime.utcnow() if status == "paid" else None,
    )
    db.session.add(payment)
    db.session.commit()

    log_event("INFO", f"Manual payment {payment.id} of {amount} recorded for user {user.id}")
    return jsonify(payment_to_dict(payment)), 201


@payments_bp.post("/payment/<int:payment_id>/discount")
@admin_required
def discount_payment(payment_id: int):
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        return jsonify(error="Payment not found", code="PAYMENT_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    percentage = data.get("percentage")
    if percentage is None or isinstance(percentage, bool):
        return jsonify(error="percentage is required", code="INVALID_PERCENTAGE"), 400

    apply_discount(payment, percentage)
    log_event("INFO", f"Discount of {percentage}% applied to payment {payment.id}")
    return jsonify(message=f"Discount of {percentage}% applied", payment=payment_to_dict(payment)), 200


@payments_bp.patch("/payments/<int:payment_id>/status")
@admin_required
def update_payment_status(payment_id: int):
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        return jsonify(error="Payment not found", code="PAYMENT_NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in MANUAL_STATUSES:
        return jsonify(error="status must be one of " + ", ".join(MANUAL_STATUSES), code="VALIDATION_ERROR"), 400

    previous = payment.status
    payment.status = status
    if isinstance(data.get("method"), str) and data["method"].strip():
        payment.method = data["method"].strip()
    if status == "paid":
        payment.payment_date = datetime.utcnow()
    db.session.commit()

    log_event("INFO", f"Payment {payment.id} changed from {previous} to {status}")
    return jsonify(payment_to_dict(payment)), 200


@payments_bp.get("/payments")
@admin_required
def list_payments():
    args = request.args
    wants_csv = (args.get("format") or "").lower() == "csv" or "text/csv" in request.headers.get("Accept", "")

    page = max(1, coerce_int(args.get("page")) or 1)
    page_size = min(100, max(1, coerce_int(args.get("pageSize")) or 20))

    q = db.session.query(Payment, User).outerjoin(User, Payment.user_id == User.id)

    if args.get("user"):
        user_id = coerce_int(args.get("user"))
        if user_id is None:
            return jsonify(error="Invalid user", code="VALIDATION_ERROR"), 400
        q = q.filter(Payment.user_id == user_id)
    if args.get("status"):
        q = q.filter(Payment.status == args.get("status"))

    date_from = parse_datetime(args.get("dateFrom"))
    date_to = parse_datetime(args.get("dateTo"))
    if date_from and date_to and date_from > date_to:
        return jsonify(error="dateFrom must not be after dateTo", code="VALIDATION_ERROR"), 400
    if date_from:
        q = q.filter(Payment.created_at >= date_from)
    if date_to:
        q = q.filter(Payment.created_at <= date_to)

    total = q.count()
    rows = (
        q.order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    data = [_listing_row(p, u) for p, u in rows]

    log_event("INFO", f"Payments listed total={total}")

    if wants_csv:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\r\n")
        writer.writerow(CSV_COLUMNS)
        for row in data:
            writer.writerow([_csv_cell(row[c]) for c in CSV_COLUMNS])
        return Response(
            buf.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": 'attachment; filename="payments.csv"'},
        )

    return jsonify(data=data, total=total, page=page, pageSize=page_size), 200


@payments_bp.get("/payments/<int:payment_id>")
@admin_required
def get_payment(payment_id: int):
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        return jsonify(error="Payment not found", code="PAYMENT_NOT_FOUND"), 404

    out = payment_to_dict(payment)
    out["clientSecret"] = None
    out["charges"] = []

    secret = current_app.config.get("STRIPE_SECRET_KEY")
    if secret and payment.payment_intent_id:
        stripe.api_key = secret
        try:
            intent = stripe.PaymentIntent.retrieve(payment.payment_intent_id, expand=["latest_charge"])
        except stripe.StripeError as exc:
            logger.warning("PaymentIntent {} lookup failed: {}", payment.payment_intent_id, exc)
        else:
            out["clientSecret"] = "***" if getattr(intent, "client_secret", None) else None
            charge = getattr(intent, "latest_charge", None)
            if charge is not None and not isinstance(charge, str):
                out["charges"] = [{"id": charge.id, "amount": charge.amount, "status": charge.status}]

    return jsonify(out), 200


@payments_bp.get("/payments/<int:payment_id>/receipt")
@admin_required
def get_receipt(payment_id: int):
    client = _stripe()
    payment = db.session.get(Payment, payment_id)
    if payment is None or not payment.payment_intent_id:
        return jsonify(error="No PaymentIntent linked to this payment", code="PAYMENT_NOT_FOUND"), 404

    try:
        intent = client.PaymentIntent.retrieve(payment.payment_intent_id, expand=["latest_charge"])
    except stripe.StripeError as exc:
        log_event("ERROR", f"Receipt lookup failed for payment {payment.id}: {exc}")
        raise ApiError("Payment provider error", status=502, code="PAYMENT_PROVIDER_ERROR")

    charge = getattr(intent, "latest_charge", None)
    receipt = getattr(charge, "receipt_url", None) if charge is not None and not isinstance(charge, str) else None
    if not receipt:
        return jsonify(error="No receipt available for this payment", code="RECEIPT_NOT_FOUND"), 404
    return jsonify(url=receipt), 200
