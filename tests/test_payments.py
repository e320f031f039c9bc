import csv
import io
import json
from datetime import date, time, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from models import db
from models.booking import Booking
from models.payment import Payment, PaymentEvent
from models.user import User


@pytest.fixture
def stripe_on(app):
    app.config["STRIPE_SECRET_KEY"] = "sk_test_dummy"
    app.config["STRIPE_WEBHOOK_SECRET"] = "whsec_dummy"
    return app


def fake_intent(intent_id="pi_123", status="requires_payment_method", amount=50000, metadata=None, charge=None):
    return SimpleNamespace(
        id=intent_id,
        status=status,
        amount=amount,
        currency="mxn",
        client_secret=f"{intent_id}_secret_abc",
        metadata=metadata or {},
        latest_charge=charge,
    )


def add_payment(app, user_id, amount="100.00", status="pending", **fields):
    with app.app_context():
        payment = Payment(user_id=user_id, amount=Decimal(amount), concept=fields.pop("concept", "Rental"),
                          status=status, **fields)
        db.session.add(payment)
        db.session.commit()
        return payment.id


def test_create_intent_requires_stripe_configuration(login_as):
    client, _ = login_as()
    resp = client.post("/api/payments/create-intent", json={"amount": 500})
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "Stripe is not configured"


def test_create_intent_validates_amount_and_currency(stripe_on, login_as):
    client, _ = login_as()
    for amount in (0, -5, "abc", True, None):
        resp = client.post("/api/payments/create-intent", json={"amount": amount})
        assert resp.status_code == 400, amount
    resp = client.post("/api/payments/create-intent", json={"amount": 10, "currency": "btc"})
    assert resp.status_code == 400


def test_create_intent_records_payment(stripe_on, login_as):
    client, user_id = login_as()
    with patch("stripe.PaymentIntent.create", return_value=fake_intent()) as create:
        resp = client.post("/api/payments/create-intent", json={"amount": "500", "concept": "Subscription - Basic"})

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["clientSecret"] == "pi_123_secret_abc"
    assert body["paymentIntentId"] == "pi_123"

    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 50000
    assert kwargs["metadata"]["userId"] == str(user_id)
    assert kwargs["idempotency_key"] == body["idempotencyKey"]

    with stripe_on.app_context():
        payment = Payment.query.filter_by(payment_intent_id="pi_123").one()
        assert payment.user_id == user_id
        assert payment.method == "stripe"
        assert payment.concept == "Subscription - Basic"


def test_create_intent_attaches_to_booking_payment(stripe_on, login_as, make_user, make_room):
    client, user_id = login_as()
    other_id = make_user()
    room_id = make_room()
    with stripe_on.app_context():
        mine = Booking(room_id=room_id, user_id=user_id, date=date.today() + timedelta(days=3),
                       start_time=time(10, 0), end_time=time(11, 0))
        theirs = Booking(room_id=room_id, user_id=other_id, date=date.today() + timedelta(days=3),
                         start_time=time(12, 0), end_time=time(13, 0))
        db.session.add_all([mine, theirs])
        db.session.flush()
        db.session.add(Payment(user_id=user_id, booking_id=mine.id, amount=Decimal("500.00"), concept="Rental"))
        db.session.commit()
        mine_id, theirs_id = mine.id, theirs.id

    with patch("stripe.PaymentIntent.create", return_value=fake_intent("pi_booking")):
        assert client.post("/api/payments/create-intent",
                           json={"amount": 500, "bookingId": theirs_id}).status_code == 403
        assert client.post("/api/payments/create-intent",
                           json={"amount": 500, "bookingId": 999}).status_code == 404
        resp = client.post("/api/payments/create-intent", json={"amount": 500, "bookingId": mine_id})
    assert resp.status_code == 201

    with stripe_on.app_context():
        rows = Payment.query.filter_by(booking_id=mine_id).all()
        assert len(rows) == 1
        assert rows[0].payment_intent_id == "pi_booking"


def test_create_intent_provider_failure(stripe_on, login_as):
    client, _ = login_as()
    with patch("stripe.PaymentIntent.create", side_effect=stripe.StripeError("card network down")):
        resp = client.post("/api/payments/create-intent", json={"amount": 100})
    assert resp.status_code == 502


def test_get_intent_syncs_status_and_activates_user(stripe_on, login_as, make_user):
    client, user_id = login_as()
    add_payment(stripe_on, user_id, payment_intent_id="pi_ok")
    other_id = make_user()
    add_payment(stripe_on, other_id, payment_intent_id="pi_other")

    intent = fake_intent("pi_ok", status="succeeded", metadata={"userId": str(user_id)})
    with patch("stripe.PaymentIntent.retrieve", return_value=intent):
        resp = client.get("/api/payments/intent/pi_ok")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "succeeded"

    with stripe_on.app_context():
        assert Payment.query.filter_by(payment_intent_id="pi_ok").one().status == "succeeded"
        assert db.session.get(User, user_id).payment_status == "active"

    assert client.get("/api/payments/intent/pi_other").status_code == 403


def _post_webhook(client, event):
    return client.post(
        "/api/payments/webhook",
        data=json.dumps(event),
        content_type="application/json",
        headers={"Stripe-Signature": "t=1,v1=abc"},
    )


def test_webhook_rejects_missing_or_bad_signature(stripe_on, client):
    resp = client.post("/api/payments/webhook", data="{}", content_type="application/json")
    assert resp.status_code == 400

    bad = stripe.SignatureVerificationError("No signatures found", "t=1,v1=abc")
    with patch("stripe.Webhook.construct_event", side_effect=bad):
        assert _post_webhook(client, {"id": "evt_1"}).status_code == 400


def test_webhook_processes_each_event_once(stripe_on, client, make_user):
    user_id = make_user()
    add_payment(stripe_on, user_id, payment_intent_id="pi_hook")
    event = {
        "id": "evt_succeeded",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_hook", "status": "succeeded", "metadata": {"userId": str(user_id)}}},
    }

    with patch("stripe.Webhook.construct_event", return_value=event):
        first = _post_webhook(client, event)
        second = _post_webhook(client, event)

    assert first.status_code == 200
    assert second.get_json()["duplicate"] is True
    with stripe_on.app_context():
        assert PaymentEvent.query.count() == 1
        payment = Payment.query.filter_by(payment_intent_id="pi_hook").one()
        assert payment.status == "succeeded"
        assert payment.payment_date is not None
        assert db.session.get(User, user_id).payment_status == "active"


def test_webhook_refund(stripe_on, client, make_user):
    user_id = make_user()
    add_payment(stripe_on, user_id, status="succeeded", payment_intent_id="pi_refund")
    event = {"id": "evt_refund", "type": "charge.refunded", "data": {"object": {"id": "ch_1", "payment_intent": "pi_refund"}}}

    with patch("stripe.Webhook.construct_event", return_value=event):
        assert _post_webhook(client, event).status_code == 200
    with stripe_on.app_context():
        assert Payment.query.filter_by(payment_intent_id="pi_refund").one().status == "refunded"


def test_manual_payment(app, login_as, make_user):
    admin, _ = login_as(role="admin")
    user_id = make_user()

    resp = admin.post("/api/payment", json={"userId": user_id, "amount": 350, "concept": "Cash rental", "status": "paid"})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["amount"] == "350.00"
    assert body["method"] == "manual"
    assert body["payment_date"] is not None

    assert admin.post("/api/payment", json={"userId": 999, "amount": 1, "concept": "x"}).status_code == 404
    resp = admin.post("/api/payment", json={"userId": user_id, "amount": 0, "concept": "", "status": "lost"})
    assert resp.status_code == 400
    assert len(resp.get_json()["details"]) == 3


def test_discount_and_status_change(app, login_as, make_user):
    admin, _ = login_as(role="admin")
    user_id = make_user()
    payment_id = add_payment(app, user_id, amount="200.00")

    resp = admin.post(f"/api/payment/{payment_id}/discount", json={"percentage": 10})
    assert resp.status_code == 200
    assert resp.get_json()["payment"]["amount"] == "180.00"
    assert admin.post(f"/api/payment/{payment_id}/discount", json={"percentage": 101}).status_code == 400
    assert admin.post(f"/api/payment/{payment_id}/discount", json={}).status_code == 400

    resp = admin.patch(f"/api/payments/{payment_id}/status", json={"status": "paid", "method": "transfer"})
    assert resp.status_code == 200
    assert resp.get_json()["method"] == "transfer"
    assert admin.patch(f"/api/payments/{payment_id}/status", json={"status": "lost"}).status_code == 400


def test_payment_admin_routes_are_forbidden_to_therapists(login_as):
    client, user_id = login_as()
    assert client.get("/api/payments").status_code == 403
    assert client.post("/api/payment", json={"userId": user_id, "amount": 1, "concept": "x"}).status_code == 403


def test_list_payments_json_and_csv(app, login_as, make_user):
    admin, _ = login_as(role="admin")
    user_id = make_user(full_name="=HYPERLINK(\"evil\")")
    add_payment(app, user_id, amount="100.00", status="paid")
    add_payment(app, user_id, amount="50.00", status="pending", concept="+cmd")

    body = admin.get(f"/api/payments?user={user_id}").get_json()
    assert body["total"] == 2
    assert admin.get("/api/payments?status=paid").get_json()["total"] == 1

    resp = admin.get("/api/payments?format=csv")
    assert resp.mimetype == "text/csv"
    rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
    assert rows[0][0] == "id"
    assert len(rows) == 3
    assert all(row[4].startswith("'=") for row in rows[1:])
    assert any(row[10] == "'+cmd" for row in rows[1:])


def test_payment_detail_masks_client_secret(stripe_on, login_as, make_user):
    admin, _ = login_as(role="admin")
    user_id = make_user()
    payment_id = add_payment(stripe_on, user_id, payment_intent_id="pi_detail")

    charge = SimpleNamespace(id="ch_9", amount=10000, status="succeeded", receipt_url="https://pay.stripe.com/r/1")
    with patch("stripe.PaymentIntent.retrieve", return_value=fake_intent("pi_detail", charge=charge)):
        body = admin.get(f"/api/payments/{payment_id}").get_json()
        receipt = admin.get(f"/api/payments/{payment_id}/receipt")

    assert body["clientSecret"] == "***"
    assert body["charges"] == [{"id": "ch_9", "amount": 10000, "status": "succeeded"}]
    assert receipt.get_json()["url"] == "https://pay.stripe.com/r/1"

    no_intent = add_payment(stripe_on, user_id)
    assert admin.get(f"/api/payments/{no_intent}/receipt").status_code == 404


def test_manual_payment_ignores_non_text_method(app, login_as, make_user):
    admin, _ = login_as(role="admin")
    user_id = make_user()
    resp = admin.post("/api/payment", json={"userId": user_id, "amount": 10, "concept": "Cash", "method": {"x": 1}})
    assert resp.status_code == 201
    assert resp.get_json()["method"] == "manual"
