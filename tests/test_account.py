from datetime import datetime, timedelta
from decimal import Decimal

from models import db
from models.payment import Payment
from models.system_log import SystemLog
from models.user import User
from utils.account import parse_plan


def add_payment(app, user_id, amount, status, concept="Rental", created_at=None):
    with app.app_context():
        payment = Payment(user_id=user_id, amount=Decimal(amount), concept=concept, status=status)
        if created_at is not None:
            payment.created_at = created_at
        db.session.add(payment)
        db.session.commit()
        return payment.id


def test_summary_without_movements(login_as):
    client, _ = login_as()
    body = client.get("/api/account/summary").get_json()
    assert body["balance"] == "0.00"
    assert body["hasMovements"] is False
    assert body["message"]
    assert body["upcomingPayments"]["nextPaymentDate"] is None


def test_summary_totals(app, login_as):
    client, user_id = login_as()
    paid_at = datetime.utcnow() - timedelta(days=5)
    add_payment(app, user_id, "300.00", "succeeded", created_at=paid_at)
    add_payment(app, user_id, "200.00", "paid")
    add_payment(app, user_id, "150.00", "pending")
    add_payment(app, user_id, "999.00", "cancelled")

    body = client.get("/api/account/summary").get_json()
    assert body["totalPaid"] == "500.00"
    assert body["pendingCharges"] == "150.00"
    assert body["balance"] == "150.00"
    assert len(body["recentMovements"]) == 4
    assert "message" not in body
    assert body["upcomingPayments"]["nextPaymentDate"] is not None


def test_foreign_account_is_refused_and_logged(app, login_as, make_user):
    client, user_id = login_as()
    other_id = make_user()

    assert client.get(f"/api/account/summary?userId={other_id}").status_code == 403
    assert client.get(f"/api/account/history?userId={other_id}").status_code == 403
    assert client.get(f"/api/account/summary?userId={user_id}").status_code == 200

    with app.app_context():
        warnings = SystemLog.query.filter(SystemLog.severity == "WARN",
                                          SystemLog.message.contains("another user")).count()
    assert warnings == 2


def test_history_filters(app, login_as):
    client, user_id = login_as()
    old = datetime.utcnow() - timedelta(days=60)
    add_payment(app, user_id, "100.00", "succeeded", created_at=old)
    add_payment(app, user_id, "100.00", "paid")
    add_payment(app, user_id, "100.00", "canceled")
    add_payment(app, user_id, "100.00", "cancelled")

    body = client.get("/api/account/history").get_json()
    assert body["total"] == 4
    assert "userId" not in body["data"][0]

    assert client.get("/api/account/history?status=successful").get_json()["total"] == 2
    assert client.get("/api/account/history?status=cancelled").get_json()["total"] == 2
    assert client.get("/api/account/history?limit=1&page=2").get_json()["data"][0]["status"] in ("paid", "canceled", "cancelled")

    since = (datetime.utcnow() - timedelta(days=7)).date().isoformat()
    assert client.get(f"/api/account/history?dateFrom={since}").get_json()["total"] == 3

    assert client.get("/api/account/history?status=lost").status_code == 400
    assert client.get("/api/account/history?dateFrom=2030-02-01&dateTo=2030-01-01").status_code == 400


def test_empty_history_message(login_as):
    client, _ = login_as()
    body = client.get("/api/account/history").get_json()
    assert body["total"] == 0
    assert body["message"]


def test_cancel_subscription(app, login_as):
    client, user_id = login_as(payment_status="active")
    resp = client.post("/api/subscription/cancel")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["ok"] is True
    assert body["user"]["paymentStatus"] == "inactive"

    with app.app_context():
        end = db.session.get(User, user_id).subscription_end_date
    assert timedelta(days=29) < end - datetime.utcnow() <= timedelta(days=30)


def test_subscription_summary(app, login_as):
    client, user_id = login_as()
    assert client.get("/api/subscription/summary").get_json()["paymentStatus"] == "inactive"

    add_payment(app, user_id, "499.00", "succeeded", concept="Subscription - Plan Profesional")
    body = client.get("/api/subscription/summary").get_json()
    assert body["paymentStatus"] == "active"
    assert body["plan"] == {"name": "Plan Profesional", "price": 499.0}
    assert body["nextPaymentDate"] is not None


def test_parse_plan():
    assert parse_plan("Subscription - Basic") == "Basic"
    assert parse_plan("subscription-Premium Plus ") == "Premium Plus"
    assert parse_plan("Monthly membership") == "Monthly membership"
    assert parse_plan(None) == ""
