"""
Integration tests for the admin dashboard, moderation, user management
and reports.
"""
from datetime import datetime
from decimal import Decimal

import pytest

from marketplace.core import config
from marketplace.db.models.enums import (
    ListingStatus,
    NotificationStatus,
    PaymentMethod,
    PaymentStatus,
    SubscriptionStatus,
)
from marketplace.db.models.notification import Notification
from marketplace.db.models.payment import Payment
from marketplace.db.models.subscription import Subscription


@pytest.fixture
def paid_history(db, owner, business, business_plan):
    """One ACTIVE subscription with two PAID payments in different months and one FAILED."""
    user, _ = owner
    subscription = Subscription(
        user_id=user.id, plan_id=business_plan.id, business_id=business.id,
        status=SubscriptionStatus.ACTIVE, start_date=datetime(2026, 3, 1), end_date=datetime(2026, 4, 30),
        auto_renew=True,
    )
    db.add(subscription)
    db.flush()
    for amount, status, paid_at in (
        ("100.00", PaymentStatus.PAID, datetime(2026, 3, 1, 10)),
        ("80.00", PaymentStatus.PAID, datetime(2026, 4, 1, 10)),
        ("100.00", PaymentStatus.FAILED, None),
    ):
        db.add(Payment(subscription_id=subscription.id, amount=Decimal(amount), status=status,
                       payment_method=PaymentMethod.PIX, paid_at=paid_at))
    db.commit()
    return subscription


@pytest.mark.parametrize("method,path", [
    ("get", "/admin/dashboard"),
    ("get", "/admin/revenue"),
    ("get", "/admin/pending"),
    ("get", "/admin/users"),
    ("get", "/admin/payments"),
    ("post", "/admin/notifications/dispatch"),
])
def test_admin_routes_reject_other_roles(client, owner, method, path):
    assert getattr(client, method)(path).status_code == 401
    assert getattr(client, method)(path, headers=owner[1]).status_code == 403


def test_dashboard_counts(client, admin, business, professional, paid_history):
    body = client.get("/admin/dashboard", headers=admin[1]).json()

    assert body["users"] == 2
    assert body["businesses"] == 1
    assert body["professionals"] == 1
    assert body["active_subscriptions"] == 1
    assert body["posts"] == 0


def test_revenue_groups_paid_payments_by_month(client, admin, paid_history):
    body = client.get("/admin/revenue", headers=admin[1]).json()

    assert body["total"] == 180.0
    assert body["by_month"] == [
        {"month": "2026-03", "amount": 100.0},
        {"month": "2026-04", "amount": 80.0},
    ]


def test_pending_and_moderation(client, db, admin, business, professional):
    pending = client.get("/admin/pending", headers=admin[1]).json()
    assert [b["id"] for b in pending["businesses"]] == [business.id]
    assert [p["id"] for p in pending["professionals"]] == [professional.id]

    response = client.post(f"/admin/moderate/business/{business.id}", json={"approve": True}, headers=admin[1])
    assert response.json() == {"success": True, "item_type": "business", "item_id": business.id, "status": "APPROVED"}

    response = client.post(f"/admin/moderate/professional/{professional.id}", json={"approve": False},
                           headers=admin[1])
    assert response.json()["status"] == "REJECTED"

    db.expire_all()
    assert business.status == ListingStatus.APPROVED
    assert client.get("/admin/pending", headers=admin[1]).json()["businesses"] == []


def test_moderating_unknown_item(client, admin):
    assert client.post("/admin/moderate/business/999", json={"approve": True}, headers=admin[1]).status_code == 404
    assert client.post("/admin/moderate/post/1", json={"approve": True}, headers=admin[1]).status_code == 400


def test_user_management(client, db, make_user, admin):
    user, headers = make_user(email="maria@example.com")

    listed = client.get("/admin/users", params={"search": "maria"}, headers=admin[1]).json()
    assert [u["id"] for u in listed["items"]] == [user.id]

    response = client.patch(f"/admin/users/{user.id}", json={"role": "EDITOR"}, headers=admin[1])
    assert response.json()["role"] == "EDITOR"
    assert response.json()["status"] == "APPROVED"

    assert client.get("/admin/users", params={"role": "EDITOR"}, headers=admin[1]).json()["total"] == 1

    client.patch(f"/admin/users/{user.id}", json={"status": "INACTIVE"}, headers=admin[1])
    assert client.get("/users/me", headers=headers).status_code == 401


def test_payments_report_totals(client, admin, paid_history):
    body = client.get("/admin/payments", headers=admin[1]).json()

    assert body["total"] == 3
    assert body["totals"]["PAID"] == {"count": 2, "amount": 180.0}
    assert body["totals"]["FAILED"] == {"count": 1, "amount": 100.0}

    failed = client.get("/admin/payments", params={"status": "FAILED"}, headers=admin[1]).json()
    assert [p["status"] for p in failed["items"]] == ["FAILED"]


def test_dispatch_notifications(client, db, admin, monkeypatch):
    monkeypatch.setattr(config, "SMTP_HOST", "")
    db.add(Notification(template="welcome", recipient="new@example.com", context={"name": "New"},
                        status=NotificationStatus.PENDING, attempts=0))
    db.commit()

    response = client.post("/admin/notifications/dispatch", headers=admin[1])

    assert response.json() == {"processed": 1, "sent": 1, "failed": 0}
    db.expire_all()
    assert db.query(Notification).one().status == NotificationStatus.SENT
