"""
HTTP tests for plans, subscriptions, the Stripe webhook endpoint and
the admin sweeps.
"""
import json
from decimal import Decimal

import pytest

from marketplace.db.models.enums import ListingStatus, PaymentStatus, PlanType, SubscriptionStatus
from marketplace.db.models.cancellation_reason import CancellationReason
from marketplace.db.models.payment import Invoice, Payment
from marketplace.db.models.plan import Plan
from marketplace.db.models.subscription import Subscription


def subscribe(client, headers, plan, business, **overrides):
    payload = {"plan_id": plan.id, "payment_method": "pix", "business_id": business.id}
    payload.update(overrides)
    return client.post("/payments/subscriptions", json=payload, headers=headers)


def stripe_event(event_type, session_id="cs_test_1", reference=None, event_id="evt_1", **fields):
    obj = {"id": session_id, "object": "checkout.session", "client_reference_id": reference}
    obj.update(fields)
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def post_webhook(client, event, signature="valid"):
    return client.post(
        "/payments/webhook",
        content=json.dumps(event),
        headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
    )


# ✅ PLANS

def test_inactive_plans_hidden_from_public(client, db, admin, business_plan):
    db.add(Plan(name="Legacy", description="No longer sold", price=Decimal("10.00"), duration=30,
                type=PlanType.JOB, features=["Old"], active=False))
    db.commit()

    assert [p["name"] for p in client.get("/payments/plans").json()] == ["Featured Business"]
    assert len(client.get("/payments/plans", headers=admin[1]).json()) == 2


def test_plan_management_is_admin_only(client, owner, admin):
    payload = {
        "name": "Professional Pro",
        "description": "Highlighted professional profile",
        "price": "49.90",
        "duration": 30,
        "type": "PROFESSIONAL",
        "features": ["Highlighted profile"],
    }

    assert client.post("/payments/plans", json=payload, headers=owner[1]).status_code == 403

    response = client.post("/payments/plans", json=payload, headers=admin[1])
    assert response.status_code == 201
    plan = response.json()
    assert plan["price"] == 49.9
    assert plan["active"] is True

    updated = client.put(f"/payments/plans/{plan['id']}", json={"active": False}, headers=admin[1])
    assert updated.json()["active"] is False


# ✅ SUBSCRIPTIONS

def test_subscribe_returns_checkout(client, owner, business, business_plan, gateway):
    response = subscribe(client, owner[1], business_plan, business)

    assert response.status_code == 201
    body = response.json()
    assert body["preference_id"] == "cs_test_1"
    assert body["init_point"] == "https://checkout.test/pay/1"
    assert gateway.checkouts[0]["success_url"].endswith("/payment/success")

    subscriptions = client.get("/payments/subscriptions", headers=owner[1]).json()
    assert [s["id"] for s in subscriptions] == [body["subscription_id"]]
    assert subscriptions[0]["plan"]["name"] == "Featured Business"


def test_subscribe_rejects_unknown_payment_method(client, owner, business, business_plan):
    response = subscribe(client, owner[1], business_plan, business, payment_method="bitcoin")

    assert response.status_code == 400


def test_subscribe_for_someone_elses_business(client, make_user, business, business_plan):
    assert subscribe(client, make_user()[1], business_plan, business).status_code == 403


def test_subscription_visible_only_to_owner(client, make_user, owner, business, business_plan):
    subscription_id = subscribe(client, owner[1], business_plan, business).json()["subscription_id"]

    assert client.get(f"/payments/subscriptions/{subscription_id}", headers=owner[1]).status_code == 200
    assert client.get(f"/payments/subscriptions/{subscription_id}", headers=make_user()[1]).status_code == 403


# ✅ WEBHOOK

def test_paid_checkout_webhook_marks_payment_paid(client, db, owner, business, business_plan):
    subscription_id = subscribe(client, owner[1], business_plan, business).json()["subscription_id"]

    event = stripe_event("checkout.session.completed", reference=f"sub_{subscription_id}", payment_status="paid")
    response = post_webhook(client, event)

    assert response.status_code == 200
    assert response.json() == {"success": True}

    db.expire_all()
    payment = db.query(Payment).one()
    assert payment.status == PaymentStatus.PAID
    assert db.query(Invoice).count() == 1
    assert db.get(Subscription, subscription_id).status == SubscriptionStatus.ACTIVE
    assert business.status == ListingStatus.APPROVED

    invoices = client.get("/payments/invoices", headers=owner[1]).json()
    assert invoices[0]["number"].startswith("INV-")
    assert invoices[0]["number"].endswith(f"-{payment.id}")


def test_redelivered_webhook_is_acknowledged_once(client, db, owner, business, business_plan):
    subscription_id = subscribe(client, owner[1], business_plan, business).json()["subscription_id"]
    event = stripe_event("checkout.session.completed", reference=f"sub_{subscription_id}", payment_status="paid")

    post_webhook(client, event)
    response = post_webhook(client, event)

    assert response.json() == {"success": True, "duplicate": True}
    db.expire_all()
    assert db.query(Invoice).count() == 1


def test_webhook_with_bad_signature(client):
    response = post_webhook(client, stripe_event("checkout.session.completed", reference="sub_1"), signature="forged")

    assert response.status_code == 400
    assert response.json()["message"].startswith("Webhook verification failed")


def test_irrelevant_webhook_events_are_acknowledged(client):
    response = post_webhook(client, {"id": "evt_9", "type": "customer.created", "data": {"object": {"id": "cus_1"}}})

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_webhook_for_unknown_subscription(client):
    response = post_webhook(client, stripe_event("checkout.session.async_payment_failed", reference="sub_999"))

    assert response.status_code == 404


# ✅ CANCEL / RENEW / AUTO-RENEW

def test_cancel_with_reason(client, db, owner, business, business_plan):
    subscription_id = subscribe(client, owner[1], business_plan, business).json()["subscription_id"]

    response = client.request(
        "DELETE",
        f"/payments/subscriptions/{subscription_id}",
        json={"reason": "Moving to another city"},
        headers=owner[1],
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Subscription canceled"
    db.expire_all()
    assert db.query(CancellationReason).one().reason == "Moving to another city"

    again = client.delete(f"/payments/subscriptions/{subscription_id}", headers=owner[1])
    assert again.status_code == 400


def test_renew_opens_checkout_without_moving_end_date(client, db, owner, business, business_plan, gateway):
    subscription_id = subscribe(client, owner[1], business_plan, business).json()["subscription_id"]
    end_date = db.get(Subscription, subscription_id).end_date

    response = client.post(f"/payments/subscriptions/{subscription_id}/renew",
                           json={"payment_method": "boleto"}, headers=owner[1])

    assert response.status_code == 200
    assert response.json()["preference_id"] == "cs_test_2"
    assert gateway.checkouts[1]["external_reference"].startswith(f"renew_{subscription_id}_")
    db.expire_all()
    assert db.get(Subscription, subscription_id).end_date == end_date


def test_renew_by_stranger_is_forbidden(client, make_user, owner, business, business_plan, gateway):
    subscription_id = subscribe(client, owner[1], business_plan, business).json()["subscription_id"]

    response = client.post(f"/payments/subscriptions/{subscription_id}/renew",
                           json={"payment_method": "pix"}, headers=make_user()[1])

    assert response.status_code == 403
    assert len(gateway.checkouts) == 1


def test_toggle_auto_renew(client, owner, business, business_plan):
    subscription_id = subscribe(client, owner[1], business_plan, business).json()["subscription_id"]

    response = client.patch(f"/payments/subscriptions/{subscription_id}/auto-renew",
                            json={"auto_renew": False}, headers=owner[1])

    assert response.json()["auto_renew"] is False


# ✅ PAYMENT DETAILS

def test_payment_details_include_gateway_info(client, make_user, owner, business, business_plan):
    subscribe(client, owner[1], business_plan, business)
    payment_id = client.get("/payments", headers=owner[1]).json()[0]["id"]

    response = client.get(f"/payments/{payment_id}", headers=owner[1])

    assert response.status_code == 200
    assert response.json()["payment"]["status"] == "PENDING"
    assert response.json()["gateway"] == {"id": "cs_test_1", "status": "open", "payment_status": "unpaid"}
    assert client.get(f"/payments/{payment_id}", headers=make_user()[1]).status_code == 403


def test_payment_details_survive_gateway_outage(client, owner, business, business_plan, gateway, monkeypatch):
    subscribe(client, owner[1], business_plan, business)
    payment_id = client.get("/payments", headers=owner[1]).json()[0]["id"]

    def unreachable(checkout_id):
        raise ConnectionError("gateway down")

    monkeypatch.setattr(gateway, "get_checkout", unreachable)

    response = client.get(f"/payments/{payment_id}", headers=owner[1])

    assert response.status_code == 200
    assert response.json()["gateway"] is None


# ✅ SWEEPS

@pytest.mark.parametrize("path", ["/payments/admin/check-expiring", "/payments/admin/process-renewals"])
def test_sweeps_are_admin_only(client, owner, admin, path):
    assert client.post(path, headers=owner[1]).status_code == 403

    response = client.post(path, headers=admin[1])
    assert response.status_code == 200
    assert response.json()["processed"] == 0
