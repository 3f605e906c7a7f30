"""
Tests for the subscription and payment lifecycle: checkout, webhook
reconciliation, renewal, cancellation and the scheduled sweeps.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from marketplace.core import config
from marketplace.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from marketplace.db.models.enums import (
    ListingStatus,
    NotificationStatus,
    PaymentMethod,
    PaymentStatus,
    PlanType,
    SubscriptionStatus,
)
from marketplace.db.models.cancellation_reason import CancellationReason
from marketplace.db.models.notification import Notification
from marketplace.db.models.payment import Invoice, Payment
from marketplace.db.models.plan import Plan
from marketplace.db.models.subscription import Subscription
from marketplace.services import payment_service


def checkout(db, plan, user, business, gateway, method="pix"):
    return payment_service.create_payment_preference(
        db,
        plan_id=plan.id,
        user_id=user.id,
        callback_url="https://front.example.com/payment",
        payment_method=method,
        business_id=business.id,
        gateway=gateway,
    )


def notify(db, subscription_id, status, event_id=None, reference=None):
    return payment_service.handle_gateway_notification(db, {
        "id": "cs_test_1",
        "status": status,
        "external_reference": reference or f"sub_{subscription_id}",
        "event_id": event_id,
    })


def templates(db):
    return [n.template for n in db.query(Notification).order_by(Notification.id).all()]


# ✅ CHECKOUT

def test_checkout_then_approved_webhook_end_to_end(db, owner, business, business_plan, gateway):
    user, _ = owner
    before = datetime.utcnow()

    result = checkout(db, business_plan, user, business, gateway)

    subscription = db.query(Subscription).filter(Subscription.id == result["subscription_id"]).one()
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert abs((subscription.end_date - (before + timedelta(days=30))).total_seconds()) < 60
    assert result["init_point"] == "https://checkout.test/pay/1"

    sent = gateway.checkouts[0]
    assert sent["external_reference"] == f"sub_{subscription.id}"
    assert sent["item"].unit_price == Decimal("100.00")
    assert sent["success_url"] == "https://front.example.com/payment/success"
    assert sent["failure_url"] == "https://front.example.com/payment/failure"

    payment = db.query(Payment).one()
    assert payment.status == PaymentStatus.PENDING
    assert payment.payment_method == PaymentMethod.PIX
    assert payment.payment_intent_id == "cs_test_1"

    assert notify(db, subscription.id, "approved", event_id="evt_1") == {"success": True}

    db.expire_all()
    assert payment.status == PaymentStatus.PAID
    assert payment.paid_at is not None
    assert db.query(Invoice).count() == 1
    assert business.status == ListingStatus.APPROVED
    assert business.featured is True
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert templates(db) == ["payment_confirmation"]


def test_rejected_webhook_cancels_without_side_effects(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)

    notify(db, result["subscription_id"], "rejected", event_id="evt_r")

    db.expire_all()
    payment = db.query(Payment).one()
    subscription = db.query(Subscription).one()
    assert payment.status == PaymentStatus.FAILED
    assert subscription.status == SubscriptionStatus.CANCELED
    assert db.query(Invoice).count() == 0
    assert business.status == ListingStatus.PENDING
    assert business.featured is False
    assert templates(db) == []


def test_inactive_plan_is_rejected_before_any_write(db, owner, business, business_plan, gateway):
    user, _ = owner
    business_plan.active = False
    db.commit()

    with pytest.raises(BadRequestError):
        checkout(db, business_plan, user, business, gateway)

    assert db.query(Subscription).count() == 0
    assert gateway.checkouts == []


def test_business_plan_requires_business_id(db, owner, business_plan, gateway):
    user, _ = owner
    with pytest.raises(BadRequestError):
        payment_service.create_payment_preference(
            db, plan_id=business_plan.id, user_id=user.id, callback_url="https://x",
            payment_method="pix", gateway=gateway,
        )


def test_missing_plan_and_invalid_method(db, owner, business, business_plan, gateway):
    user, _ = owner
    with pytest.raises(NotFoundError):
        payment_service.create_payment_preference(
            db, plan_id=999, user_id=user.id, callback_url="https://x", payment_method="pix", gateway=gateway,
        )
    with pytest.raises(BadRequestError):
        checkout(db, business_plan, user, business, gateway, method="bitcoin")


def test_second_active_subscription_for_business_conflicts(db, owner, business, business_plan, gateway):
    user, _ = owner
    checkout(db, business_plan, user, business, gateway)

    with pytest.raises(ConflictError):
        checkout(db, business_plan, user, business, gateway)

    assert db.query(Subscription).count() == 1


def test_only_owner_can_buy_plan_for_business(db, make_user, business, business_plan, gateway):
    stranger, _ = make_user()

    with pytest.raises(ForbiddenError):
        checkout(db, business_plan, stranger, business, gateway)


def test_gateway_failure_rolls_back_subscription(db, owner, business, business_plan, gateway):
    user, _ = owner
    gateway.error = RuntimeError("stripe down")

    with pytest.raises(RuntimeError):
        checkout(db, business_plan, user, business, gateway)

    assert db.query(Subscription).count() == 0
    assert db.query(Payment).count() == 0


def test_lazy_activation_waits_for_payment(db, owner, business, business_plan, gateway, monkeypatch):
    monkeypatch.setattr(config, "EAGER_SUBSCRIPTION_ACTIVATION", False)
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)
    subscription = db.query(Subscription).one()
    assert subscription.status == SubscriptionStatus.PENDING_PAYMENT

    notify(db, result["subscription_id"], "in_process", event_id="evt_p")
    db.expire_all()
    assert subscription.status == SubscriptionStatus.PENDING_PAYMENT

    notify(db, result["subscription_id"], "approved", event_id="evt_a")
    db.expire_all()
    assert subscription.status == SubscriptionStatus.ACTIVE


# ✅ WEBHOOK RECONCILIATION

@pytest.mark.parametrize("reference", ["", "sub_abc", "subscription_1", "renew_1_123"])
def test_invalid_reference_is_rejected_without_mutation(db, owner, business, business_plan, gateway, reference):
    user, _ = owner
    checkout(db, business_plan, user, business, gateway)

    with pytest.raises(BadRequestError):
        payment_service.process_payment_webhook(db, {
            "id": "x", "status": "approved", "external_reference": reference, "event_id": "evt_bad",
        })

    db.expire_all()
    assert db.query(Payment).one().status == PaymentStatus.PENDING
    assert db.query(Subscription).one().status == SubscriptionStatus.ACTIVE


def test_unknown_subscription_is_not_found(db):
    with pytest.raises(NotFoundError):
        notify(db, 12345, "approved")


def test_redelivered_event_is_a_no_op(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)

    notify(db, result["subscription_id"], "approved", event_id="evt_same")
    second = notify(db, result["subscription_id"], "approved", event_id="evt_same")

    assert second == {"success": True, "duplicate": True}
    assert db.query(Invoice).count() == 1
    assert templates(db) == ["payment_confirmation"]


def test_second_approval_with_new_event_id_creates_no_second_invoice(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)

    notify(db, result["subscription_id"], "approved", event_id="evt_1")
    notify(db, result["subscription_id"], "approved", event_id="evt_2")

    assert db.query(Invoice).count() == 1


def test_refund_cancels_subscription(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)
    notify(db, result["subscription_id"], "approved", event_id="evt_1")

    notify(db, result["subscription_id"], "refunded", event_id="evt_2")

    db.expire_all()
    assert db.query(Payment).one().status == PaymentStatus.REFUNDED
    assert db.query(Subscription).one().status == SubscriptionStatus.CANCELED


def test_unrecognized_status_leaves_payment_pending(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)

    notify(db, result["subscription_id"], "authorized", event_id="evt_x")

    db.expire_all()
    assert db.query(Payment).one().status == PaymentStatus.PENDING
    assert db.query(Subscription).one().status == SubscriptionStatus.ACTIVE


def test_late_pending_event_does_not_reopen_paid_payment(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)
    subscription_id = result["subscription_id"]
    notify(db, subscription_id, "approved", event_id="evt_a")

    late = notify(db, subscription_id, "pending", event_id="evt_b")
    again = notify(db, subscription_id, "approved", event_id="evt_c")

    assert late == {"success": True, "ignored": True}
    assert again == {"success": True, "ignored": True}
    db.expire_all()
    payment = db.query(Payment).one()
    assert payment.status == PaymentStatus.PAID
    assert payment.paid_at is not None
    assert db.query(Subscription).one().status == SubscriptionStatus.ACTIVE
    assert db.query(Invoice).count() == 1
    assert templates(db) == ["payment_confirmation"]

    # Ignored events are still recorded
    assert notify(db, subscription_id, "pending", event_id="evt_b") == {"success": True, "duplicate": True}


def test_failed_payment_is_final(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)
    notify(db, result["subscription_id"], "rejected", event_id="evt_r")

    response = notify(db, result["subscription_id"], "approved", event_id="evt_a")

    assert response == {"success": True, "ignored": True}
    db.expire_all()
    assert db.query(Payment).one().status == PaymentStatus.FAILED
    assert db.query(Subscription).one().status == SubscriptionStatus.CANCELED
    assert db.query(Invoice).count() == 0
    assert business.status == ListingStatus.PENDING
    assert templates(db) == []


def test_refunded_payment_is_final(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)
    notify(db, result["subscription_id"], "approved", event_id="evt_1")
    notify(db, result["subscription_id"], "refunded", event_id="evt_2")

    for status, event_id in (("approved", "evt_3"), ("pending", "evt_4"), ("rejected", "evt_5")):
        assert notify(db, result["subscription_id"], status, event_id=event_id) == {"success": True, "ignored": True}

    db.expire_all()
    assert db.query(Payment).one().status == PaymentStatus.REFUNDED
    assert db.query(Subscription).one().status == SubscriptionStatus.CANCELED
    assert db.query(Invoice).count() == 1


def test_payment_without_reference_falls_back_to_latest(db, owner, business, business_plan):
    user, _ = owner
    subscription = Subscription(
        user_id=user.id, plan_id=business_plan.id, business_id=business.id,
        status=SubscriptionStatus.ACTIVE, start_date=datetime.utcnow(),
        end_date=datetime.utcnow() + timedelta(days=30), auto_renew=True,
    )
    db.add(subscription)
    db.flush()
    db.add(Payment(subscription_id=subscription.id, amount=business_plan.price, payment_method=PaymentMethod.PIX))
    db.commit()

    assert notify(db, subscription.id, "approved", event_id="evt_old") == {"success": True}

    db.expire_all()
    assert db.query(Payment).one().status == PaymentStatus.PAID


# ✅ RENEWAL

def _paid_subscription(db, owner, business, plan, gateway):
    user, _ = owner
    result = checkout(db, plan, user, business, gateway)
    notify(db, result["subscription_id"], "approved", event_id="evt_first")
    return db.query(Subscription).filter(Subscription.id == result["subscription_id"]).one()


def test_approved_renewal_extends_end_date(db, owner, business, business_plan, gateway):
    subscription = _paid_subscription(db, owner, business, business_plan, gateway)
    original_end = subscription.end_date

    renewal = payment_service.renew_subscription(db, subscription.id, "boleto", gateway=gateway)
    assert renewal["new_end_date"] == original_end + timedelta(days=30)
    reference = gateway.checkouts[-1]["external_reference"]
    assert reference.startswith(f"renew_{subscription.id}_")

    notify(db, subscription.id, "approved", event_id="evt_renew", reference=reference)

    db.expire_all()
    assert subscription.end_date == original_end + timedelta(days=30)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert db.query(Invoice).count() == 2
    renewal_payment = db.query(Payment).filter(Payment.external_reference == reference).one()
    assert renewal_payment.status == PaymentStatus.PAID
    assert renewal_payment.payment_method == PaymentMethod.BOLETO


def test_failed_renewal_keeps_current_period(db, owner, business, business_plan, gateway):
    subscription = _paid_subscription(db, owner, business, business_plan, gateway)
    original_end = subscription.end_date
    payment_service.renew_subscription(db, subscription.id, "pix", gateway=gateway)
    reference = gateway.checkouts[-1]["external_reference"]

    notify(db, subscription.id, "rejected", event_id="evt_renew_fail", reference=reference)

    db.expire_all()
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.end_date == original_end
    assert db.query(Invoice).count() == 1


def test_renewal_settles_its_own_payment_while_original_is_pending(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)
    subscription = db.query(Subscription).filter(Subscription.id == result["subscription_id"]).one()
    original_end = subscription.end_date
    payment_service.renew_subscription(db, subscription.id, "pix", gateway=gateway)
    reference = gateway.checkouts[-1]["external_reference"]

    notify(db, subscription.id, "approved", event_id="evt_original")
    db.expire_all()
    statuses = {p.external_reference: p.status for p in db.query(Payment).all()}
    assert statuses == {f"sub_{subscription.id}": PaymentStatus.PAID, reference: PaymentStatus.PENDING}
    assert subscription.end_date == original_end

    notify(db, subscription.id, "approved", event_id="evt_renewal", reference=reference)

    db.expire_all()
    statuses = {p.external_reference: p.status for p in db.query(Payment).all()}
    assert statuses == {f"sub_{subscription.id}": PaymentStatus.PAID, reference: PaymentStatus.PAID}
    assert subscription.end_date == original_end + timedelta(days=30)
    assert db.query(Invoice).count() == 2


def test_renewal_event_for_unknown_checkout_is_not_found(db, owner, business, business_plan, gateway):
    subscription = _paid_subscription(db, owner, business, business_plan, gateway)

    with pytest.raises(NotFoundError):
        notify(db, subscription.id, "approved", event_id="evt_stray", reference=f"renew_{subscription.id}_123")

    db.expire_all()
    assert db.query(Invoice).count() == 1


def test_renew_requires_active_subscription(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)
    payment_service.cancel_subscription(db, result["subscription_id"], user.id)

    with pytest.raises(BadRequestError):
        payment_service.renew_subscription(db, result["subscription_id"], "pix", gateway=gateway)


# ✅ CANCELLATION & AUTO-RENEW

def test_cancel_records_reason_and_queues_email(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)

    response = payment_service.cancel_subscription(db, result["subscription_id"], user.id, "Too expensive")

    assert response["success"] is True
    subscription = db.query(Subscription).one()
    assert subscription.status == SubscriptionStatus.CANCELED
    assert subscription.auto_renew is False
    assert db.query(CancellationReason).one().reason == "Too expensive"
    assert templates(db) == ["subscription_canceled"]


def test_cancel_twice_fails_and_changes_nothing(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)
    payment_service.cancel_subscription(db, result["subscription_id"], user.id)

    with pytest.raises(BadRequestError):
        payment_service.cancel_subscription(db, result["subscription_id"], user.id)

    db.expire_all()
    subscription = db.query(Subscription).one()
    assert subscription.status == SubscriptionStatus.CANCELED
    assert subscription.auto_renew is False


def test_cancel_by_other_user_is_forbidden(db, owner, make_user, business, business_plan, gateway):
    user, _ = owner
    stranger, _ = make_user()
    result = checkout(db, business_plan, user, business, gateway)

    with pytest.raises(ForbiddenError):
        payment_service.cancel_subscription(db, result["subscription_id"], stranger.id)
    with pytest.raises(ForbiddenError):
        payment_service.toggle_auto_renew(db, result["subscription_id"], stranger.id, False)


def test_toggle_auto_renew(db, owner, business, business_plan, gateway):
    user, _ = owner
    result = checkout(db, business_plan, user, business, gateway)

    subscription = payment_service.toggle_auto_renew(db, result["subscription_id"], user.id, False)

    assert subscription.auto_renew is False


# ✅ SWEEPS

def _subscription_ending(db, user, plan, business, end_date, auto_renew=True, method=PaymentMethod.PIX):
    subscription = Subscription(
        user_id=user.id, plan_id=plan.id, business_id=business.id if business else None,
        status=SubscriptionStatus.ACTIVE, start_date=end_date - timedelta(days=30),
        end_date=end_date, auto_renew=auto_renew,
    )
    db.add(subscription)
    db.flush()
    db.add(Payment(
        subscription_id=subscription.id, amount=plan.price, status=PaymentStatus.PAID,
        payment_method=method, external_reference=f"sub_{subscription.id}",
    ))
    db.commit()
    return subscription


def test_expiring_subscriptions_get_a_warning(db, owner, business, business_plan):
    user, _ = owner
    now = datetime(2026, 5, 1, 12, 0)
    soon = _subscription_ending(db, user, business_plan, business, now + timedelta(days=3))
    _subscription_ending(db, user, business_plan, None, now + timedelta(days=20))

    result = payment_service.check_expiring_subscriptions(db, now=now)

    assert result["processed"] == 1
    assert result["subscriptions"][0]["id"] == soon.id
    notification = db.query(Notification).one()
    assert notification.template == "subscription_expiring"
    assert notification.status == NotificationStatus.PENDING
    assert notification.context["end_date"] == "2026-05-04"


def test_auto_renewals_reuse_latest_payment_method(db, owner, business, business_plan, gateway):
    user, _ = owner
    now = datetime(2026, 5, 10, 9, 0)
    due = _subscription_ending(db, user, business_plan, business, datetime(2026, 5, 10, 18, 0),
                               method=PaymentMethod.BOLETO)
    _subscription_ending(db, user, business_plan, None, datetime(2026, 5, 10, 20, 0), auto_renew=False)
    _subscription_ending(db, user, business_plan, None, datetime(2026, 5, 11, 8, 0))

    result = payment_service.process_auto_renewals(db, now=now, gateway=gateway)

    assert result["processed"] == 1
    assert result["results"][0] == {"subscription_id": due.id, "status": "renewed", "preference_id": "cs_test_1"}
    assert gateway.checkouts[0]["payment_method"] == "boleto"


def test_auto_renewal_failure_is_reported_not_raised(db, owner, business, business_plan, gateway):
    user, _ = owner
    now = datetime(2026, 5, 10, 9, 0)
    due = _subscription_ending(db, user, business_plan, business, datetime(2026, 5, 10, 18, 0))
    gateway.error = RuntimeError("gateway timeout")

    result = payment_service.process_auto_renewals(db, now=now, gateway=gateway)

    assert result["results"] == [{"subscription_id": due.id, "status": "error", "error": "gateway timeout"}]
    assert db.query(Payment).count() == 1


# ✅ PLANS

def test_plan_with_active_subscriptions_cannot_be_deleted(db, owner, business, business_plan, gateway):
    from marketplace.services import plan_service

    user, _ = owner
    checkout(db, business_plan, user, business, gateway)

    with pytest.raises(ConflictError):
        plan_service.delete_plan(db, business_plan.id)

    job_plan = plan_service.create_plan(db, {
        "name": "Job post", "description": "Publish one job for 15 days", "price": Decimal("20"),
        "duration": 15, "type": PlanType.JOB, "features": ["One job"], "active": True,
    })
    plan_service.delete_plan(db, job_plan.id)
    assert db.query(Plan).count() == 1
