"""
Subscription and payment lifecycle.

Checkout creation, gateway webhook reconciliation, renewal, cancellation and
the scheduled expiry/auto-renewal sweeps. Every operation takes the request's
Session and commits its own unit of work.
"""
import logging
import re
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from marketplace.core import config
from marketplace.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from marketplace.db.models.business import Business
from marketplace.db.models.cancellation_reason import CancellationReason
from marketplace.db.models.enums import (
    ListingStatus,
    PaymentMethod,
    PaymentStatus,
    PlanType,
    SubscriptionStatus,
)
from marketplace.db.models.payment import Invoice, Payment
from marketplace.db.models.plan import Plan
from marketplace.db.models.professional import Professional
from marketplace.db.models.subscription import Subscription
from marketplace.db.models.user import User
from marketplace.db.models.webhook_event import ProcessedWebhookEvent
from marketplace.services import notification_service
from marketplace.services.payment_gateway import CheckoutItem, PaymentGateway, get_payment_gateway
from marketplace.services.permissions import ensure_owner_or_admin

logger = logging.getLogger(__name__)

SUBSCRIPTION_REFERENCE = re.compile(r"^sub_(\d+)$")
RENEWAL_REFERENCE = re.compile(r"^renew_(\d+)_(\d+)$")

# Gateway status -> (payment status, subscription status).
# None means "still awaiting payment": see _awaiting_status().
GATEWAY_STATUS_MAP: Dict[str, Tuple[PaymentStatus, Optional[SubscriptionStatus]]] = {
    "approved": (PaymentStatus.PAID, SubscriptionStatus.ACTIVE),
    "rejected": (PaymentStatus.FAILED, SubscriptionStatus.CANCELED),
    "cancelled": (PaymentStatus.FAILED, SubscriptionStatus.CANCELED),
    "refunded": (PaymentStatus.REFUNDED, SubscriptionStatus.CANCELED),
    "pending": (PaymentStatus.PENDING, None),
    "in_process": (PaymentStatus.PENDING, None),
}
DEFAULT_GATEWAY_STATUS = (PaymentStatus.PENDING, None)

# Payment status -> statuses a webhook may move it to. FAILED and REFUNDED are final.
PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PENDING, PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.REFUNDED,
    }),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _initial_status() -> SubscriptionStatus:
    if config.EAGER_SUBSCRIPTION_ACTIVATION:
        return SubscriptionStatus.ACTIVE
    return SubscriptionStatus.PENDING_PAYMENT


def _awaiting_status(subscription: Subscription) -> SubscriptionStatus:
    """Subscription status while its payment is still pending."""
    if subscription.status == SubscriptionStatus.ACTIVE:
        return SubscriptionStatus.ACTIVE
    return _initial_status()


def _parse_method(payment_method: str) -> PaymentMethod:
    try:
        return PaymentMethod[payment_method.upper()]
    except (KeyError, AttributeError):
        raise BadRequestError(f"Invalid payment method: {payment_method}")


def calculate_coupon_discount(coupon_code: Optional[str], amount: Decimal) -> Decimal:
    """Coupons are accepted but carry no discount yet."""
    return Decimal("0")


def _get_subscription(db: Session, subscription_id: int) -> Subscription:
    subscription = db.query(Subscription).filter(Subscription.id == subscription_id).first()
    if not subscription:
        raise NotFoundError("Subscription not found")
    return subscription


def _latest_payment(db: Session, subscription_id: int) -> Optional[Payment]:
    return (
        db.query(Payment)
        .filter(Payment.subscription_id == subscription_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .first()
    )


def _has_active_subscription(db: Session, business_id: int = None, professional_id: int = None) -> bool:
    query = db.query(Subscription.id).filter(Subscription.status == SubscriptionStatus.ACTIVE)
    if business_id is not None:
        query = query.filter(Subscription.business_id == business_id)
    else:
        query = query.filter(Subscription.professional_id == professional_id)
    return query.first() is not None


def _open_checkout(
    gateway: PaymentGateway,
    plan: Plan,
    external_reference: str,
    payment_method: str,
    callback_url: str,
    coupon_code: Optional[str] = None,
):
    price = Decimal(plan.price)
    unit_price = price - calculate_coupon_discount(coupon_code, price)
    item = CheckoutItem(
        id=str(plan.id),
        title=plan.name,
        description=plan.description,
        unit_price=unit_price,
    )
    return gateway.create_checkout(
        item,
        external_reference=external_reference,
        payment_method=payment_method,
        success_url=f"{callback_url}/success",
        failure_url=f"{callback_url}/failure",
    ), unit_price


def create_payment_preference(
    db: Session,
    plan_id: int,
    user_id: int,
    callback_url: str,
    payment_method: str,
    business_id: Optional[int] = None,
    professional_id: Optional[int] = None,
    card_token: Optional[str] = None,
    coupon_code: Optional[str] = None,
    gateway: Optional[PaymentGateway] = None,
) -> Dict:
    """
    Start a subscription and open a hosted checkout for it.

    Preconditions are checked before anything is written. A gateway failure
    rolls the subscription back and propagates.

    Returns:
        {"preference_id", "init_point", "subscription_id"}
    """
    method = _parse_method(payment_method)

    plan = db.query(Plan).filter(Plan.id == plan_id).first()
    if not plan:
        raise NotFoundError("Plan not found")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    if not plan.active:
        raise BadRequestError("Plan is not active")

    if plan.type == PlanType.BUSINESS and not business_id:
        raise BadRequestError("business_id is required for BUSINESS plans")
    if plan.type == PlanType.PROFESSIONAL and not professional_id:
        raise BadRequestError("professional_id is required for PROFESSIONAL plans")

    if business_id:
        business = db.query(Business).filter(Business.id == business_id).first()
        if not business:
            raise NotFoundError("Business not found")
        ensure_owner_or_admin(business.user_id, user, "business")
        if _has_active_subscription(db, business_id=business_id):
            raise ConflictError("Business already has an active subscription")

    if professional_id:
        professional = db.query(Professional).filter(Professional.id == professional_id).first()
        if not professional:
            raise NotFoundError("Professional not found")
        ensure_owner_or_admin(professional.user_id, user, "professional")
        if _has_active_subscription(db, professional_id=professional_id):
            raise ConflictError("Professional already has an active subscription")

    now = datetime.utcnow()
    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        business_id=business_id,
        professional_id=professional_id,
        status=_initial_status(),
        start_date=now,
        end_date=now + timedelta(days=plan.duration),
        auto_renew=True,
    )
    db.add(subscription)
    db.flush()

    gateway = gateway or get_payment_gateway()
    external_reference = f"sub_{subscription.id}"
    try:
        preference, amount = _open_checkout(
            gateway, plan, external_reference, payment_method.lower(), callback_url, coupon_code
        )
    except Exception:
        db.rollback()
        raise

    db.add(Payment(
        subscription_id=subscription.id,
        amount=amount,
        status=PaymentStatus.PENDING,
        payment_method=method,
        payment_intent_id=preference.id,
        external_reference=external_reference,
    ))
    db.commit()

    logger.info(
        f"Checkout created: subscription_id={subscription.id}, plan_id={plan.id}, user_id={user.id}, "
        f"method={method.value}, status={subscription.status.value}"
    )
    return {
        "preference_id": preference.id,
        "init_point": preference.init_point,
        "subscription_id": subscription.id,
    }


def _already_processed(db: Session, event_id: Optional[str]) -> bool:
    if not event_id:
        return False
    return db.query(ProcessedWebhookEvent.id).filter(ProcessedWebhookEvent.event_id == event_id).first() is not None


def _approve_listing(subscription: Subscription) -> None:
    listing = subscription.business or subscription.professional
    if listing is not None:
        listing.status = ListingStatus.APPROVED
        listing.featured = True


def _enqueue_payment_confirmation(db: Session, subscription: Subscription, payment: Payment) -> None:
    user = subscription.user
    notification_service.enqueue(db, "payment_confirmation", user.email if user else None, {
        "name": user.name if user else "",
        "plan_name": subscription.plan.name,
        "amount": str(payment.amount),
        "end_date": subscription.end_date.strftime("%Y-%m-%d"),
    })


def _payment_for_reference(db: Session, subscription_id: int, reference: str) -> Optional[Payment]:
    return (
        db.query(Payment)
        .filter(Payment.subscription_id == subscription_id, Payment.external_reference == reference)
        .order_by(Payment.id.desc())
        .first()
    )


def _transition_allowed(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS.get(current, frozenset())


def _reconcile(db: Session, subscription: Subscription, payment: Optional[Payment], notification: Dict,
               renewal: bool = False) -> Dict:
    if not payment:
        raise NotFoundError("Payment not found")

    event_id = notification.get("event_id")
    if _already_processed(db, event_id):
        logger.info(f"Duplicate webhook ignored: event_id={event_id}, subscription_id={subscription.id}")
        return {"success": True, "duplicate": True}

    gateway_status = str(notification.get("status") or "").lower()
    payment_status, subscription_status = GATEWAY_STATUS_MAP.get(gateway_status, DEFAULT_GATEWAY_STATUS)

    previous_status = payment.status
    if not _transition_allowed(previous_status, payment_status):
        # Late or out-of-order event: payment and subscription stay as they are
        if event_id:
            db.add(ProcessedWebhookEvent(event_id=event_id))
        db.commit()
        logger.warning(
            f"Webhook transition ignored: subscription_id={subscription.id}, payment_id={payment.id}, "
            f"gateway_status={gateway_status}, payment_status={previous_status.value}"
        )
        return {"success": True, "ignored": True}

    payment.status = payment_status
    transitioned_to_paid = payment_status == PaymentStatus.PAID and previous_status != PaymentStatus.PAID

    if transitioned_to_paid:
        payment.paid_at = datetime.utcnow()
        if renewal:
            subscription.end_date = subscription.end_date + timedelta(days=subscription.plan.duration)
        db.add(Invoice(payment=payment, number=f"INV-{_timestamp_ms()}-{payment.id}"))
        _approve_listing(subscription)
        _enqueue_payment_confirmation(db, subscription, payment)

    if renewal:
        # A failed renewal leaves the current period untouched
        if payment_status == PaymentStatus.PAID:
            subscription.status = SubscriptionStatus.ACTIVE
    elif subscription_status is None:
        subscription.status = _awaiting_status(subscription)
    else:
        subscription.status = subscription_status

    if event_id:
        db.add(ProcessedWebhookEvent(event_id=event_id))

    db.commit()

    logger.info(
        f"Webhook applied: subscription_id={subscription.id}, payment_id={payment.id}, "
        f"gateway_status={gateway_status}, payment_status={payment.status.value}, "
        f"subscription_status={subscription.status.value}, renewal={renewal}"
    )
    return {"success": True}


def process_payment_webhook(db: Session, notification: Dict) -> Dict:
    """
    Apply a gateway notification {id, status, external_reference, event_id?}
    to the subscription named by a "sub_<id>" reference.

    Raises:
        BadRequestError: Reference is not "sub_<id>"
        NotFoundError: Subscription or its payment is missing
    """
    reference = notification.get("external_reference") or ""
    match = SUBSCRIPTION_REFERENCE.match(reference)
    if not match:
        logger.warning(f"Webhook with invalid reference: reference={reference!r}")
        raise BadRequestError("Invalid external reference")

    subscription = _get_subscription(db, int(match.group(1)))
    payment = _payment_for_reference(db, subscription.id, reference) or _latest_payment(db, subscription.id)
    return _reconcile(db, subscription, payment, notification)


def process_renewal_webhook(db: Session, notification: Dict) -> Dict:
    """Like process_payment_webhook for "renew_<id>_<ts>" references; PAID extends end_date."""
    reference = notification.get("external_reference") or ""
    match = RENEWAL_REFERENCE.match(reference)
    if not match:
        logger.warning(f"Renewal webhook with invalid reference: reference={reference!r}")
        raise BadRequestError("Invalid external reference")

    subscription = _get_subscription(db, int(match.group(1)))
    payment = _payment_for_reference(db, subscription.id, reference)
    return _reconcile(db, subscription, payment, notification, renewal=True)


def handle_gateway_notification(db: Session, notification: Dict) -> Dict:
    """Route a notification by its reference prefix."""
    reference = notification.get("external_reference") or ""
    if reference.startswith("renew_"):
        return process_renewal_webhook(db, notification)
    return process_payment_webhook(db, notification)


def renew_subscription(
    db: Session,
    subscription_id: int,
    payment_method: str,
    card_token: Optional[str] = None,
    gateway: Optional[PaymentGateway] = None,
    callback_url: Optional[str] = None,
) -> Dict:
    """
    Open a checkout for the next period of an ACTIVE subscription.

    end_date only moves when the renewal payment is approved.
    """
    subscription = _get_subscription(db, subscription_id)
    if subscription.status != SubscriptionStatus.ACTIVE:
        raise BadRequestError("Only active subscriptions can be renewed")

    method = _parse_method(payment_method)
    plan = subscription.plan
    new_end_date = subscription.end_date + timedelta(days=plan.duration)

    gateway = gateway or get_payment_gateway()
    external_reference = f"renew_{subscription.id}_{_timestamp_ms()}"
    preference, amount = _open_checkout(
        gateway, plan, external_reference, payment_method.lower(),
        callback_url or f"{config.FRONTEND_URL}/payment",
    )

    db.add(Payment(
        subscription_id=subscription.id,
        amount=amount,
        status=PaymentStatus.PENDING,
        payment_method=method,
        payment_intent_id=preference.id,
        external_reference=external_reference,
    ))
    db.commit()

    logger.info(f"Renewal checkout created: subscription_id={subscription.id}, reference={external_reference}")
    return {
        "preference_id": preference.id,
        "init_point": preference.init_point,
        "subscription_id": subscription.id,
        "new_end_date": new_end_date,
    }


def cancel_subscription(db: Session, subscription_id: int, user_id: int, reason: Optional[str] = None) -> Dict:
    subscription = _get_subscription(db, subscription_id)

    if subscription.user_id != user_id:
        raise ForbiddenError("Not allowed to cancel this subscription")

    if subscription.status == SubscriptionStatus.CANCELED:
        raise BadRequestError("Subscription already canceled")

    subscription.status = SubscriptionStatus.CANCELED
    subscription.auto_renew = False

    if reason:
        db.add(CancellationReason(subscription_id=subscription.id, user_id=user_id, reason=reason))

    user = subscription.user
    notification_service.enqueue(db, "subscription_canceled", user.email if user else None, {
        "name": user.name if user else "",
        "plan_name": subscription.plan.name,
    })
    db.commit()

    logger.info(f"Subscription canceled: subscription_id={subscription.id}, user_id={user_id}")
    return {"success": True, "message": "Subscription canceled"}


def toggle_auto_renew(db: Session, subscription_id: int, user_id: int, auto_renew: bool) -> Subscription:
    subscription = _get_subscription(db, subscription_id)

    if subscription.user_id != user_id:
        raise ForbiddenError("Not allowed to change this subscription")

    if subscription.status == SubscriptionStatus.CANCELED:
        raise BadRequestError("Subscription is canceled")

    subscription.auto_renew = auto_renew
    db.commit()
    db.refresh(subscription)

    logger.info(f"Auto-renew updated: subscription_id={subscription.id}, auto_renew={auto_renew}")
    return subscription


def check_expiring_subscriptions(db: Session, now: Optional[datetime] = None) -> Dict:
    """Queue an expiry warning for every ACTIVE subscription ending within EXPIRY_WARNING_DAYS."""
    now = now or datetime.utcnow()
    horizon = now + timedelta(days=config.EXPIRY_WARNING_DAYS)

    expiring = (
        db.query(Subscription)
        .filter(
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.end_date >= now,
            Subscription.end_date <= horizon,
        )
        .order_by(Subscription.end_date)
        .all()
    )

    for subscription in expiring:
        user = subscription.user
        notification_service.enqueue(db, "subscription_expiring", user.email if user else None, {
            "name": user.name if user else "",
            "plan_name": subscription.plan.name,
            "end_date": subscription.end_date.strftime("%Y-%m-%d"),
        })
    db.commit()

    logger.info(f"Expiry check: expiring={len(expiring)}")
    return {
        "processed": len(expiring),
        "subscriptions": [
            {"id": s.id, "user_id": s.user_id, "plan_id": s.plan_id, "end_date": s.end_date}
            for s in expiring
        ],
    }


def process_auto_renewals(
    db: Session,
    now: Optional[datetime] = None,
    gateway: Optional[PaymentGateway] = None,
) -> Dict:
    """
    Open renewal checkouts for ACTIVE auto-renewing subscriptions ending today.

    Each subscription reuses the method of its latest payment. One failure
    is recorded in the results and does not stop the batch.
    """
    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)

    due = (
        db.query(Subscription)
        .filter(
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.auto_renew.is_(True),
            Subscription.end_date >= today,
            Subscription.end_date < tomorrow,
        )
        .order_by(Subscription.id)
        .all()
    )

    results: List[Dict] = []
    for subscription in due:
        subscription_id = subscription.id
        payment = _latest_payment(db, subscription_id)
        if not payment:
            logger.warning(f"Auto-renewal skipped, no previous payment: subscription_id={subscription_id}")
            continue

        try:
            renewal = renew_subscription(
                db, subscription_id, payment.payment_method.value.lower(), gateway=gateway
            )
        except Exception as e:
            db.rollback()
            logger.error(f"Auto-renewal failed: subscription_id={subscription_id}, error={e}")
            results.append({"subscription_id": subscription_id, "status": "error", "error": str(e)})
        else:
            results.append({
                "subscription_id": subscription_id,
                "status": "renewed",
                "preference_id": renewal["preference_id"],
            })

    logger.info(f"Auto-renewals processed: due={len(due)}, results={len(results)}")
    return {"processed": len(results), "results": results}


def get_payment_info(db: Session, payment_id: int, user, gateway: Optional[PaymentGateway] = None) -> Dict:
    """Payment plus gateway checkout details when the gateway can be reached."""
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment:
        raise NotFoundError("Payment not found")

    ensure_owner_or_admin(payment.subscription.user_id, user, "payment")

    gateway_info = None
    if payment.payment_intent_id:
        gateway = gateway or get_payment_gateway()
        try:
            gateway_info = gateway.get_checkout(payment.payment_intent_id)
        except Exception as e:
            logger.warning(f"Could not fetch gateway details: payment_id={payment.id}, error={e}")

    return {"payment": payment, "gateway": gateway_info}


# User views

def list_user_subscriptions(db: Session, user_id: int) -> List[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )


def get_subscription(db: Session, subscription_id: int, user) -> Subscription:
    subscription = _get_subscription(db, subscription_id)
    ensure_owner_or_admin(subscription.user_id, user, "subscription")
    return subscription


def list_user_payments(db: Session, user_id: int) -> List[Payment]:
    return (
        db.query(Payment)
        .join(Subscription, Payment.subscription_id == Subscription.id)
        .filter(Subscription.user_id == user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def list_user_invoices(db: Session, user_id: int) -> List[Invoice]:
    return (
        db.query(Invoice)
        .join(Payment, Invoice.payment_id == Payment.id)
        .join(Subscription, Payment.subscription_id == Subscription.id)
        .filter(Subscription.user_id == user_id)
        .order_by(Invoice.id.desc())
        .all()
    )


def get_invoice(db: Session, invoice_id: int, user) -> Invoice:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    ensure_owner_or_admin(invoice.payment.subscription.user_id, user, "invoice")
    return invoice
