"""
Stripe gateway for hosted checkout, checkout lookup and webhook verification.

The subscription lifecycle only talks to PaymentGateway; StripeGateway is the
production implementation and tests substitute their own.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

import stripe

from marketplace.core import config

logger = logging.getLogger(__name__)

# Allowed Stripe payment method types per requested method
PAYMENT_METHOD_TYPES: Dict[str, List[str]] = {
    "credit_card": ["card"],
    "pix": ["pix"],
    "boleto": ["boleto"],
}


@dataclass
class CheckoutItem:
    id: str
    title: str
    description: str
    unit_price: Decimal
    quantity: int = 1
    currency: str = config.PAYMENT_CURRENCY


@dataclass
class CheckoutPreference:
    id: str
    init_point: str


class PaymentGateway(ABC):
    """Operations the payment lifecycle needs from a gateway."""

    @abstractmethod
    def create_checkout(
        self,
        item: CheckoutItem,
        external_reference: str,
        payment_method: str,
        success_url: Optional[str] = None,
        failure_url: Optional[str] = None,
    ) -> CheckoutPreference:
        """Open a hosted checkout for one item."""
        pass

    @abstractmethod
    def get_checkout(self, checkout_id: str) -> Dict:
        pass

    @abstractmethod
    def construct_event(self, payload: bytes, signature: str) -> Dict:
        """Verify a webhook payload and return the decoded event."""
        pass


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal price to the integer cents Stripe expects."""
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key or config.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or config.STRIPE_WEBHOOK_SECRET
        if self.api_key:
            stripe.api_key = self.api_key
        else:
            logger.warning("STRIPE_SECRET_KEY not configured - checkout creation will fail")

    def create_checkout(
        self,
        item: CheckoutItem,
        external_reference: str,
        payment_method: str,
        success_url: Optional[str] = None,
        failure_url: Optional[str] = None,
    ) -> CheckoutPreference:
        """
        Create a Stripe Checkout session for a one-off plan payment.

        Args:
            item: Line item being charged
            external_reference: "sub_<id>" or "renew_<id>_<ts>", echoed back in webhooks
            payment_method: credit_card, pix or boleto
            success_url: Redirect after payment (defaults to FRONTEND_URL)
            failure_url: Redirect when the payer gives up

        Returns:
            CheckoutPreference with the session id and hosted checkout URL
        """
        product_data = {"name": item.title, "metadata": {"plan_id": item.id}}
        if item.description:
            product_data["description"] = item.description

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=PAYMENT_METHOD_TYPES[payment_method],
                line_items=[{
                    "price_data": {
                        "currency": item.currency,
                        "unit_amount": to_minor_units(item.unit_price),
                        "product_data": product_data,
                    },
                    "quantity": item.quantity,
                }],
                client_reference_id=external_reference,
                metadata={"external_reference": external_reference},
                payment_intent_data={"metadata": {"external_reference": external_reference}},
                success_url=success_url or f"{config.FRONTEND_URL}/payments/success",
                cancel_url=failure_url or f"{config.FRONTEND_URL}/payments/failure",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout: reference={external_reference}, error={e}")
            raise

        logger.info(f"Created checkout session: session_id={session.id}, reference={external_reference}")
        return CheckoutPreference(id=session.id, init_point=session.url)

    def get_checkout(self, checkout_id: str) -> Dict:
        session = stripe.checkout.Session.retrieve(checkout_id)
        return {
            "id": session.id,
            "status": session.status,
            "payment_status": session.payment_status,
            "amount_total": session.amount_total,
            "currency": session.currency,
        }

    def construct_event(self, payload: bytes, signature: str) -> Dict:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            ValueError: If the payload or signature is invalid
        """
        if not self.webhook_secret:
            raise ValueError("STRIPE_WEBHOOK_SECRET not configured")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise ValueError(f"Invalid webhook payload: {e}")
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise ValueError(f"Invalid signature: {e}")

        logger.info(f"Verified webhook event: {event['type']}, id={event['id']}")
        return event


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway


# Stripe event type -> gateway status understood by the reconciliation table
_SESSION_EVENT_STATUS = {
    "checkout.session.async_payment_succeeded": "approved",
    "checkout.session.async_payment_failed": "rejected",
    "checkout.session.expired": "cancelled",
}


def event_to_notification(event: Dict) -> Optional[Dict]:
    """
    Translate a verified Stripe event into a payment notification.

    Returns:
        {"id", "status", "external_reference", "event_id"} or None when the
        event type is not relevant to payments
    """
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type == "checkout.session.completed":
        status = "approved" if obj.get("payment_status") == "paid" else "pending"
        reference = obj.get("client_reference_id")
    elif event_type in _SESSION_EVENT_STATUS:
        status = _SESSION_EVENT_STATUS[event_type]
        reference = obj.get("client_reference_id")
    elif event_type == "charge.refunded":
        status = "refunded"
        reference = (obj.get("metadata") or {}).get("external_reference")
    else:
        return None

    if not reference:
        reference = (obj.get("metadata") or {}).get("external_reference")

    return {
        "id": obj.get("id"),
        "status": status,
        "external_reference": reference or "",
        "event_id": event.get("id"),
    }
