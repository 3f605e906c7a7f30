import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Header, Request, status
from sqlalchemy.orm import Session

from marketplace.core import config
from marketplace.core.audit import audit_admin_action, audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db, get_optional_user, require_admin
from marketplace.core.errors import BadRequestError
from marketplace.core.identity import CurrentUser
from marketplace.core.rate_limit import rate_limit
from marketplace.core.retry import with_db_retry
from marketplace.schemas.admin import SweepResponse
from marketplace.schemas.common import MessageResponse
from marketplace.schemas.payment import (
    AutoRenewUpdate,
    CancelSubscriptionRequest,
    CheckoutResponse,
    InvoiceResponse,
    PaymentInfoResponse,
    PaymentResponse,
    PlanCreate,
    PlanResponse,
    PlanUpdate,
    RenewRequest,
    RenewResponse,
    SubscriptionCreate,
    SubscriptionResponse,
)
from marketplace.services import payment_service, plan_service
from marketplace.services.payment_gateway import PaymentGateway, event_to_notification, get_payment_gateway
from marketplace.services.permissions import is_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


# ✅ PLANS

@router.get("/plans", response_model=List[PlanResponse])
async def list_plans(
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    include_inactive = is_admin(current_user)
    return await with_db_retry(lambda: plan_service.list_plans(db, include_inactive=include_inactive))


@router.get("/plans/{plan_id}", response_model=PlanResponse)
def get_plan(plan_id: int, db: Session = Depends(get_db)):
    return plan_service.get_plan(db, plan_id)


@router.post(
    "/plans",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("CREATE", "plan"))],
)
def create_plan(payload: PlanCreate, db: Session = Depends(get_db)):
    return plan_service.create_plan(db, payload.model_dump())


@router.put(
    "/plans/{plan_id}",
    response_model=PlanResponse,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("UPDATE", "plan"))],
)
def update_plan(plan_id: int, payload: PlanUpdate, db: Session = Depends(get_db)):
    return plan_service.update_plan(db, plan_id, payload.model_dump(exclude_unset=True))


@router.delete(
    "/plans/{plan_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("DELETE", "plan"))],
)
def delete_plan(plan_id: int, db: Session = Depends(get_db)):
    plan_service.delete_plan(db, plan_id)


# ✅ SUBSCRIPTIONS

@router.post(
    "/subscriptions",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audit_user_action("SUBSCRIBE", "subscription"))],
)
def create_subscription(
    payload: SubscriptionCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Create a subscription and return the hosted checkout URL to pay for it."""
    return payment_service.create_payment_preference(
        db,
        plan_id=payload.plan_id,
        user_id=current_user.id,
        callback_url=payload.callback_url or f"{config.FRONTEND_URL}/payment",
        payment_method=payload.payment_method,
        business_id=payload.business_id,
        professional_id=payload.professional_id,
        card_token=payload.card_token,
        coupon_code=payload.coupon_code,
        gateway=gateway,
    )


@router.get("/subscriptions", response_model=List[SubscriptionResponse])
def list_subscriptions(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return payment_service.list_user_subscriptions(db, current_user.id)


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return payment_service.get_subscription(db, subscription_id, current_user)


@router.delete(
    "/subscriptions/{subscription_id}",
    response_model=MessageResponse,
    dependencies=[Depends(audit_user_action("CANCEL", "subscription"))],
)
def cancel_subscription(
    subscription_id: int,
    payload: Optional[CancelSubscriptionRequest] = Body(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    reason = payload.reason if payload else None
    return payment_service.cancel_subscription(db, subscription_id, current_user.id, reason)


@router.post(
    "/subscriptions/{subscription_id}/renew",
    response_model=RenewResponse,
    dependencies=[Depends(audit_user_action("RENEW", "subscription"))],
)
def renew_subscription(
    subscription_id: int,
    payload: RenewRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    # Ownership check before a checkout is opened
    payment_service.get_subscription(db, subscription_id, current_user)
    return payment_service.renew_subscription(
        db, subscription_id, payload.payment_method, card_token=payload.card_token, gateway=gateway,
    )


@router.patch(
    "/subscriptions/{subscription_id}/auto-renew",
    response_model=SubscriptionResponse,
    dependencies=[Depends(audit_user_action("AUTO_RENEW", "subscription"))],
)
def set_auto_renew(
    subscription_id: int,
    payload: AutoRenewUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return payment_service.toggle_auto_renew(db, subscription_id, current_user.id, payload.auto_renew)


# ✅ PAYMENTS & INVOICES

@router.get("", response_model=List[PaymentResponse])
def list_payments(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return payment_service.list_user_payments(db, current_user.id)


@router.get("/invoices", response_model=List[InvoiceResponse])
def list_invoices(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return payment_service.list_user_invoices(db, current_user.id)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: int, db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return payment_service.get_invoice(db, invoice_id, current_user)


# ✅ GATEWAY WEBHOOK (Stripe signs the raw body)
@router.post("/webhook", dependencies=[Depends(rate_limit(max_requests=300))])
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    payload = await request.body()

    try:
        event = gateway.construct_event(payload, stripe_signature or "")
    except ValueError as e:
        raise BadRequestError(f"Webhook verification failed: {e}")

    notification = event_to_notification(event)
    if notification is None:
        logger.info(f"Webhook event ignored: type={event['type']}")
        return {"received": True}

    return payment_service.handle_gateway_notification(db, notification)


# ✅ SCHEDULED SWEEPS (also run by scripts/run_sweeps.py)

@router.post(
    "/admin/check-expiring",
    response_model=SweepResponse,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("CHECK_EXPIRING", "subscription"))],
)
def check_expiring(db: Session = Depends(get_db)):
    return payment_service.check_expiring_subscriptions(db)


@router.post(
    "/admin/process-renewals",
    response_model=SweepResponse,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("PROCESS_RENEWALS", "subscription"))],
)
def process_renewals(db: Session = Depends(get_db), gateway: PaymentGateway = Depends(get_payment_gateway)):
    return payment_service.process_auto_renewals(db, gateway=gateway)


@router.get("/{payment_id}", response_model=PaymentInfoResponse)
def get_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return payment_service.get_payment_info(db, payment_id, current_user, gateway=gateway)
