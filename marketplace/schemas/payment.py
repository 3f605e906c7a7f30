"""
Pydantic schemas for plans, subscriptions, payments and invoices.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from marketplace.db.models.enums import PaymentMethod, PaymentStatus, PlanType, SubscriptionStatus

PAYMENT_METHOD_PATTERN = "^(credit_card|pix|boleto)$"


class PlanCreate(BaseModel):
    """Schema for creating a plan."""
    name: str = Field(..., description="Plan name", min_length=3, max_length=100)
    description: str = Field(..., description="Plan description", min_length=10, max_length=1000)
    price: Decimal = Field(..., description="Price per period", gt=0, max_digits=10, decimal_places=2)
    duration: int = Field(..., description="Period length in days", gt=0)
    type: PlanType = Field(..., description="BUSINESS, PROFESSIONAL or JOB")
    features: List[str] = Field(..., description="Feature bullet points", min_length=1)
    active: bool = Field(True, description="Whether the plan can be purchased")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Featured Business",
            "description": "Top placement in search results for 30 days",
            "price": "100.00",
            "duration": 30,
            "type": "BUSINESS",
            "features": ["Featured badge", "Top of listings"],
            "active": True,
        }
    })


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, description="Plan name", min_length=3, max_length=100)
    description: Optional[str] = Field(None, description="Plan description", min_length=10, max_length=1000)
    price: Optional[Decimal] = Field(None, description="Price per period", gt=0, max_digits=10, decimal_places=2)
    duration: Optional[int] = Field(None, description="Period length in days", gt=0)
    type: Optional[PlanType] = Field(None, description="BUSINESS, PROFESSIONAL or JOB")
    features: Optional[List[str]] = Field(None, description="Feature bullet points", min_length=1)
    active: Optional[bool] = Field(None, description="Whether the plan can be purchased")


class PlanResponse(BaseModel):
    id: int
    name: str
    description: str
    price: float
    duration: int
    type: PlanType
    features: List[str]
    active: bool

    model_config = ConfigDict(from_attributes=True)


class SubscriptionCreate(BaseModel):
    """Request schema for starting a subscription checkout."""
    plan_id: int = Field(..., description="Plan to subscribe to")
    payment_method: str = Field(..., description="credit_card, pix or boleto", pattern=PAYMENT_METHOD_PATTERN)
    business_id: Optional[int] = Field(None, description="Business the plan is for")
    professional_id: Optional[int] = Field(None, description="Professional the plan is for")
    card_token: Optional[str] = Field(None, description="Card token, required for credit_card")
    coupon_code: Optional[str] = Field(None, description="Coupon code", max_length=50)
    callback_url: Optional[str] = Field(None, description="Base URL for the checkout redirects")

    @model_validator(mode="after")
    def check_target_and_card(self):
        if self.business_id is not None and self.professional_id is not None:
            raise ValueError("Provide only one of business_id or professional_id")
        if self.payment_method == "credit_card" and not self.card_token:
            raise ValueError("card_token is required for credit_card payments")
        return self

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "plan_id": 1,
            "payment_method": "pix",
            "business_id": 7,
            "callback_url": "https://marketplace.example.com/payment",
        }
    })


class RenewRequest(BaseModel):
    payment_method: str = Field(..., description="credit_card, pix or boleto", pattern=PAYMENT_METHOD_PATTERN)
    card_token: Optional[str] = Field(None, description="Card token, required for credit_card")

    @model_validator(mode="after")
    def check_card(self):
        if self.payment_method == "credit_card" and not self.card_token:
            raise ValueError("card_token is required for credit_card payments")
        return self


class CancelSubscriptionRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Why the subscription is being canceled", min_length=5, max_length=500)


class AutoRenewUpdate(BaseModel):
    auto_renew: bool = Field(..., description="Renew automatically at the end of the period")


class CheckoutResponse(BaseModel):
    preference_id: str = Field(..., description="Gateway checkout id")
    init_point: str = Field(..., description="URL to redirect the payer to")
    subscription_id: int = Field(..., description="Subscription created or renewed")


class RenewResponse(CheckoutResponse):
    new_end_date: datetime = Field(..., description="End date once the renewal is paid")


class SubscriptionResponse(BaseModel):
    id: int
    user_id: int
    plan_id: int
    business_id: Optional[int] = None
    professional_id: Optional[int] = None
    status: SubscriptionStatus
    start_date: datetime
    end_date: datetime
    auto_renew: bool
    plan: Optional[PlanResponse] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: int
    subscription_id: int
    amount: float
    status: PaymentStatus
    payment_method: PaymentMethod
    payment_intent_id: Optional[str] = None
    external_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentInfoResponse(BaseModel):
    payment: PaymentResponse
    gateway: Optional[dict] = Field(None, description="Checkout details from the gateway, when reachable")


class InvoiceResponse(BaseModel):
    id: int
    payment_id: int
    number: str
    created_at: Optional[datetime] = None
    payment: Optional[PaymentResponse] = None

    model_config = ConfigDict(from_attributes=True)
