"""
Pydantic schemas for the admin dashboard.
"""
from typing import Dict, List

from pydantic import BaseModel, Field

from marketplace.schemas.business import BusinessResponse, ProfessionalResponse
from marketplace.schemas.common import PageMeta
from marketplace.schemas.job import JobResponse
from marketplace.schemas.payment import PaymentResponse
from marketplace.schemas.review import ReviewResponse


class DashboardResponse(BaseModel):
    users: int
    businesses: int
    professionals: int
    jobs: int
    posts: int
    reviews: int
    active_subscriptions: int


class MonthlyRevenue(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    amount: float


class RevenueResponse(BaseModel):
    total: float = Field(..., description="Sum of all PAID payments")
    by_month: List[MonthlyRevenue]


class PendingApprovalsResponse(BaseModel):
    businesses: List[BusinessResponse]
    professionals: List[ProfessionalResponse]
    jobs: List[JobResponse]
    reviews: List[ReviewResponse]


class PaymentTotals(BaseModel):
    count: int
    amount: float


class PaymentsReportResponse(PageMeta):
    items: List[PaymentResponse]
    totals: Dict[str, PaymentTotals]


class ModerationRequest(BaseModel):
    approve: bool = Field(..., description="True to approve, false to reject")


class SweepResponse(BaseModel):
    processed: int
    results: List[dict] = []
    subscriptions: List[dict] = []


class DispatchResponse(BaseModel):
    processed: int
    sent: int
    failed: int
