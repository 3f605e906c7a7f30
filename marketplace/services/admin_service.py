"""
Admin dashboard aggregates and moderation.
"""
import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.core.errors import BadRequestError
from marketplace.db.models.blog import BlogPost
from marketplace.db.models.business import Business
from marketplace.db.models.enums import JobStatus, ListingStatus, PaymentStatus, SubscriptionStatus
from marketplace.db.models.job import Job
from marketplace.db.models.payment import Payment
from marketplace.db.models.professional import Professional
from marketplace.db.models.review import Review
from marketplace.db.models.subscription import Subscription
from marketplace.db.models.user import User
from marketplace.services import business_service, job_service, professional_service, review_service
from marketplace.services.pagination import paginate

logger = logging.getLogger(__name__)

# Moderation targets: item type -> status setter
MODERATION = {
    "business": business_service.set_business_status,
    "professional": professional_service.set_professional_status,
    "job": job_service.set_job_status,
    "review": review_service.set_review_status,
}


def get_dashboard(db: Session) -> Dict[str, int]:
    return {
        "users": db.query(func.count(User.id)).scalar(),
        "businesses": db.query(func.count(Business.id)).scalar(),
        "professionals": db.query(func.count(Professional.id)).scalar(),
        "jobs": db.query(func.count(Job.id)).scalar(),
        "posts": db.query(func.count(BlogPost.id)).scalar(),
        "reviews": db.query(func.count(Review.id)).scalar(),
        "active_subscriptions": db.query(func.count(Subscription.id))
        .filter(Subscription.status == SubscriptionStatus.ACTIVE)
        .scalar(),
    }


def get_revenue(db: Session) -> Dict:
    """Total of PAID payments, and per calendar month of payment."""
    rows = (
        db.query(Payment.paid_at, Payment.amount)
        .filter(Payment.status == PaymentStatus.PAID, Payment.paid_at.isnot(None))
        .order_by(Payment.paid_at)
        .all()
    )

    by_month: "OrderedDict[str, Decimal]" = OrderedDict()
    total = Decimal("0")
    for paid_at, amount in rows:
        month = paid_at.strftime("%Y-%m")
        by_month[month] = by_month.get(month, Decimal("0")) + Decimal(str(amount))
        total += Decimal(str(amount))

    return {
        "total": total,
        "by_month": [{"month": month, "amount": amount} for month, amount in by_month.items()],
    }


def get_pending_approvals(db: Session) -> Dict:
    return {
        "businesses": db.query(Business).filter(Business.status == ListingStatus.PENDING)
        .order_by(Business.created_at).all(),
        "professionals": db.query(Professional).filter(Professional.status == ListingStatus.PENDING)
        .order_by(Professional.created_at).all(),
        "jobs": db.query(Job).filter(Job.status == JobStatus.PENDING).order_by(Job.created_at).all(),
        "reviews": db.query(Review).filter(Review.status == ListingStatus.PENDING).order_by(Review.created_at).all(),
    }


def moderate(db: Session, item_type: str, item_id: int, approve: bool):
    """Approve or reject a business, professional, job or review."""
    if item_type not in MODERATION:
        raise BadRequestError(f"Unknown item type: {item_type}")

    setter = MODERATION[item_type]
    status = "APPROVED" if approve else "REJECTED"
    status_enum = JobStatus[status] if item_type == "job" else ListingStatus[status]
    item = setter(db, item_id, status_enum)

    logger.info(f"Moderation: type={item_type}, id={item_id}, status={status}")
    return item


def payments_report(
    db: Session,
    status: Optional[PaymentStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict:
    query = db.query(Payment)
    if status is not None:
        query = query.filter(Payment.status == status)
    result = paginate(query.order_by(Payment.created_at.desc(), Payment.id.desc()), page, limit)

    totals = (
        db.query(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .group_by(Payment.status)
        .all()
    )
    result["totals"] = {
        s.value: {"count": count, "amount": Decimal(str(amount))} for s, count, amount in totals
    }
    return result
