"""
Plan catalogue administration.
"""
import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from marketplace.core.errors import ConflictError, NotFoundError
from marketplace.db.models.enums import SubscriptionStatus
from marketplace.db.models.plan import Plan
from marketplace.db.models.subscription import Subscription

logger = logging.getLogger(__name__)


def list_plans(db: Session, include_inactive: bool = False) -> List[Plan]:
    query = db.query(Plan)
    if not include_inactive:
        query = query.filter(Plan.active.is_(True))
    return query.order_by(Plan.type, Plan.price).all()


def get_plan(db: Session, plan_id: int) -> Plan:
    plan = db.query(Plan).filter(Plan.id == plan_id).first()
    if not plan:
        raise NotFoundError("Plan not found")
    return plan


def create_plan(db: Session, data: Dict) -> Plan:
    plan = Plan(**data)
    db.add(plan)
    db.commit()
    db.refresh(plan)
    logger.info(f"Plan created: plan_id={plan.id}, type={plan.type.value}, price={plan.price}")
    return plan


def update_plan(db: Session, plan_id: int, data: Dict) -> Plan:
    plan = get_plan(db, plan_id)
    for field, value in data.items():
        setattr(plan, field, value)
    db.commit()
    db.refresh(plan)
    logger.info(f"Plan updated: plan_id={plan.id}, fields={sorted(data)}")
    return plan


def delete_plan(db: Session, plan_id: int) -> None:
    """Delete a plan; refused while ACTIVE subscriptions reference it."""
    plan = get_plan(db, plan_id)

    active = (
        db.query(Subscription.id)
        .filter(Subscription.plan_id == plan.id, Subscription.status == SubscriptionStatus.ACTIVE)
        .count()
    )
    if active:
        raise ConflictError(f"Plan has {active} active subscription(s)")

    db.delete(plan)
    db.commit()
    logger.info(f"Plan deleted: plan_id={plan_id}")
