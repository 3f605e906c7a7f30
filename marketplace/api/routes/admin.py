from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_admin_action
from marketplace.core.auth_dependency import get_db, require_admin
from marketplace.db.models.enums import PaymentStatus, UserRole, UserStatus
from marketplace.schemas.admin import (
    DashboardResponse,
    DispatchResponse,
    ModerationRequest,
    PaymentsReportResponse,
    PendingApprovalsResponse,
    RevenueResponse,
)
from marketplace.schemas.user import AdminUserUpdate, UserListResponse, UserResponse
from marketplace.services import admin_service, notification_service, user_service

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

ItemType = Literal["business", "professional", "job", "review"]


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(db: Session = Depends(get_db)):
    return admin_service.get_dashboard(db)


@router.get("/revenue", response_model=RevenueResponse)
def revenue(db: Session = Depends(get_db)):
    return admin_service.get_revenue(db)


@router.get("/pending", response_model=PendingApprovalsResponse)
def pending_approvals(db: Session = Depends(get_db)):
    return admin_service.get_pending_approvals(db)


@router.post(
    "/moderate/{item_type}/{item_id}",
    dependencies=[Depends(audit_admin_action("MODERATE", "listing"))],
)
def moderate(item_type: ItemType, item_id: int, payload: ModerationRequest, db: Session = Depends(get_db)):
    item = admin_service.moderate(db, item_type, item_id, payload.approve)
    return {"success": True, "item_type": item_type, "item_id": item.id, "status": item.status.value}


# ✅ USERS

@router.get("/users", response_model=UserListResponse)
def list_users(
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    status_filter: Optional[UserStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return user_service.list_users(db, search=search, role=role, status=status_filter, page=page, limit=limit)


@router.patch(
    "/users/{user_id}",
    response_model=UserResponse,
    dependencies=[Depends(audit_admin_action("UPDATE", "user"))],
)
def update_user(user_id: int, payload: AdminUserUpdate, db: Session = Depends(get_db)):
    return user_service.update_user_admin(db, user_id, role=payload.role, status=payload.status)


# ✅ REPORTS

@router.get("/payments", response_model=PaymentsReportResponse)
def payments_report(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return admin_service.payments_report(db, status=status_filter, page=page, limit=limit)


@router.post(
    "/notifications/dispatch",
    response_model=DispatchResponse,
    dependencies=[Depends(audit_admin_action("DISPATCH", "notification"))],
)
async def dispatch_notifications(db: Session = Depends(get_db)):
    return await notification_service.dispatch_pending_notifications(db)
