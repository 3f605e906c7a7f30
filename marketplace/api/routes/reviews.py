from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_admin_action, audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db, get_optional_user, require_admin
from marketplace.core.identity import CurrentUser
from marketplace.core.retry import with_db_retry
from marketplace.db.models.enums import ListingStatus
from marketplace.schemas.common import ListingStatusUpdate
from marketplace.schemas.review import ReviewCreate, ReviewListResponse, ReviewResponse, ReviewUpdate
from marketplace.services import review_service
from marketplace.services.permissions import is_admin

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.get("", response_model=ReviewListResponse)
async def list_reviews(
    business_id: Optional[int] = None,
    professional_id: Optional[int] = None,
    status_filter: Optional[ListingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    """Reviews of one business or professional, with their average rating."""
    review_status = status_filter if is_admin(current_user) else ListingStatus.APPROVED
    return await with_db_retry(lambda: review_service.list_reviews(
        db, business_id=business_id, professional_id=professional_id,
        status=review_status, page=page, limit=limit,
    ))


@router.post(
    "",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audit_user_action("CREATE", "review"))],
)
def create_review(
    payload: ReviewCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return review_service.create_review(db, payload.model_dump(), current_user.id)


@router.put("/{review_id}", response_model=ReviewResponse, dependencies=[Depends(audit_user_action("UPDATE", "review"))])
def update_review(
    review_id: int,
    payload: ReviewUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return review_service.update_review(db, review_id, payload.model_dump(exclude_unset=True), current_user)


@router.delete(
    "/{review_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(audit_user_action("DELETE", "review"))],
)
def delete_review(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    review_service.delete_review(db, review_id, current_user)


@router.patch(
    "/{review_id}/status",
    response_model=ReviewResponse,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("UPDATE_STATUS", "review"))],
)
def update_review_status(review_id: int, payload: ListingStatusUpdate, db: Session = Depends(get_db)):
    return review_service.set_review_status(db, review_id, payload.status)
