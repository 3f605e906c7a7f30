from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_admin_action, audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db, get_optional_user, require_admin
from marketplace.core.errors import NotFoundError
from marketplace.core.identity import CurrentUser
from marketplace.core.retry import with_db_retry
from marketplace.db.models.enums import ListingStatus
from marketplace.schemas.business import (
    ProfessionalCreate,
    ProfessionalListResponse,
    ProfessionalResponse,
    ProfessionalUpdate,
)
from marketplace.schemas.common import ListingStatusUpdate
from marketplace.services import professional_service
from marketplace.services.permissions import is_admin, is_owner_or_admin
from marketplace.services.storage_service import StorageService, get_storage

router = APIRouter(prefix="/professionals", tags=["Professionals"])


@router.get("", response_model=ProfessionalListResponse)
async def list_professionals(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    occupation: Optional[str] = None,
    state: Optional[str] = Query(None, min_length=2, max_length=2),
    city: Optional[str] = None,
    status_filter: Optional[ListingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    listing_status = status_filter if is_admin(current_user) else ListingStatus.APPROVED
    return await with_db_retry(lambda: professional_service.list_professionals(
        db, search=search, category_id=category_id, occupation=occupation, state=state,
        city=city, status=listing_status, page=page, limit=limit,
    ))


@router.get("/{professional_id}", response_model=ProfessionalResponse)
def get_professional(
    professional_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    professional = professional_service.get_professional(db, professional_id)
    if professional.status != ListingStatus.APPROVED and not is_owner_or_admin(professional.user_id, current_user):
        raise NotFoundError("Professional not found")
    return professional


@router.post(
    "",
    response_model=ProfessionalResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audit_user_action("CREATE", "professional"))],
)
def create_professional(
    payload: ProfessionalCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return professional_service.create_professional(db, payload.model_dump(), current_user.id)


@router.put(
    "/{professional_id}",
    response_model=ProfessionalResponse,
    dependencies=[Depends(audit_user_action("UPDATE", "professional"))],
)
def update_professional(
    professional_id: int,
    payload: ProfessionalUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return professional_service.update_professional(
        db, professional_id, payload.model_dump(exclude_unset=True), current_user
    )


@router.delete(
    "/{professional_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(audit_user_action("DELETE", "professional"))],
)
def delete_professional(
    professional_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    professional_service.delete_professional(db, professional_id, current_user, storage)


@router.post(
    "/{professional_id}/portfolio",
    response_model=ProfessionalResponse,
    dependencies=[Depends(audit_user_action("ADD_PORTFOLIO_ITEM", "professional"))],
)
async def upload_portfolio_item(
    professional_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    return await professional_service.add_portfolio_item(db, professional_id, file, current_user, storage)


@router.delete(
    "/{professional_id}/portfolio/{index}",
    response_model=ProfessionalResponse,
    dependencies=[Depends(audit_user_action("REMOVE_PORTFOLIO_ITEM", "professional"))],
)
def remove_portfolio_item(
    professional_id: int,
    index: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    return professional_service.remove_portfolio_item(db, professional_id, index, current_user, storage)


@router.patch(
    "/{professional_id}/status",
    response_model=ProfessionalResponse,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("UPDATE_STATUS", "professional"))],
)
def update_professional_status(professional_id: int, payload: ListingStatusUpdate, db: Session = Depends(get_db)):
    return professional_service.set_professional_status(db, professional_id, payload.status)
