from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_admin_action, audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db, get_optional_user, require_admin
from marketplace.core.errors import NotFoundError
from marketplace.core.identity import CurrentUser
from marketplace.core.retry import with_db_retry
from marketplace.db.models.enums import ListingStatus
from marketplace.schemas.business import BusinessCreate, BusinessListResponse, BusinessResponse, BusinessUpdate
from marketplace.schemas.common import ListingStatusUpdate
from marketplace.services import business_service
from marketplace.services.permissions import is_admin, is_owner_or_admin
from marketplace.services.storage_service import StorageService, get_storage

router = APIRouter(prefix="/businesses", tags=["Businesses"])


@router.get("", response_model=BusinessListResponse)
async def list_businesses(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    state: Optional[str] = Query(None, min_length=2, max_length=2),
    city: Optional[str] = None,
    featured: Optional[bool] = None,
    status_filter: Optional[ListingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    """Approved businesses; admins may list any status."""
    listing_status = status_filter if is_admin(current_user) else ListingStatus.APPROVED
    return await with_db_retry(lambda: business_service.list_businesses(
        db, search=search, category_id=category_id, state=state, city=city,
        featured=featured, status=listing_status, page=page, limit=limit,
    ))


@router.get("/featured", response_model=List[BusinessResponse])
async def featured_businesses(limit: int = Query(6, ge=1, le=50), db: Session = Depends(get_db)):
    return await with_db_retry(lambda: business_service.list_featured_businesses(db, limit))


@router.get("/{business_id}", response_model=BusinessResponse)
def get_business(
    business_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    business = business_service.get_business(db, business_id)
    if business.status != ListingStatus.APPROVED and not is_owner_or_admin(business.user_id, current_user):
        raise NotFoundError("Business not found")
    return business


@router.post(
    "",
    response_model=BusinessResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audit_user_action("CREATE", "business"))],
)
def create_business(
    payload: BusinessCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return business_service.create_business(db, payload.model_dump(), current_user.id)


@router.put(
    "/{business_id}",
    response_model=BusinessResponse,
    dependencies=[Depends(audit_user_action("UPDATE", "business"))],
)
def update_business(
    business_id: int,
    payload: BusinessUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return business_service.update_business(db, business_id, payload.model_dump(exclude_unset=True), current_user)


@router.delete(
    "/{business_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(audit_user_action("DELETE", "business"))],
)
def delete_business(
    business_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    business_service.delete_business(db, business_id, current_user, storage)


@router.post(
    "/{business_id}/photos",
    response_model=BusinessResponse,
    dependencies=[Depends(audit_user_action("ADD_PHOTO", "business"))],
)
async def upload_photo(
    business_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    return await business_service.add_photo(db, business_id, file, current_user, storage)


@router.delete(
    "/{business_id}/photos/{index}",
    response_model=BusinessResponse,
    dependencies=[Depends(audit_user_action("REMOVE_PHOTO", "business"))],
)
def remove_photo(
    business_id: int,
    index: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    return business_service.remove_photo(db, business_id, index, current_user, storage)


@router.patch(
    "/{business_id}/status",
    response_model=BusinessResponse,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("UPDATE_STATUS", "business"))],
)
def update_business_status(business_id: int, payload: ListingStatusUpdate, db: Session = Depends(get_db)):
    return business_service.set_business_status(db, business_id, payload.status)
