"""
Business listings: search, ownership-checked CRUD, photos and moderation.
"""
import logging
from typing import Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from marketplace.core.errors import BadRequestError, NotFoundError
from marketplace.db.models.business import Business
from marketplace.db.models.category import Category
from marketplace.db.models.enums import ListingStatus
from marketplace.services.pagination import paginate, search_filter
from marketplace.services.permissions import ensure_owner_or_admin
from marketplace.services.storage_service import StorageService, get_storage

logger = logging.getLogger(__name__)

MAX_PHOTOS = 10


def _normalized(data: Dict) -> Dict:
    if data.get("state"):
        data = {**data, "state": data["state"].upper()}
    return data


def _ensure_category(db: Session, category_id: Optional[int]) -> None:
    if category_id is not None and not db.query(Category.id).filter(Category.id == category_id).first():
        raise NotFoundError("Category not found")


def list_businesses(
    db: Session,
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    state: Optional[str] = None,
    city: Optional[str] = None,
    featured: Optional[bool] = None,
    status: Optional[ListingStatus] = ListingStatus.APPROVED,
    page: int = 1,
    limit: int = 10,
) -> Dict:
    """Paginated listing; only APPROVED businesses unless another status is asked for."""
    query = db.query(Business)

    if status is not None:
        query = query.filter(Business.status == status)
    if search:
        query = query.filter(search_filter(search, Business.name, Business.description))
    if category_id is not None:
        query = query.filter(Business.category_id == category_id)
    if state:
        query = query.filter(Business.state == state.upper())
    if city:
        query = query.filter(Business.city.ilike(city))
    if featured is not None:
        query = query.filter(Business.featured.is_(featured))

    query = query.order_by(Business.featured.desc(), Business.created_at.desc(), Business.id.desc())
    return paginate(query, page, limit)


def list_featured_businesses(db: Session, limit: int = 6) -> List[Business]:
    return (
        db.query(Business)
        .filter(Business.status == ListingStatus.APPROVED, Business.featured.is_(True))
        .order_by(Business.updated_at.desc(), Business.id.desc())
        .limit(limit)
        .all()
    )


def list_user_businesses(db: Session, user_id: int) -> List[Business]:
    return db.query(Business).filter(Business.user_id == user_id).order_by(Business.id.desc()).all()


def get_business(db: Session, business_id: int) -> Business:
    business = db.query(Business).filter(Business.id == business_id).first()
    if not business:
        raise NotFoundError("Business not found")
    return business


def create_business(db: Session, data: Dict, owner_id: int) -> Business:
    data = _normalized(data)
    _ensure_category(db, data.get("category_id"))

    business = Business(**data, user_id=owner_id, status=ListingStatus.PENDING, featured=False, photos=[])
    db.add(business)
    db.commit()
    db.refresh(business)

    logger.info(f"Business created: business_id={business.id}, owner_id={owner_id}")
    return business


def update_business(db: Session, business_id: int, data: Dict, caller) -> Business:
    business = get_business(db, business_id)
    ensure_owner_or_admin(business.user_id, caller, "business")
    data = _normalized(data)

    if "category_id" in data:
        _ensure_category(db, data["category_id"])

    for field, value in data.items():
        setattr(business, field, value)
    db.commit()
    db.refresh(business)

    logger.info(f"Business updated: business_id={business.id}, caller_id={caller.id}")
    return business


def delete_business(db: Session, business_id: int, caller, storage: StorageService = None) -> None:
    """Delete a business together with its jobs and their applications."""
    business = get_business(db, business_id)
    ensure_owner_or_admin(business.user_id, caller, "business")

    photos = list(business.photos or [])
    resumes = [a.resume for job in business.jobs for a in job.applications if a.resume]

    db.delete(business)
    db.commit()

    storage = storage or get_storage()
    for filename in photos + resumes:
        storage.delete(filename)

    logger.info(f"Business deleted: business_id={business_id}, caller_id={caller.id}")


async def add_photo(db: Session, business_id: int, file: UploadFile, caller,
                    storage: StorageService = None) -> Business:
    business = get_business(db, business_id)
    ensure_owner_or_admin(business.user_id, caller, "business")

    photos = list(business.photos or [])
    if len(photos) >= MAX_PHOTOS:
        raise BadRequestError(f"A business can have at most {MAX_PHOTOS} photos")

    storage = storage or get_storage()
    filename = await storage.save(file)
    business.photos = photos + [filename]
    db.commit()
    db.refresh(business)
    return business


def remove_photo(db: Session, business_id: int, index: int, caller, storage: StorageService = None) -> Business:
    business = get_business(db, business_id)
    ensure_owner_or_admin(business.user_id, caller, "business")

    photos = list(business.photos or [])
    if index < 0 or index >= len(photos):
        raise BadRequestError("Invalid photo index")

    removed = photos.pop(index)
    business.photos = photos
    db.commit()
    db.refresh(business)

    (storage or get_storage()).delete(removed)
    return business


def set_business_status(db: Session, business_id: int, status: ListingStatus) -> Business:
    business = get_business(db, business_id)
    business.status = status
    db.commit()
    db.refresh(business)
    logger.info(f"Business moderated: business_id={business.id}, status={status.value}")
    return business
