"""
Professional profiles: search, ownership-checked CRUD, portfolio and moderation.
"""
import logging
from typing import Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from marketplace.core.errors import BadRequestError, NotFoundError
from marketplace.db.models.category import Category
from marketplace.db.models.enums import ListingStatus
from marketplace.db.models.professional import Professional
from marketplace.services.pagination import paginate, search_filter
from marketplace.services.permissions import ensure_owner_or_admin
from marketplace.services.storage_service import DOCUMENT_EXTENSIONS, IMAGE_EXTENSIONS, StorageService, get_storage

logger = logging.getLogger(__name__)

MAX_PORTFOLIO_ITEMS = 20


def _normalized(data: Dict) -> Dict:
    if data.get("state"):
        data = {**data, "state": data["state"].upper()}
    return data


def list_professionals(
    db: Session,
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    occupation: Optional[str] = None,
    state: Optional[str] = None,
    city: Optional[str] = None,
    status: Optional[ListingStatus] = ListingStatus.APPROVED,
    page: int = 1,
    limit: int = 10,
) -> Dict:
    query = db.query(Professional)

    if status is not None:
        query = query.filter(Professional.status == status)
    if search:
        query = query.filter(search_filter(search, Professional.name, Professional.occupation, Professional.bio))
    if category_id is not None:
        query = query.filter(Professional.category_id == category_id)
    if occupation:
        query = query.filter(Professional.occupation.ilike(f"%{occupation}%"))
    if state:
        query = query.filter(Professional.state == state.upper())
    if city:
        query = query.filter(Professional.city.ilike(city))

    query = query.order_by(Professional.featured.desc(), Professional.created_at.desc(), Professional.id.desc())
    return paginate(query, page, limit)


def list_user_professionals(db: Session, user_id: int) -> List[Professional]:
    return db.query(Professional).filter(Professional.user_id == user_id).order_by(Professional.id.desc()).all()


def get_professional(db: Session, professional_id: int) -> Professional:
    professional = db.query(Professional).filter(Professional.id == professional_id).first()
    if not professional:
        raise NotFoundError("Professional not found")
    return professional


def create_professional(db: Session, data: Dict, owner_id: int) -> Professional:
    data = _normalized(data)
    category_id = data.get("category_id")
    if category_id is not None and not db.query(Category.id).filter(Category.id == category_id).first():
        raise NotFoundError("Category not found")

    professional = Professional(**data, user_id=owner_id, status=ListingStatus.PENDING, featured=False, portfolio=[])
    db.add(professional)
    db.commit()
    db.refresh(professional)

    logger.info(f"Professional created: professional_id={professional.id}, owner_id={owner_id}")
    return professional


def update_professional(db: Session, professional_id: int, data: Dict, caller) -> Professional:
    professional = get_professional(db, professional_id)
    ensure_owner_or_admin(professional.user_id, caller, "professional")
    data = _normalized(data)

    for field, value in data.items():
        setattr(professional, field, value)
    db.commit()
    db.refresh(professional)

    logger.info(f"Professional updated: professional_id={professional.id}, caller_id={caller.id}")
    return professional


def delete_professional(db: Session, professional_id: int, caller, storage: StorageService = None) -> None:
    professional = get_professional(db, professional_id)
    ensure_owner_or_admin(professional.user_id, caller, "professional")

    portfolio = list(professional.portfolio or [])
    db.delete(professional)
    db.commit()

    storage = storage or get_storage()
    for filename in portfolio:
        storage.delete(filename)

    logger.info(f"Professional deleted: professional_id={professional_id}, caller_id={caller.id}")


async def add_portfolio_item(db: Session, professional_id: int, file: UploadFile, caller,
                             storage: StorageService = None) -> Professional:
    professional = get_professional(db, professional_id)
    ensure_owner_or_admin(professional.user_id, caller, "professional")

    portfolio = list(professional.portfolio or [])
    if len(portfolio) >= MAX_PORTFOLIO_ITEMS:
        raise BadRequestError(f"A portfolio can have at most {MAX_PORTFOLIO_ITEMS} items")

    storage = storage or get_storage()
    filename = await storage.save(file, IMAGE_EXTENSIONS | DOCUMENT_EXTENSIONS)
    professional.portfolio = portfolio + [filename]
    db.commit()
    db.refresh(professional)
    return professional


def remove_portfolio_item(db: Session, professional_id: int, index: int, caller,
                          storage: StorageService = None) -> Professional:
    professional = get_professional(db, professional_id)
    ensure_owner_or_admin(professional.user_id, caller, "professional")

    portfolio = list(professional.portfolio or [])
    if index < 0 or index >= len(portfolio):
        raise BadRequestError("Invalid portfolio index")

    removed = portfolio.pop(index)
    professional.portfolio = portfolio
    db.commit()
    db.refresh(professional)

    (storage or get_storage()).delete(removed)
    return professional


def set_professional_status(db: Session, professional_id: int, status: ListingStatus) -> Professional:
    professional = get_professional(db, professional_id)
    professional.status = status
    db.commit()
    db.refresh(professional)
    logger.info(f"Professional moderated: professional_id={professional.id}, status={status.value}")
    return professional
