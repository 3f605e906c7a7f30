from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_admin_action
from marketplace.core.auth_dependency import get_db, require_admin
from marketplace.schemas.blog import CategoryCreate, CategoryResponse, CategoryUpdate
from marketplace.services import blog_service

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=List[CategoryResponse])
def list_categories(db: Session = Depends(get_db)):
    return blog_service.list_categories(db)


@router.get("/{category_id}", response_model=CategoryResponse)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return blog_service.get_category(db, category_id)


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("CREATE", "category"))],
)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    return blog_service.create_category(db, payload.name, payload.description)


@router.put(
    "/{category_id}",
    response_model=CategoryResponse,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("UPDATE", "category"))],
)
def update_category(category_id: int, payload: CategoryUpdate, db: Session = Depends(get_db)):
    return blog_service.update_category(db, category_id, payload.model_dump(exclude_unset=True))


@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("DELETE", "category"))],
)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    blog_service.delete_category(db, category_id)
