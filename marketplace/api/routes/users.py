from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db
from marketplace.core.identity import CurrentUser
from marketplace.schemas.business import BusinessResponse, ProfessionalResponse
from marketplace.schemas.review import ReviewResponse
from marketplace.schemas.user import ProfileUpdate, UserResponse
from marketplace.services import business_service, professional_service, review_service, user_service

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
def get_profile(current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return user_service.get_user(db, current_user.id)


@router.patch("/me", response_model=UserResponse, dependencies=[Depends(audit_user_action("UPDATE_PROFILE", "user"))])
def update_profile(
    payload: ProfileUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return user_service.update_profile(db, current_user.id, payload.model_dump(exclude_unset=True))


@router.get("/me/businesses", response_model=List[BusinessResponse])
def my_businesses(current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return business_service.list_user_businesses(db, current_user.id)


@router.get("/me/professionals", response_model=List[ProfessionalResponse])
def my_professionals(current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return professional_service.list_user_professionals(db, current_user.id)


@router.get("/me/reviews", response_model=List[ReviewResponse])
def my_reviews(current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return review_service.list_user_reviews(db, current_user.id)
