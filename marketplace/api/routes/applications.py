from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db
from marketplace.core.identity import CurrentUser
from marketplace.schemas.job import ApplicationResponse, ApplicationStatusUpdate
from marketplace.services import job_service
from marketplace.services.storage_service import StorageService, get_storage

router = APIRouter(prefix="/applications", tags=["Applications"])


@router.get("/me", response_model=List[ApplicationResponse])
def my_applications(current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return job_service.list_user_applications(db, current_user.id)


@router.patch(
    "/{application_id}/status",
    response_model=ApplicationResponse,
    dependencies=[Depends(audit_user_action("UPDATE_STATUS", "application"))],
)
def update_application_status(
    application_id: int,
    payload: ApplicationStatusUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Business owner (or admin) moves an application through review."""
    return job_service.update_application_status(db, application_id, payload.status, current_user)


@router.delete(
    "/{application_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(audit_user_action("WITHDRAW", "application"))],
)
def withdraw_application(
    application_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    job_service.withdraw_application(db, application_id, current_user, storage)
