from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_admin_action, audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db, get_optional_user, require_admin
from marketplace.core.errors import NotFoundError
from marketplace.core.identity import CurrentUser
from marketplace.core.retry import with_db_retry
from marketplace.db.models.enums import JobStatus
from marketplace.schemas.job import (
    ApplicationResponse,
    JobCreate,
    JobListResponse,
    JobResponse,
    JobStatusUpdate,
    JobUpdate,
)
from marketplace.services import job_service
from marketplace.services.permissions import is_admin, is_owner_or_admin
from marketplace.services.storage_service import StorageService, get_storage

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("", response_model=JobListResponse)
async def list_jobs(
    search: Optional[str] = None,
    location: Optional[str] = None,
    job_type: Optional[str] = None,
    business_id: Optional[int] = None,
    status_filter: Optional[JobStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    job_status = status_filter if is_admin(current_user) else JobStatus.APPROVED
    return await with_db_retry(lambda: job_service.list_jobs(
        db, search=search, location=location, job_type=job_type, business_id=business_id,
        status=job_status, page=page, limit=limit,
    ))


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    job = job_service.get_job(db, job_id)
    if job.status != JobStatus.APPROVED and not is_owner_or_admin(job.business.user_id, current_user):
        raise NotFoundError("Job not found")
    return job


@router.post(
    "/business/{business_id}",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audit_user_action("CREATE", "job"))],
)
def create_job(
    business_id: int,
    payload: JobCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return job_service.create_job(db, business_id, payload.model_dump(), current_user)


@router.put("/{job_id}", response_model=JobResponse, dependencies=[Depends(audit_user_action("UPDATE", "job"))])
def update_job(
    job_id: int,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return job_service.update_job(db, job_id, payload.model_dump(exclude_unset=True), current_user)


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(audit_user_action("DELETE", "job"))],
)
def delete_job(
    job_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    job_service.delete_job(db, job_id, current_user, storage)


@router.patch(
    "/{job_id}/status",
    response_model=JobResponse,
    dependencies=[Depends(require_admin), Depends(audit_admin_action("UPDATE_STATUS", "job"))],
)
def update_job_status(job_id: int, payload: JobStatusUpdate, db: Session = Depends(get_db)):
    return job_service.set_job_status(db, job_id, payload.status)


# ✅ APPLICATIONS

@router.post(
    "/{job_id}/apply",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audit_user_action("APPLY", "job"))],
)
async def apply(
    job_id: int,
    cover_letter: Optional[str] = Form(None, max_length=5000),
    resume: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    return await job_service.apply_to_job(db, job_id, current_user.id, cover_letter, resume, storage)


@router.get("/{job_id}/applications", response_model=List[ApplicationResponse])
def job_applications(
    job_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return job_service.list_job_applications(db, job_id, current_user)
