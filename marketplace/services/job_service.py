"""
Job postings and applications.
"""
import logging
from typing import Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from marketplace.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from marketplace.db.models.application import Application
from marketplace.db.models.business import Business
from marketplace.db.models.enums import ApplicationStatus, JobStatus
from marketplace.db.models.job import Job
from marketplace.services.pagination import paginate, search_filter
from marketplace.services.permissions import ensure_owner_or_admin
from marketplace.services.storage_service import DOCUMENT_EXTENSIONS, StorageService, get_storage

logger = logging.getLogger(__name__)


def list_jobs(
    db: Session,
    search: Optional[str] = None,
    location: Optional[str] = None,
    job_type: Optional[str] = None,
    business_id: Optional[int] = None,
    status: Optional[JobStatus] = JobStatus.APPROVED,
    page: int = 1,
    limit: int = 10,
) -> Dict:
    query = db.query(Job)

    if status is not None:
        query = query.filter(Job.status == status)
    if search:
        query = query.filter(search_filter(search, Job.title, Job.description))
    if location:
        query = query.filter(Job.location.ilike(f"%{location}%"))
    if job_type:
        query = query.filter(Job.job_type == job_type)
    if business_id is not None:
        query = query.filter(Job.business_id == business_id)

    query = query.order_by(Job.created_at.desc(), Job.id.desc())
    return paginate(query, page, limit)


def get_job(db: Session, job_id: int) -> Job:
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise NotFoundError("Job not found")
    return job


def create_job(db: Session, business_id: int, data: Dict, caller) -> Job:
    """Post a job under a business the caller owns."""
    business = db.query(Business).filter(Business.id == business_id).first()
    if not business:
        raise NotFoundError("Business not found")
    ensure_owner_or_admin(business.user_id, caller, "business")

    job = Job(**data, business_id=business.id, status=JobStatus.PENDING)
    db.add(job)
    db.commit()
    db.refresh(job)

    logger.info(f"Job created: job_id={job.id}, business_id={business.id}")
    return job


def update_job(db: Session, job_id: int, data: Dict, caller) -> Job:
    job = get_job(db, job_id)
    ensure_owner_or_admin(job.business.user_id, caller, "job")

    for field, value in data.items():
        setattr(job, field, value)
    db.commit()
    db.refresh(job)

    logger.info(f"Job updated: job_id={job.id}, caller_id={caller.id}")
    return job


def delete_job(db: Session, job_id: int, caller, storage: StorageService = None) -> None:
    job = get_job(db, job_id)
    ensure_owner_or_admin(job.business.user_id, caller, "job")

    resumes = [a.resume for a in job.applications if a.resume]
    db.delete(job)
    db.commit()

    storage = storage or get_storage()
    for filename in resumes:
        storage.delete(filename)

    logger.info(f"Job deleted: job_id={job_id}, caller_id={caller.id}")


def set_job_status(db: Session, job_id: int, status: JobStatus) -> Job:
    job = get_job(db, job_id)
    job.status = status
    db.commit()
    db.refresh(job)
    logger.info(f"Job moderated: job_id={job.id}, status={status.value}")
    return job


# Applications

async def apply_to_job(
    db: Session,
    job_id: int,
    user_id: int,
    cover_letter: Optional[str] = None,
    resume: Optional[UploadFile] = None,
    storage: StorageService = None,
) -> Application:
    """
    Apply to an APPROVED job, once per user.

    Raises:
        NotFoundError: Job missing
        BadRequestError: Job not open for applications
        ConflictError: User already applied
    """
    job = get_job(db, job_id)
    if job.status != JobStatus.APPROVED:
        raise BadRequestError("Job is not accepting applications")

    existing = (
        db.query(Application.id)
        .filter(Application.job_id == job.id, Application.user_id == user_id)
        .first()
    )
    if existing:
        raise ConflictError("You have already applied to this job")

    resume_filename = None
    if resume is not None and resume.filename:
        resume_filename = await (storage or get_storage()).save(resume, DOCUMENT_EXTENSIONS)

    application = Application(
        job_id=job.id,
        user_id=user_id,
        cover_letter=cover_letter,
        resume=resume_filename,
        status=ApplicationStatus.PENDING,
    )
    db.add(application)
    db.commit()
    db.refresh(application)

    logger.info(f"Application submitted: application_id={application.id}, job_id={job.id}, user_id={user_id}")
    return application


def list_user_applications(db: Session, user_id: int) -> List[Application]:
    return (
        db.query(Application)
        .filter(Application.user_id == user_id)
        .order_by(Application.created_at.desc(), Application.id.desc())
        .all()
    )


def list_job_applications(db: Session, job_id: int, caller) -> List[Application]:
    job = get_job(db, job_id)
    ensure_owner_or_admin(job.business.user_id, caller, "job")
    return (
        db.query(Application)
        .filter(Application.job_id == job.id)
        .order_by(Application.created_at.desc(), Application.id.desc())
        .all()
    )


def get_application(db: Session, application_id: int) -> Application:
    application = db.query(Application).filter(Application.id == application_id).first()
    if not application:
        raise NotFoundError("Application not found")
    return application


def update_application_status(db: Session, application_id: int, status: ApplicationStatus, caller) -> Application:
    application = get_application(db, application_id)
    ensure_owner_or_admin(application.job.business.user_id, caller, "application")

    application.status = status
    db.commit()
    db.refresh(application)

    logger.info(f"Application status updated: application_id={application.id}, status={status.value}")
    return application


def withdraw_application(db: Session, application_id: int, caller, storage: StorageService = None) -> None:
    application = get_application(db, application_id)
    if application.user_id != caller.id:
        raise ForbiddenError("Only the applicant can withdraw an application")

    resume = application.resume
    db.delete(application)
    db.commit()

    if resume:
        (storage or get_storage()).delete(resume)
    logger.info(f"Application withdrawn: application_id={application_id}, user_id={caller.id}")
