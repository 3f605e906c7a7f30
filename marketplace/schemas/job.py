"""
Pydantic schemas for jobs and applications.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from marketplace.db.models.enums import ApplicationStatus, JobStatus
from marketplace.schemas.common import PageMeta

JOB_TYPE_PATTERN = "^(full_time|part_time|freelance|internship|temporary)$"


class JobCreate(BaseModel):
    """Schema for posting a job under a business."""
    title: str = Field(..., description="Job title", min_length=3, max_length=150)
    description: str = Field(..., description="Job description", min_length=10, max_length=10000)
    requirements: Optional[str] = Field(None, description="Requirements", max_length=5000)
    location: Optional[str] = Field(None, description="Location", max_length=150)
    job_type: Optional[str] = Field(None, description="Contract type", pattern=JOB_TYPE_PATTERN)
    salary: Optional[str] = Field(None, description="Salary or range", max_length=100)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Barista",
            "description": "Prepare coffee and serve customers in our downtown shop.",
            "location": "Curitiba, PR",
            "job_type": "part_time",
            "salary": "R$ 1.800",
        }
    })


class JobUpdate(BaseModel):
    title: Optional[str] = Field(None, description="Job title", min_length=3, max_length=150)
    description: Optional[str] = Field(None, description="Job description", min_length=10, max_length=10000)
    requirements: Optional[str] = Field(None, description="Requirements", max_length=5000)
    location: Optional[str] = Field(None, description="Location", max_length=150)
    job_type: Optional[str] = Field(None, description="Contract type", pattern=JOB_TYPE_PATTERN)
    salary: Optional[str] = Field(None, description="Salary or range", max_length=100)


class JobStatusUpdate(BaseModel):
    status: JobStatus = Field(..., description="New job status")


class JobResponse(BaseModel):
    id: int
    business_id: int
    title: str
    description: str
    requirements: Optional[str] = None
    location: Optional[str] = None
    job_type: Optional[str] = None
    salary: Optional[str] = None
    status: JobStatus
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class JobListResponse(PageMeta):
    items: List[JobResponse] = Field(..., description="Jobs on this page")


class ApplicationStatusUpdate(BaseModel):
    status: ApplicationStatus = Field(..., description="New application status")


class ApplicationResponse(BaseModel):
    id: int
    job_id: int
    user_id: int
    cover_letter: Optional[str] = None
    resume: Optional[str] = None
    status: ApplicationStatus
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
