from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.core.enums import ApplicationStatus, ApplyMode
from app.db.models import ApplicantProfile, JobRef


class ApplyRequest(BaseModel):
    job_url: str = Field(min_length=1)
    profile: ApplicantProfile
    mode: ApplyMode = ApplyMode.AUTO
    job_title: str | None = None
    company: str | None = None


class ApplyResponse(BaseModel):
    ok: bool
    success_text: str | None = None
    screenshot_path: str | None = None
    error: str | None = None
    validation_error: str | None = None
    missing_fields: list[str] = Field(default_factory=list)
    attempts: int = 0
    corrective_passes: int = 0
    unfilled_fields: list[str] = Field(default_factory=list)


class EnqueueRequest(BaseModel):
    job: JobRef
    profile: dict[str, Any]


class ApplicationUpdateRequest(BaseModel):
    status: ApplicationStatus | None = None
    error: str | None = None
    profile: dict[str, Any] | None = None


class ApplicationResponse(BaseModel):
    job_id: str
    job: JobRef
    profile: ApplicantProfile
    status: ApplicationStatus
    updated_at: datetime
    applied_at: datetime | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class ProcessRequest(BaseModel):
    drain: bool = False
    force: bool = True


class ProcessResponse(BaseModel):
    status: str
    job_id: str | None = None
    processed: list[dict[str, Any]] = Field(default_factory=list)
    result: dict[str, Any] | None = None


class AutoSubmitPreference(BaseModel):
    enabled: bool
