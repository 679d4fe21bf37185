from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from app.core.enums import ApplicationStatus, SwipeAction

DEFAULT_WORK_AUTH = "Yes, I am authorized to work in the United States"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobRef(BaseModel):
    id: str = Field(min_length=1)
    title: str = ""
    company: str = ""
    apply_url: str = ""
    ats_provider: str = "ashby"
    location: str = ""


class ApplicantProfile(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    resume_path: str = Field(min_length=1)

    phone: str = ""
    location: str = ""
    linkedin: str = ""
    website: str = ""
    github: str = ""
    work_auth: str = DEFAULT_WORK_AUTH
    cover_letter: str = ""
    willing_to_relocate: bool = True
    understands_anchor_days: bool = True
    requires_sponsorship: bool = False

    school: str = ""
    degree: str = ""
    graduation_date: str = ""

    @field_validator("first_name", "last_name", "email", "resume_path", mode="before")
    @classmethod
    def _strip_required(cls, value):
        return str(value or "").strip()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ApplicationRecord(BaseModel):
    job_id: str = Field(min_length=1)
    job: JobRef
    profile: ApplicantProfile
    status: ApplicationStatus = ApplicationStatus.QUEUED
    updated_at: datetime = Field(default_factory=utc_now)
    applied_at: datetime | None = None
    error: str | None = None


class JobSwipe(BaseModel):
    job_id: str
    action: SwipeAction
    timestamp: datetime = Field(default_factory=utc_now)


def split_full_name(name: str) -> tuple[str, str]:
    parts = [part for part in (name or "").strip().split() if part]
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], " ".join(parts[1:])
