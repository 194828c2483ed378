"""
Applicants Schemas

Pydantic schemas for applicant registration, verification, login and drafts.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field, model_validator

from eacz_registry.modules.applicants.models import ApplicantStatus
from eacz_registry.modules.shared import ApplicationType


class RegisterApplicantRequest(BaseModel):
    """Request body for POST /applicants/register."""

    applicant_type: ApplicationType = ApplicationType.INDIVIDUAL
    first_name: str | None = Field(None, min_length=1, max_length=100)
    surname: str | None = Field(None, min_length=1, max_length=100)
    company_name: str | None = Field(None, min_length=2, max_length=255)
    email: EmailStr

    @model_validator(mode="after")
    def validate_names(self) -> "RegisterApplicantRequest":
        if self.applicant_type == ApplicationType.ORGANIZATION:
            if not self.company_name:
                raise ValueError("company_name is required for organization applicants")
        elif not self.first_name or not self.surname:
            raise ValueError("first_name and surname are required for individual applicants")
        return self


class RegisterApplicantResponse(BaseModel):
    applicant_id: str
    applicant_type: ApplicationType
    email: str
    status: ApplicantStatus
    message: str


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class VerifyEmailResponse(BaseModel):
    applicant_id: str
    status: ApplicantStatus
    message: str
    already_verified: bool = False


class ApplicantLoginRequest(BaseModel):
    applicant_id: str = Field(..., min_length=1, max_length=30)
    email: EmailStr


class ApplicantLoginResponse(BaseModel):
    applicant_id: str
    application_id: str | None = None
    access_token: str
    token_type: str = "bearer"


class ApplicantStatusResponse(BaseModel):
    applicant_id: str
    applicant_type: ApplicationType
    name: str
    status: ApplicantStatus
    email_verified: bool
    application_id: str | None = None
    application_status: str | None = None
    created_at: datetime


class DraftRequest(BaseModel):
    data: dict[str, Any]


class DraftResponse(BaseModel):
    applicant_id: str
    data: dict[str, Any] | None = None
    saved_at: datetime | None = None
