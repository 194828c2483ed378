"""
Applications Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from eacz_registry.modules.applications.models import ApplicationStatus, Decision, FeeStatus
from eacz_registry.modules.documents.models import DocumentStatus
from eacz_registry.modules.eligibility.schemas import (
    ALevelRecord,
    Director,
    EquivalentQualification,
    OLevelRecord,
    OrgProfile,
    PersonalInfo,
    TrustAccount,
)
from eacz_registry.modules.members.models import BusinessType, MemberType
from eacz_registry.modules.shared import ApplicationType

# ============================================
# Start
# ============================================


class IndividualStartRequest(BaseModel):
    """Request body for POST /applications/individual/start."""

    personal: PersonalInfo
    o_level: OLevelRecord
    a_level: ALevelRecord | None = None
    equivalent_qualification: EquivalentQualification | None = None
    member_type: MemberType = MemberType.REAL_ESTATE_AGENT
    applicant_id: str | None = Field(None, max_length=30)


class OrganizationStartRequest(BaseModel):
    """Request body for POST /applications/organization/start."""

    org_profile: OrgProfile
    trust_account: TrustAccount
    prea_member_id: str = Field(..., min_length=1, max_length=30)
    directors: list[Director] = Field(default_factory=list)
    business_type: BusinessType = BusinessType.REAL_ESTATE_FIRM
    applicant_id: str | None = Field(None, max_length=30)


class StartApplicationResponse(BaseModel):
    """Response after starting an application."""

    application_id: str
    application_type: ApplicationType
    status: ApplicationStatus
    mature: bool | None = None
    fee_amount: Decimal
    fee_currency: str
    requirements: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    access_token: str
    token_type: str = "bearer"


# ============================================
# Update / submit
# ============================================


class IndividualApplicationUpdate(BaseModel):
    personal: PersonalInfo | None = None
    o_level: OLevelRecord | None = None
    a_level: ALevelRecord | None = None
    equivalent_qualification: EquivalentQualification | None = None
    member_type: MemberType | None = None


class OrganizationApplicationUpdate(BaseModel):
    org_profile: OrgProfile | None = None
    trust_account: TrustAccount | None = None
    prea_member_id: str | None = Field(None, min_length=1, max_length=30)
    directors: list[Director] | None = None
    business_type: BusinessType | None = None


class ApplicationUpdateRequest(BaseModel):
    """
    Request body for PATCH /applications/{id}.

    Only the section matching the application's type is applied.
    """

    individual: IndividualApplicationUpdate | None = None
    organization: OrganizationApplicationUpdate | None = None


class SubmitResponse(BaseModel):
    application_id: str
    status: ApplicationStatus
    submitted_at: datetime
    message: str


# ============================================
# Read
# ============================================


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    doc_type: str
    file_name: str
    mime_type: str
    file_size: int
    sha256: str
    status: DocumentStatus
    notes: str | None = None
    verified_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class DocumentUploadResponse(BaseModel):
    document: DocumentResponse
    replaced: bool
    warnings: list[str] = Field(default_factory=list)


class StatusHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: str | None = None
    to_status: str
    actor_id: str | None = None
    comment: str | None = None
    created_at: datetime


class DecisionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    decision: Decision
    reasons: list[str]
    decided_by: UUID | None = None
    decided_at: datetime


class ApplicationResponse(BaseModel):
    """Application with its documents and history (newest first)."""

    model_config = ConfigDict(from_attributes=True)

    application_id: str
    application_type: ApplicationType
    status: ApplicationStatus
    applicant_email: str
    applicant_name: str

    # Individual
    member_type: MemberType | None = None
    personal: PersonalInfo | None = None
    o_level: OLevelRecord | None = None
    a_level: ALevelRecord | None = None
    equivalent_qualification: EquivalentQualification | None = None
    mature_entry: bool | None = None

    # Organization
    business_type: BusinessType | None = None
    org_profile: OrgProfile | None = None
    trust_account: TrustAccount | None = None
    prea_member_id: str | None = None
    directors: list[Director] | None = None

    fee_required: bool
    fee_amount: Decimal
    fee_currency: str
    fee_status: FeeStatus

    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    created_record_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    documents: list[DocumentResponse] = Field(default_factory=list)
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)


class AdminApplicationResponse(ApplicationResponse):
    """Application detail for staff, including reviewer and decision."""

    reviewer_id: UUID | None = None
    fee_payment_reference: str | None = None
    decision: DecisionResponse | None = None


class ApplicationListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    application_id: str
    application_type: ApplicationType
    applicant_name: str
    applicant_email: str
    status: ApplicationStatus
    fee_status: FeeStatus
    submitted_at: datetime | None = None
    created_at: datetime


class ApplicationListResponse(BaseModel):
    items: list[ApplicationListItem]
    total: int
    limit: int
    offset: int


# ============================================
# Save & resume (OTP)
# ============================================


class GenerateOtpRequest(BaseModel):
    email: EmailStr


class GenerateOtpResponse(BaseModel):
    message: str
    expires_in_minutes: int


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class VerifyOtpResponse(BaseModel):
    application_id: str
    access_token: str
    token_type: str = "bearer"


# ============================================
# Fee
# ============================================


class FeeInitiateRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    email: EmailStr | None = None


class FeeInitiateResponse(BaseModel):
    reference: str
    redirect_url: str | None = None
    poll_url: str | None = None


class FeeStatusResponse(BaseModel):
    application_id: str
    fee_status: FeeStatus
    message: str


# ============================================
# Admin actions
# ============================================


class StatusUpdateRequest(BaseModel):
    status: ApplicationStatus
    comment: str | None = Field(None, max_length=2000)


class StageTransitionRequest(BaseModel):
    comment: str | None = Field(None, max_length=2000)


class RejectRequest(BaseModel):
    reasons: list[str] = Field(..., min_length=1)


class DecideRequest(BaseModel):
    decision: Decision
    reasons: list[str] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=2000)


class VerifyDocumentRequest(BaseModel):
    status: DocumentStatus
    notes: str | None = Field(None, max_length=2000)


class TransitionResponse(BaseModel):
    application_id: str
    from_status: ApplicationStatus
    status: ApplicationStatus
    message: str


class ApproveResponse(TransitionResponse):
    registration_number: str
    expiry_date: date | None = None
