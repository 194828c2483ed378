"""
Application Models

Individual and organization membership applications, and the registry
decision recorded at final adjudication.

Both application tables share their workflow and fee columns through
``ApplicationMixin``; the semi-structured payloads are stored as
version-tagged JSON validated by the eligibility payload models.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from eacz_registry.core.database import Base
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
from eacz_registry.modules.shared import ApplicationType, BaseModel, pg_enum
from eacz_registry.modules.shared.payloads import PayloadJSON


class ApplicationStatus(str, enum.Enum):
    """Status of a membership application."""

    DRAFT = "draft"
    ELIGIBILITY_REVIEW = "eligibility_review"
    UNDER_REVIEW = "under_review"
    NEEDS_APPLICANT_ACTION = "needs_applicant_action"
    DOCUMENT_REVIEW = "document_review"
    PAYMENT_RECEIVED = "payment_received"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.WITHDRAWN,
        ApplicationStatus.EXPIRED,
    }
)

# Statuses in which the applicant may edit the application and upload documents
EDITABLE_STATUSES = frozenset({ApplicationStatus.DRAFT, ApplicationStatus.NEEDS_APPLICANT_ACTION})


class FeeStatus(str, enum.Enum):
    """Application fee settlement."""

    PENDING = "pending"
    PROOF_UPLOADED = "proof_uploaded"
    SETTLED = "settled"
    FAILED = "failed"


class Decision(str, enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ApplicationMixin:
    """Workflow, fee and review columns shared by both application tables."""

    # Human-readable application ID (APP-MBR-YYYY-NNNN / APP-ORG-YYYY-NNNN)
    application_id: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    applicant_email: Mapped[str] = mapped_column(String(255), nullable=False)
    # Pre-application identity this application was started from, if any
    applicant_ref: Mapped[str | None] = mapped_column(String(30), nullable=True)

    @declared_attr
    def status(cls) -> Mapped[ApplicationStatus]:
        return mapped_column(
            pg_enum(ApplicationStatus, "application_status"),
            nullable=False,
            default=ApplicationStatus.DRAFT,
        )

    # Fee
    fee_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    fee_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    fee_currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")

    @declared_attr
    def fee_status(cls) -> Mapped[FeeStatus]:
        return mapped_column(
            pg_enum(FeeStatus, "fee_status"),
            nullable=False,
            default=FeeStatus.PENDING,
        )

    # Paynow poll URL of the latest fee transaction
    fee_payment_id: Mapped[str | None] = mapped_column(String(500), nullable=True)
    fee_payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    fee_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fee_proof_doc_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Review
    reviewer_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Set only at final approval
    created_record_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    @property
    def fee_settled(self) -> bool:
        return self.fee_status == FeeStatus.SETTLED

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class IndividualApplication(ApplicationMixin, BaseModel):
    """Application for individual membership."""

    __tablename__ = "individual_applications"

    application_type = ApplicationType.INDIVIDUAL

    member_type: Mapped[MemberType] = mapped_column(
        pg_enum(MemberType, "member_type"),
        nullable=False,
        default=MemberType.REAL_ESTATE_AGENT,
    )
    personal: Mapped[PersonalInfo] = mapped_column(PayloadJSON(PersonalInfo), nullable=False)
    o_level: Mapped[OLevelRecord] = mapped_column(PayloadJSON(OLevelRecord), nullable=False)
    a_level: Mapped[ALevelRecord | None] = mapped_column(
        PayloadJSON(ALevelRecord | None), nullable=True
    )
    equivalent_qualification: Mapped[EquivalentQualification | None] = mapped_column(
        PayloadJSON(EquivalentQualification | None), nullable=True
    )
    mature_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_individual_applications_status", "status"),
        Index("ix_individual_applications_applicant_email", "applicant_email"),
    )

    @property
    def applicant_name(self) -> str:
        return self.personal.full_name

    def __repr__(self) -> str:
        return f"<IndividualApplication({self.application_id}, {self.status.value})>"


class OrganizationApplication(ApplicationMixin, BaseModel):
    """Application for organization (estate agency) registration."""

    __tablename__ = "organization_applications"

    application_type = ApplicationType.ORGANIZATION

    business_type: Mapped[BusinessType] = mapped_column(
        pg_enum(BusinessType, "business_type"),
        nullable=False,
        default=BusinessType.REAL_ESTATE_FIRM,
    )
    org_profile: Mapped[OrgProfile] = mapped_column(PayloadJSON(OrgProfile), nullable=False)
    trust_account: Mapped[TrustAccount] = mapped_column(PayloadJSON(TrustAccount), nullable=False)
    # Membership number of the Principal Registered Estate Agent
    prea_member_id: Mapped[str] = mapped_column(String(30), nullable=False)
    directors: Mapped[list[Director]] = mapped_column(
        PayloadJSON(list[Director]), nullable=False, default=list
    )

    __table_args__ = (
        Index("ix_organization_applications_status", "status"),
        Index("ix_organization_applications_applicant_email", "applicant_email"),
    )

    @property
    def applicant_name(self) -> str:
        return self.org_profile.legal_name

    def __repr__(self) -> str:
        return f"<OrganizationApplication({self.application_id}, {self.status.value})>"


class RegistryDecision(Base):
    """Final accept/reject decision, written once per application."""

    __tablename__ = "registry_decisions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_type: Mapped[ApplicationType] = mapped_column(
        pg_enum(ApplicationType, "application_type"), nullable=False
    )
    application_id: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    decision: Mapped[Decision] = mapped_column(pg_enum(Decision, "decision"), nullable=False)
    reasons: Mapped[list[str]] = mapped_column(
        PayloadJSON(list[str]), nullable=False, default=list
    )
    decided_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


ApplicationModel = IndividualApplication | OrganizationApplication

APPLICATION_MODELS: dict[ApplicationType, type[ApplicationModel]] = {
    ApplicationType.INDIVIDUAL: IndividualApplication,
    ApplicationType.ORGANIZATION: OrganizationApplication,
}
