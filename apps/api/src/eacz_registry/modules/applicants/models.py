"""
Applicant Models

Pre-application identity: a person or company registers, verifies their
email and then starts an application. Records are never hard-deleted.
"""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from eacz_registry.modules.shared import ApplicationType, BaseModel, pg_enum
from eacz_registry.modules.shared.payloads import PayloadJSON


class ApplicantStatus(str, enum.Enum):
    REGISTERED = "registered"
    EMAIL_VERIFIED = "email_verified"
    APPLICATION_STARTED = "application_started"
    APPLICATION_COMPLETED = "application_completed"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class Applicant(BaseModel):
    """A registered individual or organization applicant."""

    __tablename__ = "applicants"

    # APP-MBR-YYYY-NNNN / APP-ORG-YYYY-NNNN
    applicant_id: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    applicant_type: Mapped[ApplicationType] = mapped_column(
        pg_enum(ApplicationType, "application_type"), nullable=False
    )

    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    surname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # SHA-256 of the emailed token; the plain token is never stored
    verification_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verification_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    email_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    status: Mapped[ApplicantStatus] = mapped_column(
        pg_enum(ApplicantStatus, "applicant_status"),
        nullable=False,
        default=ApplicantStatus.REGISTERED,
    )

    draft_data: Mapped[dict[str, Any] | None] = mapped_column(
        PayloadJSON(dict[str, Any] | None), nullable=True
    )
    draft_saved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_applicants_verification_token_hash", "verification_token_hash"),)

    @property
    def display_name(self) -> str:
        if self.applicant_type == ApplicationType.ORGANIZATION:
            return self.company_name or self.email
        return " ".join(part for part in (self.first_name, self.surname) if part) or self.email

    @property
    def is_email_verified(self) -> bool:
        return self.email_verified_at is not None
