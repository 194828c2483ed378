"""
Applicants Repository

Database operations for pre-application identities.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.modules.applicants.models import Applicant, ApplicantStatus
from eacz_registry.modules.shared import ApplicationType


async def create(
    db: AsyncSession,
    *,
    applicant_id: str,
    applicant_type: ApplicationType,
    email: str,
    verification_token_hash: str,
    verification_expires_at: datetime,
    first_name: str | None = None,
    surname: str | None = None,
    company_name: str | None = None,
) -> Applicant:
    applicant = Applicant(
        applicant_id=applicant_id,
        applicant_type=applicant_type,
        email=email.lower(),
        first_name=first_name,
        surname=surname,
        company_name=company_name,
        verification_token_hash=verification_token_hash,
        verification_expires_at=verification_expires_at,
        status=ApplicantStatus.REGISTERED,
    )
    db.add(applicant)
    await db.flush()
    return applicant


async def get_by_applicant_id(db: AsyncSession, applicant_id: str) -> Applicant | None:
    result = await db.execute(select(Applicant).where(Applicant.applicant_id == applicant_id))
    return result.scalar_one_or_none()


async def get_by_email(db: AsyncSession, email: str) -> Applicant | None:
    result = await db.execute(select(Applicant).where(Applicant.email == email.lower()))
    return result.scalar_one_or_none()


async def get_by_token_hash(db: AsyncSession, token_hash: str) -> Applicant | None:
    result = await db.execute(
        select(Applicant).where(Applicant.verification_token_hash == token_hash)
    )
    return result.scalar_one_or_none()


# Applicant statuses only move forward
_STATUS_ORDER = [
    ApplicantStatus.REGISTERED,
    ApplicantStatus.EMAIL_VERIFIED,
    ApplicantStatus.APPLICATION_STARTED,
    ApplicantStatus.APPLICATION_COMPLETED,
    ApplicantStatus.UNDER_REVIEW,
]


async def advance_status(
    db: AsyncSession,
    applicant_id: str | None,
    status: ApplicantStatus,
) -> Applicant | None:
    """
    Move an applicant forward to ``status``; never moves backwards.

    Approved and rejected are final. Flushes only.
    """
    if not applicant_id:
        return None

    applicant = await get_by_applicant_id(db, applicant_id)
    if applicant is None:
        return None

    if applicant.status in (ApplicantStatus.APPROVED, ApplicantStatus.REJECTED):
        return applicant

    if status in _STATUS_ORDER and _STATUS_ORDER.index(status) <= _STATUS_ORDER.index(
        applicant.status
    ):
        return applicant

    applicant.status = status
    await db.flush()
    return applicant
