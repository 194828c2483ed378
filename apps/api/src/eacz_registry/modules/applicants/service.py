"""
Applicants Service Layer

Business logic for pre-application identities.

1. Registration:
   - Reject duplicate emails
   - Issue an applicant ID from the application series
   - Store a SHA-256 hash of the verification token (24 hour expiry)
   - Queue welcome and verification emails

2. Email verification (idempotent once verified)

3. Login with applicant ID + email, returning an applicant token

4. Save-and-resume drafts stored as a versioned payload

Security considerations:
- Tokens use secrets.token_urlsafe and are hashed before storage
- Email comparison is case-insensitive
- Tokens and full email addresses are never logged
"""

import hashlib
import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core import email_templates
from eacz_registry.core.email import EmailDispatcher, mask_email
from eacz_registry.core.security import create_applicant_token
from eacz_registry.modules.applicants import repository
from eacz_registry.modules.applicants.models import Applicant, ApplicantStatus
from eacz_registry.modules.applicants.schemas import (
    ApplicantLoginResponse,
    ApplicantStatusResponse,
    DraftResponse,
    RegisterApplicantRequest,
    RegisterApplicantResponse,
    VerifyEmailResponse,
)
from eacz_registry.modules.applications import repository as applications_repository
from eacz_registry.modules.naming_series.service import (
    application_series,
    is_valid_identifier,
    next_identifier,
)
from eacz_registry.modules.shared.errors import ServiceError

logger = logging.getLogger(__name__)

# Constants
TOKEN_EXPIRY_HOURS = 24
TOKEN_LENGTH = 32  # 256 bits of entropy when using token_urlsafe


def _hash_token(token: str) -> str:
    """Hash a verification token for storage using SHA-256."""
    return hashlib.sha256(token.encode()).hexdigest()


class ApplicantServiceError(ServiceError):
    """Base exception for applicant service errors."""


class EmailAlreadyRegisteredError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="An applicant with this email address is already registered",
            error_code="EMAIL_ALREADY_REGISTERED",
            status_code=409,
        )


class ApplicantNotFoundError(ApplicantServiceError):
    def __init__(self, applicant_id: str | None = None):
        super().__init__(
            message=f"Applicant {applicant_id} not found" if applicant_id else "Applicant not found",
            error_code="APPLICANT_NOT_FOUND",
            status_code=404,
        )


class InvalidVerificationTokenError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="Invalid verification token",
            error_code="INVALID_TOKEN",
            status_code=404,
        )


class VerificationTokenExpiredError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="Verification link has expired. Please register again or request a new link.",
            error_code="TOKEN_EXPIRED",
            status_code=410,
        )


class InvalidApplicantIdError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="Applicant ID must look like APP-MBR-YYYY-NNNN or APP-ORG-YYYY-NNNN",
            error_code="INVALID_APPLICANT_ID",
            status_code=400,
        )


class InvalidApplicantCredentialsError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="Applicant ID and email do not match",
            error_code="INVALID_CREDENTIALS",
            status_code=401,
        )


class EmailNotVerifiedError(ApplicantServiceError):
    def __init__(self):
        super().__init__(
            message="Please verify your email address before signing in",
            error_code="EMAIL_NOT_VERIFIED",
            status_code=403,
        )


# ============================================
# Registration & verification
# ============================================


async def register_applicant(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    data: RegisterApplicantRequest,
) -> RegisterApplicantResponse:
    """
    Register a new applicant and queue the welcome and verification emails.

    Raises:
        EmailAlreadyRegisteredError: Email already registered (409)
    """
    email = str(data.email).lower()

    if await repository.get_by_email(db, email):
        logger.info(f"Registration rejected, email already registered: {mask_email(email)}")
        raise EmailAlreadyRegisteredError()

    token = secrets.token_urlsafe(TOKEN_LENGTH)
    applicant_id = await next_identifier(db, application_series(data.applicant_type.value))

    try:
        applicant = await repository.create(
            db,
            applicant_id=applicant_id,
            applicant_type=data.applicant_type,
            email=email,
            first_name=data.first_name,
            surname=data.surname,
            company_name=data.company_name,
            verification_token_hash=_hash_token(token),
            verification_expires_at=datetime.now(UTC) + timedelta(hours=TOKEN_EXPIRY_HOURS),
        )
        await db.commit()
    except IntegrityError as e:
        # Concurrent registration with the same email
        await db.rollback()
        raise EmailAlreadyRegisteredError() from e

    logger.info(f"Registered applicant {applicant_id} ({mask_email(email)})")

    name = applicant.display_name
    dispatcher.enqueue(email_templates.applicant_welcome(email, name, applicant_id))
    dispatcher.enqueue(email_templates.applicant_verification(email, name, token))

    return RegisterApplicantResponse(
        applicant_id=applicant_id,
        applicant_type=applicant.applicant_type,
        email=email,
        status=applicant.status,
        message="Registration successful. Please check your email to verify your address.",
    )


async def verify_email(db: AsyncSession, token: str) -> VerifyEmailResponse:
    """
    Verify an applicant's email address.

    Repeating the verification with the same token succeeds without changes.

    Raises:
        InvalidVerificationTokenError: Unknown token (404)
        VerificationTokenExpiredError: Token expired before verification (410)
    """
    applicant = await repository.get_by_token_hash(db, _hash_token(token))
    if applicant is None:
        raise InvalidVerificationTokenError()

    if applicant.is_email_verified:
        return VerifyEmailResponse(
            applicant_id=applicant.applicant_id,
            status=applicant.status,
            message="Email address already verified",
            already_verified=True,
        )

    expires_at = applicant.verification_expires_at
    if expires_at is not None and expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    if expires_at is None or expires_at < datetime.now(UTC):
        raise VerificationTokenExpiredError()

    applicant.email_verified_at = datetime.now(UTC)
    await repository.advance_status(db, applicant.applicant_id, ApplicantStatus.EMAIL_VERIFIED)
    await db.commit()

    logger.info(f"Applicant {applicant.applicant_id} verified their email")
    return VerifyEmailResponse(
        applicant_id=applicant.applicant_id,
        status=applicant.status,
        message="Email address verified successfully",
    )


# ============================================
# Login & status
# ============================================


async def login_applicant(db: AsyncSession, applicant_id: str, email: str) -> ApplicantLoginResponse:
    """
    Exchange applicant ID + email for an applicant token.

    Raises:
        InvalidApplicantIdError: Malformed applicant ID (400)
        InvalidApplicantCredentialsError: Unknown ID or email mismatch (401)
        EmailNotVerifiedError: Email not verified yet (403)
    """
    applicant_id = applicant_id.strip().upper()
    if not is_valid_identifier(applicant_id, prefix="APP-"):
        raise InvalidApplicantIdError()

    applicant = await repository.get_by_applicant_id(db, applicant_id)
    if applicant is None or applicant.email != email.strip().lower():
        logger.warning(f"Failed applicant login for {applicant_id}")
        raise InvalidApplicantCredentialsError()

    if not applicant.is_email_verified:
        raise EmailNotVerifiedError()

    application = await applications_repository.get_latest_for_applicant(db, applicant_id)
    application_id = application.application_id if application else None

    token = create_applicant_token(
        subject=applicant_id,
        email=applicant.email,
        application_id=application_id,
        applicant_id=applicant_id,
    )
    return ApplicantLoginResponse(
        applicant_id=applicant_id,
        application_id=application_id,
        access_token=token,
    )


async def get_applicant_or_404(db: AsyncSession, applicant_id: str) -> Applicant:
    applicant = await repository.get_by_applicant_id(db, applicant_id)
    if applicant is None:
        raise ApplicantNotFoundError(applicant_id)
    return applicant


async def get_applicant_status(db: AsyncSession, applicant_id: str) -> ApplicantStatusResponse:
    applicant = await get_applicant_or_404(db, applicant_id)
    application = await applications_repository.get_latest_for_applicant(db, applicant_id)

    return ApplicantStatusResponse(
        applicant_id=applicant.applicant_id,
        applicant_type=applicant.applicant_type,
        name=applicant.display_name,
        status=applicant.status,
        email_verified=applicant.is_email_verified,
        application_id=application.application_id if application else None,
        application_status=application.status.value if application else None,
        created_at=applicant.created_at,
    )


# ============================================
# Drafts
# ============================================


async def save_draft(db: AsyncSession, applicant_id: str, data: dict[str, Any]) -> DraftResponse:
    applicant = await get_applicant_or_404(db, applicant_id)

    applicant.draft_data = data
    applicant.draft_saved_at = datetime.now(UTC)
    await db.commit()

    logger.debug(f"Saved draft for applicant {applicant_id}")
    return DraftResponse(
        applicant_id=applicant_id,
        data=data,
        saved_at=applicant.draft_saved_at,
    )


async def get_draft(db: AsyncSession, applicant_id: str) -> DraftResponse:
    applicant = await get_applicant_or_404(db, applicant_id)
    return DraftResponse(
        applicant_id=applicant_id,
        data=applicant.draft_data,
        saved_at=applicant.draft_saved_at,
    )
