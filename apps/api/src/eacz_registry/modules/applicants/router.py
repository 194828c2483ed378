"""
Applicants Router

Public endpoints for pre-application identities.

Endpoints:
- POST /applicants/register - Register and receive an applicant ID
- POST /applicants/verify-email - Verify the email address
- POST /applicants/login - Exchange applicant ID + email for a token
- GET /applicants/{applicant_id}/status - Registration and application status
- PUT /applicants/{applicant_id}/draft - Save a draft
- GET /applicants/{applicant_id}/draft - Load the saved draft
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core.auth import get_applicant_caller
from eacz_registry.core.database import get_db
from eacz_registry.core.email import EmailDispatcher, get_email_dispatcher
from eacz_registry.core.problems import ProblemDetailException, problem_from_service_error
from eacz_registry.modules.applicants import service
from eacz_registry.modules.applicants.schemas import (
    ApplicantLoginRequest,
    ApplicantLoginResponse,
    ApplicantStatusResponse,
    DraftRequest,
    DraftResponse,
    RegisterApplicantRequest,
    RegisterApplicantResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from eacz_registry.modules.applicants.service import ApplicantServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_service_error(e: ApplicantServiceError) -> None:
    """Convert service errors to problem responses."""
    raise problem_from_service_error(e) from e


def _internal_error(e: Exception, action: str) -> ProblemDetailException:
    logger.exception(f"Unexpected error {action}: {e}")
    return ProblemDetailException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please try again later.",
        code="INTERNAL_ERROR",
    )


@router.post(
    "/register",
    response_model=RegisterApplicantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register Applicant",
)
async def register(
    data: RegisterApplicantRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
) -> RegisterApplicantResponse:
    """
    Register an individual or organization applicant.

    Sends a welcome email with the applicant ID and a verification link
    valid for 24 hours.
    """
    try:
        return await service.register_applicant(db, dispatcher, data)
    except ApplicantServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, "registering applicant") from e


@router.post("/verify-email", response_model=VerifyEmailResponse, summary="Verify Email")
async def verify_email(
    data: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
) -> VerifyEmailResponse:
    try:
        return await service.verify_email(db, data.token)
    except ApplicantServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, "verifying email") from e


@router.post("/login", response_model=ApplicantLoginResponse, summary="Applicant Login")
async def login(
    data: ApplicantLoginRequest,
    db: AsyncSession = Depends(get_db),
) -> ApplicantLoginResponse:
    try:
        return await service.login_applicant(db, data.applicant_id, str(data.email))
    except ApplicantServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, "during applicant login") from e


@router.get(
    "/{applicant_id}/status",
    response_model=ApplicantStatusResponse,
    summary="Applicant Status",
)
async def get_status(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    caller=Depends(get_applicant_caller),
) -> ApplicantStatusResponse:
    try:
        return await service.get_applicant_status(db, applicant_id)
    except ApplicantServiceError as e:
        _handle_service_error(e)


@router.put("/{applicant_id}/draft", response_model=DraftResponse, summary="Save Draft")
async def save_draft(
    applicant_id: str,
    data: DraftRequest,
    db: AsyncSession = Depends(get_db),
    caller=Depends(get_applicant_caller),
) -> DraftResponse:
    try:
        return await service.save_draft(db, applicant_id, data.data)
    except ApplicantServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, "saving draft") from e


@router.get("/{applicant_id}/draft", response_model=DraftResponse, summary="Load Draft")
async def get_draft(
    applicant_id: str,
    db: AsyncSession = Depends(get_db),
    caller=Depends(get_applicant_caller),
) -> DraftResponse:
    try:
        return await service.get_draft(db, applicant_id)
    except ApplicantServiceError as e:
        _handle_service_error(e)
