"""
Applications Router

Public API endpoints for membership applications.

Endpoints:
- POST /applications/individual/start - Start an individual application
- POST /applications/organization/start - Start an organization application
- GET /applications/{id} - Application with documents and history
- PATCH /applications/{id} - Update a draft (optionally submit)
- POST /applications/{id}/submit - Submit for review
- POST /applications/{id}/generate-otp - Email a save-and-resume code
- POST /applications/{id}/verify-otp - Exchange the code for a token
- POST /applications/{id}/fee/initiate - Start a Paynow payment
- POST /applications/{id}/fee/callback - Paynow result notification
- POST /applications/{id}/fee/proof - Upload proof of payment
- POST /applications/{id}/documents - Upload a document
- GET /applications/{id}/documents - List uploaded documents

Security:
- Start, OTP and the Paynow callback are public
- Everything else requires the applicant token for that application
  (or a staff token)
- Rate limits on start, document upload and OTP generation
"""

import logging

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core.auth import (
    ApplicantPrincipal,
    StaffUser,
    caller_actor_id,
    get_application_caller,
)
from eacz_registry.core.database import get_db
from eacz_registry.core.email import EmailDispatcher, get_email_dispatcher
from eacz_registry.core.problems import ProblemDetailException, problem_from_service_error
from eacz_registry.core.rate_limit import (
    DOCUMENT_UPLOAD_LIMIT,
    OTP_GENERATION_LIMIT,
    START_APPLICATION_LIMIT,
    client_ip,
    enforce_rate_limit,
)
from eacz_registry.core.redis import require_redis
from eacz_registry.core.storage import ObjectStorage, get_storage
from eacz_registry.modules.applications import service
from eacz_registry.modules.applications.schemas import (
    ApplicationResponse,
    ApplicationUpdateRequest,
    DocumentResponse,
    DocumentUploadResponse,
    FeeInitiateRequest,
    FeeInitiateResponse,
    FeeStatusResponse,
    GenerateOtpRequest,
    GenerateOtpResponse,
    IndividualStartRequest,
    OrganizationStartRequest,
    StartApplicationResponse,
    SubmitResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from eacz_registry.modules.applications.service import FEE_PROOF_DOC_TYPE
from eacz_registry.modules.documents.file_validation import MB, upload_size_limit
from eacz_registry.modules.payments.paynow import PaynowClient, get_paynow_client
from eacz_registry.modules.shared.errors import ServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_CHUNK_SIZE = 1024 * 1024

Caller = StaffUser | ApplicantPrincipal


# ============================================
# Helper Functions
# ============================================


def _handle_service_error(e: ServiceError) -> None:
    """Convert service errors to problem responses."""
    raise problem_from_service_error(e) from e


def _internal_error(e: Exception, action: str) -> ProblemDetailException:
    logger.exception(f"Unexpected error {action}: {e}")
    return ProblemDetailException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please try again later.",
        code="INTERNAL_ERROR",
    )


async def _read_upload(file: UploadFile, doc_type: str) -> tuple[str, bytes, str]:
    """Read an upload in chunks, stopping as soon as it passes the size ceiling for ``doc_type``."""
    limit = upload_size_limit(doc_type)
    chunks = []
    size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise ProblemDetailException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File exceeds maximum allowed size of {limit / MB:.1f}MB",
                code="FILE_TOO_LARGE",
                maxSize=limit,
            )
        chunks.append(chunk)
    content = b"".join(chunks)
    return (
        file.filename or "upload",
        content,
        file.content_type or "application/octet-stream",
    )


# ============================================
# Start
# ============================================


@router.post(
    "/individual/start",
    response_model=StartApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start Individual Application",
    description="""
Start an individual membership application.

**Eligibility:**
- At least 5 O-Level passes including English and Mathematics
- Applicants aged 27 or older qualify as mature entry
- Younger applicants need 2+ A-Level passes or an equivalent qualification

**Fee:** 50 USD, or 75 USD for mature entry.

**Rate Limit:** 10 per hour per client IP.
""",
    responses={
        201: {"description": "Draft created; includes an applicant access token"},
        400: {"description": "Eligibility failed (ELIGIBILITY_FAILED)"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def start_individual(
    data: IndividualStartRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
) -> StartApplicationResponse:
    await enforce_rate_limit(START_APPLICATION_LIMIT, client_ip(request))
    try:
        return await service.start_individual_application(db, dispatcher, data)
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, "starting individual application") from e


@router.post(
    "/organization/start",
    response_model=StartApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start Organization Application",
    description="""
Start an organization (estate agency) application.

The declared Principal Registered Estate Agent must be an active individual
member. Missing documents are returned as requirements and do not block
creation.

**Fee:** 200 USD.

**Rate Limit:** 10 per hour per client IP.
""",
    responses={
        201: {"description": "Draft created; includes an applicant access token"},
        400: {"description": "Eligibility failed (ELIGIBILITY_FAILED)"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def start_organization(
    data: OrganizationStartRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
) -> StartApplicationResponse:
    await enforce_rate_limit(START_APPLICATION_LIMIT, client_ip(request))
    try:
        return await service.start_organization_application(db, dispatcher, data)
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, "starting organization application") from e


# ============================================
# Read / update / submit
# ============================================


@router.get(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Get Application",
)
async def get_application(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_application_caller),
) -> ApplicationResponse:
    """Application with its documents and status history (newest first)."""
    try:
        return await service.get_application(db, application_id)
    except ServiceError as e:
        _handle_service_error(e)


@router.patch(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Update Application",
    description="""
Update a draft application.

With `submit=true` the submission checks run first (status and fee), the
update is applied and the application is submitted.
""",
    responses={
        409: {"description": "Not editable, or fee required before submission"},
    },
)
async def update_application(
    application_id: str,
    data: ApplicationUpdateRequest,
    submit: bool = Query(False, description="Submit after applying the update"),
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    caller: Caller = Depends(get_application_caller),
) -> ApplicationResponse:
    try:
        return await service.update_application(
            db,
            dispatcher,
            application_id,
            data,
            caller_actor_id(caller),
            submit=submit,
        )
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, f"updating application {application_id}") from e


@router.post(
    "/{application_id}/submit",
    response_model=SubmitResponse,
    summary="Submit Application",
    description="""
Submit an application for review.

**Checks (in order):**
1. Status must be `draft` or `needs_applicant_action` (409 INVALID_APPLICATION_STATE)
2. The fee must be settled or a proof of payment uploaded (409 FEE_REQUIRED)
3. All required documents must be uploaded (400 MISSING_DOCUMENTS)
""",
    responses={
        400: {"description": "Missing documents"},
        409: {"description": "Wrong status or fee required"},
    },
)
async def submit_application(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    caller: Caller = Depends(get_application_caller),
) -> SubmitResponse:
    try:
        return await service.submit_application(
            db, dispatcher, application_id, caller_actor_id(caller)
        )
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, f"submitting application {application_id}") from e


# ============================================
# Save & resume
# ============================================


@router.post(
    "/{application_id}/generate-otp",
    response_model=GenerateOtpResponse,
    summary="Generate Resume Code",
    description="""
Email a 6-digit code for resuming an application.

The response does not reveal whether the email matches the application.

**Rate Limit:** 3 per hour per application.
""",
)
async def generate_otp(
    application_id: str,
    data: GenerateOtpRequest,
    db: AsyncSession = Depends(get_db),
    redis_client: Redis = Depends(require_redis),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
) -> GenerateOtpResponse:
    await enforce_rate_limit(OTP_GENERATION_LIMIT, application_id)
    try:
        return await service.generate_otp(
            db, redis_client, dispatcher, application_id, str(data.email)
        )
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, f"generating OTP for {application_id}") from e


@router.post(
    "/{application_id}/verify-otp",
    response_model=VerifyOtpResponse,
    summary="Verify Resume Code",
)
async def verify_otp(
    application_id: str,
    data: VerifyOtpRequest,
    db: AsyncSession = Depends(get_db),
    redis_client: Redis = Depends(require_redis),
) -> VerifyOtpResponse:
    try:
        return await service.verify_otp(
            db, redis_client, application_id, str(data.email), data.code
        )
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, f"verifying OTP for {application_id}") from e


# ============================================
# Application fee
# ============================================


@router.post(
    "/{application_id}/fee/initiate",
    response_model=FeeInitiateResponse,
    summary="Initiate Fee Payment",
    responses={
        400: {"description": "Amount does not match the application fee"},
        409: {"description": "Fee already paid"},
        502: {"description": "Payment gateway unavailable"},
    },
)
async def initiate_fee(
    application_id: str,
    data: FeeInitiateRequest,
    db: AsyncSession = Depends(get_db),
    paynow: PaynowClient = Depends(get_paynow_client),
    caller: Caller = Depends(get_application_caller),
) -> FeeInitiateResponse:
    try:
        return await service.initiate_fee(
            db,
            paynow,
            application_id,
            data.amount,
            str(data.email) if data.email else None,
        )
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, f"initiating fee payment for {application_id}") from e


@router.post(
    "/{application_id}/fee/callback",
    response_model=FeeStatusResponse,
    summary="Paynow Result Notification",
    include_in_schema=False,
)
async def fee_callback(
    application_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    paynow: PaynowClient = Depends(get_paynow_client),
) -> FeeStatusResponse:
    form = await request.form()
    payload = {key: str(value) for key, value in form.items()}
    try:
        return await service.handle_fee_callback(db, paynow, application_id, payload)
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"processing Paynow callback for {application_id}") from e


@router.post(
    "/{application_id}/fee/proof",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Proof of Payment",
)
async def upload_fee_proof(
    application_id: str,
    response: Response,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    caller: Caller = Depends(get_application_caller),
) -> DocumentUploadResponse:
    await enforce_rate_limit(DOCUMENT_UPLOAD_LIMIT, application_id)
    filename, content, content_type = await _read_upload(file, FEE_PROOF_DOC_TYPE)
    try:
        result, created = await service.upload_fee_proof(
            db,
            storage,
            application_id,
            filename=filename,
            content=content,
            content_type=content_type,
            actor_id=caller_actor_id(caller),
        )
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, f"uploading proof of payment for {application_id}") from e

    if not created:
        response.status_code = status.HTTP_200_OK
    return result


# ============================================
# Documents
# ============================================


@router.post(
    "/{application_id}/documents",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Document",
    description="""
Upload a document for a draft application.

Single-instance types (`id_or_passport`, `birth_certificate`,
`certificate_incorporation`) are replaced in place and return 200; other
types accumulate and return 201.

**Rate Limit:** 30 per hour per application.
""",
    responses={
        200: {"description": "Existing single-instance document replaced"},
        201: {"description": "Document stored"},
        400: {"description": "Unknown document type or file failed validation"},
        409: {"description": "Application not editable, or duplicate file content"},
    },
)
async def upload_document(
    application_id: str,
    response: Response,
    doc_type: str = Form(..., min_length=1, max_length=100),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    caller: Caller = Depends(get_application_caller),
) -> DocumentUploadResponse:
    await enforce_rate_limit(DOCUMENT_UPLOAD_LIMIT, application_id)
    filename, content, content_type = await _read_upload(file, doc_type.strip())
    try:
        result, created = await service.upload_application_document(
            db,
            storage,
            application_id,
            doc_type=doc_type.strip(),
            filename=filename,
            content=content,
            content_type=content_type,
            actor_id=caller_actor_id(caller),
        )
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, f"uploading {doc_type} for {application_id}") from e

    if not created:
        response.status_code = status.HTTP_200_OK
    return result


@router.get(
    "/{application_id}/documents",
    response_model=list[DocumentResponse],
    summary="List Documents",
)
async def list_documents(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_application_caller),
) -> list[DocumentResponse]:
    try:
        return await service.list_documents(db, application_id)
    except ServiceError as e:
        _handle_service_error(e)
