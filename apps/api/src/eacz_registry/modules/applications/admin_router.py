"""
Applications Admin Router

API endpoints for council staff to review and decide applications.

Endpoints:
- GET /admin/applications - List applications with filters and pagination
- GET /admin/applications/{id} - Application detail with documents, history and decision
- PUT /admin/applications/{id}/status - Generic status change
- POST /admin/applications/{id}/move-to-under-review
- POST /admin/applications/{id}/move-to-document-review
- POST /admin/applications/{id}/move-to-payment-review
- POST /admin/applications/{id}/approve-final - Approve and create the registry record
- POST /admin/applications/{id}/reject - Reject with reasons
- POST /admin/applications/{id}/decide - Accept or reject
- PUT /admin/applications/{id}/documents/{document_id}/verify - Verify a document

Security:
- All endpoints require a staff token
- approve-final, reject and decide require an admin role
- Decisions are rate limited per staff user
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core.auth import (
    ADMIN_ROLES,
    STAFF_ROLES,
    StaffUser,
    require_roles,
)
from eacz_registry.core.database import get_db
from eacz_registry.core.email import EmailDispatcher, get_email_dispatcher
from eacz_registry.core.problems import ProblemDetailException, problem_from_service_error
from eacz_registry.core.rate_limit import ADMIN_DECISION_LIMIT, enforce_rate_limit
from eacz_registry.modules.applications import workflow
from eacz_registry.modules.applications.models import ApplicationStatus
from eacz_registry.modules.applications.schemas import (
    AdminApplicationResponse,
    ApplicationListResponse,
    ApproveResponse,
    DecideRequest,
    DocumentResponse,
    RejectRequest,
    StageTransitionRequest,
    StatusUpdateRequest,
    TransitionResponse,
    VerifyDocumentRequest,
)
from eacz_registry.modules.shared import ApplicationType
from eacz_registry.modules.shared.errors import ServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

require_staff = require_roles(STAFF_ROLES)
require_admin = require_roles(ADMIN_ROLES)


# ============================================
# Helper Functions
# ============================================


def _handle_service_error(e: ServiceError) -> None:
    """Convert service errors to problem responses."""
    raise problem_from_service_error(e) from e


def _internal_error(e: Exception, action: str) -> ProblemDetailException:
    logger.exception(f"Error {action}: {e}")
    return ProblemDetailException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred.",
        code="INTERNAL_ERROR",
    )


async def _check_decision_rate_limit(user: StaffUser) -> None:
    await enforce_rate_limit(ADMIN_DECISION_LIMIT, str(user.id))


# ============================================
# List & detail
# ============================================


@router.get(
    "",
    response_model=ApplicationListResponse,
    summary="List Applications",
    description="""
Paginated list of applications across both types, newest first.

**Filters:**
- `status`: Application status
- `type`: `individual` or `organization`
- `search`: Application ID or applicant email

**Access:** Staff
""",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not council staff"},
    },
)
async def list_applications(
    status_filter: ApplicationStatus | None = Query(
        None, alias="status", description="Filter by application status"
    ),
    application_type: ApplicationType | None = Query(
        None, alias="type", description="Filter by application type"
    ),
    search: str | None = Query(None, min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=100, description="Maximum records to return"),
    offset: int = Query(0, ge=0, description="Records to skip"),
    db: AsyncSession = Depends(get_db),
    user: StaffUser = Depends(require_staff),
) -> ApplicationListResponse:
    try:
        result = await workflow.list_applications(
            db,
            application_type=application_type,
            status=status_filter,
            search=search,
            limit=limit,
            offset=offset,
        )
        logger.info(f"Staff {user.id} listed applications: total={result.total}")
        return result
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, "listing applications") from e


@router.get(
    "/{application_id}",
    response_model=AdminApplicationResponse,
    summary="Get Application Detail",
)
async def get_application(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    user: StaffUser = Depends(require_staff),
) -> AdminApplicationResponse:
    try:
        return await workflow.get_application_detail(db, application_id)
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"loading application {application_id}") from e


# ============================================
# Status & stage transitions
# ============================================


@router.put(
    "/{application_id}/status",
    response_model=TransitionResponse,
    summary="Update Application Status",
    description="""
Change an application's status. The change is validated against the
workflow and recorded in the status history in the same transaction.

`approved` and `rejected` run the full approval and rejection flows.
""",
    responses={
        409: {"description": "Transition not allowed from the current status"},
    },
)
async def update_status(
    application_id: str,
    data: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    user: StaffUser = Depends(require_staff),
) -> TransitionResponse:
    if data.status in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED):
        if not user.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "INSUFFICIENT_ROLE",
                    "message": "Only administrators can approve or reject applications.",
                },
            )
        await _check_decision_rate_limit(user)

    try:
        return await workflow.update_status(
            db, dispatcher, application_id, data.status, user, data.comment
        )
    except ServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(e, f"updating status of {application_id}") from e


@router.post(
    "/{application_id}/move-to-under-review",
    response_model=TransitionResponse,
    summary="Move to Under Review",
)
async def move_to_under_review(
    application_id: str,
    data: StageTransitionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    user: StaffUser = Depends(require_staff),
) -> TransitionResponse:
    try:
        return await workflow.move_to_under_review(
            db, dispatcher, application_id, user, data.comment if data else None
        )
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"moving {application_id} to under review") from e


@router.post(
    "/{application_id}/move-to-document-review",
    response_model=TransitionResponse,
    summary="Move to Document Review",
)
async def move_to_document_review(
    application_id: str,
    data: StageTransitionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    user: StaffUser = Depends(require_staff),
) -> TransitionResponse:
    try:
        return await workflow.move_to_document_review(
            db, dispatcher, application_id, user, data.comment if data else None
        )
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"moving {application_id} to document review") from e


@router.post(
    "/{application_id}/move-to-payment-review",
    response_model=TransitionResponse,
    summary="Move to Payment Review",
    responses={
        409: {"description": "Fee neither paid nor backed by proof of payment"},
    },
)
async def move_to_payment_review(
    application_id: str,
    data: StageTransitionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    user: StaffUser = Depends(require_staff),
) -> TransitionResponse:
    try:
        return await workflow.move_to_payment_review(
            db, dispatcher, application_id, user, data.comment if data else None
        )
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"moving {application_id} to payment review") from e


# ============================================
# Final adjudication
# ============================================


@router.post(
    "/{application_id}/approve-final",
    response_model=ApproveResponse,
    summary="Approve Application",
    description="""
Approve an application in payment review.

**Atomic operation:**
1. Creates the Member or Organization record (EAC-MBR / EAC-ORG number)
2. Marks the application approved with a reference to the record
3. Writes the registry decision and status history

The certificate email is queued after the commit.

**Access:** Admin only. **Rate Limit:** 10 decisions per minute.
""",
    responses={
        409: {"description": "Application not in payment review"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def approve_final(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    user: StaffUser = Depends(require_admin),
) -> ApproveResponse:
    await _check_decision_rate_limit(user)
    try:
        return await workflow.approve_final(db, dispatcher, application_id, user)
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"approving application {application_id}") from e


@router.post(
    "/{application_id}/reject",
    response_model=TransitionResponse,
    summary="Reject Application",
    description="""
Reject an application from any open stage. No registry record is created.

**Access:** Admin only. **Rate Limit:** 10 decisions per minute.
""",
)
async def reject_application(
    application_id: str,
    data: RejectRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    user: StaffUser = Depends(require_admin),
) -> TransitionResponse:
    await _check_decision_rate_limit(user)
    try:
        return await workflow.reject(db, dispatcher, application_id, user, data.reasons)
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"rejecting application {application_id}") from e


@router.post(
    "/{application_id}/decide",
    response_model=ApproveResponse | TransitionResponse,
    summary="Decide Application",
)
async def decide(
    application_id: str,
    data: DecideRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    user: StaffUser = Depends(require_admin),
) -> ApproveResponse | TransitionResponse:
    """`accepted` runs the final approval, `rejected` runs the rejection."""
    await _check_decision_rate_limit(user)
    try:
        return await workflow.decide(
            db, dispatcher, application_id, user, data.decision, data.reasons, data.notes
        )
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"deciding application {application_id}") from e


# ============================================
# Documents
# ============================================


@router.put(
    "/{application_id}/documents/{document_id}/verify",
    response_model=DocumentResponse,
    summary="Verify Document",
)
async def verify_document(
    application_id: str,
    document_id: UUID,
    data: VerifyDocumentRequest,
    db: AsyncSession = Depends(get_db),
    user: StaffUser = Depends(require_staff),
) -> DocumentResponse:
    try:
        return await workflow.verify_document(
            db, application_id, document_id, data.status, user, data.notes
        )
    except ServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error(e, f"verifying document {document_id}") from e
