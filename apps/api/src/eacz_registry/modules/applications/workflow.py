"""
Application Workflow (staff side)

Stage transitions driven by council staff:

    eligibility_review -> under_review -> document_review -> payment_received
        -> approved | rejected

Every transition updates the application and appends its status history
row in one transaction. Notification emails are queued only after the
commit, so a failed send never rolls back a transition.

Final approval additionally creates the permanent Member or Organization
record and the registry decision in that same transaction.
"""

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core import email_templates
from eacz_registry.core.auth import StaffUser
from eacz_registry.core.email import EmailDispatcher, EmailMessage
from eacz_registry.modules.applicants import repository as applicants_repository
from eacz_registry.modules.applicants.models import ApplicantStatus
from eacz_registry.modules.applications import repository
from eacz_registry.modules.applications.errors import (
    ApplicationServiceError,
    InvalidTransitionError,
    RecordCreationError,
)
from eacz_registry.modules.applications.guards import check_fee
from eacz_registry.modules.applications.helpers import build_application_response, notify_staff
from eacz_registry.modules.applications.models import (
    ApplicationModel,
    ApplicationStatus,
    Decision,
    IndividualApplication,
)
from eacz_registry.modules.applications.schemas import (
    AdminApplicationResponse,
    ApplicationListItem,
    ApplicationListResponse,
    ApproveResponse,
    DecisionResponse,
    DocumentResponse,
    TransitionResponse,
)
from eacz_registry.modules.applications.service import get_application_or_404
from eacz_registry.modules.documents import repository as documents_repository
from eacz_registry.modules.documents import service as documents_service
from eacz_registry.modules.documents.models import DocumentStatus
from eacz_registry.modules.documents.service import DocumentNotFoundError
from eacz_registry.modules.members import repository as members_repository
from eacz_registry.modules.members.models import Member, Organization
from eacz_registry.modules.naming_series.service import member_series, next_identifier
from eacz_registry.modules.shared import ApplicationType

logger = logging.getLogger(__name__)

MEMBERSHIP_TERM_YEARS = 1

# Applicant email sent when an application enters a review stage
StageEmail = Callable[[str, str, str, str], EmailMessage]

STAGE_EMAILS: dict[ApplicationStatus, tuple[StageEmail, str]] = {
    ApplicationStatus.UNDER_REVIEW: (email_templates.under_review, "Under Review"),
    ApplicationStatus.DOCUMENT_REVIEW: (email_templates.document_review, "Document Review"),
    ApplicationStatus.PAYMENT_RECEIVED: (email_templates.payment_review, "Payment Review"),
}


class ReasonsRequiredError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="At least one reason is required to reject an application",
            error_code="REASONS_REQUIRED",
            status_code=400,
        )


def membership_expiry(start: date, years: int = MEMBERSHIP_TERM_YEARS) -> date:
    """``start`` plus ``years``; 29 February rolls back to 28 February."""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


async def _transition(
    db: AsyncSession,
    application: ApplicationModel,
    status: ApplicationStatus,
    reviewer: StaffUser,
    comment: str | None,
    **kwargs,
) -> ApplicationStatus:
    """Validate and apply a staff transition (flush only); returns the previous status."""
    previous = application.status
    try:
        await repository.transition(
            db,
            application,
            status,
            actor_id=str(reviewer.id),
            comment=comment,
            reviewer_id=reviewer.id,
            reviewed_at=datetime.now(UTC),
            **kwargs,
        )
    except repository.InvalidStatusTransitionError as e:
        logger.warning(f"Rejected transition for {application.application_id}: {e}")
        valid = sorted(s.value for s in repository.VALID_STATUS_TRANSITIONS.get(previous, set()))
        raise InvalidTransitionError(previous.value, status.value, valid) from e
    return previous


# ============================================
# Listing & detail
# ============================================


async def list_applications(
    db: AsyncSession,
    *,
    application_type: ApplicationType | None = None,
    status: ApplicationStatus | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> ApplicationListResponse:
    applications, total = await repository.list_for_admin(
        db,
        application_type=application_type,
        status=status,
        search=search,
        skip=offset,
        limit=limit,
    )
    return ApplicationListResponse(
        items=[ApplicationListItem.model_validate(app) for app in applications],
        total=total,
        limit=limit,
        offset=offset,
    )


async def get_application_detail(db: AsyncSession, application_id: str) -> AdminApplicationResponse:
    application = await get_application_or_404(db, application_id)
    response = await build_application_response(db, application, AdminApplicationResponse)

    decision = await repository.get_decision(db, application_id)
    if decision is not None:
        response.decision = DecisionResponse.model_validate(decision)
    return response


# ============================================
# Stage transitions
# ============================================


async def _move_to_stage(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    status: ApplicationStatus,
    reviewer: StaffUser,
    comment: str | None,
    check: Callable[[ApplicationModel], None] | None = None,
) -> TransitionResponse:
    application = await get_application_or_404(db, application_id, for_update=True)
    if check is not None:
        check(application)

    send_applicant_email, stage = STAGE_EMAILS[status]
    previous = await _transition(
        db, application, status, reviewer, comment or f"Moved to {stage.lower()}"
    )
    if status == ApplicationStatus.UNDER_REVIEW:
        await applicants_repository.advance_status(
            db, application.applicant_ref, ApplicantStatus.UNDER_REVIEW
        )
    await db.commit()

    logger.info(f"Application {application_id} moved to {status.value} by {reviewer.id}")

    dispatcher.enqueue(
        send_applicant_email(
            application.applicant_email,
            application.applicant_name,
            application.application_id,
            application.application_type.value,
        )
    )
    await notify_staff(db, dispatcher, application, stage)

    return TransitionResponse(
        application_id=application_id,
        from_status=previous,
        status=application.status,
        message=f"Application moved to {stage}",
    )


async def move_to_under_review(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    reviewer: StaffUser,
    comment: str | None = None,
) -> TransitionResponse:
    return await _move_to_stage(
        db, dispatcher, application_id, ApplicationStatus.UNDER_REVIEW, reviewer, comment
    )


async def move_to_document_review(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    reviewer: StaffUser,
    comment: str | None = None,
) -> TransitionResponse:
    return await _move_to_stage(
        db, dispatcher, application_id, ApplicationStatus.DOCUMENT_REVIEW, reviewer, comment
    )


async def move_to_payment_review(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    reviewer: StaffUser,
    comment: str | None = None,
) -> TransitionResponse:
    """
    Move to payment review.

    Raises:
        FeeRequiredError: Fee neither settled nor backed by a proof document (409)
    """
    return await _move_to_stage(
        db,
        dispatcher,
        application_id,
        ApplicationStatus.PAYMENT_RECEIVED,
        reviewer,
        comment,
        check=check_fee,
    )


async def request_applicant_action(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    reviewer: StaffUser,
    comment: str | None = None,
) -> TransitionResponse:
    """Send an application back to the applicant for changes."""
    application = await get_application_or_404(db, application_id, for_update=True)
    previous = await _transition(
        db,
        application,
        ApplicationStatus.NEEDS_APPLICANT_ACTION,
        reviewer,
        comment or "Changes requested from applicant",
    )
    await db.commit()

    logger.info(f"Application {application_id} returned to applicant by {reviewer.id}")
    dispatcher.enqueue(
        email_templates.needs_applicant_action(
            application.applicant_email,
            application.applicant_name,
            application.application_id,
            comment,
        )
    )

    return TransitionResponse(
        application_id=application_id,
        from_status=previous,
        status=application.status,
        message="Application returned to the applicant",
    )


# ============================================
# Final adjudication
# ============================================


async def _create_registry_record(
    db: AsyncSession,
    application: ApplicationModel,
    registered_on: date,
    expiry_date: date,
) -> tuple[str, Member | Organization]:
    """Create the Member or Organization for an approved application (flush only)."""
    series = member_series(application.application_type.value)
    number = await next_identifier(db, series, registered_on.year)

    if isinstance(application, IndividualApplication):
        personal = application.personal
        phone = f"{personal.phone.country_code}{personal.phone.number}" if personal.phone else None
        record = await members_repository.create_member(
            db,
            membership_number=number,
            first_name=personal.first_name,
            last_name=personal.last_name,
            email=application.applicant_email,
            phone=phone,
            national_id=personal.national_id,
            member_type=application.member_type,
            registered_on=registered_on,
            expiry_date=expiry_date,
            source_application_id=application.application_id,
        )
    else:
        profile = application.org_profile
        record = await members_repository.create_organization(
            db,
            registration_number=number,
            name=profile.legal_name,
            trading_name=profile.trading_name,
            business_type=application.business_type,
            company_reg_no=profile.reg_no,
            email=application.applicant_email,
            phone=profile.phones[0] if profile.phones else None,
            address=profile.address,
            registered_on=registered_on,
            expiry_date=expiry_date,
            prea_member_number=application.prea_member_id,
            source_application_id=application.application_id,
        )
    return number, record


async def approve_final(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    reviewer: StaffUser,
    notes: str | None = None,
) -> ApproveResponse:
    """
    Approve an application and create its permanent registry record.

    This is the critical atomic operation:
    1. Settle the fee if only a proof of payment was on file
    2. Create the Member / Organization with a number from the EAC series
    3. Move the application to approved with a back-reference to the record
    4. Write the registry decision and the history row
    5. Commit, then queue the certificate email

    Raises:
        ApplicationNotFoundError: Unknown application (404)
        InvalidTransitionError: Not in payment_received (409)
        FeeRequiredError: No settled fee and no proof of payment (409)
        RecordCreationError: The registry record could not be created (500)
    """
    application = await get_application_or_404(db, application_id, for_update=True)

    if application.status != ApplicationStatus.PAYMENT_RECEIVED:
        valid = sorted(
            s.value for s in repository.VALID_STATUS_TRANSITIONS.get(application.status, set())
        )
        raise InvalidTransitionError(
            application.status.value, ApplicationStatus.APPROVED.value, valid
        )
    check_fee(application)

    registered_on = datetime.now(UTC).date()
    expiry_date = membership_expiry(registered_on)
    actor_id = str(reviewer.id)

    try:
        if application.fee_required and not application.fee_settled:
            await repository.settle_fee(
                db, application, actor_id=actor_id, comment="Proof of payment accepted"
            )

        number, record = await _create_registry_record(db, application, registered_on, expiry_date)

        previous = await _transition(
            db,
            application,
            ApplicationStatus.APPROVED,
            reviewer,
            notes or "Application approved",
            approved_at=datetime.now(UTC),
            created_record_id=record.id,
        )
        await repository.create_decision(
            db,
            application_type=application.application_type,
            application_id=application.application_id,
            decision=Decision.ACCEPTED,
            reasons=[],
            decided_by=reviewer.id,
            notes=notes,
        )
        await applicants_repository.advance_status(
            db, application.applicant_ref, ApplicantStatus.APPROVED
        )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.error(f"Registry record creation failed for {application_id}: {e}", exc_info=True)
        raise RecordCreationError(
            f"A registry record already exists for application {application_id}"
        ) from e

    logger.info(f"Application {application_id} approved by {reviewer.id}; registered {number}")

    dispatcher.enqueue(
        email_templates.approval_certificate(
            application.applicant_email,
            application.applicant_name,
            application.application_type.value,
            number,
            expiry_date,
        )
    )

    return ApproveResponse(
        application_id=application_id,
        from_status=previous,
        status=application.status,
        message="Application approved",
        registration_number=number,
        expiry_date=expiry_date,
    )


async def reject(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    reviewer: StaffUser,
    reasons: list[str],
    notes: str | None = None,
) -> TransitionResponse:
    """
    Reject an application from any open stage. No registry record is created.

    Raises:
        ReasonsRequiredError: ``reasons`` is empty (400)
        InvalidTransitionError: Application already closed (409)
    """
    reasons = [reason.strip() for reason in reasons if reason and reason.strip()]
    if not reasons:
        raise ReasonsRequiredError()

    application = await get_application_or_404(db, application_id, for_update=True)

    previous = await _transition(
        db,
        application,
        ApplicationStatus.REJECTED,
        reviewer,
        "; ".join(reasons),
        rejected_at=datetime.now(UTC),
    )
    await repository.create_decision(
        db,
        application_type=application.application_type,
        application_id=application.application_id,
        decision=Decision.REJECTED,
        reasons=reasons,
        decided_by=reviewer.id,
        notes=notes,
    )
    await applicants_repository.advance_status(
        db, application.applicant_ref, ApplicantStatus.REJECTED
    )
    await db.commit()

    logger.info(f"Application {application_id} rejected by {reviewer.id}")

    dispatcher.enqueue(
        email_templates.rejection(
            application.applicant_email,
            application.applicant_name,
            application.application_id,
            reasons,
        )
    )

    return TransitionResponse(
        application_id=application_id,
        from_status=previous,
        status=application.status,
        message="Application rejected",
    )


async def decide(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    reviewer: StaffUser,
    decision: Decision,
    reasons: list[str],
    notes: str | None = None,
) -> TransitionResponse:
    if decision == Decision.ACCEPTED:
        return await approve_final(db, dispatcher, application_id, reviewer, notes)
    return await reject(db, dispatcher, application_id, reviewer, reasons, notes)


async def update_status(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    status: ApplicationStatus,
    reviewer: StaffUser,
    comment: str | None = None,
) -> TransitionResponse:
    """
    Generic status change, routed through the stage operation for ``status``
    so that each target keeps its side effects.
    """
    if status == ApplicationStatus.ELIGIBILITY_REVIEW:
        # Only the applicant's own submission enters eligibility review
        application = await get_application_or_404(db, application_id)
        valid = sorted(
            s.value
            for s in repository.VALID_STATUS_TRANSITIONS.get(application.status, set())
            if s != ApplicationStatus.ELIGIBILITY_REVIEW
        )
        raise InvalidTransitionError(application.status.value, status.value, valid)
    if status == ApplicationStatus.APPROVED:
        return await approve_final(db, dispatcher, application_id, reviewer, comment)
    if status == ApplicationStatus.REJECTED:
        return await reject(
            db, dispatcher, application_id, reviewer, [comment or "Rejected by the council"]
        )
    if status == ApplicationStatus.NEEDS_APPLICANT_ACTION:
        return await request_applicant_action(db, dispatcher, application_id, reviewer, comment)
    if status == ApplicationStatus.PAYMENT_RECEIVED:
        return await move_to_payment_review(db, dispatcher, application_id, reviewer, comment)
    if status in STAGE_EMAILS:
        return await _move_to_stage(db, dispatcher, application_id, status, reviewer, comment)

    application = await get_application_or_404(db, application_id, for_update=True)
    previous = await _transition(db, application, status, reviewer, comment)
    await db.commit()

    logger.info(f"Application {application_id} status set to {status.value} by {reviewer.id}")
    return TransitionResponse(
        application_id=application_id,
        from_status=previous,
        status=application.status,
        message=f"Application status updated to {status.value}",
    )


# ============================================
# Documents
# ============================================


async def verify_document(
    db: AsyncSession,
    application_id: str,
    document_id: UUID,
    status: DocumentStatus,
    reviewer: StaffUser,
    notes: str | None = None,
) -> DocumentResponse:
    """
    Mark one of an application's documents verified or rejected.

    Raises:
        DocumentNotFoundError: Unknown document or one belonging to another application
    """
    application = await get_application_or_404(db, application_id)

    document = await documents_repository.get_by_id(db, document_id)
    if document is None or document.application_id != application.application_id:
        raise DocumentNotFoundError(document_id)

    document = await documents_service.verify_document(db, document.id, status, reviewer.id, notes)
    return DocumentResponse.model_validate(document)
