"""
Applications Repository

Database operations for individual and organization applications and their
registry decisions.

Writes flush but do not commit: every status change is committed by the
service together with its status history row, so a transition is never
persisted without its audit entry.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import String, func, literal, or_, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.modules.applications.models import (
    APPLICATION_MODELS,
    ApplicationModel,
    ApplicationStatus,
    Decision,
    FeeStatus,
    RegistryDecision,
)
from eacz_registry.modules.naming_series.service import SeriesKind
from eacz_registry.modules.shared import ApplicationType
from eacz_registry.modules.status_history import repository as history_repository

# Valid status transitions - applications follow the review workflow forwards,
# may be sent back to the applicant, and may be rejected from any open stage
VALID_STATUS_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.DRAFT: {
        ApplicationStatus.ELIGIBILITY_REVIEW,  # Applicant submitted
        ApplicationStatus.WITHDRAWN,
        ApplicationStatus.EXPIRED,  # Draft untouched too long
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.ELIGIBILITY_REVIEW: {
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.DOCUMENT_REVIEW,
        ApplicationStatus.NEEDS_APPLICANT_ACTION,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.UNDER_REVIEW: {
        ApplicationStatus.DOCUMENT_REVIEW,
        ApplicationStatus.NEEDS_APPLICANT_ACTION,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.DOCUMENT_REVIEW: {
        ApplicationStatus.PAYMENT_RECEIVED,
        ApplicationStatus.NEEDS_APPLICANT_ACTION,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.PAYMENT_RECEIVED: {
        ApplicationStatus.APPROVED,
        ApplicationStatus.NEEDS_APPLICANT_ACTION,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.NEEDS_APPLICANT_ACTION: {
        ApplicationStatus.ELIGIBILITY_REVIEW,  # Applicant resubmitted
        ApplicationStatus.REJECTED,
        ApplicationStatus.WITHDRAWN,
        ApplicationStatus.EXPIRED,
    },
    # Terminal states - no transitions allowed
    ApplicationStatus.APPROVED: set(),
    ApplicationStatus.REJECTED: set(),
    ApplicationStatus.WITHDRAWN: set(),
    ApplicationStatus.EXPIRED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: ApplicationStatus,
        new_status: ApplicationStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def can_transition(current: ApplicationStatus, new: ApplicationStatus) -> bool:
    return new in VALID_STATUS_TRANSITIONS.get(current, set())


def application_type_for_id(application_id: str) -> ApplicationType | None:
    """Infer the application type from the ID prefix."""
    if application_id.startswith(SeriesKind.APPLICATION_INDIVIDUAL.value.prefix):
        return ApplicationType.INDIVIDUAL
    if application_id.startswith(SeriesKind.APPLICATION_ORGANIZATION.value.prefix):
        return ApplicationType.ORGANIZATION
    return None


# ============================================
# Reads
# ============================================


async def get_by_application_id(
    db: AsyncSession,
    application_id: str,
    *,
    for_update: bool = False,
) -> ApplicationModel | None:
    """
    Get an application by its human-readable ID.

    With ``for_update`` the row is locked until the transaction ends, so
    concurrent transitions of the same application serialize.
    """
    application_type = application_type_for_id(application_id)
    if application_type is None:
        return None

    model = APPLICATION_MODELS[application_type]
    query = select(model).where(model.application_id == application_id)
    if for_update:
        query = query.with_for_update()

    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_for_admin(
    db: AsyncSession,
    *,
    application_type: ApplicationType | None = None,
    status: ApplicationStatus | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[ApplicationModel], int]:
    """
    Applications for the staff list, newest first.

    Both tables are queried when ``application_type`` is not given; the
    page is assembled from a union of (type, id, created_at) keys.
    """
    selects = []
    for app_type, model in APPLICATION_MODELS.items():
        if application_type is not None and app_type != application_type:
            continue

        query = select(
            literal(app_type.value, String(20)).label("kind"),
            model.application_id.label("application_id"),
            model.created_at.label("created_at"),
        )
        if status is not None:
            query = query.where(model.status == status)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    model.application_id.ilike(pattern),
                    model.applicant_email.ilike(pattern),
                )
            )
        selects.append(query)

    keys = union_all(*selects).subquery() if len(selects) > 1 else selects[0].subquery()

    total = (await db.execute(select(func.count()).select_from(keys))).scalar() or 0

    page = await db.execute(
        select(keys.c.kind, keys.c.application_id)
        .order_by(keys.c.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    rows = page.all()

    applications: list[ApplicationModel] = []
    for kind, app_id in rows:
        model = APPLICATION_MODELS[ApplicationType(kind)]
        result = await db.execute(select(model).where(model.application_id == app_id))
        application = result.scalar_one_or_none()
        if application is not None:
            applications.append(application)

    return applications, total


async def get_latest_for_applicant(db: AsyncSession, applicant_ref: str) -> ApplicationModel | None:
    """Most recently started application linked to an applicant record."""
    application_type = application_type_for_id(applicant_ref)
    if application_type is None:
        return None

    model = APPLICATION_MODELS[application_type]
    result = await db.execute(
        select(model)
        .where(model.applicant_ref == applicant_ref)
        .order_by(model.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_stale_drafts(db: AsyncSession, before: datetime) -> list[ApplicationModel]:
    """Draft applications not updated since ``before``."""
    stale: list[ApplicationModel] = []
    for model in APPLICATION_MODELS.values():
        result = await db.execute(
            select(model).where(
                model.status == ApplicationStatus.DRAFT,
                model.updated_at < before,
            )
        )
        stale.extend(result.scalars().all())
    return stale


async def get_pending_fee_payments(db: AsyncSession) -> list[ApplicationModel]:
    """Applications with an initiated but unsettled gateway payment."""
    pending: list[ApplicationModel] = []
    for model in APPLICATION_MODELS.values():
        result = await db.execute(
            select(model).where(
                model.fee_required.is_(True),
                model.fee_status == FeeStatus.PENDING,
                model.fee_payment_id.is_not(None),
                model.status.in_(
                    [ApplicationStatus.DRAFT, ApplicationStatus.NEEDS_APPLICANT_ACTION]
                ),
            )
        )
        pending.extend(result.scalars().all())
    return pending


async def get_decision(db: AsyncSession, application_id: str) -> RegistryDecision | None:
    result = await db.execute(
        select(RegistryDecision).where(RegistryDecision.application_id == application_id)
    )
    return result.scalar_one_or_none()


# ============================================
# Writes
# ============================================


async def create(db: AsyncSession, application: ApplicationModel) -> ApplicationModel:
    db.add(application)
    await db.flush()
    return application


async def transition(
    db: AsyncSession,
    application: ApplicationModel,
    status: ApplicationStatus,
    *,
    actor_id: str | None,
    comment: str | None = None,
    **kwargs,
) -> ApplicationModel:
    """
    Move an application to ``status`` and append the matching history row.

    Validates the transition against the state machine. Both writes are
    flushed in the current transaction; the caller commits.

    Args:
        db: Database session
        application: Application to update
        status: New status
        actor_id: Staff user id, applicant email or "system"
        comment: Optional history comment
        **kwargs: Additional fields to update (e.g. reviewed_at)

    Raises:
        InvalidStatusTransitionError: If status transition is not allowed
    """
    current_status = application.status
    if not can_transition(current_status, status):
        raise InvalidStatusTransitionError(current_status, status)

    application.status = status
    for key, value in kwargs.items():
        if hasattr(application, key):
            setattr(application, key, value)

    await db.flush()
    await history_repository.record(
        db,
        application_type=application.application_type,
        application_id=application.application_id,
        from_status=current_status,
        to_status=status,
        actor_id=actor_id,
        comment=comment,
    )
    return application


async def settle_fee(
    db: AsyncSession,
    application: ApplicationModel,
    *,
    actor_id: str | None,
    comment: str = "Application fee payment confirmed",
    reference: str | None = None,
) -> ApplicationModel:
    """Mark the fee settled and log it as a same-status history entry."""
    application.fee_status = FeeStatus.SETTLED
    application.fee_paid_at = datetime.now(UTC)
    if reference:
        application.fee_payment_reference = reference

    await db.flush()
    await history_repository.record(
        db,
        application_type=application.application_type,
        application_id=application.application_id,
        from_status=application.status,
        to_status=application.status,
        actor_id=actor_id,
        comment=comment,
    )
    return application


async def record_fee_proof(
    db: AsyncSession,
    application: ApplicationModel,
    document_id: UUID,
    *,
    actor_id: str | None,
) -> ApplicationModel:
    application.fee_proof_doc_id = document_id
    if application.fee_status != FeeStatus.SETTLED:
        application.fee_status = FeeStatus.PROOF_UPLOADED

    await db.flush()
    await history_repository.record(
        db,
        application_type=application.application_type,
        application_id=application.application_id,
        from_status=application.status,
        to_status=application.status,
        actor_id=actor_id,
        comment="Proof of payment uploaded",
    )
    return application


async def create_decision(
    db: AsyncSession,
    *,
    application_type: ApplicationType,
    application_id: str,
    decision: Decision,
    reasons: list[str],
    decided_by: UUID | None,
    notes: str | None = None,
) -> RegistryDecision:
    record = RegistryDecision(
        application_type=application_type,
        application_id=application_id,
        decision=decision,
        reasons=reasons,
        decided_by=decided_by,
        notes=notes,
    )
    db.add(record)
    await db.flush()
    return record
