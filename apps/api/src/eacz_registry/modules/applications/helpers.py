"""
Applications Shared Helpers

Common functions used across the applications service, workflow and jobs.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core import email_templates
from eacz_registry.core.config import settings
from eacz_registry.core.email import EmailDispatcher
from eacz_registry.modules.applications.models import (
    ApplicationModel,
    OrganizationApplication,
)
from eacz_registry.modules.applications.schemas import (
    ApplicationResponse,
    DocumentResponse,
    StatusHistoryEntry,
)
from eacz_registry.modules.documents import repository as documents_repository
from eacz_registry.modules.documents.requirements import validate_document_requirements
from eacz_registry.modules.eligibility.schemas import EligibilityResult
from eacz_registry.modules.shared import ApplicationType
from eacz_registry.modules.status_history import repository as history_repository
from eacz_registry.modules.users.models import UserRole
from eacz_registry.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

# Staff roles notified when an application reaches a review stage
STAGE_STAFF_ROLES: dict[str, list[UserRole]] = {
    "Eligibility Review": [UserRole.MEMBER_MANAGER, UserRole.REVIEWER],
    "Under Review": [UserRole.ADMIN, UserRole.MEMBER_MANAGER],
    "Document Review": [UserRole.MEMBER_MANAGER, UserRole.REVIEWER],
    "Payment Review": [UserRole.ACCOUNTANT],
}


def compute_fee(application_type: ApplicationType, mature_entry: bool = False) -> Decimal:
    """Application fee: individual 50, mature individual 75, organization 200."""
    if application_type == ApplicationType.ORGANIZATION:
        return Decimal(settings.fee_organization)
    if mature_entry:
        return Decimal(settings.fee_individual_mature)
    return Decimal(settings.fee_individual)


async def build_application_response(
    db: AsyncSession,
    application: ApplicationModel,
    response_model: type[ApplicationResponse] = ApplicationResponse,
) -> ApplicationResponse:
    """Serialize an application with its documents and history (newest first)."""
    documents = await documents_repository.list_for_application(
        db, application.application_type, application.application_id
    )
    history = await history_repository.list_for_application(
        db, application.application_type, application.application_id
    )

    response = response_model.model_validate(application)
    response.documents = [DocumentResponse.model_validate(doc) for doc in documents]
    response.status_history = [StatusHistoryEntry.model_validate(entry) for entry in history]
    return response


async def check_document_requirements(
    db: AsyncSession,
    application: ApplicationModel,
) -> EligibilityResult:
    """Re-run the document requirement check against what is uploaded now."""
    uploaded = await documents_repository.uploaded_doc_types(
        db, application.application_type, application.application_id
    )

    if isinstance(application, OrganizationApplication):
        return validate_document_requirements(
            ApplicationType.ORGANIZATION.value,
            uploaded,
            director_count=len(application.directors or []),
        )
    return validate_document_requirements(
        ApplicationType.INDIVIDUAL.value,
        uploaded,
        mature_entry=application.mature_entry,
    )


async def notify_staff(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application: ApplicationModel,
    stage: str,
) -> None:
    """Queue an "Action Required" email to staff holding the stage's roles."""
    roles = STAGE_STAFF_ROLES.get(stage, [UserRole.ADMIN])
    staff = await UserRepository.list_active_by_roles(db, roles)
    recipients = sorted({user.email for user in staff})

    if not recipients:
        logger.info(f"No active staff to notify for {application.application_id} ({stage})")
        return

    dispatcher.enqueue(
        email_templates.staff_action_required(
            to_emails=recipients,
            application_id=application.application_id,
            applicant_name=application.applicant_name,
            stage=stage,
            application_type=application.application_type.value,
        )
    )
