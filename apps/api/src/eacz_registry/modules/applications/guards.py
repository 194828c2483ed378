"""
Submission Guards

Gate checks run before an application leaves draft:

- State gate: the application must be in ``draft`` or
  ``needs_applicant_action``
- Fee gate: when a fee is required it must be settled, or a proof of
  payment document must be attached

Each gate is a pure pass/block decision over the loaded application.
``run_submission_guards`` loads the application and fails closed: any error
while loading or evaluating blocks the submission.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.modules.applications import repository
from eacz_registry.modules.applications.errors import (
    ApplicationNotFoundError,
    FeeRequiredError,
    InvalidApplicationStateError,
    SubmissionCheckError,
)
from eacz_registry.modules.applications.models import (
    EDITABLE_STATUSES,
    ApplicationModel,
    FeeStatus,
)

logger = logging.getLogger(__name__)

SUBMITTABLE_STATUSES = sorted(status.value for status in EDITABLE_STATUSES)


def check_application_state(application: ApplicationModel) -> None:
    """
    Raises:
        InvalidApplicationStateError: Status is not submittable (409)
    """
    if application.status not in EDITABLE_STATUSES:
        raise InvalidApplicationStateError(
            application.status.value,
            "submit",
            allowed=SUBMITTABLE_STATUSES,
        )


def payment_options(application_id: str) -> list[dict[str, str]]:
    """The two ways to satisfy the fee gate, as actionable links."""
    return [
        {
            "method": "paynow",
            "description": "Pay online using EcoCash, OneMoney, or bank transfer",
            "endpoint": f"/api/v1/applications/{application_id}/fee/initiate",
        },
        {
            "method": "proof_upload",
            "description": "Upload proof of payment if already paid",
            "endpoint": f"/api/v1/applications/{application_id}/fee/proof",
            "docType": "application_fee_pop",
        },
    ]


def check_fee(application: ApplicationModel) -> None:
    """
    Raises:
        FeeRequiredError: Fee required, not settled and no proof attached (409)
    """
    if not application.fee_required:
        return
    if application.fee_status == FeeStatus.SETTLED:
        return
    if application.fee_proof_doc_id is not None:
        return

    raise FeeRequiredError(
        instance=f"/applications/{application.application_id}",
        feeAmount=str(application.fee_amount),
        feeCurrency=application.fee_currency or "USD",
        feeStatus=application.fee_status.value,
        paymentOptions=payment_options(application.application_id),
    )


def evaluate_submission(application: ApplicationModel) -> None:
    """Run the state gate, then the fee gate."""
    check_application_state(application)
    check_fee(application)


async def run_submission_guards(
    db: AsyncSession,
    application_id: str,
    *,
    for_update: bool = False,
) -> ApplicationModel:
    """
    Load an application and apply both gates.

    Returns the application when submission may proceed.

    Raises:
        ApplicationNotFoundError: Unknown application
        InvalidApplicationStateError / FeeRequiredError: A gate blocked
        SubmissionCheckError: The checks could not be evaluated
    """
    try:
        application = await repository.get_by_application_id(
            db, application_id, for_update=for_update
        )
    except Exception as e:
        logger.error(f"Submission guard lookup failed for {application_id}: {e}", exc_info=True)
        raise SubmissionCheckError() from e

    if application is None:
        raise ApplicationNotFoundError(application_id)

    try:
        evaluate_submission(application)
    except (InvalidApplicationStateError, FeeRequiredError):
        logger.info(f"Submission of {application_id} blocked in status {application.status.value}")
        raise
    except Exception as e:
        logger.error(f"Submission guard evaluation failed for {application_id}: {e}", exc_info=True)
        raise SubmissionCheckError() from e

    return application
