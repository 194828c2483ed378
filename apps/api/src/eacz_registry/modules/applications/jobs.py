"""
Applications Background Jobs

Scheduled tasks for the application lifecycle:
1. Expire drafts untouched for ``DRAFT_EXPIRY_DAYS`` (hourly)
2. Reconcile pending Paynow fee payments by polling the gateway (every 15 minutes)

Design Principles:
- Jobs are idempotent (safe to run multiple times)
- Each application is processed in its own database session
- Individual failures are logged and do not stop the job

Both jobs can also be triggered manually via the debug endpoints.
"""

import logging
from datetime import UTC, datetime, timedelta
from functools import partial
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from eacz_registry.core import email_templates
from eacz_registry.core.config import settings
from eacz_registry.core.database import async_session_maker
from eacz_registry.core.email import EmailDispatcher
from eacz_registry.core.scheduler import register_job
from eacz_registry.modules.applications import repository
from eacz_registry.modules.applications.models import ApplicationModel, ApplicationStatus
from eacz_registry.modules.applications.service import apply_payment_status
from eacz_registry.modules.payments.paynow import PaymentGatewayError, PaynowClient
from eacz_registry.modules.status_history.repository import SYSTEM_ACTOR

logger = logging.getLogger(__name__)

# Job IDs for registration and manual triggering
JOB_ID_EXPIRE_STALE_DRAFTS = "applications_expire_stale_drafts"
JOB_ID_RECONCILE_FEE_PAYMENTS = "applications_reconcile_fee_payments"


async def _expire_draft(
    dispatcher: EmailDispatcher, application_id: str, threshold: datetime
) -> dict[str, Any]:
    async with async_session_maker() as db:
        application = await repository.get_by_application_id(db, application_id, for_update=True)
        # Submitted or edited since the listing
        if (
            application is None
            or application.status != ApplicationStatus.DRAFT
            or application.updated_at >= threshold
        ):
            return {"application_id": application_id, "status": "skipped"}

        await repository.transition(
            db,
            application,
            ApplicationStatus.EXPIRED,
            actor_id=SYSTEM_ACTOR,
            comment=f"Draft expired after {settings.draft_expiry_days} days of inactivity",
        )
        await db.commit()

        dispatcher.enqueue(
            email_templates.draft_expired(
                application.applicant_email, application_id, settings.draft_expiry_days
            )
        )
        logger.info(f"Expired stale draft {application_id}")
        return {"application_id": application_id, "status": "expired"}


async def expire_stale_drafts(dispatcher: EmailDispatcher) -> dict[str, Any]:
    """
    Move drafts not updated for ``DRAFT_EXPIRY_DAYS`` to expired.

    Expired applications are not selected again because their status changes.
    """
    executed_at = datetime.now(UTC)
    threshold = executed_at - timedelta(days=settings.draft_expiry_days)

    logger.info(f"Starting stale draft job. Threshold: {threshold.isoformat()}")

    async with async_session_maker() as db:
        stale = await repository.get_stale_drafts(db, threshold)
        application_ids = [application.application_id for application in stale]

    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "expired": [],
        "total_expired": 0,
        "total_errors": 0,
    }

    for application_id in application_ids:
        try:
            result = await _expire_draft(dispatcher, application_id, threshold)
            results["expired"].append(result)
            if result["status"] == "expired":
                results["total_expired"] += 1
        except Exception as e:
            logger.error(f"Error expiring draft {application_id}: {e}", exc_info=True)
            results["expired"].append(
                {"application_id": application_id, "status": "error", "error": str(e)}
            )
            results["total_errors"] += 1

    logger.info(
        f"Stale draft job completed. Expired: {results['total_expired']}, "
        f"Errors: {results['total_errors']}"
    )
    return results


async def _reconcile_payment(paynow: PaynowClient, pending: ApplicationModel) -> dict[str, Any]:
    application_id = pending.application_id
    payment = await paynow.poll_status(pending.fee_payment_id)

    async with async_session_maker() as db:
        application = await repository.get_by_application_id(db, application_id, for_update=True)
        if application is None:
            return {"application_id": application_id, "status": "skipped"}

        settled = await apply_payment_status(db, application, payment)
        await db.commit()

    if settled:
        logger.info(f"Reconciled fee payment for {application_id}")
    return {
        "application_id": application_id,
        "status": "settled" if settled else "unchanged",
        "gateway_status": payment.status,
    }


async def reconcile_fee_payments(paynow: PaynowClient) -> dict[str, Any]:
    """Poll Paynow for every initiated but unsettled fee payment."""
    executed_at = datetime.now(UTC)
    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "payments": [],
        "total_settled": 0,
        "total_errors": 0,
    }

    if not paynow.configured:
        logger.debug("Paynow not configured, skipping fee reconciliation")
        return results

    async with async_session_maker() as db:
        pending = await repository.get_pending_fee_payments(db)

    logger.info(f"Reconciling {len(pending)} pending fee payments")

    for application in pending:
        try:
            result = await _reconcile_payment(paynow, application)
            results["payments"].append(result)
            if result["status"] == "settled":
                results["total_settled"] += 1
        except PaymentGatewayError as e:
            logger.warning(f"Could not poll payment for {application.application_id}: {e}")
            results["total_errors"] += 1
        except Exception as e:
            logger.error(
                f"Error reconciling payment for {application.application_id}: {e}", exc_info=True
            )
            results["total_errors"] += 1

    return results


def register_application_jobs(dispatcher: EmailDispatcher, paynow: PaynowClient) -> None:
    """Register the application jobs; call before ``start_scheduler``."""
    register_job(
        job_id=JOB_ID_EXPIRE_STALE_DRAFTS,
        func=partial(expire_stale_drafts, dispatcher),
        trigger=IntervalTrigger(hours=1),
    )
    register_job(
        job_id=JOB_ID_RECONCILE_FEE_PAYMENTS,
        func=partial(reconcile_fee_payments, paynow),
        trigger=IntervalTrigger(minutes=15),
    )
