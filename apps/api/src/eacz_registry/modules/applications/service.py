"""
Applications Service Layer

Business logic for the public side of membership applications.

This module implements:
1. Start Flow (individual and organization):
   - Run the eligibility rules (hard failures block creation)
   - Issue an application ID from the naming series
   - Create the draft row and its first history row in one transaction
   - Queue the confirmation email and issue an applicant token

2. Update & Submit:
   - Edits are only accepted in draft or needs_applicant_action
   - Submission runs the submission guards, then the document checklist,
     then moves the application to eligibility_review

3. Save & Resume:
   - 6-digit one-time codes stored hashed in Redis (30 minutes, 3 attempts)

4. Application Fee:
   - Paynow initiation, hash-verified result callbacks, proof-of-payment upload

5. Documents:
   - Validated upload with duplicate-content detection

Security considerations:
- OTP codes are SHA-256 hashed in Redis and compared in constant time
- OTP generation never reveals whether an email matches the application
- Payment callbacks are only trusted after hash verification
"""

import hashlib
import hmac
import logging
import secrets
from datetime import UTC, datetime
from decimal import Decimal

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core import email_templates
from eacz_registry.core.config import settings
from eacz_registry.core.email import EmailDispatcher, mask_email
from eacz_registry.core.security import create_applicant_token
from eacz_registry.core.storage import ObjectStorage
from eacz_registry.modules.applicants import repository as applicants_repository
from eacz_registry.modules.applicants.models import ApplicantStatus
from eacz_registry.modules.applicants.service import ApplicantNotFoundError
from eacz_registry.modules.applications import repository
from eacz_registry.modules.applications.errors import (
    ApplicationNotFoundError,
    EligibilityFailedError,
    FeeAlreadySettledError,
    InvalidApplicationStateError,
    InvalidOtpError,
    InvalidPaymentAmountError,
    InvalidPaymentCallbackError,
    MissingDocumentsError,
    PaymentUnavailableError,
)
from eacz_registry.modules.applications.guards import SUBMITTABLE_STATUSES, run_submission_guards
from eacz_registry.modules.applications.helpers import (
    build_application_response,
    check_document_requirements,
    compute_fee,
    notify_staff,
)
from eacz_registry.modules.applications.models import (
    EDITABLE_STATUSES,
    ApplicationModel,
    ApplicationStatus,
    FeeStatus,
    IndividualApplication,
    OrganizationApplication,
)
from eacz_registry.modules.applications.schemas import (
    ApplicationResponse,
    ApplicationUpdateRequest,
    DocumentResponse,
    DocumentUploadResponse,
    FeeInitiateResponse,
    FeeStatusResponse,
    GenerateOtpResponse,
    IndividualStartRequest,
    OrganizationStartRequest,
    StartApplicationResponse,
    SubmitResponse,
    VerifyOtpResponse,
)
from eacz_registry.modules.documents import repository as documents_repository
from eacz_registry.modules.documents import service as documents_service
from eacz_registry.modules.eligibility.rules import (
    check_individual_eligibility,
    check_organization_eligibility,
)
from eacz_registry.modules.eligibility.schemas import EligibilityResult
from eacz_registry.modules.members import repository as members_repository
from eacz_registry.modules.naming_series.service import application_series, next_identifier
from eacz_registry.modules.payments.paynow import (
    PaymentGatewayError,
    PaymentStatus,
    PaynowClient,
    is_payment_failed,
    is_payment_successful,
)
from eacz_registry.modules.shared import ApplicationType
from eacz_registry.modules.status_history import repository as history_repository

logger = logging.getLogger(__name__)

# Constants
OTP_LENGTH = 6
FEE_PROOF_DOC_TYPE = "application_fee_pop"
FEE_REFERENCE_PREFIX = "EACZ-FEE-"


def fee_reference(application_id: str) -> str:
    return f"{FEE_REFERENCE_PREFIX}{application_id}"


async def get_application_or_404(
    db: AsyncSession,
    application_id: str,
    *,
    for_update: bool = False,
) -> ApplicationModel:
    application = await repository.get_by_application_id(db, application_id, for_update=for_update)
    if application is None:
        raise ApplicationNotFoundError(application_id)
    return application


def _require_editable(application: ApplicationModel, action: str) -> None:
    if application.status not in EDITABLE_STATUSES:
        raise InvalidApplicationStateError(
            application.status.value, action, allowed=SUBMITTABLE_STATUSES
        )


async def _resolve_applicant_ref(
    db: AsyncSession,
    applicant_id: str | None,
    application_type: ApplicationType,
) -> str | None:
    """Validate the optional applicant link on a start request."""
    if not applicant_id:
        return None

    applicant_id = applicant_id.strip().upper()
    applicant = await applicants_repository.get_by_applicant_id(db, applicant_id)
    if applicant is None or applicant.applicant_type != application_type:
        raise ApplicantNotFoundError(applicant_id)
    return applicant_id


# ============================================
# Eligibility
# ============================================


def _evaluate_individual(payload: dict) -> EligibilityResult:
    result = check_individual_eligibility(payload, mature_age=settings.mature_entry_age)
    if not result.ok:
        logger.info(f"Individual eligibility failed: {result.reason}")
        raise EligibilityFailedError(result.reason or "Eligibility requirements not met")
    return result


async def _evaluate_organization(db: AsyncSession, payload: dict) -> EligibilityResult:
    """
    Evaluate an organization against an empty document map.

    Only hard failures raise; missing documents come back as requirements.
    """
    prea_member_id = (payload.get("prea_member_id") or "").strip().upper()
    prea_is_active = bool(prea_member_id) and await members_repository.is_active_member(
        db, prea_member_id
    )
    prea_is_director = any(
        (director.member_id or "").strip().upper() == prea_member_id
        for director in payload.get("directors") or []
    )

    result = check_organization_eligibility(
        payload,
        doc_map={},
        prea_is_active=prea_is_active,
        prea_is_director=prea_is_director,
    )
    if not result.ok and not result.requirements:
        logger.info(f"Organization eligibility failed: {result.reason}")
        raise EligibilityFailedError(result.reason or "Eligibility requirements not met")
    return result


# ============================================
# Start
# ============================================


async def _finish_start(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application: ApplicationModel,
    result: EligibilityResult,
) -> StartApplicationResponse:
    """Persist a new draft with its history row, then queue the confirmation."""
    await repository.create(db, application)
    await history_repository.record(
        db,
        application_type=application.application_type,
        application_id=application.application_id,
        from_status=None,
        to_status=ApplicationStatus.DRAFT,
        actor_id=application.applicant_email,
        comment="Application created",
    )
    await applicants_repository.advance_status(
        db, application.applicant_ref, ApplicantStatus.APPLICATION_STARTED
    )
    await db.commit()

    logger.info(
        f"Created {application.application_type.value} application {application.application_id} "
        f"for {mask_email(application.applicant_email)}"
    )

    dispatcher.enqueue(
        email_templates.application_confirmation(
            application.applicant_email,
            application.applicant_name,
            application.application_id,
            application.application_type.value,
            application.fee_amount,
            application.fee_currency,
        )
    )

    token = create_applicant_token(
        subject=application.application_id,
        email=application.applicant_email,
        application_id=application.application_id,
        applicant_id=application.applicant_ref,
    )

    return StartApplicationResponse(
        application_id=application.application_id,
        application_type=application.application_type,
        status=application.status,
        mature=result.mature,
        fee_amount=application.fee_amount,
        fee_currency=application.fee_currency,
        requirements=result.requirements or [],
        warnings=result.warnings or [],
        access_token=token,
    )


async def start_individual_application(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    data: IndividualStartRequest,
) -> StartApplicationResponse:
    """
    Start an individual membership application.

    Raises:
        EligibilityFailedError: Admission criteria not met (400)
        ApplicantNotFoundError: Linked applicant ID unknown (404)
    """
    result = _evaluate_individual(
        {
            "personal": data.personal,
            "o_level": data.o_level,
            "a_level": data.a_level,
            "equivalent_qualification": data.equivalent_qualification,
        }
    )
    applicant_ref = await _resolve_applicant_ref(db, data.applicant_id, ApplicationType.INDIVIDUAL)

    application_id = await next_identifier(
        db, application_series(ApplicationType.INDIVIDUAL.value)
    )
    mature = bool(result.mature)

    application = IndividualApplication(
        application_id=application_id,
        applicant_email=str(data.personal.email).lower(),
        applicant_ref=applicant_ref,
        status=ApplicationStatus.DRAFT,
        member_type=data.member_type,
        personal=data.personal,
        o_level=data.o_level,
        a_level=data.a_level,
        equivalent_qualification=data.equivalent_qualification,
        mature_entry=mature,
        fee_required=True,
        fee_amount=compute_fee(ApplicationType.INDIVIDUAL, mature),
        fee_currency=settings.fee_currency,
        fee_status=FeeStatus.PENDING,
    )
    return await _finish_start(db, dispatcher, application, result)


async def start_organization_application(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    data: OrganizationStartRequest,
) -> StartApplicationResponse:
    """
    Start an organization registration application.

    The declared PREA must be an active individual member.

    Raises:
        EligibilityFailedError: A hard eligibility failure (400)
        ApplicantNotFoundError: Linked applicant ID unknown (404)
    """
    prea_member_id = data.prea_member_id.strip().upper()
    result = await _evaluate_organization(
        db,
        {
            "org_profile": data.org_profile,
            "trust_account": data.trust_account,
            "prea_member_id": prea_member_id,
            "directors": data.directors,
        },
    )
    applicant_ref = await _resolve_applicant_ref(
        db, data.applicant_id, ApplicationType.ORGANIZATION
    )

    application_id = await next_identifier(
        db, application_series(ApplicationType.ORGANIZATION.value)
    )

    application = OrganizationApplication(
        application_id=application_id,
        applicant_email=str(data.org_profile.emails[0]).lower(),
        applicant_ref=applicant_ref,
        status=ApplicationStatus.DRAFT,
        business_type=data.business_type,
        org_profile=data.org_profile,
        trust_account=data.trust_account,
        prea_member_id=prea_member_id,
        directors=data.directors,
        fee_required=True,
        fee_amount=compute_fee(ApplicationType.ORGANIZATION),
        fee_currency=settings.fee_currency,
        fee_status=FeeStatus.PENDING,
    )
    return await _finish_start(db, dispatcher, application, result)


# ============================================
# Read / update / submit
# ============================================


async def get_application(db: AsyncSession, application_id: str) -> ApplicationResponse:
    application = await get_application_or_404(db, application_id)
    return await build_application_response(db, application)


def _apply_individual_update(
    application: IndividualApplication,
    data: ApplicationUpdateRequest,
) -> None:
    changes = data.individual.model_dump(exclude_unset=True) if data.individual else {}
    if not changes:
        return

    update = data.individual
    if "member_type" in changes and update.member_type is not None:
        application.member_type = update.member_type

    payload = {
        "personal": update.personal if "personal" in changes else application.personal,
        "o_level": update.o_level if "o_level" in changes else application.o_level,
        "a_level": update.a_level if "a_level" in changes else application.a_level,
        "equivalent_qualification": (
            update.equivalent_qualification
            if "equivalent_qualification" in changes
            else application.equivalent_qualification
        ),
    }
    if set(changes) - {"member_type"}:
        result = _evaluate_individual(payload)
        application.mature_entry = bool(result.mature)

    application.personal = payload["personal"]
    application.o_level = payload["o_level"]
    application.a_level = payload["a_level"]
    application.equivalent_qualification = payload["equivalent_qualification"]
    application.applicant_email = str(application.personal.email).lower()

    if not application.fee_settled:
        application.fee_amount = compute_fee(ApplicationType.INDIVIDUAL, application.mature_entry)


async def _apply_organization_update(
    db: AsyncSession,
    application: OrganizationApplication,
    data: ApplicationUpdateRequest,
) -> None:
    changes = data.organization.model_dump(exclude_unset=True) if data.organization else {}
    if not changes:
        return

    update = data.organization
    if "business_type" in changes and update.business_type is not None:
        application.business_type = update.business_type

    payload = {
        "org_profile": update.org_profile or application.org_profile,
        "trust_account": update.trust_account or application.trust_account,
        "prea_member_id": (update.prea_member_id or application.prea_member_id).strip().upper(),
        "directors": update.directors if update.directors is not None else application.directors,
    }
    if set(changes) - {"business_type"}:
        await _evaluate_organization(db, payload)

    application.org_profile = payload["org_profile"]
    application.trust_account = payload["trust_account"]
    application.prea_member_id = payload["prea_member_id"]
    application.directors = payload["directors"]
    if application.org_profile.emails:
        application.applicant_email = str(application.org_profile.emails[0]).lower()


async def update_application(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    data: ApplicationUpdateRequest,
    actor_id: str | None,
    *,
    submit: bool = False,
) -> ApplicationResponse:
    """
    Update an editable application, optionally submitting it afterwards.

    With ``submit`` the submission guards run before any change is applied.

    Raises:
        ApplicationNotFoundError: Unknown application (404)
        InvalidApplicationStateError: Not in an editable status (409)
        EligibilityFailedError: Updated data fails eligibility (400)
        FeeRequiredError: Submitting before the fee is settled (409)
        MissingDocumentsError: Submitting with required documents missing (400)
    """
    if submit:
        application = await run_submission_guards(db, application_id, for_update=True)
    else:
        application = await get_application_or_404(db, application_id, for_update=True)
        _require_editable(application, "update")

    if isinstance(application, IndividualApplication):
        _apply_individual_update(application, data)
    else:
        await _apply_organization_update(db, application, data)

    if submit:
        await _submit(db, dispatcher, application, actor_id)
    else:
        await db.commit()
        logger.info(f"Application {application_id} updated")

    await db.refresh(application)
    return await build_application_response(db, application)


async def _submit(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application: ApplicationModel,
    actor_id: str | None,
) -> None:
    """Checklist, transition and commit for an application that passed the guards."""
    result = await check_document_requirements(db, application)
    if not result.ok:
        logger.info(
            f"Submission of {application.application_id} blocked by missing documents: "
            f"{result.requirements}"
        )
        raise MissingDocumentsError(result.requirements or [])

    resubmission = application.status == ApplicationStatus.NEEDS_APPLICANT_ACTION
    await repository.transition(
        db,
        application,
        ApplicationStatus.ELIGIBILITY_REVIEW,
        actor_id=actor_id or application.applicant_email,
        comment="Application resubmitted" if resubmission else "Application submitted",
        submitted_at=datetime.now(UTC),
    )
    await applicants_repository.advance_status(
        db, application.applicant_ref, ApplicantStatus.APPLICATION_COMPLETED
    )
    await db.commit()

    logger.info(f"Application {application.application_id} submitted for eligibility review")
    await notify_staff(db, dispatcher, application, "Eligibility Review")


async def submit_application(
    db: AsyncSession,
    dispatcher: EmailDispatcher,
    application_id: str,
    actor_id: str | None,
) -> SubmitResponse:
    """
    Submit an application for review.

    Raises:
        ApplicationNotFoundError: Unknown application (404)
        InvalidApplicationStateError: Not in draft / needs_applicant_action (409)
        FeeRequiredError: Fee not settled and no proof attached (409)
        MissingDocumentsError: Required documents missing (400)
        SubmissionCheckError: Checks could not be evaluated (500)
    """
    application = await run_submission_guards(db, application_id, for_update=True)
    await _submit(db, dispatcher, application, actor_id)

    return SubmitResponse(
        application_id=application.application_id,
        status=application.status,
        submitted_at=application.submitted_at,
        message="Application submitted successfully. You will be notified as it is reviewed.",
    )


# ============================================
# Save & resume (OTP)
# ============================================


def _otp_key(application_id: str, email: str) -> str:
    return f"otp:{application_id}:{email.lower()}"


def _hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


async def generate_otp(
    db: AsyncSession,
    redis_client: Redis,
    dispatcher: EmailDispatcher,
    application_id: str,
    email: str,
) -> GenerateOtpResponse:
    """
    Send a one-time code to the application's email address.

    The response is the same whether or not ``email`` matches, so the
    endpoint cannot be used to probe applicant emails.
    """
    application = await get_application_or_404(db, application_id)
    email = email.strip().lower()

    response = GenerateOtpResponse(
        message="If the email matches this application, a verification code has been sent.",
        expires_in_minutes=settings.otp_expiry_minutes,
    )

    if application.applicant_email.lower() != email:
        logger.info(f"OTP requested for {application_id} with a non-matching email")
        return response

    code = f"{secrets.randbelow(10**OTP_LENGTH):0{OTP_LENGTH}d}"
    key = _otp_key(application_id, email)

    pipe = redis_client.pipeline()
    pipe.delete(key)
    pipe.hset(key, mapping={"code_hash": _hash_code(code), "attempts": 0})
    pipe.expire(key, settings.otp_expiry_minutes * 60)
    await pipe.execute()

    dispatcher.enqueue(
        email_templates.otp_code(email, application_id, code, settings.otp_expiry_minutes)
    )
    logger.info(f"OTP issued for {application_id} ({mask_email(email)})")
    return response


async def verify_otp(
    db: AsyncSession,
    redis_client: Redis,
    application_id: str,
    email: str,
    code: str,
) -> VerifyOtpResponse:
    """
    Exchange a valid one-time code for an applicant token.

    Raises:
        InvalidOtpError: Unknown, expired or wrong code; too many attempts (401)
    """
    application = await get_application_or_404(db, application_id)
    email = email.strip().lower()
    key = _otp_key(application_id, email)

    stored = await redis_client.hgetall(key)
    if not stored or application.applicant_email.lower() != email:
        raise InvalidOtpError()

    attempts = int(stored.get("attempts", 0))
    if attempts >= settings.otp_max_attempts:
        await redis_client.delete(key)
        raise InvalidOtpError("Too many attempts. Please request a new code.", attempts_remaining=0)

    if not hmac.compare_digest(stored.get("code_hash", ""), _hash_code(code)):
        attempts = await redis_client.hincrby(key, "attempts", 1)
        remaining = max(settings.otp_max_attempts - attempts, 0)
        if remaining == 0:
            await redis_client.delete(key)
        logger.warning(f"Invalid OTP for {application_id}, {remaining} attempts remaining")
        raise InvalidOtpError(attempts_remaining=remaining)

    await redis_client.delete(key)
    logger.info(f"OTP verified for {application_id}")

    token = create_applicant_token(
        subject=application.application_id,
        email=application.applicant_email,
        application_id=application.application_id,
        applicant_id=application.applicant_ref,
    )
    return VerifyOtpResponse(application_id=application.application_id, access_token=token)


# ============================================
# Application fee
# ============================================


async def initiate_fee(
    db: AsyncSession,
    paynow: PaynowClient,
    application_id: str,
    amount: Decimal,
    email: str | None = None,
) -> FeeInitiateResponse:
    """
    Start a Paynow transaction for the application fee.

    Raises:
        FeeAlreadySettledError: Fee already paid (409)
        InvalidApplicationStateError: Application already submitted (409)
        InvalidPaymentAmountError: ``amount`` differs from the fee (400)
        PaymentUnavailableError: Gateway not configured or failed (502)
    """
    application = await get_application_or_404(db, application_id, for_update=True)

    if application.fee_settled:
        raise FeeAlreadySettledError()
    _require_editable(application, "pay the fee for")

    if Decimal(amount) != Decimal(application.fee_amount):
        raise InvalidPaymentAmountError(str(application.fee_amount), application.fee_currency)

    reference = fee_reference(application_id)
    try:
        initiation = await paynow.initiate_payment(
            reference=reference,
            amount=application.fee_amount,
            email=email or application.applicant_email,
            result_url=f"{settings.backend_url}/api/v1/applications/{application_id}/fee/callback",
        )
    except PaymentGatewayError as e:
        raise PaymentUnavailableError(str(e)) from e

    application.fee_payment_id = initiation.poll_url
    application.fee_payment_reference = initiation.paynow_reference
    if application.fee_status == FeeStatus.FAILED:
        application.fee_status = FeeStatus.PENDING
    await db.commit()

    logger.info(f"Fee payment initiated for {application_id} ({reference})")
    return FeeInitiateResponse(
        reference=reference,
        redirect_url=initiation.redirect_url,
        poll_url=initiation.poll_url,
    )


async def apply_payment_status(
    db: AsyncSession,
    application: ApplicationModel,
    payment: PaymentStatus,
) -> bool:
    """
    Apply a gateway status to the application fee. Flushes only.

    Returns True when the fee became settled.
    """
    if application.fee_settled:
        return False

    if is_payment_successful(payment.status):
        await repository.settle_fee(
            db,
            application,
            actor_id=history_repository.SYSTEM_ACTOR,
            reference=payment.paynow_reference,
        )
        return True

    if is_payment_failed(payment.status):
        logger.info(f"Fee payment for {application.application_id} ended as {payment.status}")
        application.fee_status = FeeStatus.FAILED
        await db.flush()

    return False


async def handle_fee_callback(
    db: AsyncSession,
    paynow: PaynowClient,
    application_id: str,
    payload: dict[str, str],
) -> FeeStatusResponse:
    """
    Process a Paynow result notification.

    Raises:
        InvalidPaymentCallbackError: Hash mismatch or foreign reference (400)
    """
    payment = paynow.verify_callback(payload)
    if payment is None or payment.reference != fee_reference(application_id):
        raise InvalidPaymentCallbackError()

    application = await get_application_or_404(db, application_id, for_update=True)
    settled = await apply_payment_status(db, application, payment)
    await db.commit()

    if settled:
        logger.info(f"Fee settled for {application_id} via Paynow callback")

    return FeeStatusResponse(
        application_id=application_id,
        fee_status=application.fee_status,
        message=f"Payment status: {payment.status}",
    )


async def upload_document_for_application(
    db: AsyncSession,
    storage: ObjectStorage,
    application: ApplicationModel,
    *,
    doc_type: str,
    filename: str,
    content: bytes,
    content_type: str,
    actor_id: str | None,
) -> tuple[DocumentUploadResponse, bool]:
    outcome = await documents_service.upload_document(
        db,
        storage,
        application_type=application.application_type,
        application_id=application.application_id,
        doc_type=doc_type,
        filename=filename,
        content=content,
        content_type=content_type,
    )

    if doc_type == FEE_PROOF_DOC_TYPE:
        await repository.record_fee_proof(
            db,
            application,
            outcome.document.id,
            actor_id=actor_id or application.applicant_email,
        )

    await db.commit()
    await db.refresh(outcome.document)

    response = DocumentUploadResponse(
        document=DocumentResponse.model_validate(outcome.document),
        replaced=not outcome.created,
        warnings=outcome.validation.warnings,
    )
    return response, outcome.created


async def upload_application_document(
    db: AsyncSession,
    storage: ObjectStorage,
    application_id: str,
    *,
    doc_type: str,
    filename: str,
    content: bytes,
    content_type: str,
    actor_id: str | None,
) -> tuple[DocumentUploadResponse, bool]:
    """
    Upload a document to an editable application.

    Returns the response and whether a new document row was created.

    Raises:
        InvalidApplicationStateError: Not in draft / needs_applicant_action (409)
        DocumentServiceError: Type, validation, duplicate or storage failures
    """
    application = await get_application_or_404(db, application_id, for_update=True)
    _require_editable(application, "upload documents to")

    return await upload_document_for_application(
        db,
        storage,
        application,
        doc_type=doc_type,
        filename=filename,
        content=content,
        content_type=content_type,
        actor_id=actor_id,
    )


async def upload_fee_proof(
    db: AsyncSession,
    storage: ObjectStorage,
    application_id: str,
    *,
    filename: str,
    content: bytes,
    content_type: str,
    actor_id: str | None,
) -> tuple[DocumentUploadResponse, bool]:
    """Upload proof of payment; the fee gate accepts it in place of settlement."""
    application = await get_application_or_404(db, application_id, for_update=True)
    if application.fee_settled:
        raise FeeAlreadySettledError()
    _require_editable(application, "upload proof of payment for")

    return await upload_document_for_application(
        db,
        storage,
        application,
        doc_type=FEE_PROOF_DOC_TYPE,
        filename=filename,
        content=content,
        content_type=content_type,
        actor_id=actor_id,
    )


async def list_documents(db: AsyncSession, application_id: str) -> list[DocumentResponse]:
    application = await get_application_or_404(db, application_id)
    documents = await documents_repository.list_for_application(
        db, application.application_type, application.application_id
    )
    return [DocumentResponse.model_validate(doc) for doc in documents]
