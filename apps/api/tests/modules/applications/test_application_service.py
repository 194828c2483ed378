"""
Unit tests for the public applications service.

These tests cover:
- Starting individual and organization applications
- Submission (guards, document checklist, transition, staff notification)
- Save-and-resume one-time codes
- Fee initiation and Paynow callbacks
"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from eacz_registry.core.security import decode_token
from eacz_registry.modules.applications.errors import (
    EligibilityFailedError,
    FeeAlreadySettledError,
    InvalidApplicationStateError,
    InvalidOtpError,
    InvalidPaymentAmountError,
    InvalidPaymentCallbackError,
    MissingDocumentsError,
)
from eacz_registry.modules.applications.models import ApplicationStatus, FeeStatus
from eacz_registry.modules.applications.schemas import (
    IndividualStartRequest,
    OrganizationStartRequest,
)
from eacz_registry.modules.applications.service import (
    _hash_code,
    _otp_key,
    apply_payment_status,
    fee_reference,
    generate_otp,
    handle_fee_callback,
    initiate_fee,
    start_individual_application,
    start_organization_application,
    submit_application,
    verify_otp,
)
from eacz_registry.modules.eligibility.schemas import EligibilityResult
from eacz_registry.modules.payments.paynow import PaymentInitiation, PaymentStatus
from eacz_registry.modules.shared import ApplicationType

SERVICE = "eacz_registry.modules.applications.service"


def _dob(age: int) -> str:
    today = date.today()
    return date(today.year - age, 1, 1).isoformat()


def _individual_request(age: int = 30, a_level_passes: int | None = None) -> IndividualStartRequest:
    payload = {
        "personal": {
            "first_name": "Tendai",
            "last_name": "Moyo",
            "dob": _dob(age),
            "email": "Tendai@Example.com",
            "country_of_residence": "Zimbabwe",
        },
        "o_level": {"has_english": True, "has_math": True, "passes_count": 6},
    }
    if a_level_passes is not None:
        payload["a_level"] = {"passes_count": a_level_passes}
    return IndividualStartRequest.model_validate(payload)


async def _fake_transition(db, application, status, **kwargs):
    application.status = status
    if kwargs.get("submitted_at"):
        application.submitted_at = kwargs["submitted_at"]
    return application


def _organization_request() -> OrganizationStartRequest:
    return OrganizationStartRequest.model_validate(
        {
            "org_profile": {
                "legal_name": "Kopje Realty (Pvt) Ltd",
                "emails": ["info@kopjerealty.co.zw"],
            },
            "trust_account": {"bank_name": "CBZ Bank"},
            "prea_member_id": "eac-mbr-2024-0012",
            "directors": [{"name": "Rudo Chikwanha", "member_id": "EAC-MBR-2024-0012"}],
        }
    )


class TestStartIndividualApplication:
    """Tests for start_individual_application."""

    @pytest.mark.asyncio
    async def test_mature_applicant_gets_draft_and_token(self, mock_db, mock_dispatcher):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.history_repository") as mock_history,
            patch(f"{SERVICE}.applicants_repository") as mock_applicants,
            patch(f"{SERVICE}.next_identifier", AsyncMock(return_value="APP-MBR-2025-0007")),
        ):
            mock_repo.create = AsyncMock()
            mock_history.record = AsyncMock()
            mock_applicants.advance_status = AsyncMock()

            result = await start_individual_application(
                mock_db, mock_dispatcher, _individual_request(age=30)
            )

        assert result.application_id == "APP-MBR-2025-0007"
        assert result.status == ApplicationStatus.DRAFT
        assert result.mature is True
        assert result.fee_amount == Decimal("75")
        assert result.fee_currency == "USD"

        created = mock_repo.create.call_args.args[1]
        assert created.applicant_email == "tendai@example.com"
        assert created.fee_status == FeeStatus.PENDING

        history = mock_history.record.call_args.kwargs
        assert history["from_status"] is None
        assert history["to_status"] == ApplicationStatus.DRAFT
        assert history["comment"] == "Application created"

        mock_db.commit.assert_awaited_once()
        mock_dispatcher.enqueue.assert_called_once()

        claims = decode_token(result.access_token)
        assert claims["type"] == "applicant"
        assert claims["application_id"] == "APP-MBR-2025-0007"

    @pytest.mark.asyncio
    async def test_young_applicant_with_a_levels_pays_standard_fee(
        self, mock_db, mock_dispatcher
    ):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.history_repository") as mock_history,
            patch(f"{SERVICE}.applicants_repository") as mock_applicants,
            patch(f"{SERVICE}.next_identifier", AsyncMock(return_value="APP-MBR-2025-0008")),
        ):
            mock_repo.create = AsyncMock()
            mock_history.record = AsyncMock()
            mock_applicants.advance_status = AsyncMock()

            result = await start_individual_application(
                mock_db, mock_dispatcher, _individual_request(age=21, a_level_passes=3)
            )

        assert result.mature is False
        assert result.fee_amount == Decimal("50")
        assert "Provide certified A-Level certificate" in result.requirements

    @pytest.mark.asyncio
    async def test_ineligible_applicant_creates_nothing(self, mock_db, mock_dispatcher):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.next_identifier", AsyncMock()) as mock_next,
        ):
            mock_repo.create = AsyncMock()

            with pytest.raises(EligibilityFailedError) as exc_info:
                await start_individual_application(
                    mock_db, mock_dispatcher, _individual_request(age=22, a_level_passes=1)
                )

        assert exc_info.value.error_code == "ELIGIBILITY_FAILED"
        assert exc_info.value.status_code == 400
        assert "Applicants under 27" in exc_info.value.extra["reason"]
        mock_next.assert_not_called()
        mock_repo.create.assert_not_called()
        mock_db.commit.assert_not_called()
        mock_dispatcher.enqueue.assert_not_called()


class TestStartOrganizationApplication:
    """Tests for start_organization_application."""

    @pytest.mark.asyncio
    async def test_inactive_prea_is_rejected(self, mock_db, mock_dispatcher):
        with patch(f"{SERVICE}.members_repository") as mock_members:
            mock_members.is_active_member = AsyncMock(return_value=False)

            with pytest.raises(EligibilityFailedError) as exc_info:
                await start_organization_application(
                    mock_db, mock_dispatcher, _organization_request()
                )

        assert exc_info.value.message == (
            "Principal Registered Estate Agent must be an active individual member"
        )
        mock_members.is_active_member.assert_awaited_once_with(mock_db, "EAC-MBR-2024-0012")

    @pytest.mark.asyncio
    async def test_missing_documents_do_not_block_start(self, mock_db, mock_dispatcher):
        with (
            patch(f"{SERVICE}.members_repository") as mock_members,
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.history_repository") as mock_history,
            patch(f"{SERVICE}.applicants_repository") as mock_applicants,
            patch(f"{SERVICE}.next_identifier", AsyncMock(return_value="APP-ORG-2025-0003")),
        ):
            mock_members.is_active_member = AsyncMock(return_value=True)
            mock_repo.create = AsyncMock()
            mock_history.record = AsyncMock()
            mock_applicants.advance_status = AsyncMock()

            result = await start_organization_application(
                mock_db, mock_dispatcher, _organization_request()
            )

        assert result.application_id == "APP-ORG-2025-0003"
        assert result.application_type == ApplicationType.ORGANIZATION
        assert result.fee_amount == Decimal("200")
        assert result.requirements[0] == "Upload all required documents:"
        created = mock_repo.create.call_args.args[1]
        assert created.prea_member_id == "EAC-MBR-2024-0012"


class TestSubmitApplication:
    """Tests for submit_application."""

    @pytest.mark.asyncio
    async def test_submits_to_eligibility_review(
        self, mock_db, mock_dispatcher, make_individual_application
    ):
        application = make_individual_application(fee_status=FeeStatus.SETTLED)

        with (
            patch(f"{SERVICE}.run_submission_guards", AsyncMock(return_value=application)),
            patch(
                f"{SERVICE}.check_document_requirements",
                AsyncMock(return_value=EligibilityResult(ok=True)),
            ),
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.applicants_repository") as mock_applicants,
            patch(f"{SERVICE}.notify_staff", AsyncMock()) as mock_notify,
        ):
            mock_repo.transition = AsyncMock(side_effect=_fake_transition)
            mock_applicants.advance_status = AsyncMock()

            result = await submit_application(
                mock_db, mock_dispatcher, "APP-MBR-2025-0001", "tendai@example.com"
            )

        assert result.status == ApplicationStatus.ELIGIBILITY_REVIEW
        assert result.submitted_at is not None
        assert mock_repo.transition.call_args.kwargs["comment"] == "Application submitted"
        mock_db.commit.assert_awaited_once()
        mock_notify.assert_awaited_once_with(
            mock_db, mock_dispatcher, application, "Eligibility Review"
        )

    @pytest.mark.asyncio
    async def test_resubmission_is_labelled(
        self, mock_db, mock_dispatcher, make_individual_application
    ):
        application = make_individual_application(
            status=ApplicationStatus.NEEDS_APPLICANT_ACTION, fee_status=FeeStatus.SETTLED
        )

        with (
            patch(f"{SERVICE}.run_submission_guards", AsyncMock(return_value=application)),
            patch(
                f"{SERVICE}.check_document_requirements",
                AsyncMock(return_value=EligibilityResult(ok=True)),
            ),
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.applicants_repository") as mock_applicants,
            patch(f"{SERVICE}.notify_staff", AsyncMock()),
        ):
            mock_repo.transition = AsyncMock(side_effect=_fake_transition)
            mock_applicants.advance_status = AsyncMock()

            result = await submit_application(
                mock_db, mock_dispatcher, "APP-MBR-2025-0001", None
            )

        assert result.status == ApplicationStatus.ELIGIBILITY_REVIEW
        assert mock_repo.transition.call_args.kwargs["comment"] == "Application resubmitted"
        assert mock_repo.transition.call_args.kwargs["actor_id"] == "tendai@example.com"

    @pytest.mark.asyncio
    async def test_missing_documents_block_submission(
        self, mock_db, mock_dispatcher, make_individual_application
    ):
        application = make_individual_application(fee_status=FeeStatus.SETTLED)
        missing = EligibilityResult(
            ok=False, reason="Missing required documents", requirements=["Birth Certificate"]
        )

        with (
            patch(f"{SERVICE}.run_submission_guards", AsyncMock(return_value=application)),
            patch(f"{SERVICE}.check_document_requirements", AsyncMock(return_value=missing)),
            patch(f"{SERVICE}.repository") as mock_repo,
        ):
            mock_repo.transition = AsyncMock()

            with pytest.raises(MissingDocumentsError) as exc_info:
                await submit_application(mock_db, mock_dispatcher, "APP-MBR-2025-0001", None)

        assert exc_info.value.extra["requirements"] == ["Birth Certificate"]
        mock_repo.transition.assert_not_called()
        mock_db.commit.assert_not_called()


class TestOtp:
    """Tests for generate_otp and verify_otp."""

    @pytest.mark.asyncio
    async def test_generate_stores_hashed_code_and_emails_it(
        self, mock_db, mock_redis, mock_dispatcher, make_individual_application
    ):
        application = make_individual_application()

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.secrets.randbelow", return_value=4321),
        ):
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            result = await generate_otp(
                mock_db, mock_redis, mock_dispatcher, "APP-MBR-2025-0001", " Tendai@Example.com "
            )

        assert result.expires_in_minutes == 30
        pipe = mock_redis.pipeline.return_value
        key = _otp_key("APP-MBR-2025-0001", "tendai@example.com")
        pipe.hset.assert_called_once_with(
            key, mapping={"code_hash": _hash_code("004321"), "attempts": 0}
        )
        pipe.expire.assert_called_once_with(key, 30 * 60)
        message = mock_dispatcher.enqueue.call_args.args[0]
        assert "004321" in message.html

    @pytest.mark.asyncio
    async def test_generate_with_other_email_reveals_nothing(
        self, mock_db, mock_redis, mock_dispatcher, make_individual_application
    ):
        application = make_individual_application()

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            result = await generate_otp(
                mock_db, mock_redis, mock_dispatcher, "APP-MBR-2025-0001", "someone@else.com"
            )

        assert "If the email matches" in result.message
        mock_redis.pipeline.assert_not_called()
        mock_dispatcher.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_verify_correct_code_issues_token(
        self, mock_db, mock_redis, make_individual_application
    ):
        application = make_individual_application()
        mock_redis.hgetall = AsyncMock(
            return_value={"code_hash": _hash_code("123456"), "attempts": "0"}
        )

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            result = await verify_otp(
                mock_db, mock_redis, "APP-MBR-2025-0001", "tendai@example.com", "123456"
            )

        assert result.application_id == "APP-MBR-2025-0001"
        assert decode_token(result.access_token)["email"] == "tendai@example.com"
        mock_redis.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_verify_wrong_code_counts_attempt(
        self, mock_db, mock_redis, make_individual_application
    ):
        application = make_individual_application()
        mock_redis.hgetall = AsyncMock(
            return_value={"code_hash": _hash_code("123456"), "attempts": "0"}
        )
        mock_redis.hincrby = AsyncMock(return_value=1)

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            with pytest.raises(InvalidOtpError) as exc_info:
                await verify_otp(
                    mock_db, mock_redis, "APP-MBR-2025-0001", "tendai@example.com", "000000"
                )

        assert exc_info.value.status_code == 401
        assert exc_info.value.extra["attemptsRemaining"] == 2
        mock_redis.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_third_wrong_code_burns_the_code(
        self, mock_db, mock_redis, make_individual_application
    ):
        application = make_individual_application()
        mock_redis.hgetall = AsyncMock(
            return_value={"code_hash": _hash_code("123456"), "attempts": "2"}
        )
        mock_redis.hincrby = AsyncMock(return_value=3)

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            with pytest.raises(InvalidOtpError) as exc_info:
                await verify_otp(
                    mock_db, mock_redis, "APP-MBR-2025-0001", "tendai@example.com", "000000"
                )

        assert exc_info.value.extra["attemptsRemaining"] == 0
        mock_redis.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_verify_after_max_attempts_is_refused(
        self, mock_db, mock_redis, make_individual_application
    ):
        application = make_individual_application()
        mock_redis.hgetall = AsyncMock(
            return_value={"code_hash": _hash_code("123456"), "attempts": "3"}
        )

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            with pytest.raises(InvalidOtpError):
                await verify_otp(
                    mock_db, mock_redis, "APP-MBR-2025-0001", "tendai@example.com", "123456"
                )

    @pytest.mark.asyncio
    async def test_verify_without_stored_code(
        self, mock_db, mock_redis, make_individual_application
    ):
        application = make_individual_application()

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            with pytest.raises(InvalidOtpError):
                await verify_otp(
                    mock_db, mock_redis, "APP-MBR-2025-0001", "tendai@example.com", "123456"
                )


class TestFee:
    """Tests for fee initiation, callbacks and status application."""

    @pytest.mark.asyncio
    async def test_initiate_rejects_wrong_amount(self, mock_db, make_individual_application):
        application = make_individual_application()
        paynow = MagicMock()

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            with pytest.raises(InvalidPaymentAmountError) as exc_info:
                await initiate_fee(mock_db, paynow, "APP-MBR-2025-0001", Decimal("50"))

        assert exc_info.value.extra["expectedAmount"] == "75.00"

    @pytest.mark.asyncio
    async def test_initiate_when_already_settled(self, mock_db, make_individual_application):
        application = make_individual_application(fee_status=FeeStatus.SETTLED)

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            with pytest.raises(FeeAlreadySettledError):
                await initiate_fee(mock_db, MagicMock(), "APP-MBR-2025-0001", Decimal("75"))

    @pytest.mark.asyncio
    async def test_initiate_after_submission_is_refused(
        self, mock_db, make_individual_application
    ):
        application = make_individual_application(status=ApplicationStatus.DOCUMENT_REVIEW)

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            with pytest.raises(InvalidApplicationStateError):
                await initiate_fee(mock_db, MagicMock(), "APP-MBR-2025-0001", Decimal("75"))

    @pytest.mark.asyncio
    async def test_initiate_stores_poll_url(self, mock_db, make_individual_application):
        application = make_individual_application(fee_status=FeeStatus.FAILED)
        paynow = MagicMock()
        paynow.initiate_payment = AsyncMock(
            return_value=PaymentInitiation(
                reference="EACZ-FEE-APP-MBR-2025-0001",
                redirect_url="https://www.paynow.co.zw/Payment/ConfirmPayment/1",
                poll_url="https://www.paynow.co.zw/Interface/CheckPayment/?guid=1",
                paynow_reference="9001",
            )
        )

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)

            result = await initiate_fee(
                mock_db, paynow, "APP-MBR-2025-0001", Decimal("75.00")
            )

        assert result.reference == "EACZ-FEE-APP-MBR-2025-0001"
        assert application.fee_payment_id.endswith("guid=1")
        assert application.fee_status == FeeStatus.PENDING
        kwargs = paynow.initiate_payment.call_args.kwargs
        assert kwargs["result_url"].endswith(
            "/api/v1/applications/APP-MBR-2025-0001/fee/callback"
        )
        assert kwargs["email"] == "tendai@example.com"
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("gateway_status", ["Paid", "Awaiting Delivery", "Delivered"])
    async def test_successful_status_settles_fee(
        self, mock_db, make_individual_application, gateway_status
    ):
        application = make_individual_application()

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.settle_fee = AsyncMock()

            settled = await apply_payment_status(
                mock_db,
                application,
                PaymentStatus(reference="x", status=gateway_status, paynow_reference="9001"),
            )

        assert settled is True
        mock_repo.settle_fee.assert_awaited_once_with(
            mock_db, application, actor_id="system", reference="9001"
        )

    @pytest.mark.asyncio
    async def test_cancelled_payment_marks_fee_failed(self, mock_db, make_individual_application):
        application = make_individual_application()

        settled = await apply_payment_status(
            mock_db, application, PaymentStatus(reference="x", status="Cancelled")
        )

        assert settled is False
        assert application.fee_status == FeeStatus.FAILED

    @pytest.mark.asyncio
    async def test_settled_fee_is_left_alone(self, mock_db, make_individual_application):
        application = make_individual_application(fee_status=FeeStatus.SETTLED)

        settled = await apply_payment_status(
            mock_db, application, PaymentStatus(reference="x", status="Cancelled")
        )

        assert settled is False
        assert application.fee_status == FeeStatus.SETTLED

    @pytest.mark.asyncio
    async def test_callback_with_bad_hash_is_rejected(self, mock_db):
        paynow = MagicMock()
        paynow.verify_callback = MagicMock(return_value=None)

        with pytest.raises(InvalidPaymentCallbackError):
            await handle_fee_callback(mock_db, paynow, "APP-MBR-2025-0001", {"status": "Paid"})

        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_callback_for_another_application_is_rejected(self, mock_db):
        paynow = MagicMock()
        paynow.verify_callback = MagicMock(
            return_value=PaymentStatus(reference=fee_reference("APP-MBR-2025-0002"), status="Paid")
        )

        with pytest.raises(InvalidPaymentCallbackError):
            await handle_fee_callback(mock_db, paynow, "APP-MBR-2025-0001", {})

    @pytest.mark.asyncio
    async def test_paid_callback_settles_fee(self, mock_db, make_individual_application):
        application = make_individual_application()
        paynow = MagicMock()
        paynow.verify_callback = MagicMock(
            return_value=PaymentStatus(
                reference=fee_reference("APP-MBR-2025-0001"),
                status="Paid",
                paynow_reference="9001",
            )
        )

        async def settle(db, app, **kwargs):
            app.fee_status = FeeStatus.SETTLED
            return app

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_application_id = AsyncMock(return_value=application)
            mock_repo.settle_fee = AsyncMock(side_effect=settle)

            result = await handle_fee_callback(mock_db, paynow, "APP-MBR-2025-0001", {})

        assert result.fee_status == FeeStatus.SETTLED
        assert result.message == "Payment status: Paid"
        mock_db.commit.assert_awaited_once()
