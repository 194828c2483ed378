"""
Unit tests for the staff workflow.

These tests cover:
- Stage moves and their emails
- Fee check on the move to payment review
- Final approval creating the registry record
- Rejection with reasons
- Membership expiry dates
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from eacz_registry.modules.applications.errors import (
    FeeRequiredError,
    InvalidTransitionError,
    RecordCreationError,
)
from eacz_registry.modules.applications.models import ApplicationStatus, Decision, FeeStatus
from eacz_registry.modules.applications.repository import InvalidStatusTransitionError
from eacz_registry.modules.applications.workflow import (
    ReasonsRequiredError,
    approve_final,
    membership_expiry,
    move_to_payment_review,
    move_to_under_review,
    reject,
    update_status,
)

WORKFLOW = "eacz_registry.modules.applications.workflow"


async def _apply_transition(db, application, status, **kwargs):
    application.status = status
    return application


class TestMembershipExpiry:
    """Tests for membership_expiry."""

    def test_one_year_later(self):
        assert membership_expiry(date(2025, 6, 15)) == date(2026, 6, 15)

    def test_leap_day_rolls_back(self):
        assert membership_expiry(date(2024, 2, 29)) == date(2025, 2, 28)

    def test_leap_day_to_leap_year(self):
        assert membership_expiry(date(2024, 2, 29), years=4) == date(2028, 2, 29)


class TestStageMoves:
    """Tests for the review stage transitions."""

    @pytest.mark.asyncio
    async def test_under_review_emails_applicant_and_staff(
        self, mock_db, mock_dispatcher, make_individual_application, reviewer_user
    ):
        application = make_individual_application(status=ApplicationStatus.ELIGIBILITY_REVIEW)

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.repository.transition", AsyncMock(side_effect=_apply_transition)),
            patch(f"{WORKFLOW}.applicants_repository") as mock_applicants,
            patch(f"{WORKFLOW}.notify_staff", AsyncMock()) as mock_notify,
        ):
            mock_applicants.advance_status = AsyncMock()

            result = await move_to_under_review(
                mock_db, mock_dispatcher, "APP-MBR-2025-0001", reviewer_user
            )

        assert result.from_status == ApplicationStatus.ELIGIBILITY_REVIEW
        assert result.status == ApplicationStatus.UNDER_REVIEW
        assert result.message == "Application moved to Under Review"
        mock_db.commit.assert_awaited_once()
        mock_dispatcher.enqueue.assert_called_once()
        assert mock_dispatcher.enqueue.call_args.args[0].to == ["tendai@example.com"]
        mock_notify.assert_awaited_once_with(
            mock_db, mock_dispatcher, application, "Under Review"
        )

    @pytest.mark.asyncio
    async def test_invalid_stage_move_is_409(
        self, mock_db, mock_dispatcher, make_individual_application, reviewer_user
    ):
        application = make_individual_application(status=ApplicationStatus.DRAFT)

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(
                f"{WORKFLOW}.repository.transition",
                AsyncMock(
                    side_effect=InvalidStatusTransitionError(
                        ApplicationStatus.DRAFT, ApplicationStatus.UNDER_REVIEW
                    )
                ),
            ),
        ):
            with pytest.raises(InvalidTransitionError) as exc_info:
                await move_to_under_review(
                    mock_db, mock_dispatcher, "APP-MBR-2025-0001", reviewer_user
                )

        assert exc_info.value.status_code == 409
        assert "eligibility_review" in exc_info.value.extra["allowedStatuses"]
        mock_db.commit.assert_not_called()
        mock_dispatcher.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_payment_review_requires_fee(
        self, mock_db, mock_dispatcher, make_individual_application, reviewer_user
    ):
        application = make_individual_application(status=ApplicationStatus.DOCUMENT_REVIEW)

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.repository.transition", AsyncMock()) as mock_transition,
        ):
            with pytest.raises(FeeRequiredError):
                await move_to_payment_review(
                    mock_db, mock_dispatcher, "APP-MBR-2025-0001", reviewer_user
                )

        mock_transition.assert_not_called()

    @pytest.mark.asyncio
    async def test_payment_review_with_proof_of_payment(
        self, mock_db, mock_dispatcher, make_individual_application, reviewer_user
    ):
        application = make_individual_application(
            status=ApplicationStatus.DOCUMENT_REVIEW, fee_proof_doc_id=uuid4()
        )

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.repository.transition", AsyncMock(side_effect=_apply_transition)),
            patch(f"{WORKFLOW}.notify_staff", AsyncMock()),
        ):
            result = await move_to_payment_review(
                mock_db, mock_dispatcher, "APP-MBR-2025-0001", reviewer_user
            )

        assert result.status == ApplicationStatus.PAYMENT_RECEIVED


class TestApproveFinal:
    """Tests for approve_final."""

    @pytest.mark.asyncio
    async def test_approval_creates_member_and_decision(
        self, mock_db, mock_dispatcher, make_individual_application, admin_user
    ):
        application = make_individual_application(
            status=ApplicationStatus.PAYMENT_RECEIVED, fee_status=FeeStatus.SETTLED
        )
        member = MagicMock(id=uuid4())

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.next_identifier", AsyncMock(return_value="EAC-MBR-2025-0042")),
            patch(f"{WORKFLOW}.members_repository") as mock_members,
            patch(f"{WORKFLOW}.repository") as mock_repo,
            patch(f"{WORKFLOW}.applicants_repository") as mock_applicants,
        ):
            mock_members.create_member = AsyncMock(return_value=member)
            mock_repo.transition = AsyncMock(side_effect=_apply_transition)
            mock_repo.create_decision = AsyncMock()
            mock_repo.settle_fee = AsyncMock()
            mock_applicants.advance_status = AsyncMock()

            result = await approve_final(
                mock_db, mock_dispatcher, "APP-MBR-2025-0001", admin_user, notes="Welcome"
            )

        assert result.status == ApplicationStatus.APPROVED
        assert result.registration_number == "EAC-MBR-2025-0042"
        assert result.expiry_date == membership_expiry(date.today())
        mock_repo.settle_fee.assert_not_called()

        member_kwargs = mock_members.create_member.call_args.kwargs
        assert member_kwargs["membership_number"] == "EAC-MBR-2025-0042"
        assert member_kwargs["first_name"] == "Tendai"
        assert member_kwargs["source_application_id"] == "APP-MBR-2025-0001"

        assert mock_repo.transition.call_args.kwargs["created_record_id"] == member.id
        decision_kwargs = mock_repo.create_decision.call_args.kwargs
        assert decision_kwargs["decision"] == Decision.ACCEPTED
        assert decision_kwargs["decided_by"] == admin_user.id

        mock_db.commit.assert_awaited_once()
        certificate = mock_dispatcher.enqueue.call_args.args[0]
        assert "EAC-MBR-2025-0042" in certificate.html

    @pytest.mark.asyncio
    async def test_approval_settles_fee_backed_by_proof(
        self, mock_db, mock_dispatcher, make_individual_application, admin_user
    ):
        application = make_individual_application(
            status=ApplicationStatus.PAYMENT_RECEIVED, fee_proof_doc_id=uuid4()
        )

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.next_identifier", AsyncMock(return_value="EAC-MBR-2025-0043")),
            patch(f"{WORKFLOW}.members_repository") as mock_members,
            patch(f"{WORKFLOW}.repository") as mock_repo,
            patch(f"{WORKFLOW}.applicants_repository") as mock_applicants,
        ):
            mock_members.create_member = AsyncMock(return_value=MagicMock(id=uuid4()))
            mock_repo.transition = AsyncMock(side_effect=_apply_transition)
            mock_repo.create_decision = AsyncMock()
            mock_repo.settle_fee = AsyncMock()
            mock_applicants.advance_status = AsyncMock()

            await approve_final(mock_db, mock_dispatcher, "APP-MBR-2025-0001", admin_user)

        mock_repo.settle_fee.assert_awaited_once()
        assert mock_repo.settle_fee.call_args.kwargs["comment"] == "Proof of payment accepted"

    @pytest.mark.asyncio
    async def test_approval_creates_organization(
        self, mock_db, mock_dispatcher, make_organization_application, admin_user
    ):
        application = make_organization_application(
            status=ApplicationStatus.PAYMENT_RECEIVED, fee_status=FeeStatus.SETTLED
        )

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.next_identifier", AsyncMock(return_value="EAC-ORG-2025-0007")),
            patch(f"{WORKFLOW}.members_repository") as mock_members,
            patch(f"{WORKFLOW}.repository") as mock_repo,
            patch(f"{WORKFLOW}.applicants_repository") as mock_applicants,
        ):
            mock_members.create_organization = AsyncMock(return_value=MagicMock(id=uuid4()))
            mock_repo.transition = AsyncMock(side_effect=_apply_transition)
            mock_repo.create_decision = AsyncMock()
            mock_applicants.advance_status = AsyncMock()

            result = await approve_final(
                mock_db, mock_dispatcher, "APP-ORG-2025-0001", admin_user
            )

        assert result.registration_number == "EAC-ORG-2025-0007"
        org_kwargs = mock_members.create_organization.call_args.kwargs
        assert org_kwargs["name"] == "Kopje Realty (Pvt) Ltd"
        assert org_kwargs["prea_member_number"] == "EAC-MBR-2024-0012"

    @pytest.mark.asyncio
    async def test_approval_outside_payment_review_is_409(
        self, mock_db, mock_dispatcher, make_individual_application, admin_user
    ):
        application = make_individual_application(
            status=ApplicationStatus.DOCUMENT_REVIEW, fee_status=FeeStatus.SETTLED
        )

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.members_repository") as mock_members,
        ):
            mock_members.create_member = AsyncMock()

            with pytest.raises(InvalidTransitionError):
                await approve_final(mock_db, mock_dispatcher, "APP-MBR-2025-0001", admin_user)

        mock_members.create_member.assert_not_called()
        mock_dispatcher.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_record_rolls_back(
        self, mock_db, mock_dispatcher, make_individual_application, admin_user
    ):
        application = make_individual_application(
            status=ApplicationStatus.PAYMENT_RECEIVED, fee_status=FeeStatus.SETTLED
        )

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.next_identifier", AsyncMock(return_value="EAC-MBR-2025-0044")),
            patch(f"{WORKFLOW}.members_repository") as mock_members,
        ):
            mock_members.create_member = AsyncMock(
                side_effect=IntegrityError("INSERT", {}, Exception("duplicate key"))
            )

            with pytest.raises(RecordCreationError):
                await approve_final(mock_db, mock_dispatcher, "APP-MBR-2025-0001", admin_user)

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()
        mock_dispatcher.enqueue.assert_not_called()


class TestReject:
    """Tests for reject and the generic status update."""

    @pytest.mark.asyncio
    async def test_reasons_are_required(self, mock_db, mock_dispatcher, admin_user):
        with patch(f"{WORKFLOW}.get_application_or_404", AsyncMock()) as mock_get:
            with pytest.raises(ReasonsRequiredError):
                await reject(mock_db, mock_dispatcher, "APP-MBR-2025-0001", admin_user, [" ", ""])

        mock_get.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejection_records_decision_and_emails(
        self, mock_db, mock_dispatcher, make_individual_application, admin_user
    ):
        application = make_individual_application(status=ApplicationStatus.UNDER_REVIEW)

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.repository") as mock_repo,
            patch(f"{WORKFLOW}.applicants_repository") as mock_applicants,
        ):
            mock_repo.transition = AsyncMock(side_effect=_apply_transition)
            mock_repo.create_decision = AsyncMock()
            mock_applicants.advance_status = AsyncMock()

            result = await reject(
                mock_db,
                mock_dispatcher,
                "APP-MBR-2025-0001",
                admin_user,
                ["Incomplete trust account details", "Expired ID"],
            )

        assert result.status == ApplicationStatus.REJECTED
        assert mock_repo.transition.call_args.kwargs["comment"] == (
            "Incomplete trust account details; Expired ID"
        )
        decision_kwargs = mock_repo.create_decision.call_args.kwargs
        assert decision_kwargs["decision"] == Decision.REJECTED
        assert decision_kwargs["reasons"] == ["Incomplete trust account details", "Expired ID"]
        assert "Expired ID" in mock_dispatcher.enqueue.call_args.args[0].html

    @pytest.mark.asyncio
    async def test_update_status_routes_approval(
        self, mock_db, mock_dispatcher, admin_user
    ):
        with patch(f"{WORKFLOW}.approve_final", AsyncMock()) as mock_approve:
            await update_status(
                mock_db,
                mock_dispatcher,
                "APP-MBR-2025-0001",
                ApplicationStatus.APPROVED,
                admin_user,
                "Looks good",
            )

        mock_approve.assert_awaited_once_with(
            mock_db, mock_dispatcher, "APP-MBR-2025-0001", admin_user, "Looks good"
        )

    @pytest.mark.asyncio
    async def test_update_status_withdraws_without_side_effects(
        self, mock_db, mock_dispatcher, make_individual_application, admin_user
    ):
        application = make_individual_application(status=ApplicationStatus.DRAFT)

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.repository.transition", AsyncMock(side_effect=_apply_transition)),
        ):
            result = await update_status(
                mock_db,
                mock_dispatcher,
                "APP-MBR-2025-0001",
                ApplicationStatus.WITHDRAWN,
                admin_user,
            )

        assert result.status == ApplicationStatus.WITHDRAWN
        mock_db.commit.assert_awaited_once()
        mock_dispatcher.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_status_cannot_submit_a_draft(
        self, mock_db, mock_dispatcher, make_individual_application, admin_user
    ):
        application = make_individual_application(status=ApplicationStatus.DRAFT)
        application.fee_status = FeeStatus.PENDING
        application.fee_proof_doc_id = None

        with (
            patch(f"{WORKFLOW}.get_application_or_404", AsyncMock(return_value=application)),
            patch(f"{WORKFLOW}.repository.transition", AsyncMock()) as mock_transition,
        ):
            with pytest.raises(InvalidTransitionError) as exc_info:
                await update_status(
                    mock_db,
                    mock_dispatcher,
                    "APP-MBR-2025-0001",
                    ApplicationStatus.ELIGIBILITY_REVIEW,
                    admin_user,
                )

        assert exc_info.value.status_code == 409
        assert "eligibility_review" not in exc_info.value.extra["allowedStatuses"]
        assert application.status == ApplicationStatus.DRAFT
        mock_transition.assert_not_called()
        mock_db.commit.assert_not_called()
