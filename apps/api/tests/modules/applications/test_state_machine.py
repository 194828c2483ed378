"""
Unit tests for the application state machine and status transitions.

These tests cover:
- The transition table (forward path, send-back, rejection, terminals)
- repository.transition writing exactly one history row per change
- Fee settlement and proof recording as same-status history entries
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from eacz_registry.modules.applications import repository
from eacz_registry.modules.applications.models import (
    TERMINAL_STATUSES,
    ApplicationStatus,
    FeeStatus,
)
from eacz_registry.modules.applications.repository import (
    VALID_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    application_type_for_id,
    can_transition,
)
from eacz_registry.modules.shared import ApplicationType

HISTORY = "eacz_registry.modules.applications.repository.history_repository"

S = ApplicationStatus


class TestTransitionTable:
    """Tests for VALID_STATUS_TRANSITIONS."""

    def test_every_status_has_an_entry(self):
        assert set(VALID_STATUS_TRANSITIONS) == set(ApplicationStatus)

    @pytest.mark.parametrize(
        "current, new",
        [
            (S.DRAFT, S.ELIGIBILITY_REVIEW),
            (S.ELIGIBILITY_REVIEW, S.UNDER_REVIEW),
            (S.ELIGIBILITY_REVIEW, S.DOCUMENT_REVIEW),
            (S.UNDER_REVIEW, S.DOCUMENT_REVIEW),
            (S.DOCUMENT_REVIEW, S.PAYMENT_RECEIVED),
            (S.PAYMENT_RECEIVED, S.APPROVED),
        ],
    )
    def test_forward_path(self, current, new):
        assert can_transition(current, new)

    @pytest.mark.parametrize(
        "current",
        [S.ELIGIBILITY_REVIEW, S.UNDER_REVIEW, S.DOCUMENT_REVIEW, S.PAYMENT_RECEIVED],
    )
    def test_review_stages_can_send_back_to_applicant(self, current):
        assert can_transition(current, S.NEEDS_APPLICANT_ACTION)

    def test_resubmission_returns_to_eligibility_review(self):
        assert can_transition(S.NEEDS_APPLICANT_ACTION, S.ELIGIBILITY_REVIEW)

    @pytest.mark.parametrize(
        "current",
        [s for s in ApplicationStatus if s not in TERMINAL_STATUSES],
    )
    def test_rejection_from_any_open_stage(self, current):
        assert can_transition(current, S.REJECTED)

    @pytest.mark.parametrize("current", [S.DRAFT, S.NEEDS_APPLICANT_ACTION])
    def test_withdraw_and_expire_from_editable_statuses(self, current):
        assert can_transition(current, S.WITHDRAWN)
        assert can_transition(current, S.EXPIRED)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_exits(self, terminal):
        assert VALID_STATUS_TRANSITIONS[terminal] == set()

    @pytest.mark.parametrize(
        "current, new",
        [
            (S.DRAFT, S.APPROVED),
            (S.DRAFT, S.DOCUMENT_REVIEW),
            (S.ELIGIBILITY_REVIEW, S.PAYMENT_RECEIVED),
            (S.DOCUMENT_REVIEW, S.APPROVED),
            (S.UNDER_REVIEW, S.ELIGIBILITY_REVIEW),
        ],
    )
    def test_skipping_or_going_backwards_is_invalid(self, current, new):
        assert not can_transition(current, new)


class TestApplicationTypeForId:
    @pytest.mark.parametrize(
        "application_id, expected",
        [
            ("APP-MBR-2025-0001", ApplicationType.INDIVIDUAL),
            ("APP-ORG-2025-0042", ApplicationType.ORGANIZATION),
            ("EAC-MBR-2025-0001", None),
            ("nonsense", None),
        ],
    )
    def test_prefixes(self, application_id, expected):
        assert application_type_for_id(application_id) == expected


class TestTransition:
    """Tests for repository.transition."""

    @pytest.mark.asyncio
    async def test_updates_status_and_records_history(
        self, mock_db, make_individual_application
    ):
        application = make_individual_application(status=S.ELIGIBILITY_REVIEW)
        reviewer_id = uuid4()

        with patch(HISTORY) as mock_history:
            mock_history.record = AsyncMock()

            await repository.transition(
                mock_db,
                application,
                S.DOCUMENT_REVIEW,
                actor_id=str(reviewer_id),
                comment="Eligibility confirmed",
                reviewer_id=reviewer_id,
                not_a_column="ignored",
            )

        assert application.status == S.DOCUMENT_REVIEW
        assert application.reviewer_id == reviewer_id
        mock_history.record.assert_awaited_once_with(
            mock_db,
            application_type=ApplicationType.INDIVIDUAL,
            application_id="APP-MBR-2025-0001",
            from_status=S.ELIGIBILITY_REVIEW,
            to_status=S.DOCUMENT_REVIEW,
            actor_id=str(reviewer_id),
            comment="Eligibility confirmed",
        )
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_transition_writes_nothing(self, mock_db, make_individual_application):
        application = make_individual_application(status=S.DRAFT)

        with patch(HISTORY) as mock_history:
            mock_history.record = AsyncMock()

            with pytest.raises(InvalidStatusTransitionError) as exc_info:
                await repository.transition(mock_db, application, S.APPROVED, actor_id="system")

            mock_history.record.assert_not_called()

        assert application.status == S.DRAFT
        assert exc_info.value.current_status == S.DRAFT
        assert exc_info.value.new_status == S.APPROVED

    @pytest.mark.asyncio
    async def test_settle_fee_records_same_status_entry(
        self, mock_db, make_individual_application
    ):
        application = make_individual_application(status=S.DRAFT)

        with patch(HISTORY) as mock_history:
            mock_history.record = AsyncMock()

            await repository.settle_fee(
                mock_db, application, actor_id="system", reference="PN-123"
            )

        assert application.fee_status == FeeStatus.SETTLED
        assert application.fee_paid_at is not None
        assert application.fee_payment_reference == "PN-123"
        kwargs = mock_history.record.call_args.kwargs
        assert kwargs["from_status"] == kwargs["to_status"] == S.DRAFT
        assert kwargs["comment"] == "Application fee payment confirmed"

    @pytest.mark.asyncio
    async def test_fee_proof_does_not_downgrade_settled_fee(
        self, mock_db, make_individual_application
    ):
        application = make_individual_application(fee_status=FeeStatus.SETTLED)
        document_id = uuid4()

        with patch(HISTORY) as mock_history:
            mock_history.record = AsyncMock()

            await repository.record_fee_proof(
                mock_db, application, document_id, actor_id="tendai@example.com"
            )

        assert application.fee_proof_doc_id == document_id
        assert application.fee_status == FeeStatus.SETTLED
        assert mock_history.record.call_args.kwargs["comment"] == "Proof of payment uploaded"
