"""
Fixtures for applicants tests.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from eacz_registry.modules.applicants.models import Applicant, ApplicantStatus
from eacz_registry.modules.shared import ApplicationType


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_dispatcher():
    dispatcher = MagicMock()
    dispatcher.enqueue = MagicMock()
    return dispatcher


@pytest.fixture
def make_applicant():
    """Build an individual applicant."""

    def _make(
        verified: bool = False,
        expires_in: timedelta = timedelta(hours=12),
        applicant_id: str = "APP-MBR-2025-0004",
    ) -> Applicant:
        now = datetime.now(UTC)
        return Applicant(
            id=uuid4(),
            applicant_id=applicant_id,
            applicant_type=ApplicationType.INDIVIDUAL,
            first_name="Chipo",
            surname="Dube",
            email="chipo.dube@example.com",
            verification_token_hash="0" * 64,
            verification_expires_at=now + expires_in,
            email_verified_at=now if verified else None,
            status=ApplicantStatus.EMAIL_VERIFIED if verified else ApplicantStatus.REGISTERED,
            created_at=now,
        )

    return _make
