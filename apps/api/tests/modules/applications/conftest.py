"""
Fixtures for applications tests.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from eacz_registry.core.auth import StaffUser
from eacz_registry.modules.applications.models import (
    ApplicationStatus,
    FeeStatus,
    IndividualApplication,
    OrganizationApplication,
)
from eacz_registry.modules.eligibility.schemas import (
    Director,
    OLevelRecord,
    OrgProfile,
    PersonalInfo,
    TrustAccount,
)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.flush = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_dispatcher():
    """Email dispatcher that records queued messages."""
    dispatcher = MagicMock()
    dispatcher.enqueue = MagicMock()
    return dispatcher


@pytest.fixture
def mock_redis():
    """Create a mock Redis client with a pipeline."""
    redis = AsyncMock()
    redis.hgetall = AsyncMock(return_value={})
    redis.hincrby = AsyncMock(return_value=1)
    redis.delete = AsyncMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock()
    redis.pipeline = MagicMock(return_value=pipe)
    return redis


@pytest.fixture
def personal_info():
    return PersonalInfo(
        first_name="Tendai",
        last_name="Moyo",
        dob=date(1990, 3, 14),
        national_id="63-123456-A-42",
        email="tendai@example.com",
        country_of_residence="Zimbabwe",
    )


@pytest.fixture
def o_level():
    return OLevelRecord(
        subjects=["English", "Mathematics", "Geography", "History", "Biology"],
        has_english=True,
        has_math=True,
        passes_count=5,
    )


@pytest.fixture
def make_individual_application(personal_info, o_level):
    """Build an individual application in any status."""

    def _make(
        status: ApplicationStatus = ApplicationStatus.DRAFT,
        fee_status: FeeStatus = FeeStatus.PENDING,
        fee_proof_doc_id=None,
        fee_required: bool = True,
        application_id: str = "APP-MBR-2025-0001",
    ) -> IndividualApplication:
        return IndividualApplication(
            id=uuid4(),
            application_id=application_id,
            applicant_email="tendai@example.com",
            applicant_ref=None,
            status=status,
            personal=personal_info,
            o_level=o_level,
            a_level=None,
            equivalent_qualification=None,
            mature_entry=True,
            fee_required=fee_required,
            fee_amount=Decimal("75.00"),
            fee_currency="USD",
            fee_status=fee_status,
            fee_proof_doc_id=fee_proof_doc_id,
        )

    return _make


@pytest.fixture
def make_organization_application():
    def _make(
        status: ApplicationStatus = ApplicationStatus.DRAFT,
        fee_status: FeeStatus = FeeStatus.PENDING,
        directors: int = 2,
    ) -> OrganizationApplication:
        return OrganizationApplication(
            id=uuid4(),
            application_id="APP-ORG-2025-0001",
            applicant_email="info@kopjerealty.co.zw",
            status=status,
            org_profile=OrgProfile(
                legal_name="Kopje Realty (Pvt) Ltd",
                emails=["info@kopjerealty.co.zw"],
            ),
            trust_account=TrustAccount(bank_name="CBZ Bank"),
            prea_member_id="EAC-MBR-2024-0012",
            directors=[Director(name=f"Director {n}") for n in range(1, directors + 1)],
            fee_required=True,
            fee_amount=Decimal("200.00"),
            fee_currency="USD",
            fee_status=fee_status,
        )

    return _make


@pytest.fixture
def admin_user():
    return StaffUser(id=uuid4(), email="registrar@eacz.co.zw", role="admin")


@pytest.fixture
def reviewer_user():
    return StaffUser(id=uuid4(), email="reviewer@eacz.co.zw", role="reviewer")
