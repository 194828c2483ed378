"""Eligibility module - admission rules and application payload types."""

from eacz_registry.modules.eligibility.rules import (
    MATURE_ENTRY_AGE,
    calculate_age,
    check_individual_eligibility,
    check_organization_eligibility,
)
from eacz_registry.modules.eligibility.schemas import (
    EligibilityResult,
    IndividualApplicationData,
    OrganizationApplicationData,
)

__all__ = [
    "MATURE_ENTRY_AGE",
    "calculate_age",
    "check_individual_eligibility",
    "check_organization_eligibility",
    "EligibilityResult",
    "IndividualApplicationData",
    "OrganizationApplicationData",
]
