"""Individual and organization membership applications."""

from eacz_registry.modules.applications.models import (
    ApplicationStatus,
    FeeStatus,
    IndividualApplication,
    OrganizationApplication,
    RegistryDecision,
)

__all__ = [
    "ApplicationStatus",
    "FeeStatus",
    "IndividualApplication",
    "OrganizationApplication",
    "RegistryDecision",
]
