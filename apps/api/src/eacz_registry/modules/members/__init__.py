"""Registered members and organizations."""

from eacz_registry.modules.members.models import (
    BusinessType,
    Member,
    MemberType,
    Organization,
    RegistryStatus,
)

__all__ = ["BusinessType", "Member", "MemberType", "Organization", "RegistryStatus"]
