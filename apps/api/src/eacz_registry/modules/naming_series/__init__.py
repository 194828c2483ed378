"""Identifier series module."""

from eacz_registry.modules.naming_series.models import NamingSeriesCounter
from eacz_registry.modules.naming_series.service import (
    SeriesKind,
    application_series,
    format_identifier,
    is_valid_identifier,
    member_series,
    next_identifier,
)

__all__ = [
    "NamingSeriesCounter",
    "SeriesKind",
    "application_series",
    "member_series",
    "format_identifier",
    "is_valid_identifier",
    "next_identifier",
]
