"""Append-only audit trail of application status changes."""

from eacz_registry.modules.status_history.models import StatusHistory

__all__ = ["StatusHistory"]
