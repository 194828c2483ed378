"""
Status History Model

Append-only ledger of application status changes. Rows are inserted in the
same transaction as the status change they record and are never updated or
deleted.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, event, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from eacz_registry.core.database import Base
from eacz_registry.modules.shared import ApplicationType, pg_enum


class AppendOnlyViolationError(RuntimeError):
    """Raised when code tries to change or remove a status history row."""


class StatusHistory(Base):
    """One status transition of one application."""

    __tablename__ = "status_history"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    application_type: Mapped[ApplicationType] = mapped_column(
        pg_enum(ApplicationType, "application_type"), nullable=False
    )
    application_id: Mapped[str] = mapped_column(String(30), nullable=False)

    # None for the creation row
    from_status: Mapped[str | None] = mapped_column(String(40), nullable=True)
    to_status: Mapped[str] = mapped_column(String(40), nullable=False)

    # Staff user id, applicant email or "system"
    actor_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index(
            "ix_status_history_application",
            "application_type",
            "application_id",
            "created_at",
        ),
    )

    def __repr__(self) -> str:
        return f"<StatusHistory({self.application_id}: {self.from_status} -> {self.to_status})>"


@event.listens_for(StatusHistory, "before_update")
def _refuse_update(_mapper, _connection, target: StatusHistory) -> None:
    raise AppendOnlyViolationError(f"Status history row {target.id} cannot be updated")


@event.listens_for(StatusHistory, "before_delete")
def _refuse_delete(_mapper, _connection, target: StatusHistory) -> None:
    raise AppendOnlyViolationError(f"Status history row {target.id} cannot be deleted")
