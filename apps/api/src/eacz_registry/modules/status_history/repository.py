"""
Status History Repository

Insert and read only. ``record`` flushes without committing so the caller can
commit it together with the status change.
"""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.modules.shared import ApplicationType
from eacz_registry.modules.status_history.models import StatusHistory

SYSTEM_ACTOR = "system"


def _status_value(status) -> str | None:
    if status is None:
        return None
    return getattr(status, "value", status)


async def record(
    db: AsyncSession,
    *,
    application_type: ApplicationType,
    application_id: str,
    from_status,
    to_status,
    actor_id: str | None = None,
    comment: str | None = None,
) -> StatusHistory:
    """Append a history row. Status arguments accept enum members or strings."""
    entry = StatusHistory(
        application_type=application_type,
        application_id=application_id,
        from_status=_status_value(from_status),
        to_status=_status_value(to_status),
        actor_id=actor_id,
        comment=comment,
        created_at=datetime.now(UTC),
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_for_application(
    db: AsyncSession,
    application_type: ApplicationType,
    application_id: str,
) -> list[StatusHistory]:
    """History of an application, newest first."""
    result = await db.execute(
        select(StatusHistory)
        .where(
            StatusHistory.application_type == application_type,
            StatusHistory.application_id == application_id,
        )
        .order_by(StatusHistory.created_at.desc(), StatusHistory.id)
    )
    return list(result.scalars().all())
