"""
Shared model base.

Every table except the naming-series counter carries a UUID primary key
and created/updated timestamps.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.dialects.postgresql import ENUM, UUID
from sqlalchemy.orm import Mapped, mapped_column

from eacz_registry.core.database import Base


class ApplicationType(str, enum.Enum):
    """Kind of application; also tags documents and history rows."""

    INDIVIDUAL = "individual"
    ORGANIZATION = "organization"


def pg_enum(enum_cls: type[enum.Enum], name: str) -> ENUM:
    """Postgres enum type storing member values (not names)."""
    return ENUM(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


class BaseModel(Base):
    """Abstract base with ``id``, ``created_at`` and ``updated_at``."""

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


__all__ = ["ApplicationType", "BaseModel", "pg_enum"]
