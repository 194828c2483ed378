"""
Identifier Series Generator

Sequential, year-scoped identifiers:

    APP-MBR-2025-0001   individual applicant / application
    APP-ORG-2025-0001   organization applicant / application
    EAC-MBR-2025-0001   individual membership number
    EAC-ORG-2025-0001   organization registration number

Each number comes from a single ``INSERT ... ON CONFLICT DO UPDATE ...
RETURNING`` statement on the (series_code, year) row, so concurrent callers
never receive the same value. The increment runs inside the caller's
transaction; it becomes durable when the caller commits.
"""

import enum
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.modules.naming_series.models import NamingSeriesCounter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Series:
    code: str
    prefix: str


class SeriesKind(enum.Enum):
    APPLICATION_INDIVIDUAL = Series(code="application_individual", prefix="APP-MBR-")
    APPLICATION_ORGANIZATION = Series(code="application_organization", prefix="APP-ORG-")
    MEMBER_INDIVIDUAL = Series(code="member_ind", prefix="EAC-MBR-")
    MEMBER_ORGANIZATION = Series(code="member_org", prefix="EAC-ORG-")


IDENTIFIER_PATTERN = re.compile(r"^(APP|EAC)-(MBR|ORG)-(\d{4})-(\d{4,})$")


def format_identifier(prefix: str, year: int, counter: int) -> str:
    """``format_identifier("EAC-MBR-", 2025, 7)`` -> ``"EAC-MBR-2025-0007"``."""
    return f"{prefix}{year}-{counter:04d}"


def is_valid_identifier(value: str, prefix: str | None = None) -> bool:
    """Check that ``value`` is a well-formed series identifier."""
    if not IDENTIFIER_PATTERN.match(value or ""):
        return False
    return prefix is None or value.startswith(prefix)


def application_series(application_type: str) -> SeriesKind:
    if application_type == "individual":
        return SeriesKind.APPLICATION_INDIVIDUAL
    return SeriesKind.APPLICATION_ORGANIZATION


def member_series(application_type: str) -> SeriesKind:
    if application_type == "individual":
        return SeriesKind.MEMBER_INDIVIDUAL
    return SeriesKind.MEMBER_ORGANIZATION


def _increment_statement(series_code: str, year: int):
    stmt = insert(NamingSeriesCounter).values(series_code=series_code, year=year, counter=1)
    return stmt.on_conflict_do_update(
        index_elements=[NamingSeriesCounter.series_code, NamingSeriesCounter.year],
        set_={"counter": NamingSeriesCounter.counter + 1},
    ).returning(NamingSeriesCounter.counter)


async def next_value(db: AsyncSession, series_code: str, year: int) -> int:
    """Atomically increment and return the counter for ``(series_code, year)``."""
    result = await db.execute(_increment_statement(series_code, year))
    return int(result.scalar_one())


async def next_identifier(
    db: AsyncSession,
    kind: SeriesKind,
    year: int | None = None,
) -> str:
    """Generate the next identifier in ``kind`` for ``year`` (default: current UTC year)."""
    year = year or datetime.now(UTC).year
    counter = await next_value(db, kind.value.code, year)
    identifier = format_identifier(kind.value.prefix, year, counter)
    logger.debug(f"Issued identifier {identifier}")
    return identifier


async def current_counters(db: AsyncSession) -> list[dict]:
    """Current counter values, for the admin overview."""
    result = await db.execute(
        select(NamingSeriesCounter).order_by(
            NamingSeriesCounter.series_code, NamingSeriesCounter.year
        )
    )
    return [
        {"series_code": row.series_code, "year": row.year, "counter": row.counter}
        for row in result.scalars().all()
    ]
