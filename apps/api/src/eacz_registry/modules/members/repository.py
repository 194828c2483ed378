"""
Members Repository

Lookups used by organization eligibility (PREA checks) and record creation
at final approval. Writes flush; the workflow commits.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.modules.members.models import Member, Organization, RegistryStatus


async def get_member_by_number(db: AsyncSession, membership_number: str) -> Member | None:
    result = await db.execute(
        select(Member).where(Member.membership_number == membership_number.strip().upper())
    )
    return result.scalar_one_or_none()


async def is_active_member(db: AsyncSession, membership_number: str) -> bool:
    """True when the membership number belongs to an active, unexpired member."""
    if not membership_number:
        return False
    member = await get_member_by_number(db, membership_number)
    return member is not None and member.is_active


async def get_member_by_application(db: AsyncSession, application_id: str) -> Member | None:
    result = await db.execute(select(Member).where(Member.source_application_id == application_id))
    return result.scalar_one_or_none()


async def get_organization_by_application(
    db: AsyncSession, application_id: str
) -> Organization | None:
    result = await db.execute(
        select(Organization).where(Organization.source_application_id == application_id)
    )
    return result.scalar_one_or_none()


async def create_member(db: AsyncSession, **fields) -> Member:
    fields.setdefault("status", RegistryStatus.ACTIVE)
    member = Member(**fields)
    db.add(member)
    await db.flush()
    return member


async def create_organization(db: AsyncSession, **fields) -> Organization:
    fields.setdefault("status", RegistryStatus.ACTIVE)
    organization = Organization(**fields)
    db.add(organization)
    await db.flush()
    return organization
