"""Identifier series overview for administrators."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core.auth import ADMIN_ROLES, StaffUser, require_roles
from eacz_registry.core.database import get_db
from eacz_registry.modules.naming_series.service import current_counters

router = APIRouter()


@router.get(
    "/counters",
    summary="List Identifier Counters",
    description="Last issued counter value per series and year.",
)
async def list_counters(
    db: AsyncSession = Depends(get_db),
    _user: StaffUser = Depends(require_roles(ADMIN_ROLES)),
) -> dict[str, list[dict]]:
    return {"counters": await current_counters(db)}
