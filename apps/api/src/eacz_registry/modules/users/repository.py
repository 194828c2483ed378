"""
User Repository

Database operations for council staff accounts.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        is_active: bool = True,
    ) -> User:
        """
        Create a new staff user.

        Args:
            db: Database session
            email: User's email address (unique)
            password_hash: Hashed password
            first_name: User's first name
            last_name: User's last name
            role: Council role
            is_active: Whether user is active

        Returns:
            Created User instance
        """
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} ({user.role.value})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str | UUID) -> User | None:
        result = await db.execute(select(User).where(User.id == UUID(str(user_id))))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        return await UserRepository.get_by_email(db, email) is not None

    @staticmethod
    async def list_active_by_roles(db: AsyncSession, roles: Iterable[UserRole]) -> list[User]:
        """
        Active users holding any of ``roles``.

        Used to address staff notifications for workflow stages.
        """
        result = await db.execute(
            select(User)
            .where(User.role.in_(list(roles)), User.is_active.is_(True))
            .order_by(User.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def record_login(db: AsyncSession, user_id: UUID) -> None:
        await db.execute(
            update(User).where(User.id == user_id).values(last_login_at=datetime.now(UTC))
        )
        await db.commit()
