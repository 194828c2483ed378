"""
User Models

Council staff accounts. Applicants and members are not users; they are
tracked in the applicants and members modules.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from eacz_registry.modules.shared import BaseModel, pg_enum


class UserRole(str, Enum):
    """Council staff roles."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MEMBER_MANAGER = "member_manager"
    CASE_MANAGER = "case_manager"
    STAFF = "staff"
    ACCOUNTANT = "accountant"
    REVIEWER = "reviewer"


class User(BaseModel):
    """Staff user for authentication and authorization."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    role: Mapped[UserRole] = mapped_column(
        pg_enum(UserRole, "user_role"),
        nullable=False,
        default=UserRole.STAFF,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
