"""
Member and Organization Models

Durable registry records created once from an approved application.
"""

import enum
from datetime import date

from sqlalchemy import Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from eacz_registry.modules.shared import BaseModel, pg_enum


class MemberType(str, enum.Enum):
    REAL_ESTATE_AGENT = "real_estate_agent"
    PROPERTY_MANAGER = "property_manager"
    PRINCIPAL_REAL_ESTATE_AGENT = "principal_real_estate_agent"
    REAL_ESTATE_NEGOTIATOR = "real_estate_negotiator"


class BusinessType(str, enum.Enum):
    REAL_ESTATE_FIRM = "real_estate_firm"
    PROPERTY_MANAGEMENT_FIRM = "property_management_firm"
    BROKERAGE_FIRM = "brokerage_firm"
    REAL_ESTATE_DEVELOPMENT_FIRM = "real_estate_development_firm"


class RegistryStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    REVOKED = "revoked"


class Member(BaseModel):
    """An individual registered estate agent."""

    __tablename__ = "members"

    membership_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    national_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    member_type: Mapped[MemberType] = mapped_column(
        pg_enum(MemberType, "member_type"), nullable=False
    )

    status: Mapped[RegistryStatus] = mapped_column(
        pg_enum(RegistryStatus, "registry_status"),
        nullable=False,
        default=RegistryStatus.ACTIVE,
    )
    registered_on: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)

    source_application_id: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)

    __table_args__ = (Index("ix_members_email", "email"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.status == RegistryStatus.ACTIVE and self.expiry_date >= date.today()


class Organization(BaseModel):
    """A registered estate agency."""

    __tablename__ = "organizations"

    registration_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    trading_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    business_type: Mapped[BusinessType] = mapped_column(
        pg_enum(BusinessType, "business_type"), nullable=False
    )
    company_reg_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[RegistryStatus] = mapped_column(
        pg_enum(RegistryStatus, "registry_status"),
        nullable=False,
        default=RegistryStatus.ACTIVE,
    )
    registered_on: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Membership number of the Principal Registered Estate Agent
    prea_member_number: Mapped[str | None] = mapped_column(String(30), nullable=True)

    source_application_id: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
