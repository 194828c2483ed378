"""initial registry schema

Revision ID: a1c3e5f7b9d1
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates:
1. Enum types for roles, statuses, fee settlement and registry records
2. Staff users and the identifier series counters
3. Applicants, individual and organization applications
4. Uploaded documents, status history and registry decisions
5. Members and organizations

The partial unique index on uploaded_documents keeps single-instance
document types (ID, birth certificate, certificate of incorporation) to one
row per application.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1c3e5f7b9d1"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


ENUMS: dict[str, tuple[str, ...]] = {
    "user_role": (
        "super_admin",
        "admin",
        "member_manager",
        "case_manager",
        "staff",
        "accountant",
        "reviewer",
    ),
    "application_type": ("individual", "organization"),
    "applicant_status": (
        "registered",
        "email_verified",
        "application_started",
        "application_completed",
        "under_review",
        "approved",
        "rejected",
    ),
    "application_status": (
        "draft",
        "eligibility_review",
        "under_review",
        "needs_applicant_action",
        "document_review",
        "payment_received",
        "approved",
        "rejected",
        "withdrawn",
        "expired",
    ),
    "fee_status": ("pending", "proof_uploaded", "settled", "failed"),
    "decision": ("accepted", "rejected"),
    "document_status": ("uploaded", "verified", "rejected"),
    "member_type": (
        "real_estate_agent",
        "property_manager",
        "principal_real_estate_agent",
        "real_estate_negotiator",
    ),
    "business_type": (
        "real_estate_firm",
        "property_management_firm",
        "brokerage_firm",
        "real_estate_development_firm",
    ),
    "registry_status": ("active", "suspended", "expired", "revoked"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns() -> list[sa.Column]:
    """Primary key and timestamps (from BaseModel)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _application_columns() -> list[sa.Column]:
    """Workflow, fee and review columns shared by both application tables."""
    return [
        sa.Column("application_id", sa.String(length=30), nullable=False),
        sa.Column("applicant_email", sa.String(length=255), nullable=False),
        sa.Column("applicant_ref", sa.String(length=30), nullable=True),
        sa.Column("status", _enum("application_status"), nullable=False),
        # Fee
        sa.Column("fee_required", sa.Boolean(), nullable=False),
        sa.Column("fee_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("fee_currency", sa.String(length=8), nullable=False),
        sa.Column("fee_status", _enum("fee_status"), nullable=False),
        sa.Column("fee_payment_id", sa.String(length=500), nullable=True),
        sa.Column("fee_payment_reference", sa.String(length=100), nullable=True),
        sa.Column("fee_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fee_proof_doc_id", postgresql.UUID(as_uuid=True), nullable=True),
        # Review
        sa.Column("reviewer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_record_id", postgresql.UUID(as_uuid=True), nullable=True),
    ]


def upgrade() -> None:
    """Create all registry tables and enum types."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name, create_type=False).create(bind, checkfirst=True)

    # Staff users
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Identifier series
    op.create_table(
        "naming_series_counters",
        sa.Column("series_code", sa.String(length=50), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("counter", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("series_code", "year"),
    )

    # Applicants
    op.create_table(
        "applicants",
        *_base_columns(),
        sa.Column("applicant_id", sa.String(length=30), nullable=False),
        sa.Column("applicant_type", _enum("application_type"), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("surname", sa.String(length=100), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("verification_token_hash", sa.String(length=64), nullable=True),
        sa.Column("verification_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", _enum("applicant_status"), nullable=False),
        sa.Column("draft_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("draft_saved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("applicant_id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(
        "ix_applicants_verification_token_hash", "applicants", ["verification_token_hash"]
    )

    # Individual applications
    op.create_table(
        "individual_applications",
        *_base_columns(),
        *_application_columns(),
        sa.Column("member_type", _enum("member_type"), nullable=False),
        sa.Column("personal", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("o_level", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("a_level", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "equivalent_qualification", postgresql.JSONB(astext_type=sa.Text()), nullable=True
        ),
        sa.Column("mature_entry", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )
    op.create_index(
        "ix_individual_applications_status", "individual_applications", ["status"]
    )
    op.create_index(
        "ix_individual_applications_applicant_email",
        "individual_applications",
        ["applicant_email"],
    )

    # Organization applications
    op.create_table(
        "organization_applications",
        *_base_columns(),
        *_application_columns(),
        sa.Column("business_type", _enum("business_type"), nullable=False),
        sa.Column("org_profile", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("trust_account", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("prea_member_id", sa.String(length=30), nullable=False),
        sa.Column("directors", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )
    op.create_index(
        "ix_organization_applications_status", "organization_applications", ["status"]
    )
    op.create_index(
        "ix_organization_applications_applicant_email",
        "organization_applications",
        ["applicant_email"],
    )

    # Uploaded documents
    op.create_table(
        "uploaded_documents",
        *_base_columns(),
        sa.Column("application_type", _enum("application_type"), nullable=False),
        sa.Column("application_id", sa.String(length=30), nullable=False),
        sa.Column("doc_type", sa.String(length=60), nullable=False),
        sa.Column("storage_key", sa.String(length=500), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("mime_type", sa.String(length=150), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("sha256", sa.String(length=64), nullable=False),
        sa.Column("status", _enum("document_status"), nullable=False),
        sa.Column("verified_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_uploaded_documents_application",
        "uploaded_documents",
        ["application_type", "application_id"],
    )
    op.create_index("ix_uploaded_documents_sha256", "uploaded_documents", ["sha256"])
    op.create_index(
        "uq_uploaded_documents_single_instance",
        "uploaded_documents",
        ["application_type", "application_id", "doc_type"],
        unique=True,
        postgresql_where=sa.text(
            "doc_type IN ('id_or_passport', 'birth_certificate', 'certificate_incorporation')"
        ),
    )

    # Status history (append-only)
    op.create_table(
        "status_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_type", _enum("application_type"), nullable=False),
        sa.Column("application_id", sa.String(length=30), nullable=False),
        sa.Column("from_status", sa.String(length=40), nullable=True),
        sa.Column("to_status", sa.String(length=40), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_status_history_application",
        "status_history",
        ["application_type", "application_id", "created_at"],
    )

    op.execute(
        """
        CREATE FUNCTION status_history_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'status_history is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER status_history_append_only
        BEFORE UPDATE OR DELETE ON status_history
        FOR EACH ROW EXECUTE FUNCTION status_history_append_only()
        """
    )

    # Registry decisions
    op.create_table(
        "registry_decisions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_type", _enum("application_type"), nullable=False),
        sa.Column("application_id", sa.String(length=30), nullable=False),
        sa.Column("decision", _enum("decision"), nullable=False),
        sa.Column("reasons", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("decided_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "decided_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )

    # Registry records
    op.create_table(
        "members",
        *_base_columns(),
        sa.Column("membership_number", sa.String(length=30), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("national_id", sa.String(length=50), nullable=True),
        sa.Column("member_type", _enum("member_type"), nullable=False),
        sa.Column("status", _enum("registry_status"), nullable=False),
        sa.Column("registered_on", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("source_application_id", sa.String(length=30), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("membership_number"),
        sa.UniqueConstraint("source_application_id"),
    )
    op.create_index("ix_members_email", "members", ["email"])

    op.create_table(
        "organizations",
        *_base_columns(),
        sa.Column("registration_number", sa.String(length=30), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("trading_name", sa.String(length=255), nullable=True),
        sa.Column("business_type", _enum("business_type"), nullable=False),
        sa.Column("company_reg_no", sa.String(length=100), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("status", _enum("registry_status"), nullable=False),
        sa.Column("registered_on", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("prea_member_number", sa.String(length=30), nullable=True),
        sa.Column("source_application_id", sa.String(length=30), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("registration_number"),
        sa.UniqueConstraint("source_application_id"),
    )


def downgrade() -> None:
    """Drop all registry tables and enum types."""
    op.drop_table("organizations")
    op.drop_index("ix_members_email", table_name="members")
    op.drop_table("members")
    op.drop_table("registry_decisions")
    op.execute("DROP TRIGGER IF EXISTS status_history_append_only ON status_history")
    op.execute("DROP FUNCTION IF EXISTS status_history_append_only()")
    op.drop_index("ix_status_history_application", table_name="status_history")
    op.drop_table("status_history")
    op.drop_index("uq_uploaded_documents_single_instance", table_name="uploaded_documents")
    op.drop_index("ix_uploaded_documents_sha256", table_name="uploaded_documents")
    op.drop_index("ix_uploaded_documents_application", table_name="uploaded_documents")
    op.drop_table("uploaded_documents")
    op.drop_table("organization_applications")
    op.drop_table("individual_applications")
    op.drop_index("ix_applicants_verification_token_hash", table_name="applicants")
    op.drop_table("applicants")
    op.drop_table("naming_series_counters")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for name in reversed(ENUMS):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
