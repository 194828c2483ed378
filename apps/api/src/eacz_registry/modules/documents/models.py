"""
Uploaded Document Models

One row per uploaded file. Blobs live in object storage; the row keeps the
storage key, declared metadata and the SHA-256 content hash.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from eacz_registry.modules.shared import ApplicationType, BaseModel, pg_enum

# Re-uploading one of these replaces the existing row instead of adding another
SINGLE_INSTANCE_DOC_TYPES = ("id_or_passport", "birth_certificate", "certificate_incorporation")


class DocumentStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    VERIFIED = "verified"
    REJECTED = "rejected"


class UploadedDocument(BaseModel):
    """A document attached to an individual or organization application."""

    __tablename__ = "uploaded_documents"

    application_type: Mapped[ApplicationType] = mapped_column(
        pg_enum(ApplicationType, "application_type"), nullable=False
    )
    # Human-readable application ID (APP-MBR-... / APP-ORG-...)
    application_id: Mapped[str] = mapped_column(String(30), nullable=False)
    doc_type: Mapped[str] = mapped_column(String(60), nullable=False)

    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(150), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        pg_enum(DocumentStatus, "document_status"),
        nullable=False,
        default=DocumentStatus.UPLOADED,
    )
    verified_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_uploaded_documents_application", "application_type", "application_id"),
        Index("ix_uploaded_documents_sha256", "sha256"),
        Index(
            "uq_uploaded_documents_single_instance",
            "application_type",
            "application_id",
            "doc_type",
            unique=True,
            postgresql_where=text(
                "doc_type IN ('id_or_passport', 'birth_certificate', 'certificate_incorporation')"
            ),
        ),
    )

    def __repr__(self) -> str:
        return f"<UploadedDocument({self.application_id}, {self.doc_type}, {self.status.value})>"
