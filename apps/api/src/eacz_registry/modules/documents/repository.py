"""
Uploaded Documents Repository

Database operations for uploaded documents. Writes flush but do not commit;
the calling service owns the transaction.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, literal_column, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.modules.documents.models import (
    SINGLE_INSTANCE_DOC_TYPES,
    DocumentStatus,
    UploadedDocument,
)
from eacz_registry.modules.shared import ApplicationType


async def get_by_id(db: AsyncSession, document_id: UUID) -> UploadedDocument | None:
    return await db.get(UploadedDocument, document_id)


async def list_for_application(
    db: AsyncSession,
    application_type: ApplicationType,
    application_id: str,
) -> list[UploadedDocument]:
    """All documents for an application, oldest first."""
    result = await db.execute(
        select(UploadedDocument)
        .where(
            UploadedDocument.application_type == application_type,
            UploadedDocument.application_id == application_id,
        )
        .order_by(UploadedDocument.created_at)
    )
    return list(result.scalars().all())


async def uploaded_doc_types(
    db: AsyncSession,
    application_type: ApplicationType,
    application_id: str,
) -> set[str]:
    """Distinct document types uploaded for an application (rejected ones excluded)."""
    result = await db.execute(
        select(UploadedDocument.doc_type)
        .where(
            UploadedDocument.application_type == application_type,
            UploadedDocument.application_id == application_id,
            UploadedDocument.status != DocumentStatus.REJECTED,
        )
        .distinct()
    )
    return set(result.scalars().all())


async def lock_content_hash(db: AsyncSession, sha256: str) -> None:
    """
    Take a transaction-scoped advisory lock on a content hash.

    Uploads of the same bytes queue behind each other until the holder
    commits or rolls back, so the duplicate lookup that follows sees any
    row the holder inserted.
    """
    await db.execute(select(func.pg_advisory_xact_lock(func.hashtext(sha256))))


async def find_by_hash(
    db: AsyncSession,
    sha256: str,
    *,
    application_type: ApplicationType | None = None,
    application_id: str | None = None,
    exclude_doc_type: str | None = None,
) -> UploadedDocument | None:
    """
    First document with the given content hash.

    Scoped to one application when ``application_type``/``application_id``
    are given, otherwise searched across every application.
    """
    query = select(UploadedDocument).where(UploadedDocument.sha256 == sha256)
    if application_type is not None and application_id is not None:
        query = query.where(
            UploadedDocument.application_type == application_type,
            UploadedDocument.application_id == application_id,
        )
    if exclude_doc_type is not None:
        query = query.where(UploadedDocument.doc_type != exclude_doc_type)

    result = await db.execute(query.order_by(UploadedDocument.created_at).limit(1))
    return result.scalar_one_or_none()


async def create(db: AsyncSession, **fields) -> UploadedDocument:
    document = UploadedDocument(**fields)
    db.add(document)
    await db.flush()
    await db.refresh(document)
    return document


async def upsert_single_instance(db: AsyncSession, **fields) -> tuple[UploadedDocument, bool]:
    """
    Insert or replace the single document of a single-instance type.

    Relies on the partial unique index over (application_type,
    application_id, doc_type), so concurrent uploads resolve to
    last-writer-wins instead of duplicate rows.

    Returns:
        (document, created) where ``created`` is False when an existing row
        was replaced
    """
    if fields["doc_type"] not in SINGLE_INSTANCE_DOC_TYPES:
        raise ValueError(f"{fields['doc_type']} is not a single-instance document type")

    replaced = {
        "storage_key": fields["storage_key"],
        "file_name": fields["file_name"],
        "mime_type": fields["mime_type"],
        "file_size": fields["file_size"],
        "sha256": fields["sha256"],
        "status": DocumentStatus.UPLOADED,
        "verified_by": None,
        "verified_at": None,
        "notes": None,
        "updated_at": datetime.now(UTC),
    }

    stmt = insert(UploadedDocument).values(**fields)
    stmt = stmt.on_conflict_do_update(
        index_elements=["application_type", "application_id", "doc_type"],
        index_where=UploadedDocument.doc_type.in_(SINGLE_INSTANCE_DOC_TYPES),
        set_=replaced,
    ).returning(UploadedDocument.id, literal_column("(xmax = 0)").label("inserted"))

    row = (await db.execute(stmt)).one()
    document = await db.get(UploadedDocument, row.id, populate_existing=True)
    return document, bool(row.inserted)


async def set_status(
    db: AsyncSession,
    document: UploadedDocument,
    status: DocumentStatus,
    verified_by: UUID | None,
    notes: str | None = None,
) -> UploadedDocument:
    document.status = status
    document.verified_by = verified_by
    document.verified_at = datetime.now(UTC)
    if notes is not None:
        document.notes = notes
    await db.flush()
    return document
