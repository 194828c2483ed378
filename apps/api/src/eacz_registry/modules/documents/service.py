"""
Documents Service Layer

Upload flow for application documents:

1. Resolve the validation profile for ``doc_type``
2. Run the file validator (size, type, content, structure, hash)
3. Reject duplicate content according to ``DUPLICATE_FILE_POLICY``
   (``global``: any application; ``per_application``: same application only)
4. Store the blob, then insert the row (single-instance types are replaced
   in place, other types accumulate)

Staff verification of individual documents also lives here.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core.config import settings
from eacz_registry.core.storage import ObjectStorage, StorageError, build_storage_key
from eacz_registry.modules.documents import repository
from eacz_registry.modules.documents.file_validation import (
    FileValidationResult,
    FileValidator,
    resolve_document_type,
)
from eacz_registry.modules.documents.models import (
    SINGLE_INSTANCE_DOC_TYPES,
    DocumentStatus,
    UploadedDocument,
)
from eacz_registry.modules.shared import ApplicationType
from eacz_registry.modules.shared.errors import ServiceError

logger = logging.getLogger(__name__)


class DocumentServiceError(ServiceError):
    """Base exception for document service errors."""


class InvalidDocumentTypeError(DocumentServiceError):
    def __init__(self, doc_type: str):
        super().__init__(
            message=f"Unknown document type '{doc_type}'",
            error_code="INVALID_DOCUMENT_TYPE",
            status_code=400,
        )


class FileValidationFailedError(DocumentServiceError):
    title = "File Validation Failed"

    def __init__(self, validation: FileValidationResult):
        super().__init__(
            message="; ".join(validation.errors) or "File failed validation",
            error_code="FILE_SECURITY_VALIDATION_FAILED",
            status_code=400,
            errors=validation.errors,
            warnings=validation.warnings,
        )


class DuplicateFileContentError(DocumentServiceError):
    title = "Duplicate File"

    def __init__(self, existing: UploadedDocument):
        super().__init__(
            message="This file has already been uploaded",
            error_code="DUPLICATE_FILE_CONTENT",
            status_code=409,
            existingDocument={
                "id": str(existing.id),
                "applicationId": existing.application_id,
                "docType": existing.doc_type,
            },
        )


class DocumentNotFoundError(DocumentServiceError):
    def __init__(self, document_id: UUID | str):
        super().__init__(
            message=f"Document {document_id} not found",
            error_code="DOCUMENT_NOT_FOUND",
            status_code=404,
        )


class DocumentStorageError(DocumentServiceError):
    def __init__(self):
        super().__init__(
            message="The document could not be stored. Please try again.",
            error_code="STORAGE_ERROR",
            status_code=500,
        )


@dataclass
class UploadOutcome:
    document: UploadedDocument
    created: bool
    validation: FileValidationResult


async def check_duplicate(
    db: AsyncSession,
    sha256: str,
    application_type: ApplicationType,
    application_id: str,
    doc_type: str,
    policy: str | None = None,
) -> None:
    """
    Raise ``DuplicateFileContentError`` if the content hash is already on file.

    Re-uploading identical content for the same single-instance slot is a
    replacement, not a duplicate. The hash stays locked until the caller's
    transaction ends, so a concurrent upload of the same bytes sees this
    upload's row.
    """
    policy = policy or settings.duplicate_file_policy
    await repository.lock_content_hash(db, sha256)

    scoped = policy == "per_application"
    existing = await repository.find_by_hash(
        db,
        sha256,
        application_type=application_type if scoped else None,
        application_id=application_id if scoped else None,
    )
    if existing is None:
        return

    same_slot = (
        existing.application_type == application_type
        and existing.application_id == application_id
        and existing.doc_type == doc_type
        and doc_type in SINGLE_INSTANCE_DOC_TYPES
    )
    if same_slot:
        return

    logger.warning(
        f"Duplicate file content for {application_id}/{doc_type}; "
        f"matches document {existing.id} ({policy} policy)"
    )
    raise DuplicateFileContentError(existing)


async def upload_document(
    db: AsyncSession,
    storage: ObjectStorage,
    *,
    application_type: ApplicationType,
    application_id: str,
    doc_type: str,
    filename: str,
    content: bytes,
    content_type: str,
    duplicate_policy: str | None = None,
) -> UploadOutcome:
    """
    Validate, store and record an uploaded document.

    The row is flushed, not committed; the caller commits together with any
    related application update.

    Raises:
        InvalidDocumentTypeError: Unknown ``doc_type``
        FileValidationFailedError: The validator reported errors
        DuplicateFileContentError: Same content already uploaded
        DocumentStorageError: The blob could not be stored
    """
    if resolve_document_type(doc_type) is None:
        raise InvalidDocumentTypeError(doc_type)

    validation = FileValidator.validate_file(content, filename, content_type, doc_type)
    if not validation.is_valid:
        logger.info(f"Rejected {doc_type} upload for {application_id}: {validation.errors}")
        raise FileValidationFailedError(validation)

    sha256 = validation.file_info.hash
    await check_duplicate(db, sha256, application_type, application_id, doc_type, duplicate_policy)

    storage_key = build_storage_key(application_id, doc_type, filename)
    try:
        await storage.put(storage_key, content, content_type)
    except StorageError as e:
        logger.error(f"Failed to store {doc_type} for {application_id}: {e}")
        raise DocumentStorageError() from e

    fields = {
        "application_type": application_type,
        "application_id": application_id,
        "doc_type": doc_type,
        "storage_key": storage_key,
        "file_name": filename[:255],
        "mime_type": content_type,
        "file_size": len(content),
        "sha256": sha256,
    }

    if doc_type in SINGLE_INSTANCE_DOC_TYPES:
        document, created = await repository.upsert_single_instance(db, **fields)
    else:
        document, created = await repository.create(db, **fields), True

    logger.info(
        f"{'Stored' if created else 'Replaced'} {doc_type} for {application_id} "
        f"({len(content)} bytes)"
    )
    return UploadOutcome(document=document, created=created, validation=validation)


async def verify_document(
    db: AsyncSession,
    document_id: UUID,
    status: DocumentStatus,
    verified_by: UUID,
    notes: str | None = None,
) -> UploadedDocument:
    """Mark a document verified or rejected by staff and commit."""
    document = await repository.get_by_id(db, document_id)
    if not document:
        raise DocumentNotFoundError(document_id)

    await repository.set_status(db, document, status, verified_by, notes)
    await db.commit()
    await db.refresh(document)

    logger.info(f"Document {document_id} marked {status.value} by {verified_by}")
    return document
