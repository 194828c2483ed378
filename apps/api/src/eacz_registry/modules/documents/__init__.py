"""Uploaded application documents: validation, storage and requirement checks."""

from eacz_registry.modules.documents.models import DocumentStatus, UploadedDocument

__all__ = ["DocumentStatus", "UploadedDocument"]
