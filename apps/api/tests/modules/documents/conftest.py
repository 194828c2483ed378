"""
Fixtures for documents tests.
"""

import io
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import fitz
import pytest
from PIL import Image

from eacz_registry.modules.documents.models import DocumentStatus, UploadedDocument
from eacz_registry.modules.shared import ApplicationType


def make_pdf(text: str = "Ordinary Level Certificate", **save_options) -> bytes:
    """A one-page PDF rendered by PyMuPDF."""
    with fitz.open() as document:
        page = document.new_page()
        page.insert_text((72, 72), text)
        return document.tobytes(**save_options)


def make_image(image_format: str = "PNG") -> bytes:
    """A noisy greyscale image, large enough to pass the minimum size."""
    buffer = io.BytesIO()
    Image.effect_noise((64, 64), 40).save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def png_bytes():
    return make_image("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image("JPEG")


@pytest.fixture
def encrypted_pdf_bytes():
    return make_pdf(encryption=fitz.PDF_ENCRYPT_AES_256, owner_pw="council", user_pw="applicant")


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_storage():
    storage = AsyncMock()
    storage.put = AsyncMock()
    return storage


@pytest.fixture
def make_document():
    """Build an UploadedDocument-like mock."""

    def _make(
        application_id: str = "APP-MBR-2025-0001",
        doc_type: str = "o_level_cert",
        application_type: ApplicationType = ApplicationType.INDIVIDUAL,
    ):
        document = MagicMock(spec=UploadedDocument)
        document.id = uuid4()
        document.application_type = application_type
        document.application_id = application_id
        document.doc_type = doc_type
        document.status = DocumentStatus.UPLOADED
        return document

    return _make
