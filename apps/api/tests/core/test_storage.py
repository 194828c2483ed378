"""
Tests for object storage backends.
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from eacz_registry.core.storage import (
    LocalObjectStorage,
    S3ObjectStorage,
    StorageError,
    build_storage_key,
)


class TestBuildStorageKey:
    def test_keeps_only_extension(self):
        key = build_storage_key("APP-MBR-2025-0001", "birth_certificate", "../../My Cert.PDF")

        assert key.startswith("applications/APP-MBR-2025-0001/birth_certificate/")
        assert key.endswith(".pdf")
        assert ".." not in key
        assert "My Cert" not in key

    def test_keys_are_unique(self):
        first = build_storage_key("APP-MBR-2025-0001", "id_document", "id.png")
        second = build_storage_key("APP-MBR-2025-0001", "id_document", "id.png")
        assert first != second


class TestLocalObjectStorage:
    @pytest.mark.asyncio
    async def test_put_writes_file(self, tmp_path):
        storage = LocalObjectStorage(tmp_path, "http://localhost:8000/")

        await storage.put("applications/APP-1/doc/abc.pdf", b"%PDF-1.4", "application/pdf")

        assert (tmp_path / "applications/APP-1/doc/abc.pdf").read_bytes() == b"%PDF-1.4"
        url = await storage.presigned_url("applications/APP-1/doc/abc.pdf")
        assert url == "http://localhost:8000/uploads/applications/APP-1/doc/abc.pdf"

    @pytest.mark.asyncio
    async def test_escaping_key_is_refused(self, tmp_path):
        storage = LocalObjectStorage(tmp_path / "uploads", "http://localhost:8000")

        with pytest.raises(StorageError):
            await storage.put("../outside.txt", b"x", "text/plain")


class TestS3ObjectStorage:
    @pytest.mark.asyncio
    async def test_put_uses_bucket(self):
        client = MagicMock()
        storage = S3ObjectStorage("eacz-docs", "af-south-1", 900, client=client)

        await storage.put("applications/APP-1/doc/abc.pdf", b"data", "application/pdf")

        client.put_object.assert_called_once_with(
            Bucket="eacz-docs",
            Key="applications/APP-1/doc/abc.pdf",
            Body=b"data",
            ContentType="application/pdf",
        )

    @pytest.mark.asyncio
    async def test_client_error_becomes_storage_error(self):
        client = MagicMock()
        client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        storage = S3ObjectStorage("eacz-docs", None, 900, client=client)

        with pytest.raises(StorageError):
            await storage.put("k", b"data", "application/pdf")
