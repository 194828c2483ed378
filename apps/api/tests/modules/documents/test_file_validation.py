"""
Unit tests for the file validator.

These tests cover:
- Document type profile resolution
- Size limits, extension and MIME allow-lists
- Magic-number mismatch warnings
- PDF and image structure (PyMuPDF, Pillow)
- Malicious content and filename screening
- Content hashing
"""

import hashlib

import pytest

from eacz_registry.modules.documents.file_validation import (
    MB,
    FileValidator,
    calculate_hash,
    detect_file_type,
    get_file_extension,
    resolve_document_type,
    upload_size_limit,
)


class TestResolveDocumentType:
    def test_known_type(self):
        assert resolve_document_type("o_level_cert") == "o_level_cert"

    @pytest.mark.parametrize("doc_type", ["police_clearance_director_1", "police_clearance_director_12"])
    def test_director_police_clearance_uses_shared_profile(self, doc_type):
        assert resolve_document_type(doc_type) == "police_clearance_director"

    @pytest.mark.parametrize(
        "doc_type", ["police_clearance_director_0", "police_clearance_director_x", "selfie", ""]
    )
    def test_unknown_types(self, doc_type):
        assert resolve_document_type(doc_type) is None

    def test_upload_size_limit_follows_profile(self):
        assert upload_size_limit("tax_clearance") == 3 * MB
        assert upload_size_limit("police_clearance_director_4") == 3 * MB
        assert upload_size_limit("selfie") == 10 * MB


class TestHelpers:
    def test_extension_is_lower_cased(self):
        assert get_file_extension("Scan.PDF") == "pdf"

    def test_extension_uses_last_dot(self):
        assert get_file_extension("archive.tar.gz") == "gz"

    def test_hash_is_sha256(self):
        assert calculate_hash(b"abc") == hashlib.sha256(b"abc").hexdigest()

    @pytest.mark.parametrize(
        "content, expected",
        [
            (b"%PDF-1.7", "application/pdf"),
            (b"\xff\xd8\xff\xe0", "image/jpeg"),
            (b"\x89PNG\r\n\x1a\n", "image/png"),
            (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1", "application/msword"),
            (b"PK\x03\x04", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
            (b"hello", None),
        ],
    )
    def test_detect_file_type(self, content, expected):
        assert detect_file_type(content) == expected


class TestValidateFile:
    """Tests for FileValidator.validate_file."""

    def test_valid_pdf(self, pdf_bytes):
        result = FileValidator.validate_file(pdf_bytes, "o-level.pdf", "application/pdf", "o_level_cert")

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []
        assert result.file_info.size == len(pdf_bytes)
        assert result.file_info.extension == "pdf"
        assert result.file_info.hash == hashlib.sha256(pdf_bytes).hexdigest()

    def test_too_small(self):
        result = FileValidator.validate_file(b"%PDF", "tiny.pdf", "application/pdf", "o_level_cert")

        assert result.is_valid is False
        assert "File is too small or appears to be empty" in result.errors

    def test_exceeds_document_type_ceiling(self):
        content = b"%PDF-1.4\n" + b"x" * (3 * MB + 1)

        result = FileValidator.validate_file(content, "tax.pdf", "application/pdf", "tax_clearance")

        assert result.is_valid is False
        assert any("exceeds maximum allowed size of 3.0MB" in error for error in result.errors)

    def test_explicit_max_size_overrides_profile(self, pdf_bytes):
        result = FileValidator.validate_file(
            pdf_bytes, "o-level.pdf", "application/pdf", "o_level_cert", max_size=150
        )

        assert result.is_valid is False

    def test_extension_not_allowed_for_type(self, pdf_bytes):
        result = FileValidator.validate_file(
            pdf_bytes, "incorporation.docx", "application/pdf", "certificate_incorporation"
        )

        assert result.is_valid is False
        assert any("File extension 'docx' not allowed" in error for error in result.errors)

    def test_mime_not_allowed_for_type(self, pdf_bytes):
        result = FileValidator.validate_file(pdf_bytes, "cr6.pdf", "application/msword", "cr6")

        assert result.is_valid is False
        assert any("File type 'application/msword' not allowed" in error for error in result.errors)

    def test_matching_declared_type_has_no_warnings(self, png_bytes):
        """PNG content declared as PNG raises no warnings."""
        result = FileValidator.validate_file(png_bytes, "id.png", "image/png", "id_or_passport")

        assert result.is_valid is True
        assert result.warnings == []

    def test_pdf_declared_as_png_warns_about_mismatch(self, pdf_bytes):
        result = FileValidator.validate_file(pdf_bytes, "id.png", "image/png", "id_or_passport")

        assert any("doesn't match declared type" in warning for warning in result.warnings)
        assert "Invalid PNG file structure" in result.errors

    def test_script_in_svg_is_rejected(self):
        svg = (
            b'<svg xmlns="http://www.w3.org/2000/svg"><script>alert(1)</script>'
            + b"<rect/>" * 30
            + b"</svg>"
        )

        result = FileValidator.validate_file(svg, "id.svg", "image/svg+xml", "id_or_passport")

        assert result.is_valid is False
        assert "File contains potentially malicious content" in result.errors

    def test_sql_injection_in_word_document_is_rejected(self):
        content = b"PK\x03\x04" + b" " * 100 + b"'; DROP TABLE members; --"

        result = FileValidator.validate_file(
            content,
            "return.docx",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "annual_return_1",
        )

        assert "File contains potentially malicious content" in result.errors

    @pytest.mark.parametrize(
        "filename", ["../../etc/passwd.pdf", "dir/scan.pdf", "scan..pdf", "nul\x00byte.pdf"]
    )
    def test_path_traversal_filenames_are_rejected(self, pdf_bytes, filename):
        result = FileValidator.validate_file(pdf_bytes, filename, "application/pdf", "o_level_cert")

        assert result.is_valid is False
        assert "Filename contains suspicious patterns" in result.errors

    def test_executable_extension_is_rejected(self, pdf_bytes):
        result = FileValidator.validate_file(pdf_bytes, "setup.exe", "application/pdf")

        assert result.is_valid is False
        assert "Filename contains suspicious patterns" in result.errors

    def test_pdf_signature_with_garbage_body_is_rejected(self):
        content = b"%PDF-1.4\n" + b"not a pdf body at all " * 20 + b"\n%%EOF"

        result = FileValidator.validate_file(content, "o-level.pdf", "application/pdf", "o_level_cert")

        assert result.is_valid is False
        assert "Invalid PDF file structure" in result.errors

    def test_encrypted_pdf_is_rejected(self, encrypted_pdf_bytes):
        result = FileValidator.validate_file(
            encrypted_pdf_bytes, "cr11.pdf", "application/pdf", "cr11"
        )

        assert result.is_valid is False
        assert "Encrypted PDFs are not accepted" in result.errors

    def test_valid_jpeg(self, jpeg_bytes):
        result = FileValidator.validate_file(jpeg_bytes, "id.jpg", "image/jpeg", "id_or_passport")

        assert result.is_valid is True
        assert result.errors == []

    def test_png_signature_with_garbage_body_is_rejected(self):
        content = b"\x89PNG\r\n\x1a\n" + b"\x00" * 300

        result = FileValidator.validate_file(content, "id.png", "image/png", "id_or_passport")

        assert result.is_valid is False
        assert "Invalid PNG file structure" in result.errors

    def test_png_declared_as_jpeg_is_rejected(self, png_bytes):
        result = FileValidator.validate_file(png_bytes, "id.jpg", "image/jpeg", "id_or_passport")

        assert result.is_valid is False
        assert "Invalid JPEG file structure" in result.errors

    def test_custom_validation_error_is_reported(self, pdf_bytes):
        result = FileValidator.validate_file(
            pdf_bytes,
            "scan.pdf",
            "application/pdf",
            custom_validations=[lambda content, name: "Scan must be signed"],
        )

        assert result.is_valid is False
        assert "Scan must be signed" in result.errors

    def test_crashing_custom_validation_only_warns(self, pdf_bytes):
        def explode(content, name):
            raise RuntimeError("boom")

        result = FileValidator.validate_file(
            pdf_bytes, "scan.pdf", "application/pdf", custom_validations=[explode]
        )

        assert result.is_valid is True
        assert "Custom validation failed: boom" in result.warnings

    def test_never_raises_on_odd_input(self):
        result = FileValidator.validate_file(b"", "", "", "o_level_cert")

        assert result.is_valid is False
        assert result.errors
