"""
File Validator

Structural and content checks for uploaded documents:

- size ceiling per document type (plus a minimum size)
- extension and MIME type allow-lists per document type
- magic-number detection; a mismatch with the declared type is a warning
- script / SQL-injection patterns in textual content
- path traversal and executable extensions in the filename
- PDF structure through PyMuPDF, JPEG / PNG structure through Pillow
- SHA-256 content hash used for duplicate detection

``FileValidator.validate_file`` never raises; every problem is reported in
the returned ``FileValidationResult``.
"""

import hashlib
import io
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

import fitz
from PIL import Image

logger = logging.getLogger(__name__)

MB = 1024 * 1024

PDF_MIME = "application/pdf"
DOC_MIME = "application/msword"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_IMAGE_AND_PDF_MIME = [PDF_MIME, "image/jpeg", "image/jpg", "image/png", "image/svg+xml"]
_IMAGE_AND_PDF_EXT = [".pdf", ".jpg", ".jpeg", ".png", ".svg"]
_SCAN_MIME = [PDF_MIME, "image/jpeg", "image/jpg", "image/png"]
_SCAN_EXT = [".pdf", ".jpg", ".jpeg", ".png"]
_WORD_MIME = [PDF_MIME, DOC_MIME, DOCX_MIME]
_WORD_EXT = [".pdf", ".doc", ".docx"]

DEFAULT_MAX_SIZE = 10 * MB
MIN_FILE_SIZE = 100
LARGE_FILE_WARNING_SIZE = 5 * MB


@dataclass(frozen=True)
class DocumentTypeConfig:
    label: str
    allowed_mime_types: tuple[str, ...]
    allowed_extensions: tuple[str, ...]
    max_size: int
    description: str
    category: str


def _config(label, mimes, exts, max_size, description, category) -> DocumentTypeConfig:
    return DocumentTypeConfig(label, tuple(mimes), tuple(exts), max_size, description, category)


DOCUMENT_TYPE_CONFIG: dict[str, DocumentTypeConfig] = {
    # Individual documents
    "o_level_cert": _config(
        "O-Level Certificate", _IMAGE_AND_PDF_MIME, _IMAGE_AND_PDF_EXT, 20 * MB,
        "O-Level certificate document", "education",
    ),
    "a_level_cert": _config(
        "A-Level Certificate", _IMAGE_AND_PDF_MIME, _IMAGE_AND_PDF_EXT, 20 * MB,
        "A-Level certificate document", "education",
    ),
    "equivalent_cert": _config(
        "Equivalent Certificate", _IMAGE_AND_PDF_MIME, _IMAGE_AND_PDF_EXT, 20 * MB,
        "Equivalent qualification certificate", "education",
    ),
    "id_or_passport": _config(
        "ID or Passport", _IMAGE_AND_PDF_MIME, _IMAGE_AND_PDF_EXT, 20 * MB,
        "National ID or passport document", "identity",
    ),
    "birth_certificate": _config(
        "Birth Certificate", _IMAGE_AND_PDF_MIME, _IMAGE_AND_PDF_EXT, 20 * MB,
        "Birth certificate document", "identity",
    ),
    # Organization documents
    "bank_trust_letter": _config(
        "Bank Trust Letter", _IMAGE_AND_PDF_MIME, _IMAGE_AND_PDF_EXT, 20 * MB,
        "Bank trust account letter", "financial",
    ),
    "certificate_incorporation": _config(
        "Certificate of Incorporation", _SCAN_MIME, _SCAN_EXT, 5 * MB,
        "Certificate of incorporation document", "legal",
    ),
    "partnership_agreement": _config(
        "Partnership Agreement", _WORD_MIME, _WORD_EXT, 10 * MB,
        "Partnership agreement document", "legal",
    ),
    "cr6": _config("CR6 Form", _SCAN_MIME, _SCAN_EXT, 5 * MB, "CR6 form document", "legal"),
    "cr11": _config("CR11 Form", _SCAN_MIME, _SCAN_EXT, 5 * MB, "CR11 form document", "legal"),
    "tax_clearance": _config(
        "Tax Clearance", _SCAN_MIME, _SCAN_EXT, 3 * MB,
        "Tax clearance certificate", "financial",
    ),
    "annual_return_1": _config(
        "Annual Return (Year 1)", _WORD_MIME, _WORD_EXT, 5 * MB,
        "First year annual return", "financial",
    ),
    "annual_return_2": _config(
        "Annual Return (Year 2)", _WORD_MIME, _WORD_EXT, 5 * MB,
        "Second year annual return", "financial",
    ),
    "annual_return_3": _config(
        "Annual Return (Year 3)", _WORD_MIME, _WORD_EXT, 5 * MB,
        "Third year annual return", "financial",
    ),
    "police_clearance_director": _config(
        "Police Clearance (Director)", _SCAN_MIME, _SCAN_EXT, 3 * MB,
        "Police clearance for director", "identity",
    ),
    # Payment documents
    "application_fee_pop": _config(
        "Application Fee Proof of Payment", _IMAGE_AND_PDF_MIME, _IMAGE_AND_PDF_EXT, 20 * MB,
        "Proof of payment for application fee", "financial",
    ),
}

DIRECTOR_POLICE_CLEARANCE = re.compile(r"^police_clearance_director_(\d+)$")


def resolve_document_type(doc_type: str) -> str | None:
    """
    Map an uploaded ``doc_type`` tag to its validation profile.

    ``police_clearance_director_{n}`` uses the ``police_clearance_director``
    profile. Returns None for unknown types.
    """
    if doc_type in DOCUMENT_TYPE_CONFIG:
        return doc_type
    match = DIRECTOR_POLICE_CLEARANCE.match(doc_type)
    if match and int(match.group(1)) >= 1:
        return "police_clearance_director"
    return None



def upload_size_limit(doc_type: str) -> int:
    """Size ceiling in bytes for an upload tagged ``doc_type``."""
    profile = resolve_document_type(doc_type)
    return DOCUMENT_TYPE_CONFIG[profile].max_size if profile else DEFAULT_MAX_SIZE


MAGIC_NUMBERS = {
    "PDF": b"%PDF",
    "JPEG": b"\xff\xd8\xff",
    "PNG": b"\x89PNG\r\n\x1a\n",
    "DOC": b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1",
    "DOCX": b"PK\x03\x04",  # ZIP container
}

_MIME_ALIASES = {
    PDF_MIME: {PDF_MIME},
    "image/jpeg": {"image/jpeg", "image/jpg"},
    "image/png": {"image/png"},
    DOC_MIME: {DOC_MIME},
    DOCX_MIME: {DOCX_MIME},
}

# Pillow format names; SVG is screened as text only
_IMAGE_FORMATS = {"image/jpeg": "JPEG", "image/jpg": "JPEG", "image/png": "PNG"}

SUSPICIOUS_CONTENT_PATTERNS = [
    re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<\?php", re.IGNORECASE),
    re.compile(r"<\?="),
    re.compile(r"<%[\s\S]*?%>"),
    re.compile(r"union\s+select", re.IGNORECASE),
    re.compile(r"drop\s+table", re.IGNORECASE),
    re.compile(r"delete\s+from", re.IGNORECASE),
]

# Binary document formats: only the filename is screened
_BINARY_DOCUMENT_EXTENSIONS = {".pdf", ".png", ".jpg", ".jpeg"}

_DANGEROUS_FILENAMES = [
    re.compile(r"\.(bat|cmd|com|exe|scr|vbs|jar)$", re.IGNORECASE),
    re.compile(r"\.\.+"),
    re.compile(r"[/\\\x00]"),
]

_SUSPICIOUS_FILENAMES = [
    re.compile(r"\.(bat|cmd|com|exe|scr|vbs|js|jar)$", re.IGNORECASE),
    re.compile(r"\.(php|asp|jsp|py|rb|pl)$", re.IGNORECASE),
    re.compile(r"\.\.+"),
    re.compile(r'[<>:"|?*/\\\x00]'),
]

CustomValidation = Callable[[bytes, str], str | None]


@dataclass
class FileInfo:
    size: int
    extension: str
    mime_type: str | None = None
    hash: str | None = None


@dataclass
class FileValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    file_info: FileInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_file_extension(filename: str) -> str:
    """Lower-cased text after the last dot (the whole name if there is none)."""
    return filename.lower().rsplit(".", 1)[-1] if filename else ""


def calculate_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def detect_file_type(content: bytes) -> str | None:
    """Detect a MIME type from the leading bytes."""
    if content.startswith(MAGIC_NUMBERS["PDF"]):
        return PDF_MIME
    if content.startswith(MAGIC_NUMBERS["JPEG"]):
        return "image/jpeg"
    if content.startswith(MAGIC_NUMBERS["PNG"]):
        return "image/png"
    if content.startswith(MAGIC_NUMBERS["DOC"]):
        return DOC_MIME
    if content.startswith(MAGIC_NUMBERS["DOCX"]):
        return DOCX_MIME
    return None


class FileValidator:
    """Validate uploaded files against a document type profile."""

    @classmethod
    def validate_file(
        cls,
        content: bytes,
        filename: str,
        mime_type: str,
        document_type: str | None = None,
        *,
        max_size: int | None = None,
        allowed_mime_types: Sequence[str] | None = None,
        allowed_extensions: Sequence[str] | None = None,
        custom_validations: Sequence[CustomValidation] = (),
    ) -> FileValidationResult:
        result = FileValidationResult(
            is_valid=True,
            file_info=FileInfo(
                size=len(content),
                extension=get_file_extension(filename),
                mime_type=mime_type,
                hash=calculate_hash(content),
            ),
        )

        try:
            profile = resolve_document_type(document_type) if document_type else None
            config = DOCUMENT_TYPE_CONFIG.get(profile) if profile else None

            cls._validate_size(content, config, max_size, result)
            cls._validate_type(
                content, filename, mime_type, config, allowed_mime_types, allowed_extensions, result
            )
            cls._check_malicious_content(content, filename, result)
            cls._validate_structure(content, mime_type, result)
            cls._run_custom_validations(content, filename, custom_validations, result)

            result.is_valid = not result.errors
        except Exception as e:
            logger.error(f"File validation crashed for {filename!r}: {e}", exc_info=True)
            result.is_valid = False
            result.errors.append(f"Validation failed: {e}")

        return result

    @staticmethod
    def _validate_size(
        content: bytes,
        config: DocumentTypeConfig | None,
        max_size: int | None,
        result: FileValidationResult,
    ) -> None:
        limit = max_size or (config.max_size if config else DEFAULT_MAX_SIZE)
        size = len(content)

        if size > limit:
            result.errors.append(
                f"File size ({size / MB:.1f}MB) exceeds maximum allowed size of {limit / MB:.1f}MB"
            )
        if size < MIN_FILE_SIZE:
            result.errors.append("File is too small or appears to be empty")
        if size > LARGE_FILE_WARNING_SIZE:
            result.warnings.append("Large file detected - upload may take longer")

    @staticmethod
    def _validate_type(
        content: bytes,
        filename: str,
        mime_type: str,
        config: DocumentTypeConfig | None,
        allowed_mime_types: Sequence[str] | None,
        allowed_extensions: Sequence[str] | None,
        result: FileValidationResult,
    ) -> None:
        extension = get_file_extension(filename)
        extensions = list(allowed_extensions or (config.allowed_extensions if config else []))
        mime_types = list(allowed_mime_types or (config.allowed_mime_types if config else []))

        if extensions and f".{extension}" not in extensions:
            result.errors.append(
                f"File extension '{extension}' not allowed. Allowed: {', '.join(extensions)}"
            )
        if mime_types and mime_type not in mime_types:
            result.errors.append(
                f"File type '{mime_type}' not allowed. Allowed: {', '.join(mime_types)}"
            )

        detected = detect_file_type(content)
        if detected and mime_type not in _MIME_ALIASES.get(detected, set()):
            result.warnings.append(
                f"File content doesn't match declared type. Detected: {detected}, Declared: {mime_type}"
            )

    @staticmethod
    def _check_malicious_content(content: bytes, filename: str, result: FileValidationResult) -> None:
        extension = f".{get_file_extension(filename)}"

        if extension in _BINARY_DOCUMENT_EXTENSIONS:
            if any(pattern.search(filename) for pattern in _DANGEROUS_FILENAMES):
                result.errors.append("Filename contains suspicious patterns")
            return

        text = content.decode("utf-8", errors="ignore")
        if any(pattern.search(text) for pattern in SUSPICIOUS_CONTENT_PATTERNS):
            result.errors.append("File contains potentially malicious content")

        if any(pattern.search(filename) for pattern in _SUSPICIOUS_FILENAMES):
            result.errors.append("Filename contains suspicious patterns")

    @classmethod
    def _validate_structure(cls, content: bytes, mime_type: str, result: FileValidationResult) -> None:
        try:
            if mime_type == PDF_MIME:
                cls._validate_pdf(content, result)
            elif mime_type.startswith("image/"):
                cls._validate_image(content, mime_type, result)
        except Exception as e:
            result.warnings.append(f"Could not validate file structure: {e}")

    @staticmethod
    def _validate_pdf(content: bytes, result: FileValidationResult) -> None:
        if not content.startswith(MAGIC_NUMBERS["PDF"]):
            result.errors.append("Invalid PDF file structure")
            return

        try:
            with fitz.open(stream=content, filetype="pdf") as document:
                if document.needs_pass or document.is_encrypted:
                    result.errors.append("Encrypted PDFs are not accepted")
                elif document.page_count == 0:
                    result.errors.append("PDF has no pages")
        except Exception as e:
            logger.info(f"PDF rejected by parser: {e}")
            result.errors.append("Invalid PDF file structure")
            return

        if b"%%EOF" not in content[-10:]:
            result.warnings.append("PDF file may be corrupted - missing EOF marker")

        match = re.search(rb"%PDF-(\d+\.\d+)", content[:20])
        if match:
            version = float(match.group(1))
            if version > 2.0:
                result.warnings.append(f"PDF version {version} may not be compatible with all viewers")

    @staticmethod
    def _validate_image(content: bytes, mime_type: str, result: FileValidationResult) -> None:
        expected = _IMAGE_FORMATS.get(mime_type)
        if expected is None:
            return

        try:
            with Image.open(io.BytesIO(content)) as image:
                detected = image.format
                image.verify()
        except Exception as e:
            logger.info(f"{expected} rejected by parser: {e}")
            detected = None

        if detected != expected:
            result.errors.append(f"Invalid {expected} file structure")

    @staticmethod
    def _run_custom_validations(
        content: bytes,
        filename: str,
        validations: Sequence[CustomValidation],
        result: FileValidationResult,
    ) -> None:
        for validation in validations:
            try:
                error = validation(content, filename)
            except Exception as e:
                result.warnings.append(f"Custom validation failed: {e}")
                continue
            if error:
                result.errors.append(error)

    @staticmethod
    def document_categories() -> list[str]:
        return sorted({config.category for config in DOCUMENT_TYPE_CONFIG.values()})

    @staticmethod
    def documents_by_category(category: str) -> dict[str, DocumentTypeConfig]:
        return {
            key: config
            for key, config in DOCUMENT_TYPE_CONFIG.items()
            if config.category == category
        }
