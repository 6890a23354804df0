"""Libris PDF - download validation and object storage upload."""

from libris_pdf.storage_uploader import (
    DEFAULT_BUCKET,
    IA_PATH_PREFIX,
    StorageUploader,
    storage_path_for,
)
from libris_pdf.validator import (
    MAX_FILENAME_LENGTH,
    PDF_MAGIC_BYTES,
    ValidatedPdf,
    download_and_validate,
    is_valid_filename,
    sanitize_filename,
    validate_pdf_buffer,
)

__all__ = [
    # Validator
    "ValidatedPdf",
    "download_and_validate",
    "validate_pdf_buffer",
    "sanitize_filename",
    "is_valid_filename",
    "PDF_MAGIC_BYTES",
    "MAX_FILENAME_LENGTH",
    # Storage
    "StorageUploader",
    "storage_path_for",
    "DEFAULT_BUCKET",
    "IA_PATH_PREFIX",
]
