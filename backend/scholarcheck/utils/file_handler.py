"""
Validation utilities for uploaded paper PDFs.
"""

import hashlib
from pathlib import Path

from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF-"


class FileValidationError(Exception):
    """Raised when file validation fails."""
    pass


class PdfFileValidator:
    """Checks for uploaded PDF files."""

    @staticmethod
    def validate_file_extension(filename: str, allowed_extensions: list[str]) -> None:
        """
        Validate that file has an allowed extension.

        Args:
            filename: Name of the uploaded file
            allowed_extensions: List of allowed file extensions (e.g., ['.pdf'])

        Raises:
            FileValidationError: If extension is not allowed
        """
        file_ext = Path(filename or "").suffix.lower()
        if file_ext not in allowed_extensions:
            logger.warning("Invalid file extension", filename=filename, extension=file_ext)
            raise FileValidationError(
                f"File extension '{file_ext}' not allowed. Supported formats: {', '.join(allowed_extensions)}"
            )

    @staticmethod
    def validate_file_size(file_size: int, max_size: int) -> None:
        """
        Validate that file size is within limits.

        Raises:
            FileValidationError: If file is empty or too large
        """
        if file_size == 0:
            raise FileValidationError("File is empty")
        if file_size > max_size:
            max_mb = max_size / (1024 * 1024)
            current_mb = file_size / (1024 * 1024)
            logger.warning("File too large", file_size_mb=current_mb, max_size_mb=max_mb)
            raise FileValidationError(
                f"File size ({current_mb:.2f} MB) exceeds maximum allowed size ({max_mb:.2f} MB)"
            )

    @staticmethod
    def validate_pdf_content(content: bytes) -> None:
        """
        Validate that content starts with the PDF header.

        Raises:
            FileValidationError: If the bytes are not a PDF
        """
        if not content.startswith(PDF_MAGIC):
            logger.warning("File is not a PDF", leading_bytes=content[:8].hex())
            raise FileValidationError("File content is not a valid PDF document")

    @staticmethod
    def calculate_content_hash(content: bytes) -> str:
        """
        Calculate SHA-256 hash of file content for deduplication.

        Returns:
            Hexadecimal SHA-256 hash string
        """
        return hashlib.sha256(content).hexdigest()
