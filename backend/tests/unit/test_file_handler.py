"""
Tests for uploaded PDF validation utilities.
"""

import pytest

from scholarcheck.utils.file_handler import FileValidationError, PdfFileValidator


class TestPdfFileValidator:
    """Test the PdfFileValidator class."""

    def test_validate_file_extension_valid(self) -> None:
        """Test valid file extensions."""
        validator = PdfFileValidator()

        # Should not raise for valid extensions
        validator.validate_file_extension("paper.pdf", [".pdf"])
        validator.validate_file_extension("PAPER.PDF", [".pdf"])  # Case insensitive

    def test_validate_file_extension_invalid(self) -> None:
        """Test invalid file extensions."""
        validator = PdfFileValidator()

        with pytest.raises(FileValidationError, match="File extension '.docx' not allowed"):
            validator.validate_file_extension("paper.docx", [".pdf"])

    def test_validate_file_extension_missing_name(self) -> None:
        with pytest.raises(FileValidationError):
            PdfFileValidator.validate_file_extension(None, [".pdf"])

    def test_validate_file_size_valid(self) -> None:
        """Test valid file sizes."""
        validator = PdfFileValidator()

        # Should not raise for valid sizes
        validator.validate_file_size(1000, 10000)
        validator.validate_file_size(10000, 10000)

    def test_validate_file_size_invalid(self) -> None:
        """Test invalid file sizes."""
        validator = PdfFileValidator()

        with pytest.raises(FileValidationError, match="File size"):
            validator.validate_file_size(15000, 10000)
        with pytest.raises(FileValidationError, match="File is empty"):
            validator.validate_file_size(0, 10000)

    def test_validate_pdf_content(self, sample_pdf_bytes: bytes) -> None:
        PdfFileValidator.validate_pdf_content(sample_pdf_bytes)

        with pytest.raises(FileValidationError, match="not a valid PDF"):
            PdfFileValidator.validate_pdf_content(b"PK\x03\x04 zip archive")

    def test_calculate_content_hash(self) -> None:
        """Test content hash calculation."""
        validator = PdfFileValidator()

        hash1 = validator.calculate_content_hash(b"%PDF-1.4 same")
        hash2 = validator.calculate_content_hash(b"%PDF-1.4 same")
        hash3 = validator.calculate_content_hash(b"%PDF-1.4 different")

        # Same content should produce same hash
        assert hash1 == hash2
        # Different content should produce different hash
        assert hash1 != hash3
        assert len(hash1) == 64
