"""Document validation utilities."""
import os
from pathlib import Path
from typing import Any, Dict, Optional

from ragcore.exceptions import (
    DocumentEmptyError,
    FileSizeExceededError,
    FileTypeNotSupportedError,
)

# Extension -> file type understood by the document processor
SUPPORTED_EXTENSIONS = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".txt": "txt",
    ".md": "md",
    ".markdown": "md",
    ".csv": "csv",
}


class DocumentValidator:
    """Checks applied to every uploaded file before extraction."""

    @classmethod
    def validate_file_type(cls, filename: str) -> str:
        """Validate the file extension and return the file type."""
        if not filename:
            raise FileTypeNotSupportedError("File name is required.")

        extension = Path(filename).suffix.lower()
        file_type = SUPPORTED_EXTENSIONS.get(extension)
        if file_type is None:
            raise FileTypeNotSupportedError(
                f"Unsupported file type: {extension or filename}. "
                f"Supported formats: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
            )
        return file_type

    @classmethod
    def validate_file_size(cls, file_size_bytes: int, max_size_mb: float, filename: str = "") -> None:
        """Validate file size."""
        if file_size_bytes == 0:
            raise DocumentEmptyError(f"File {filename} is empty.")

        file_size_mb = file_size_bytes / (1024 * 1024)
        if file_size_mb > max_size_mb:
            raise FileSizeExceededError(
                f"File {filename} ({file_size_mb:.2f} MB) exceeds maximum allowed size ({max_size_mb} MB)."
            )


def validate_document(file_path: str, max_file_size_mb: float, file_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Validate a document on disk.

    Args:
        file_path: Path to the document file
        max_file_size_mb: Upload size limit in MB
        file_name: Name reported in errors, defaults to the name on disk

    Returns:
        Dict with file_type, file_size and filename

    Raises:
        FileTypeNotSupportedError, FileSizeExceededError, DocumentEmptyError
    """
    filename = file_name or Path(file_path).name
    file_type = DocumentValidator.validate_file_type(filename)
    file_size = os.path.getsize(file_path)
    DocumentValidator.validate_file_size(file_size, max_file_size_mb, filename)

    return {
        "file_type": file_type,
        "file_size": file_size,
        "filename": filename,
    }
