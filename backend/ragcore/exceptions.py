"""Custom exception classes for the retrieval core."""


class RAGError(Exception):
    """Base exception for retrieval core errors."""
    pass


class ServiceNotReadyError(RAGError):
    """Raised when the RAG service is used before it is ready."""
    pass


class ValidationError(RAGError):
    """Raised when document validation fails."""
    pass


class FileTypeNotSupportedError(ValidationError):
    """Raised when an unsupported file type is encountered."""
    pass


class FileSizeExceededError(ValidationError):
    """Raised when file size exceeds the maximum allowed."""
    pass


class DocumentCorruptedError(ValidationError):
    """Raised when a document file appears to be corrupted."""
    pass


class DocumentEmptyError(ValidationError):
    """Raised when a document has no extractable content or yields no chunks."""
    pass


class ProcessingError(RAGError):
    """Raised when document processing fails."""
    pass


class ExtractionError(ProcessingError):
    """Raised when text extraction from document fails."""
    pass


class EmbeddingError(RAGError):
    """Raised when embedding generation fails."""

    def __init__(self, message: str, document_id: str = None):
        super().__init__(message)
        self.document_id = document_id


class StorageError(RAGError):
    """Raised when persisting or deleting documents fails."""
    pass


class ServiceUnavailableError(RAGError):
    """Raised when required services are not available."""
    pass


class DimensionMismatchError(RAGError, ValueError):
    """Raised when vectors of different length are compared."""
    pass
