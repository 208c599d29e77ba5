"""Shared route dependencies and error translation."""
from fastapi import HTTPException

from ragcore.config import Settings
from ragcore.exceptions import (
    EmbeddingError,
    ProcessingError,
    RAGError,
    ServiceNotReadyError,
    ServiceUnavailableError,
    StorageError,
    ValidationError,
)
from ragcore.services.retrieval_service import RAGService
from ragcore.utils.logger import logger


def get_rag_service() -> RAGService:
    """Get RAG service from main app."""
    from ragcore.main import rag_service
    if rag_service is None:
        raise HTTPException(status_code=503, detail="RAG service not initialized")
    return rag_service


def get_app_settings() -> Settings:
    """Get application settings from main app."""
    from ragcore.main import settings
    if settings is None:
        raise HTTPException(status_code=503, detail="Settings not initialized")
    return settings


def to_http_exception(e: RAGError) -> HTTPException:
    """Convert a retrieval core error to the matching HTTP response."""
    if isinstance(e, (ServiceNotReadyError, ServiceUnavailableError)):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, (ValidationError, ProcessingError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, EmbeddingError):
        detail = {"message": str(e), "document_id": e.document_id}
        return HTTPException(status_code=500, detail=detail)
    if isinstance(e, StorageError):
        return HTTPException(status_code=500, detail=str(e))

    logger.error(f"Unhandled retrieval error: {str(e)}", exc_info=True)
    return HTTPException(status_code=500, detail=str(e))
