"""Document upload and management endpoints."""
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from ragcore.api.dependencies import get_app_settings, get_rag_service, to_http_exception
from ragcore.api.schemas import DocumentListResponse, DocumentResponse, UploadResponse
from ragcore.config import Settings
from ragcore.exceptions import RAGError
from ragcore.services.retrieval_service import RAGService
from ragcore.utils.logger import logger

router = APIRouter()


def _save_temporary_file(file_content: bytes, filename: str, upload_dir: str) -> str:
    """Save uploaded file to a temporary location, keeping its extension."""
    Path(upload_dir).mkdir(parents=True, exist_ok=True)
    file_extension = Path(filename).suffix or ".tmp"

    with NamedTemporaryFile(delete=False, suffix=file_extension, dir=upload_dir) as tmp_file:
        tmp_file.write(file_content)
        return tmp_file.name


@router.post("/documents", response_model=UploadResponse)
async def upload_document(
    file: Annotated[UploadFile, File(...)],
    rag_service: RAGService = Depends(get_rag_service),
    app_settings: Settings = Depends(get_app_settings),
):
    """
    Upload and ingest a document (PDF, DOCX, TXT, Markdown or CSV).

    Args:
        file: Document file to upload
        rag_service: RAG service instance
        app_settings: Application settings

    Returns:
        UploadResponse with document ID, chunk and token counts and statuses
    """
    filename = file.filename or ""
    tmp_file_path = None

    try:
        file_content = await file.read()
        tmp_file_path = _save_temporary_file(file_content, filename, app_settings.upload_dir)

        document_id = await rag_service.add_document(tmp_file_path, file_name=filename)
        document = await rag_service.get_document(document_id)

        return UploadResponse(
            document_id=document_id,
            file_name=document.file_name,
            total_chunks=document.metadata.total_chunks,
            total_tokens=document.metadata.total_tokens,
            processing_status=document.metadata.processing_status.value,
            embedding_status=document.metadata.embedding_status.value,
        )

    except RAGError as e:
        raise to_http_exception(e)
    finally:
        if tmp_file_path and os.path.exists(tmp_file_path):
            try:
                os.unlink(tmp_file_path)
            except OSError as e:
                logger.warning(f"Failed to remove temporary upload {tmp_file_path}: {str(e)}")


@router.get("/documents", response_model=DocumentListResponse)
async def list_documents(rag_service: RAGService = Depends(get_rag_service)):
    """List every stored document."""
    try:
        documents = await rag_service.get_documents()
    except RAGError as e:
        raise to_http_exception(e)

    return DocumentListResponse(
        documents=[DocumentResponse.from_document(document) for document in documents],
        total=len(documents),
    )


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: str, rag_service: RAGService = Depends(get_rag_service)):
    """Get one document with its chunks."""
    try:
        document = await rag_service.get_document(document_id)
    except RAGError as e:
        raise to_http_exception(e)

    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return DocumentResponse.from_document(document, include_chunks=True)


@router.delete("/documents/{document_id}")
async def delete_document(document_id: str, rag_service: RAGService = Depends(get_rag_service)):
    """Delete a document and all of its chunks."""
    try:
        document = await rag_service.get_document(document_id)
        if document is None:
            raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
        await rag_service.remove_document(document_id)
    except RAGError as e:
        raise to_http_exception(e)

    logger.info(f"Document deleted: {document_id}", extra={"document_id": document_id})
    return {"document_id": document_id, "deleted": True}
