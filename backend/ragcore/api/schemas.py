"""Pydantic schemas for API requests and responses."""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ragcore.models.document import Chunk, Document, SearchResult


class UploadResponse(BaseModel):
    """Response schema for document upload."""

    document_id: str = Field(..., description="Unique identifier for the uploaded document")
    file_name: str = Field(..., description="Original filename")
    total_chunks: int = Field(..., description="Number of text chunks created")
    total_tokens: int = Field(..., description="Estimated token count of the document text")
    processing_status: str
    embedding_status: str
    message: str = Field(default="Document uploaded and processed successfully")


class ChunkResponse(BaseModel):
    """A stored chunk without its embedding vector."""

    id: str
    content: str
    metadata: Dict[str, Any]
    has_embedding: bool

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "ChunkResponse":
        data = chunk.to_dict()
        return cls(
            id=chunk.id,
            content=chunk.content,
            metadata=data["metadata"],
            has_embedding=bool(chunk.embedding),
        )


class DocumentResponse(BaseModel):
    """Document summary; chunks are included only on the detail endpoint."""

    id: str
    file_name: str
    metadata: Dict[str, Any]
    created_at: datetime
    updated_at: datetime
    chunks: Optional[List[ChunkResponse]] = None

    @classmethod
    def from_document(cls, document: Document, include_chunks: bool = False) -> "DocumentResponse":
        return cls(
            id=document.id,
            file_name=document.file_name,
            metadata=document.metadata.to_dict(),
            created_at=document.created_at,
            updated_at=document.updated_at,
            chunks=[ChunkResponse.from_chunk(chunk) for chunk in document.chunks] if include_chunks else None,
        )


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    total: int


class SearchRequest(BaseModel):
    """Request schema for search."""

    query: str = Field(..., min_length=1, description="Search text")
    top_k: Optional[int] = Field(None, ge=1, le=50, description="Maximum number of results")

    @field_validator("query")
    @classmethod
    def clean_query(cls, v: str) -> str:
        """Remove control characters and reject queries that end up empty."""
        cleaned = re.sub(r"[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]", "", v).strip()
        if not cleaned:
            raise ValueError("Query cannot be empty after cleaning")
        return cleaned


class SearchResultResponse(BaseModel):
    """Schema for a ranked chunk with its parent document."""

    chunk_id: str
    document_id: str
    file_name: str
    content: str
    similarity: float = Field(..., description="Similarity score")
    metadata: Dict[str, Any]

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchResultResponse":
        return cls(
            chunk_id=result.chunk.id,
            document_id=result.document.id,
            file_name=result.document.file_name,
            content=result.chunk.content,
            similarity=result.similarity,
            metadata=result.chunk.to_dict()["metadata"],
        )


class SearchResponse(BaseModel):
    """Response schema for search."""

    query: str
    results: List[SearchResultResponse]
    context_used: str
    tokens_used: int


class RAGSettingsSchema(BaseModel):
    """Chunking and search settings (values outside the allowed ranges are clamped)."""

    chunk_size: int
    overlap_size: int
    search_accuracy: float


class RAGSettingsUpdate(BaseModel):
    chunk_size: Optional[int] = None
    overlap_size: Optional[int] = None
    search_accuracy: Optional[float] = None


class FeatureFlagsUpdate(BaseModel):
    """Partial feature flag update, keyed by flag name."""

    flags: Dict[str, bool]
