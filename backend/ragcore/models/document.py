"""Document data models."""
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return _now()


def new_id() -> str:
    return str(uuid.uuid4())


class ProcessingStatus(str, Enum):
    """Lifecycle of document processing and of embedding generation."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class SegmentType(str, Enum):
    """Kinds of structural segments produced by extraction."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    TABLE = "table"


@dataclass
class StructuredSegment:
    """A typed block of extracted text (heading, paragraph, list or table)."""

    segment_type: SegmentType
    content: str
    level: Optional[int] = None
    page: Optional[int] = None


@dataclass
class ExtractedDocument:
    """Output of the extraction stage."""

    text: str
    document_type: str
    segments: List[StructuredSegment] = field(default_factory=list)
    title: Optional[str] = None
    author: Optional[str] = None
    page_count: Optional[int] = None


@dataclass
class ChunkMetadata:
    """Positional and structural metadata attached to a chunk."""

    file_name: str
    chunk_index: int
    token_count: int
    start_position: Optional[int] = None
    end_position: Optional[int] = None
    heading: Optional[str] = None
    heading_level: Optional[int] = None
    page: Optional[int] = None
    total_chunks: Optional[int] = None
    document_title: Optional[str] = None
    document_author: Optional[str] = None
    document_type: Optional[str] = None


@dataclass
class Chunk:
    """Represents a text chunk with metadata and an optional embedding."""

    document_id: str
    content: str
    metadata: ChunkMetadata
    id: str = field(default_factory=new_id)
    embedding: Optional[List[float]] = None
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "content": self.content,
            "embedding": self.embedding,
            "metadata": asdict(self.metadata),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        return cls(
            id=data["id"],
            document_id=data["document_id"],
            content=data["content"],
            embedding=data.get("embedding"),
            metadata=ChunkMetadata(**data["metadata"]),
            created_at=_parse_datetime(data.get("created_at")),
        )


@dataclass
class DocumentMetadata:
    """File facts plus the two independent status tracks."""

    file_size: int
    file_type: str
    document_type: str
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    embedding_status: ProcessingStatus = ProcessingStatus.PENDING
    total_chunks: int = 0
    total_tokens: int = 0
    avg_chunk_size: Optional[int] = None
    title: Optional[str] = None
    author: Optional[str] = None
    page_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["processing_status"] = self.processing_status.value
        data["embedding_status"] = self.embedding_status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentMetadata":
        data = dict(data)
        data["processing_status"] = ProcessingStatus(data.get("processing_status", "pending"))
        data["embedding_status"] = ProcessingStatus(data.get("embedding_status", "pending"))
        return cls(**data)


@dataclass
class Document:
    """Represents an ingested document and the chunks it owns."""

    file_name: str
    content: str
    metadata: DocumentMetadata
    id: str = field(default_factory=new_id)
    chunks: List[Chunk] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    original_file_data: Optional[str] = None  # base64, kept for binary formats

    def touch(self) -> None:
        self.updated_at = _now()

    def to_dict(self, include_chunks: bool = True) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "content": self.content,
            "chunks": [chunk.to_dict() for chunk in self.chunks] if include_chunks else [],
            "metadata": self.metadata.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "original_file_data": self.original_file_data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            id=data["id"],
            file_name=data["file_name"],
            content=data["content"],
            chunks=[Chunk.from_dict(chunk) for chunk in data.get("chunks") or []],
            metadata=DocumentMetadata.from_dict(data["metadata"]),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            original_file_data=data.get("original_file_data"),
        )


@dataclass
class SearchResult:
    """A chunk matched by a search, with its score and parent document."""

    chunk: Chunk
    similarity: float
    document: Document


@dataclass
class RAGQueryResult:
    """Ranked results plus the context string built from them."""

    query: str
    results: List[SearchResult] = field(default_factory=list)
    context_used: str = ""
    tokens_used: int = 0
