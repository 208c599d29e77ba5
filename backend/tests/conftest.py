"""Pytest configuration and fixtures."""
import os
import shutil
import tempfile

import pytest
import pytest_asyncio

from ragcore.config import FeatureFlags, RAGSettings
from ragcore.models.document import Chunk, ChunkMetadata, Document, DocumentMetadata, ProcessingStatus
from ragcore.services.embedding_service import TFIDFEmbeddingProvider
from ragcore.services.retrieval_service import RAGService
from ragcore.services.vector_store import MemoryVectorStore, SQLiteVectorStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def write_file(temp_dir):
    """Write a text file into the temp dir and return its path."""

    def _write(name: str, content: str) -> str:
        path = os.path.join(temp_dir, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    return _write


@pytest.fixture
def apples_file(write_file):
    """Attribution line followed by two short sentences."""
    return write_file("apples.txt", "Credits: Jane Doe\nThis is a test about apples. Apples are fruit.")


@pytest.fixture
def markdown_file(write_file):
    """Markdown document with headings, a list and paragraphs."""
    return write_file(
        "guide.md",
        "# Orchard Guide\n\n"
        "Apples grow on trees in temperate climates.\n\n"
        "## Varieties\n\n"
        "- Granny Smith\n"
        "- Honeycrisp\n\n"
        "Pears are a close relative of apples.\n",
    )


@pytest.fixture
def rag_settings():
    """Small chunks so short test documents split into several chunks."""
    return RAGSettings(chunk_size=50, overlap_size=2, search_accuracy=50)


@pytest.fixture
def features():
    return FeatureFlags()


@pytest.fixture
def embedding_provider():
    return TFIDFEmbeddingProvider(dimensions=128)


@pytest.fixture
def memory_store():
    return MemoryVectorStore()


@pytest_asyncio.fixture
async def sqlite_store(temp_dir):
    store = SQLiteVectorStore(db_path=os.path.join(temp_dir, "store", "vectors.sqlite3"))
    await store.wait_for_ready()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def rag_service(embedding_provider, memory_store, rag_settings, features):
    """Initialized RAG service over an in-memory store."""
    service = RAGService(settings=rag_settings, features=features)
    await service.initialize(embedding_provider, memory_store)
    return service


def make_document(
    document_id: str = "doc-1",
    contents=("first chunk about apples", "second chunk about pears"),
    embeddings=None,
) -> Document:
    """Build a document whose chunks carry the given embeddings."""
    chunks = []
    for index, content in enumerate(contents):
        chunks.append(
            Chunk(
                id=f"{document_id}-chunk-{index}",
                document_id=document_id,
                content=content,
                embedding=embeddings[index] if embeddings else None,
                metadata=ChunkMetadata(
                    file_name=f"{document_id}.txt",
                    chunk_index=index,
                    token_count=len(content.split()),
                ),
            )
        )
    return Document(
        id=document_id,
        file_name=f"{document_id}.txt",
        content=" ".join(contents),
        chunks=chunks,
        metadata=DocumentMetadata(
            file_size=100,
            file_type="text/plain",
            document_type="text",
            processing_status=ProcessingStatus.COMPLETED,
            embedding_status=ProcessingStatus.COMPLETED if embeddings else ProcessingStatus.PENDING,
            total_chunks=len(chunks),
        ),
    )


@pytest.fixture
def document_factory():
    return make_document
