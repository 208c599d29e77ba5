"""Tests for the vector store backends."""
import os
import sqlite3
from unittest.mock import patch

import pytest
import pytest_asyncio

from ragcore.exceptions import DimensionMismatchError, StorageError
from ragcore.services.vector_store import (
    MemoryVectorStore,
    SQLiteVectorStore,
    create_vector_store,
)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, temp_dir):
    """Each test runs against both backends."""
    if request.param == "memory":
        backend = MemoryVectorStore()
    else:
        backend = SQLiteVectorStore(db_path=os.path.join(temp_dir, "vectors.sqlite3"))
    await backend.wait_for_ready()
    yield backend
    await backend.close()


class TestVectorStore:
    """Behaviour shared by both backends."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, store, document_factory):
        """Stored documents come back with chunks ordered by index."""
        document = document_factory(embeddings=[[1.0, 0.0], [0.0, 1.0]])
        document.chunks.reverse()
        await store.add_document(document)

        stored = await store.get_document("doc-1")
        assert stored.file_name == "doc-1.txt"
        assert [chunk.metadata.chunk_index for chunk in stored.chunks] == [0, 1]
        assert stored.chunks[0].embedding == [1.0, 0.0]
        assert stored.metadata.processing_status.value == "completed"

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get_document("missing") is None

    @pytest.mark.asyncio
    async def test_upsert(self, store, document_factory):
        """Adding the same id twice keeps one document."""
        await store.add_document(document_factory(embeddings=[[1.0, 0.0], [0.0, 1.0]]))
        await store.add_document(document_factory(embeddings=[[1.0, 0.0], [0.0, 1.0]]))

        documents = await store.get_all_documents()
        assert len(documents) == 1
        assert len(documents[0].chunks) == 2

    @pytest.mark.asyncio
    async def test_upsert_drops_missing_chunks(self, store, document_factory):
        """Re-adding a document with fewer chunks leaves none of the old ones behind."""
        await store.add_document(
            document_factory(
                contents=("exact", "close", "far"),
                embeddings=[[1.0, 0.0], [0.8, 0.6], [0.0, 1.0]],
            )
        )
        await store.add_document(document_factory(contents=("exact",), embeddings=[[1.0, 0.0]]))

        stored = await store.get_document("doc-1")
        assert len(stored.chunks) == stored.metadata.total_chunks == 1
        results = await store.search([0.0, 1.0], top_k=5, threshold=0.0)
        assert [result.chunk.content for result in results] == ["exact"]

    @pytest.mark.asyncio
    async def test_remove_deletes_chunks(self, store, document_factory):
        """Removing a document leaves no chunks behind."""
        await store.add_document(document_factory("doc-1", embeddings=[[1.0, 0.0], [0.0, 1.0]]))
        await store.add_document(document_factory("doc-2", embeddings=[[1.0, 0.0], [0.0, 1.0]]))

        await store.remove_document("doc-1")

        assert await store.get_document("doc-1") is None
        results = await store.search([1.0, 0.0], top_k=10, threshold=0.0)
        assert {result.chunk.document_id for result in results} == {"doc-2"}

    @pytest.mark.asyncio
    async def test_search_sorted_and_limited(self, store, document_factory):
        """Results are sorted by similarity and cut to top_k."""
        document = document_factory(
            contents=("exact", "close", "far"),
            embeddings=[[1.0, 0.0], [0.8, 0.6], [0.0, 1.0]],
        )
        await store.add_document(document)

        results = await store.search([1.0, 0.0], top_k=2, threshold=0.0)

        assert [result.chunk.content for result in results] == ["exact", "close"]
        assert results[0].similarity >= results[1].similarity
        assert results[0].document.id == "doc-1"

    @pytest.mark.asyncio
    async def test_search_threshold(self, store, document_factory):
        await store.add_document(
            document_factory(contents=("exact", "far"), embeddings=[[1.0, 0.0], [0.0, 1.0]])
        )
        results = await store.search([1.0, 0.0], top_k=5, threshold=0.5)
        assert [result.chunk.content for result in results] == ["exact"]

    @pytest.mark.asyncio
    async def test_search_skips_chunks_without_embeddings(self, store, document_factory):
        """Chunks stored without vectors are kept but never matched."""
        await store.add_document(document_factory())

        assert await store.search([1.0, 0.0], top_k=5, threshold=0.0) == []
        stored = await store.get_document("doc-1")
        assert len(stored.chunks) == 2
        assert stored.chunks[0].embedding is None

    @pytest.mark.asyncio
    async def test_search_dimension_mismatch(self, store, document_factory):
        await store.add_document(document_factory(embeddings=[[1.0, 0.0], [0.0, 1.0]]))
        with pytest.raises(DimensionMismatchError):
            await store.search([1.0, 0.0, 0.0], top_k=5, threshold=0.0)

    @pytest.mark.asyncio
    async def test_clear(self, store, document_factory):
        await store.add_document(document_factory())
        await store.clear()
        assert await store.get_all_documents() == []


class TestMemoryVectorStore:
    """Tests for MemoryVectorStore."""

    @pytest.mark.asyncio
    async def test_returns_copies(self, document_factory):
        """Mutating returned documents does not change stored state."""
        store = MemoryVectorStore()
        await store.add_document(document_factory())

        fetched = await store.get_document("doc-1")
        fetched.chunks[0].content = "changed"
        fetched.chunks.clear()

        stored = await store.get_document("doc-1")
        assert stored.chunks[0].content == "first chunk about apples"


class TestSQLiteVectorStore:
    """Tests for SQLiteVectorStore."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, temp_dir, document_factory):
        """A new store on the same file sees earlier writes."""
        db_path = os.path.join(temp_dir, "nested", "vectors.sqlite3")
        first = SQLiteVectorStore(db_path=db_path)
        await first.add_document(document_factory(embeddings=[[1.0, 0.0], [0.0, 1.0]]))
        await first.close()

        second = SQLiteVectorStore(db_path=db_path)
        stored = await second.get_document("doc-1")
        await second.close()

        assert stored is not None
        assert [chunk.embedding for chunk in stored.chunks] == [[1.0, 0.0], [0.0, 1.0]]

    @pytest.mark.asyncio
    async def test_sqlite_errors_become_storage_errors(self, temp_dir, document_factory):
        """Database failures are raised as StorageError naming the document."""
        store = SQLiteVectorStore(db_path=os.path.join(temp_dir, "vectors.sqlite3"))
        await store.wait_for_ready()

        with patch.object(store, "_connect", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(StorageError, match="doc-1"):
                await store.add_document(document_factory())
        await store.close()


class TestCreateVectorStore:
    def test_backends(self, temp_dir):
        assert isinstance(create_vector_store("memory"), MemoryVectorStore)
        store = create_vector_store("sqlite", os.path.join(temp_dir, "db.sqlite3"))
        assert isinstance(store, SQLiteVectorStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_vector_store("qdrant")
