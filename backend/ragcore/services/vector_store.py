"""Vector stores: durable SQLite backend and volatile in-memory backend."""
import asyncio
import copy
import json
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, TypeVar

from ragcore.exceptions import StorageError
from ragcore.models.document import Chunk, Document, SearchResult
from ragcore.services.embedding_service import cosine_similarity
from ragcore.utils.logger import logger

T = TypeVar("T")


def rank_results(results: List[SearchResult], top_k: int) -> List[SearchResult]:
    """Sort results by similarity (descending) and keep the first top_k."""
    results.sort(key=lambda result: result.similarity, reverse=True)
    return results[:max(top_k, 0)]


class VectorStore(ABC):
    """Storage for documents and chunk vectors with flat cosine-similarity search."""

    @abstractmethod
    async def add_document(self, document: Document) -> None:
        """Upsert a document and each of its chunks."""

    @abstractmethod
    async def remove_document(self, document_id: str) -> None:
        """Delete a document and every chunk that references it."""

    @abstractmethod
    async def search(
        self, query_embedding: List[float], top_k: int = 5, threshold: float = 0.1
    ) -> List[SearchResult]:
        """Return the top_k chunks whose similarity is at least threshold."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[Document]:
        """Return a document with its chunks, or None."""

    @abstractmethod
    async def get_all_documents(self) -> List[Document]:
        """Return every document with its chunks."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all documents and chunks."""

    async def wait_for_ready(self) -> None:
        """Block until the store can serve requests."""

    async def close(self) -> None:
        """Release resources held by the store."""


class MemoryVectorStore(VectorStore):
    """In-memory vector store for tests and as a fallback."""

    def __init__(self):
        self._documents: Dict[str, Document] = {}
        self._chunks: Dict[str, Chunk] = {}
        self._chunk_ids_by_document: Dict[str, List[str]] = {}

    def _delete_chunks(self, document_id: str) -> None:
        for chunk_id in self._chunk_ids_by_document.pop(document_id, []):
            self._chunks.pop(chunk_id, None)

    def _assemble(self, document_id: str) -> Optional[Document]:
        stored = self._documents.get(document_id)
        if stored is None:
            return None
        document = copy.deepcopy(stored)
        chunks = [
            copy.deepcopy(self._chunks[chunk_id])
            for chunk_id in self._chunk_ids_by_document.get(document_id, [])
            if chunk_id in self._chunks
        ]
        document.chunks = sorted(chunks, key=lambda chunk: chunk.metadata.chunk_index)
        return document

    async def add_document(self, document: Document) -> None:
        record = copy.copy(document)
        record.chunks = []
        self._documents[document.id] = copy.deepcopy(record)
        # Re-adding a document replaces its whole chunk set
        self._delete_chunks(document.id)

        for chunk in document.chunks:
            previous = self._chunks.get(chunk.id)
            if previous is not None and previous.document_id != chunk.document_id:
                ids = self._chunk_ids_by_document.get(previous.document_id, [])
                if chunk.id in ids:
                    ids.remove(chunk.id)
            self._chunks[chunk.id] = copy.deepcopy(chunk)
            ids = self._chunk_ids_by_document.setdefault(chunk.document_id, [])
            if chunk.id not in ids:
                ids.append(chunk.id)

        logger.debug(
            f"Stored document {document.id} with {len(document.chunks)} chunks in memory",
            extra={"document_id": document.id, "chunk_count": len(document.chunks)},
        )

    async def remove_document(self, document_id: str) -> None:
        self._delete_chunks(document_id)
        self._documents.pop(document_id, None)

    async def search(
        self, query_embedding: List[float], top_k: int = 5, threshold: float = 0.1
    ) -> List[SearchResult]:
        results = []
        documents: Dict[str, Document] = {}

        for chunk in self._chunks.values():
            if not chunk.embedding:
                continue

            similarity = cosine_similarity(query_embedding, chunk.embedding)
            if similarity < threshold:
                continue

            if chunk.document_id not in documents:
                document = self._assemble(chunk.document_id)
                if document is None:
                    continue
                documents[chunk.document_id] = document

            results.append(
                SearchResult(
                    chunk=copy.deepcopy(chunk),
                    similarity=similarity,
                    document=documents[chunk.document_id],
                )
            )

        return rank_results(results, top_k)

    async def get_document(self, document_id: str) -> Optional[Document]:
        return self._assemble(document_id)

    async def get_all_documents(self) -> List[Document]:
        return [self._assemble(document_id) for document_id in self._documents]

    async def clear(self) -> None:
        self._documents.clear()
        self._chunks.clear()
        self._chunk_ids_by_document.clear()


SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_documents_file_name ON documents(file_name);
CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    embedding TEXT,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chunks_document_id ON chunks(document_id);
"""


class SQLiteVectorStore(VectorStore):
    """
    Durable vector store on a local SQLite database.

    Documents and chunks live in separate tables; chunks are indexed by
    document_id. Every write runs in a single transaction, and all database
    calls are serialized on one connection and executed off the event loop.
    """

    def __init__(self, db_path: str = "./ragcore_db/vector_store.sqlite3"):
        """
        Initialize the store (database opened lazily).

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._connection is None:
            if self.db_path != ":memory:":
                directory = os.path.dirname(os.path.abspath(self.db_path))
                os.makedirs(directory, exist_ok=True)
            connection = sqlite3.connect(self.db_path, check_same_thread=False)
            connection.row_factory = sqlite3.Row
            connection.executescript(SCHEMA)
            self._connection = connection
            logger.info(f"SQLite vector store initialized at {self.db_path}")
        return self._connection

    def _locked(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        with self._lock:
            return operation(self._connect())

    async def _run(self, operation: Callable[[sqlite3.Connection], T], action: str) -> T:
        try:
            return await asyncio.to_thread(self._locked, operation)
        except sqlite3.Error as e:
            logger.error(f"SQLite error while {action}: {str(e)}", exc_info=True)
            raise StorageError(f"Storage failure while {action}: {str(e)}") from e

    async def wait_for_ready(self) -> None:
        await self._run(lambda connection: None, "opening the database")

    @staticmethod
    def _chunk_row(row: sqlite3.Row) -> Chunk:
        data = json.loads(row["data"])
        data["embedding"] = json.loads(row["embedding"]) if row["embedding"] else None
        return Chunk.from_dict(data)

    @classmethod
    def _load_document(cls, connection: sqlite3.Connection, document_id: str) -> Optional[Document]:
        row = connection.execute("SELECT data FROM documents WHERE id = ?", (document_id,)).fetchone()
        if row is None:
            return None
        document = Document.from_dict(json.loads(row["data"]))
        chunk_rows = connection.execute(
            "SELECT embedding, data FROM chunks WHERE document_id = ? ORDER BY chunk_index",
            (document_id,),
        ).fetchall()
        document.chunks = [cls._chunk_row(chunk_row) for chunk_row in chunk_rows]
        return document

    async def add_document(self, document: Document) -> None:
        document_row = (
            document.id,
            document.file_name,
            document.created_at.isoformat(),
            json.dumps(document.to_dict(include_chunks=False)),
        )
        chunk_rows = []
        for chunk in document.chunks:
            data = chunk.to_dict()
            embedding = data.pop("embedding")
            chunk_rows.append(
                (
                    chunk.id,
                    chunk.document_id,
                    chunk.metadata.chunk_index,
                    json.dumps(embedding) if embedding is not None else None,
                    json.dumps(data),
                )
            )

        def write(connection: sqlite3.Connection) -> None:
            with connection:
                connection.execute(
                    "INSERT OR REPLACE INTO documents (id, file_name, created_at, data) VALUES (?, ?, ?, ?)",
                    document_row,
                )
                connection.execute("DELETE FROM chunks WHERE document_id = ?", (document.id,))
                connection.executemany(
                    "INSERT OR REPLACE INTO chunks (id, document_id, chunk_index, embedding, data) "
                    "VALUES (?, ?, ?, ?, ?)",
                    chunk_rows,
                )

        await self._run(write, f"storing document {document.id}")
        logger.info(
            f"Stored document {document.id} with {len(chunk_rows)} chunks",
            extra={"document_id": document.id, "chunk_count": len(chunk_rows)},
        )

    async def remove_document(self, document_id: str) -> None:
        def delete(connection: sqlite3.Connection) -> int:
            with connection:
                deleted = connection.execute(
                    "DELETE FROM chunks WHERE document_id = ?", (document_id,)
                ).rowcount
                connection.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            return deleted

        deleted = await self._run(delete, f"removing document {document_id}")
        logger.info(
            f"Deleted document {document_id} and {deleted} chunks",
            extra={"document_id": document_id, "chunk_count": deleted},
        )

    async def search(
        self, query_embedding: List[float], top_k: int = 5, threshold: float = 0.1
    ) -> List[SearchResult]:
        def scan(connection: sqlite3.Connection) -> List[SearchResult]:
            results = []
            documents: Dict[str, Optional[Document]] = {}
            rows = connection.execute(
                "SELECT embedding, data FROM chunks WHERE embedding IS NOT NULL"
            ).fetchall()

            for row in rows:
                embedding = json.loads(row["embedding"])
                if not embedding:
                    continue
                similarity = cosine_similarity(query_embedding, embedding)
                if similarity < threshold:
                    continue

                chunk = self._chunk_row(row)
                if chunk.document_id not in documents:
                    documents[chunk.document_id] = self._load_document(connection, chunk.document_id)
                document = documents[chunk.document_id]
                if document is None:
                    continue

                results.append(SearchResult(chunk=chunk, similarity=similarity, document=document))
            return results

        results = await self._run(scan, "searching chunks")
        return rank_results(results, top_k)

    async def get_document(self, document_id: str) -> Optional[Document]:
        return await self._run(
            lambda connection: self._load_document(connection, document_id),
            f"loading document {document_id}",
        )

    async def get_all_documents(self) -> List[Document]:
        def load_all(connection: sqlite3.Connection) -> List[Document]:
            ids = [
                row["id"]
                for row in connection.execute("SELECT id FROM documents ORDER BY created_at, id")
            ]
            documents = [self._load_document(connection, document_id) for document_id in ids]
            return [document for document in documents if document is not None]

        return await self._run(load_all, "loading documents")

    async def clear(self) -> None:
        def wipe(connection: sqlite3.Connection) -> None:
            with connection:
                connection.execute("DELETE FROM chunks")
                connection.execute("DELETE FROM documents")

        await self._run(wipe, "clearing the store")
        logger.info("Cleared all documents from SQLite vector store")

    async def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_vector_store(kind: str = "sqlite", db_path: Optional[str] = None) -> VectorStore:
    """
    Create a vector store.

    Args:
        kind: "sqlite" (durable) or "memory" (volatile)
        db_path: Database path for the SQLite backend

    Returns:
        A vector store instance
    """
    if kind == "memory":
        return MemoryVectorStore()
    if kind == "sqlite":
        return SQLiteVectorStore(db_path) if db_path else SQLiteVectorStore()
    raise ValueError(f"Unknown vector store backend: {kind}")
