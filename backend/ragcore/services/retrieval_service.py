"""Retrieval service orchestrating ingestion and hybrid search."""
import asyncio
import base64
import math
import mimetypes
import re
from pathlib import Path
from typing import List, Optional

from ragcore.config import FeatureFlags, RAGSettings
from ragcore.exceptions import DocumentEmptyError, EmbeddingError, ServiceNotReadyError
from ragcore.models.document import (
    Document,
    DocumentMetadata,
    ProcessingStatus,
    RAGQueryResult,
    SearchResult,
    new_id,
)
from ragcore.services.chunker import DocumentChunker
from ragcore.services.document_processor import DocumentProcessor
from ragcore.services.embedding_service import EmbeddingProvider, SupportsVocabulary
from ragcore.services.vector_store import VectorStore
from ragcore.utils import metrics
from ragcore.utils.logger import logger
from ragcore.utils.token_count import estimate_token_count, format_token_count
from ragcore.validators import validate_document

DEFAULT_MAX_CONTEXT_TOKENS = 500
DEFAULT_MAX_FILE_SIZE_MB = 50

# Keep the original bytes for formats whose text cannot be rebuilt from content
BINARY_FILE_TYPES = {"pdf", "docx"}

EXACT_MATCH_BONUS = 10.0
WHOLE_WORD_WEIGHT = 2.0
PARTIAL_MATCH_WEIGHT = 0.5
ALL_WORDS_BOOST = 1.5

_WORD_EDGE_PUNCTUATION = re.compile(r"^[^\w]+|[^\w]+$")


def keyword_similarity(score: float) -> float:
    """Map a normalized keyword score onto [0, 1) so it ranks alongside cosine scores."""
    return score / (1 + score) if score > 0 else 0.0


class RAGService:
    """Ingests documents and answers searches over the stored chunks."""

    def __init__(
        self,
        embedding_provider: Optional[EmbeddingProvider] = None,
        vector_store: Optional[VectorStore] = None,
        settings: Optional[RAGSettings] = None,
        features: Optional[FeatureFlags] = None,
        document_processor: Optional[DocumentProcessor] = None,
        max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
        max_file_size_mb: float = DEFAULT_MAX_FILE_SIZE_MB,
    ):
        """
        Initialize the service. Call ``initialize`` before use.

        Args:
            embedding_provider: Provider used for chunk and query vectors
            vector_store: Store holding documents and chunk vectors
            settings: Chunking and search tuning
            features: Feature flags gating the service
            document_processor: Extraction collaborator
            max_context_tokens: Token budget for the context built by ``search``
            max_file_size_mb: Upload size limit in MB
        """
        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.settings = settings or RAGSettings()
        self.features = features or FeatureFlags()
        self.document_processor = document_processor or DocumentProcessor()
        self.max_context_tokens = max_context_tokens
        self.max_file_size_mb = max_file_size_mb
        self._initialized = False

    async def initialize(
        self,
        embedding_provider: Optional[EmbeddingProvider] = None,
        vector_store: Optional[VectorStore] = None,
    ) -> None:
        """
        Attach the provider and store and wait for the store to be ready.

        The collaborators are attached even when client-side RAG is disabled,
        so calling ``initialize()`` again after enabling the flag is enough.

        Raises:
            ServiceNotReadyError: If client-side RAG is disabled or no store is set
        """
        if embedding_provider is not None:
            self.embedding_provider = embedding_provider
        if vector_store is not None:
            self.vector_store = vector_store

        if not self.features.is_enabled("client_side_rag"):
            raise ServiceNotReadyError("Client-side RAG is not enabled")
        if self.vector_store is None:
            raise ServiceNotReadyError("No vector store configured")

        await self.vector_store.wait_for_ready()
        self._initialized = True
        logger.info("RAG service initialized")

    def is_ready(self) -> bool:
        return (
            self._initialized
            and self.features.is_enabled("client_side_rag")
            and self.embedding_provider is not None
            and self.embedding_provider.is_ready()
            and self.vector_store is not None
        )

    def _ensure_ready(self) -> None:
        if not self.is_ready():
            raise ServiceNotReadyError("RAG service is not ready")

    async def add_document(self, file_path: str, file_name: Optional[str] = None) -> str:
        """
        Validate, extract, chunk, embed and store a document.

        Args:
            file_path: Path of the file on disk
            file_name: Name to record for the document (defaults to the path's name)

        Returns:
            The new document id

        Raises:
            ServiceNotReadyError: If the service is not ready
            ValidationError: If the file is unsupported, too large or yields no chunks
            ExtractionError: If text extraction fails
            EmbeddingError: If embedding fails (the document is still stored)
            StorageError: If the store rejects the write
        """
        self._ensure_ready()
        file_name = file_name or Path(file_path).name

        try:
            info = validate_document(file_path, self.max_file_size_mb, file_name=file_name)
            extracted = await asyncio.to_thread(self.document_processor.extract, file_path, file_name)

            document_id = new_id()
            chunker = DocumentChunker(
                chunk_size=self.settings.chunk_size,
                overlap_size=self.settings.overlap_size,
            )
            chunks = chunker.chunk_document(extracted, document_id, file_name)
            if not chunks:
                raise DocumentEmptyError(
                    f"Document processing failed: No chunks created for {file_name}. "
                    "The document may be empty or in an unsupported format."
                )
        except Exception as e:
            metrics.DOCUMENTS_INGESTED.labels(status="rejected").inc()
            logger.error(f"Document ingestion failed for {file_name}: {str(e)}", exc_info=True)
            raise

        document = Document(
            id=document_id,
            file_name=file_name,
            content=extracted.text,
            chunks=chunks,
            metadata=DocumentMetadata(
                file_size=info["file_size"],
                file_type=mimetypes.guess_type(file_name)[0] or "application/octet-stream",
                document_type=extracted.document_type,
                processing_status=ProcessingStatus.COMPLETED,
                total_chunks=len(chunks),
                total_tokens=estimate_token_count(extracted.text),
                avg_chunk_size=round(sum(len(chunk.content) for chunk in chunks) / len(chunks)),
                title=extracted.title,
                author=extracted.author,
                page_count=extracted.page_count,
            ),
        )
        if info["file_type"] in BINARY_FILE_TYPES:
            document.original_file_data = base64.b64encode(Path(file_path).read_bytes()).decode("ascii")

        if isinstance(self.embedding_provider, SupportsVocabulary):
            self.embedding_provider.update_vocabulary(document.content)

        embedding_error: Optional[Exception] = None
        if self.features.is_enabled("document_embeddings"):
            document.metadata.embedding_status = ProcessingStatus.PROCESSING
            try:
                self._generate_embeddings(document)
                document.metadata.embedding_status = ProcessingStatus.COMPLETED
            except Exception as e:
                document.metadata.embedding_status = ProcessingStatus.ERROR
                for chunk in document.chunks:
                    chunk.embedding = None
                embedding_error = e
                logger.error(
                    f"Embedding generation failed for {file_name}: {str(e)}",
                    exc_info=True,
                    extra={"document_id": document.id, "embedding_status": "error"},
                )

        document.touch()
        await self.vector_store.add_document(document)

        metrics.CHUNKS_CREATED.inc(len(chunks))
        if embedding_error is not None:
            metrics.DOCUMENTS_INGESTED.labels(status="embedding_error").inc()
            raise EmbeddingError(
                f"Failed to embed document {document.id} ({file_name}): {str(embedding_error)}",
                document_id=document.id,
            ) from embedding_error

        metrics.DOCUMENTS_INGESTED.labels(status="completed").inc()
        logger.info(
            f"Document added: {file_name} ({format_token_count(document.metadata.total_tokens)})",
            extra={
                "document_id": document.id,
                "file_name": file_name,
                "chunk_count": len(chunks),
                "total_tokens": document.metadata.total_tokens,
                "processing_status": document.metadata.processing_status.value,
                "embedding_status": document.metadata.embedding_status.value,
            },
        )
        return document.id

    def _generate_embeddings(self, document: Document) -> None:
        for chunk in document.chunks:
            chunk.embedding = self.embedding_provider.generate_embedding(chunk.content)

    async def remove_document(self, document_id: str) -> None:
        """Remove a document and all of its chunks."""
        self._ensure_ready()
        await self.vector_store.remove_document(document_id)

    async def get_documents(self) -> List[Document]:
        """Return every stored document with its chunks."""
        self._ensure_ready()
        return await self.vector_store.get_all_documents()

    async def get_document(self, document_id: str) -> Optional[Document]:
        """Return one stored document, or None."""
        self._ensure_ready()
        return await self.vector_store.get_document(document_id)

    async def search(self, query: str, top_k: int = 3) -> RAGQueryResult:
        """
        Hybrid semantic and keyword search.

        Both paths fetch ``top_k * 2`` candidates. Semantic results are kept,
        keyword results for unseen chunks are appended, the union is ranked
        and cut to ``top_k`` and then trimmed to the context token budget.

        Args:
            query: Search text
            top_k: Maximum number of results

        Returns:
            RAGQueryResult with the included results and their joined context
        """
        self._ensure_ready()

        if not self.features.is_enabled("vector_search"):
            metrics.SEARCHES.labels(mode="disabled").inc()
            return RAGQueryResult(query=query)

        threshold = self.settings.similarity_threshold()
        query_embedding = self.embedding_provider.generate_embedding(query)
        semantic_results = await self.vector_store.search(
            query_embedding, top_k=top_k * 2, threshold=threshold
        )
        keyword_results = await self._keyword_search(query, top_k * 2)

        combined = list(semantic_results)
        seen = {result.chunk.id for result in semantic_results}
        keyword_added = 0
        for result in keyword_results:
            if result.chunk.id not in seen:
                combined.append(result)
                seen.add(result.chunk.id)
                keyword_added += 1

        combined.sort(key=lambda result: result.similarity, reverse=True)
        ranked = combined[:max(top_k, 0)]

        context_parts = []
        tokens_used = 0
        for result in ranked:
            chunk_tokens = estimate_token_count(result.chunk.content)
            if tokens_used + chunk_tokens > self.max_context_tokens:
                break
            context_parts.append(result.chunk.content)
            tokens_used += chunk_tokens

        included = ranked[:len(context_parts)]

        metrics.SEARCHES.labels(mode="hybrid").inc()
        semantic_ids = {result.chunk.id for result in semantic_results}
        for result in included:
            source = "semantic" if result.chunk.id in semantic_ids else "keyword"
            metrics.SEARCH_RESULTS.labels(source=source).inc()

        logger.info(
            f"Search returned {len(included)} results",
            extra={
                "threshold": threshold,
                "semantic_results": len(semantic_results),
                "keyword_results": keyword_added,
                "similarity_scores": [round(result.similarity, 4) for result in included],
                "tokens_used": tokens_used,
            },
        )

        return RAGQueryResult(
            query=query,
            results=included,
            context_used="\n\n".join(context_parts),
            tokens_used=tokens_used,
        )

    async def _keyword_search(self, query: str, top_k: int) -> List[SearchResult]:
        """
        Score every stored chunk by literal query matches.

        Exact phrase matches score highest, whole-word matches count more
        than substring matches and chunks matching every query word are
        boosted. Scores are normalized by the log of the chunk length.
        """
        full_query = query.lower().strip()
        query_words = []
        for word in full_query.split():
            word = _WORD_EDGE_PUNCTUATION.sub("", word)
            if len(word) > 1:
                query_words.append(word)

        min_score = self.settings.keyword_min_score()
        patterns = [
            (re.compile(rf"\b{re.escape(word)}\b"), re.compile(re.escape(word)))
            for word in query_words
        ]

        results = []
        for document in await self.vector_store.get_all_documents():
            for chunk in document.chunks:
                chunk_text = chunk.content.lower()
                score = 0.0
                matched_words = 0
                exact_match = bool(full_query) and full_query in chunk_text
                if exact_match:
                    score += EXACT_MATCH_BONUS

                for whole_word, partial in patterns:
                    partial_matches = len(partial.findall(chunk_text))
                    if not partial_matches:
                        continue
                    matched_words += 1
                    whole_matches = len(whole_word.findall(chunk_text))
                    score += whole_matches * WHOLE_WORD_WEIGHT
                    if partial_matches > whole_matches:
                        score += (partial_matches - whole_matches) * PARTIAL_MATCH_WEIGHT

                if not matched_words and not exact_match:
                    continue
                if matched_words == len(query_words):
                    score *= ALL_WORDS_BOOST

                normalized = score / math.log(len(chunk.content) + 10)
                if normalized < min_score:
                    continue

                results.append(
                    SearchResult(
                        chunk=chunk,
                        similarity=keyword_similarity(normalized),
                        document=document,
                    )
                )

        results.sort(key=lambda result: result.similarity, reverse=True)
        return results[:max(top_k, 0)]
