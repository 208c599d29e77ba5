"""Embedding providers: incremental TF-IDF vectors and cosine similarity."""
import math
import re
from collections import Counter
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from ragcore.exceptions import DimensionMismatchError
from ragcore.utils.logger import logger

DEFAULT_DIMENSIONS = 512

# Seeded at construction so the most frequent words always own the first columns
COMMON_WORDS = [
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "being", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "can", "must", "shall", "this", "that", "these", "those",
    "it", "he", "she", "we", "you", "they", "what", "where", "when", "why",
    "how", "which", "who", "whom",
]

_CAPITALIZED_WORD = re.compile(r"\b[A-Z][a-z]+\b")
_NON_WORD = re.compile(r"[^\w\s]")


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector."""

    def generate_embedding(self, text: str) -> List[float]:
        ...

    def get_dimensions(self) -> int:
        ...

    def is_ready(self) -> bool:
        ...


@runtime_checkable
class SupportsVocabulary(Protocol):
    """Providers whose weighting learns from every ingested document."""

    def update_vocabulary(self, text: str) -> None:
        ...


class TFIDFEmbeddingProvider:
    """
    Embedding provider using an incrementally built TF-IDF vocabulary.

    Each vocabulary term owns one column of the output vector. Columns are
    assigned first-come-first-served until the vocabulary holds ``dimensions``
    terms; after that unseen terms are dropped from vectors.
    """

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS):
        """
        Initialize the provider and seed the vocabulary.

        Args:
            dimensions: Length of every generated vector
        """
        self._dimensions = dimensions
        self._vocabulary: Dict[str, int] = {}
        self._document_frequency: Dict[str, int] = {}
        self._initialized = False
        self._initialize_vocabulary()
        # Start with one document so the IDF term never divides by zero
        self._total_documents = 1
        logger.info(f"TFIDFEmbeddingProvider initialized with {dimensions} dimensions")

    def _initialize_vocabulary(self) -> None:
        for word in COMMON_WORDS:
            if len(self._vocabulary) >= self._dimensions:
                break
            self._vocabulary[word] = len(self._vocabulary)
            self._document_frequency[word] = 1
        self._initialized = True

    @property
    def vocabulary_size(self) -> int:
        return len(self._vocabulary)

    @property
    def total_documents(self) -> int:
        return self._total_documents

    def vocabulary_index(self, term: str) -> Optional[int]:
        """Column assigned to a term, or None if the term is unknown."""
        return self._vocabulary.get(term)

    def document_frequency(self, term: str) -> int:
        return self._document_frequency.get(term, 0)

    def get_dimensions(self) -> int:
        return self._dimensions

    def is_ready(self) -> bool:
        return self._initialized

    def tokenize(self, text: str) -> List[str]:
        """
        Split text into lower-cased word tokens.

        Capitalized words found in the original text are appended if lower-casing
        lost them, so names keep their own vocabulary entries.

        Args:
            text: Raw text

        Returns:
            List of tokens in order of appearance
        """
        capitalized_words = _CAPITALIZED_WORD.findall(text)

        tokens = [token for token in _NON_WORD.sub(" ", text.lower()).split() if token]

        seen = set(tokens)
        for word in capitalized_words:
            lower_word = word.lower()
            if lower_word not in seen:
                tokens.append(lower_word)
                seen.add(lower_word)

        return tokens

    @staticmethod
    def _term_frequency(tokens: List[str]) -> Dict[str, float]:
        total = len(tokens)
        if total == 0:
            return {}
        return {term: count / total for term, count in Counter(tokens).items()}

    def _add_term(self, term: str) -> bool:
        """Assign the next free column to a term. Returns False once the vocabulary is full."""
        if term in self._vocabulary:
            return True
        if len(self._vocabulary) >= self._dimensions:
            return False
        self._vocabulary[term] = len(self._vocabulary)
        return True

    def generate_embedding(self, text: str) -> List[float]:
        """
        Generate a normalized TF-IDF vector for a text.

        Args:
            text: Text to embed

        Returns:
            Vector of length ``dimensions``; all zeros if no term maps to a column
        """
        tokens = self.tokenize(text or "")
        term_frequency = self._term_frequency(tokens)
        embedding = [0.0] * self._dimensions

        for token in tokens:
            if token not in self._vocabulary and self._add_term(token):
                self._document_frequency[token] = 1

        for term, tf in term_frequency.items():
            index = self._vocabulary.get(term)
            if index is None or index >= self._dimensions:
                continue
            df = self._document_frequency.get(term, 1)
            idf = math.log((self._total_documents + 1) / (df + 1)) + 1
            embedding[index] = tf * idf

        magnitude = math.sqrt(sum(value * value for value in embedding))
        if magnitude > 0:
            embedding = [value / magnitude for value in embedding]

        return embedding

    def update_vocabulary(self, text: str) -> None:
        """
        Record one new document in the document-frequency statistics.

        Args:
            text: Full text of the ingested document
        """
        unique_terms = set(self.tokenize(text or ""))
        self._total_documents += 1

        for term in unique_terms:
            self._add_term(term)
            self._document_frequency[term] = self._document_frequency.get(term, 0) + 1

        logger.debug(
            f"Vocabulary updated: {len(unique_terms)} unique terms, "
            f"{len(self._vocabulary)}/{self._dimensions} columns used, "
            f"{self._total_documents} documents"
        )


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Vectors must have the same length (got {len(a)} and {len(b)})"
        )

    dot_product = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot_product += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot_product / (math.sqrt(norm_a) * math.sqrt(norm_b))


def create_embedding_provider(
    kind: str = "tfidf",
    dimensions: int = DEFAULT_DIMENSIONS,
    model_name: Optional[str] = None,
) -> EmbeddingProvider:
    """
    Create an embedding provider.

    Args:
        kind: "tfidf" for the built-in provider, "model" for sentence-transformers
        dimensions: Vector length for the TF-IDF provider
        model_name: Model name or path for the sentence-transformers provider

    Returns:
        An embedding provider instance
    """
    if kind == "tfidf":
        return TFIDFEmbeddingProvider(dimensions=dimensions)
    if kind == "model":
        # Imported lazily so the TF-IDF path never loads torch
        from ragcore.services.model_embedding import (
            DEFAULT_MODEL_NAME,
            SentenceTransformerEmbeddingProvider,
        )

        return SentenceTransformerEmbeddingProvider(model_name=model_name or DEFAULT_MODEL_NAME)
    raise ValueError(f"Unknown embedding provider: {kind}")
