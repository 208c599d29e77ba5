"""Embedding provider backed by a Sentence Transformers model."""
import math
import os
import threading
from typing import Callable, List, Optional

import torch
from sentence_transformers import SentenceTransformer

from ragcore.exceptions import EmbeddingError
from ragcore.utils.logger import logger

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"

# Narrow capability the retrieval core depends on: text in, vector out
TextEmbedder = Callable[[str], List[float]]


def configure_cpu_cores(cpu_cores: int = 0) -> int:
    """
    Configure the number of CPU cores for PyTorch.

    Args:
        cpu_cores: Number of CPU cores to use (0 = use all available)

    Returns:
        Actual number of cores configured
    """
    available_cores = os.cpu_count() or 1
    cores_to_use = cpu_cores if cpu_cores > 0 else available_cores
    torch.set_num_threads(cores_to_use)
    logger.info(f"CPU configuration: using {cores_to_use} cores (available: {available_cores})")
    return cores_to_use


def _normalize(vector: List[float]) -> List[float]:
    magnitude = math.sqrt(sum(value * value for value in vector))
    if magnitude == 0:
        return vector
    return [value / magnitude for value in vector]


class SentenceTransformerEmbeddingProvider:
    """Embedding provider that delegates to a pretrained sentence-transformers model."""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        cpu_cores: int = 0,
        embedder: Optional[TextEmbedder] = None,
    ):
        """
        Initialize the provider (model loaded lazily on first use).

        Args:
            model_name: Name or local path of the sentence transformer model
            cpu_cores: Number of CPU cores to use (0 = use all available)
            embedder: Optional ready-made embedding callable, used instead of the model
        """
        self._model_name = model_name
        self._cpu_cores = cpu_cores
        self._embedder = embedder
        self._model: Optional[SentenceTransformer] = None
        self._dimensions: Optional[int] = None
        self._lock = threading.Lock()

    def _load_model(self) -> SentenceTransformer:
        """Load the model (thread-safe lazy loading)."""
        if self._model is None:
            with self._lock:
                if self._model is None:
                    logger.info(f"Loading embedding model {self._model_name} (lazy initialization)...")
                    configure_cpu_cores(self._cpu_cores)
                    model = SentenceTransformer(self._model_name, device="cpu")
                    self._dimensions = model.get_sentence_embedding_dimension()
                    self._model = model
                    logger.info(f"Embedding model ready with {self._dimensions} dimensions")
        return self._model

    def load(self) -> None:
        """Load the model eagerly so ``is_ready`` reports true."""
        if self._embedder is None:
            self._load_model()

    def _embed(self, text: str) -> List[float]:
        if self._embedder is not None:
            return list(self._embedder(text))
        model = self._load_model()
        return model.encode(text, show_progress_bar=False, convert_to_numpy=True).tolist()

    def generate_embedding(self, text: str) -> List[float]:
        """
        Generate a normalized embedding for a single text.

        Raises:
            EmbeddingError: If the model fails to encode the text
        """
        try:
            vector = self._embed(text or "")
        except Exception as e:
            logger.error(f"Error generating embedding: {str(e)}", exc_info=True)
            raise EmbeddingError(f"Failed to generate embedding: {str(e)}") from e

        if self._dimensions is None:
            self._dimensions = len(vector)
        return _normalize([float(value) for value in vector])

    def get_dimensions(self) -> int:
        if self._dimensions is None:
            if self._embedder is not None:
                self._dimensions = len(self._embedder(""))
            else:
                self._load_model()
        return self._dimensions

    def is_ready(self) -> bool:
        return self._embedder is not None or self._model is not None
