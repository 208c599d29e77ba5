"""Application settings, RAG tuning settings and feature flags."""
import os
from typing import Dict

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = os.path.join(os.path.dirname(__file__), "..", "..", ".env")

CHUNK_SIZE_RANGE = (50, 1000)
OVERLAP_SIZE_RANGE = (0, 200)
SEARCH_ACCURACY_RANGE = (0, 100)


def _clamp(value: float, bounds) -> float:
    low, high = bounds
    return max(low, min(high, value))


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    vector_store_backend: str = "sqlite"  # "sqlite" (durable) or "memory"
    sqlite_db_path: str = "./ragcore_db/vector_store.sqlite3"

    # Embeddings
    embedding_provider: str = "tfidf"  # "tfidf" or "model"
    embedding_dimensions: int = 512
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Retrieval
    max_context_tokens: int = 500
    default_top_k: int = 3

    # Upload limits
    max_file_size_mb: int = 50
    upload_dir: str = "./uploads"

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"


class RAGSettings(BaseSettings):
    """Chunking and search tuning, clamped on every write."""

    model_config = SettingsConfigDict(
        env_prefix="RAG_",
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    chunk_size: int = 300
    overlap_size: int = 20
    search_accuracy: float = 50

    @field_validator("chunk_size")
    @classmethod
    def clamp_chunk_size(cls, v: int) -> int:
        return int(_clamp(v, CHUNK_SIZE_RANGE))

    @field_validator("overlap_size")
    @classmethod
    def clamp_overlap_size(cls, v: int) -> int:
        return int(_clamp(v, OVERLAP_SIZE_RANGE))

    @field_validator("search_accuracy")
    @classmethod
    def clamp_search_accuracy(cls, v: float) -> float:
        return float(_clamp(v, SEARCH_ACCURACY_RANGE))

    def similarity_threshold(self) -> float:
        """Map search accuracy (0-100) onto a cosine threshold in [0.1, 0.9]."""
        return 0.1 + (self.search_accuracy / 100) * 0.8

    def keyword_min_score(self) -> float:
        """Minimum normalized keyword score for the current accuracy."""
        return (self.search_accuracy / 100) * 0.5


class FeatureFlags(BaseSettings):
    """Boolean switches gating RAG behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="FEATURE_",
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    drag_drop_upload: bool = True
    client_side_rag: bool = True
    document_embeddings: bool = True
    vector_search: bool = True
    rag_context_display: bool = True

    def _check(self, feature: str) -> None:
        if feature not in type(self).model_fields:
            raise KeyError(f"Unknown feature flag: {feature}")

    def is_enabled(self, feature: str) -> bool:
        self._check(feature)
        return bool(getattr(self, feature))

    def enable(self, feature: str) -> None:
        self._check(feature)
        setattr(self, feature, True)

    def disable(self, feature: str) -> None:
        self._check(feature)
        setattr(self, feature, False)

    def toggle(self, feature: str) -> bool:
        """Flip a feature and return its new state."""
        self._check(feature)
        setattr(self, feature, not getattr(self, feature))
        return getattr(self, feature)

    def get_all(self) -> Dict[str, bool]:
        return self.model_dump()

    def set_all(self, flags: Dict[str, bool]) -> None:
        """Apply several flags at once; nothing changes if any name is unknown."""
        for feature in flags:
            self._check(feature)
        for feature, value in flags.items():
            setattr(self, feature, bool(value))
