"""Local document ingestion and hybrid retrieval."""

__version__ = "1.0.0"
