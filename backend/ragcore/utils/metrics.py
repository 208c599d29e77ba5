"""Prometheus metrics for ingestion and search."""
from prometheus_client import Counter

DOCUMENTS_INGESTED = Counter(
    "ragcore_documents_ingested_total",
    "Documents added to the retrieval store",
    ["status"],
)
CHUNKS_CREATED = Counter(
    "ragcore_chunks_created_total",
    "Chunks created from ingested documents",
)
SEARCHES = Counter(
    "ragcore_searches_total",
    "Search requests handled",
    ["mode"],
)
SEARCH_RESULTS = Counter(
    "ragcore_search_results_total",
    "Search results returned, by the path that produced them",
    ["source"],
)
