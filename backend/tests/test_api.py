"""Tests for API endpoints."""
import math
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from ragcore.config import FeatureFlags, RAGSettings, Settings
from ragcore.exceptions import StorageError
from ragcore.main import app
from ragcore.services.embedding_service import TFIDFEmbeddingProvider
from ragcore.services.retrieval_service import RAGService
from ragcore.services.vector_store import MemoryVectorStore

APPLES = b"Credits: Jane Doe\nThis is a test about apples. Apples are fruit."


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def service():
    """RAG service wired like the app, marked ready without the lifespan."""
    rag_service = RAGService(
        embedding_provider=TFIDFEmbeddingProvider(dimensions=128),
        vector_store=MemoryVectorStore(),
        settings=RAGSettings(),
        features=FeatureFlags(),
    )
    rag_service._initialized = True
    return rag_service


@pytest.fixture
def mock_services(service, temp_dir):
    """Patch the app globals with test instances."""
    with patch("ragcore.main.rag_service", service), \
         patch("ragcore.main.settings", Settings(upload_dir=temp_dir)):
        yield service


def upload(client, name="apples.txt", content=APPLES, content_type="text/plain"):
    return client.post("/api/documents", files={"file": (name, content, content_type)})


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    def test_health_check(self, client):
        """Test health check endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"

    def test_health_reports_readiness(self, client, mock_services):
        assert client.get("/health").json()["rag_ready"] is True


class TestLifespan:
    """Tests for application startup and shutdown."""

    @pytest.fixture
    def app_env(self, monkeypatch, temp_dir):
        """In-memory backend, with the app globals restored afterwards."""
        monkeypatch.setenv("VECTOR_STORE_BACKEND", "memory")
        monkeypatch.setenv("EMBEDDING_PROVIDER", "tfidf")
        monkeypatch.setenv("UPLOAD_DIR", temp_dir)
        monkeypatch.setattr("ragcore.main.rag_service", None)
        monkeypatch.setattr("ragcore.main.settings", None)
        return monkeypatch

    def test_startup_ready(self, app_env):
        with TestClient(app) as client:
            assert client.get("/health").json()["rag_ready"] is True
            assert client.get("/api/documents").json()["total"] == 0

    def test_startup_with_client_side_rag_disabled(self, app_env):
        """The app still starts and can be enabled through the features endpoint."""
        app_env.setenv("FEATURE_CLIENT_SIDE_RAG", "false")

        with TestClient(app) as client:
            health = client.get("/health")
            assert health.status_code == 200
            assert health.json()["rag_ready"] is False
            assert client.get("/api/documents").status_code == 503

            response = client.put("/api/features", json={"flags": {"client_side_rag": True}})
            assert response.status_code == 200
            assert response.json()["client_side_rag"] is True

            assert client.get("/health").json()["rag_ready"] is True
            assert upload(client).status_code == 200


class TestMetricsEndpoint:
    """Tests for metrics endpoint."""

    def test_metrics_endpoint(self, client):
        """Test metrics endpoint."""
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]

    def test_metrics_count_ingestion(self, client, mock_services):
        upload(client)
        body = client.get("/metrics").text
        assert "ragcore_documents_ingested_total" in body
        assert "ragcore_chunks_created_total" in body


class TestDocumentEndpoints:
    """Tests for document upload and management."""

    def test_service_not_initialized(self, client):
        with patch("ragcore.main.rag_service", None):
            response = client.get("/api/documents")
        assert response.status_code == 503

    def test_service_not_ready(self, client, mock_services):
        """Disabling client-side RAG makes every operation unavailable."""
        mock_services.features.disable("client_side_rag")
        assert upload(client).status_code == 503
        assert client.get("/api/documents").status_code == 503

    def test_upload(self, client, mock_services):
        """Test successful text upload."""
        response = upload(client)
        assert response.status_code == 200

        data = response.json()
        assert data["file_name"] == "apples.txt"
        assert data["total_chunks"] == 1
        assert data["total_tokens"] == math.ceil(len(APPLES) / 4)
        assert data["processing_status"] == "completed"
        assert data["embedding_status"] == "completed"

    def test_upload_invalid_file_type(self, client, mock_services):
        """Test uploading an unsupported file."""
        response = upload(client, name="photo.png", content=b"\x89PNG", content_type="image/png")
        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["detail"]

    def test_upload_empty_document(self, client, mock_services):
        response = upload(client, name="blank.txt", content=b"   \n\n  ")
        assert response.status_code == 400

    def test_upload_errors_name_uploaded_file(self, client, mock_services):
        """Errors name the uploaded file, not the temporary copy."""
        response = upload(client, name="quarterly_report.txt", content=b"")
        assert response.status_code == 400
        assert "quarterly_report.txt" in response.json()["detail"]

    def test_upload_too_large_names_uploaded_file(self, client, mock_services):
        mock_services.max_file_size_mb = 0.00001
        response = upload(client, name="quarterly_report.txt")
        assert response.status_code == 400
        assert "quarterly_report.txt" in response.json()["detail"]

    def test_upload_embedding_failure(self, client, mock_services):
        with patch.object(
            mock_services.embedding_provider, "generate_embedding", side_effect=RuntimeError("model crashed")
        ):
            response = upload(client)

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["document_id"]
        assert client.get(f"/api/documents/{detail['document_id']}").status_code == 200

    def test_upload_storage_failure(self, client, mock_services):
        mock_services.vector_store.add_document = AsyncMock(side_effect=StorageError("disk full"))
        response = upload(client)
        assert response.status_code == 500

    def test_list_get_delete(self, client, mock_services):
        document_id = upload(client).json()["document_id"]

        listing = client.get("/api/documents").json()
        assert listing["total"] == 1
        assert listing["documents"][0]["id"] == document_id
        assert listing["documents"][0]["chunks"] is None

        detail = client.get(f"/api/documents/{document_id}").json()
        assert detail["file_name"] == "apples.txt"
        assert len(detail["chunks"]) == 1
        assert detail["chunks"][0]["has_embedding"] is True

        response = client.delete(f"/api/documents/{document_id}")
        assert response.status_code == 200
        assert client.get(f"/api/documents/{document_id}").status_code == 404

    def test_missing_document(self, client, mock_services):
        assert client.get("/api/documents/missing").status_code == 404
        assert client.delete("/api/documents/missing").status_code == 404


class TestSearchEndpoint:
    """Tests for search endpoint."""

    def test_search_missing_fields(self, client):
        """Test search endpoint with missing fields."""
        response = client.post("/api/search", json={})
        assert response.status_code == 422

    def test_search_blank_query(self, client, mock_services):
        response = client.post("/api/search", json={"query": " \x00 "})
        assert response.status_code == 422

    def test_search(self, client, mock_services):
        upload(client)

        response = client.post("/api/search", json={"query": "apples", "top_k": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "apples"
        assert 1 <= len(data["results"]) <= 2
        assert data["results"][0]["file_name"] == "apples.txt"
        assert "apples" in data["context_used"].lower()
        assert data["tokens_used"] > 0

    def test_search_vector_search_disabled(self, client, mock_services):
        upload(client)
        client.put("/api/features", json={"flags": {"vector_search": False}})

        data = client.post("/api/search", json={"query": "apples"}).json()

        assert data == {"query": "apples", "results": [], "context_used": "", "tokens_used": 0}

    def test_search_not_ready(self, client, mock_services):
        mock_services._initialized = False
        assert client.post("/api/search", json={"query": "apples"}).status_code == 503

    def test_search_uses_default_top_k(self, client, mock_services):
        mock_services.search = AsyncMock(wraps=mock_services.search)
        client.post("/api/search", json={"query": "apples"})
        mock_services.search.assert_awaited_once_with("apples", top_k=Settings().default_top_k)


class TestSettingsEndpoints:
    """Tests for settings and feature flag endpoints."""

    def test_get_settings(self, client, mock_services):
        data = client.get("/api/settings").json()
        assert data == {"chunk_size": 300, "overlap_size": 20, "search_accuracy": 50.0}

    def test_update_settings_clamped(self, client, mock_services):
        response = client.put("/api/settings", json={"chunk_size": 5000, "search_accuracy": 75})
        assert response.status_code == 200
        assert response.json()["chunk_size"] == 1000
        assert response.json()["search_accuracy"] == 75.0
        assert mock_services.settings.chunk_size == 1000

    def test_features(self, client, mock_services):
        response = client.put("/api/features", json={"flags": {"document_embeddings": False}})
        assert response.status_code == 200
        assert response.json()["document_embeddings"] is False
        assert client.get("/api/features").json()["document_embeddings"] is False

    def test_unknown_feature(self, client, mock_services):
        response = client.put("/api/features", json={"flags": {"teleport": True}})
        assert response.status_code == 400

