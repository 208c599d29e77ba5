"""FastAPI application entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from ragcore.api.routes import documents, search
from ragcore.api.routes import settings as settings_routes
from ragcore.config import FeatureFlags, RAGSettings, Settings
from ragcore.exceptions import ServiceNotReadyError
from ragcore.services.document_processor import DocumentProcessor
from ragcore.services.embedding_service import create_embedding_provider
from ragcore.services.retrieval_service import RAGService
from ragcore.services.vector_store import create_vector_store
from ragcore.utils.logger import logger

# Global services (initialized in lifespan)
settings: Settings = None
rag_service: RAGService = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global settings, rag_service

    # Startup
    logger.info("Starting document retrieval service")
    settings = Settings()

    embedding_provider = create_embedding_provider(
        kind=settings.embedding_provider,
        dimensions=settings.embedding_dimensions,
        model_name=settings.embedding_model,
    )
    if hasattr(embedding_provider, "load"):
        embedding_provider.load()

    vector_store = create_vector_store(settings.vector_store_backend, settings.sqlite_db_path)

    rag_service = RAGService(
        settings=RAGSettings(),
        features=FeatureFlags(),
        document_processor=DocumentProcessor(),
        max_context_tokens=settings.max_context_tokens,
        max_file_size_mb=settings.max_file_size_mb,
    )
    try:
        await rag_service.initialize(embedding_provider, vector_store)
        logger.info(
            f"Services initialized (embeddings: {settings.embedding_provider}, "
            f"store: {settings.vector_store_backend})"
        )
    except ServiceNotReadyError as e:
        logger.warning(f"RAG service started but not ready: {str(e)}")

    yield

    # Shutdown
    logger.info("Shutting down document retrieval service")
    await vector_store.close()


app = FastAPI(
    title="Document Retrieval Core",
    description="Local document ingestion and hybrid semantic/keyword retrieval",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    ready = rag_service is not None and rag_service.is_ready()
    return {
        "status": "healthy",
        "service": "Document Retrieval Core",
        "rag_ready": ready,
    }


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(documents.router, prefix="/api", tags=["documents"])
app.include_router(search.router, prefix="/api", tags=["search"])
app.include_router(settings_routes.router, prefix="/api", tags=["settings"])


if __name__ == "__main__":
    import uvicorn

    app_settings = Settings()
    uvicorn.run(app, host=app_settings.api_host, port=app_settings.api_port)
