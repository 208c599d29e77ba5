"""Search endpoint."""
from fastapi import APIRouter, Depends

from ragcore.api.dependencies import get_app_settings, get_rag_service, to_http_exception
from ragcore.api.schemas import SearchRequest, SearchResponse, SearchResultResponse
from ragcore.config import Settings
from ragcore.exceptions import RAGError
from ragcore.services.retrieval_service import RAGService

router = APIRouter()


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    rag_service: RAGService = Depends(get_rag_service),
    app_settings: Settings = Depends(get_app_settings),
):
    """
    Search stored documents with combined semantic and keyword matching.

    Args:
        request: SearchRequest with query and optional top_k
        rag_service: RAG service instance
        app_settings: Application settings (default top_k)

    Returns:
        SearchResponse with ranked results and the context built from them
    """
    top_k = request.top_k or app_settings.default_top_k
    try:
        result = await rag_service.search(request.query, top_k=top_k)
    except RAGError as e:
        raise to_http_exception(e)

    return SearchResponse(
        query=result.query,
        results=[SearchResultResponse.from_result(item) for item in result.results],
        context_used=result.context_used,
        tokens_used=result.tokens_used,
    )
