"""RAG settings and feature flag endpoints."""
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException

from ragcore.api.dependencies import get_rag_service, to_http_exception
from ragcore.api.schemas import FeatureFlagsUpdate, RAGSettingsSchema, RAGSettingsUpdate
from ragcore.exceptions import RAGError
from ragcore.services.retrieval_service import RAGService
from ragcore.utils.logger import logger

router = APIRouter()


def _settings_response(rag_service: RAGService) -> RAGSettingsSchema:
    return RAGSettingsSchema(**rag_service.settings.model_dump())


@router.get("/settings", response_model=RAGSettingsSchema)
async def get_settings(rag_service: RAGService = Depends(get_rag_service)):
    """Get the current chunking and search settings."""
    return _settings_response(rag_service)


@router.put("/settings", response_model=RAGSettingsSchema)
async def update_settings(
    update: RAGSettingsUpdate,
    rag_service: RAGService = Depends(get_rag_service),
):
    """
    Update chunking and search settings.

    Values outside the allowed ranges are clamped. New chunking settings apply
    to documents ingested afterwards.
    """
    for name, value in update.model_dump(exclude_none=True).items():
        setattr(rag_service.settings, name, value)

    response = _settings_response(rag_service)
    logger.info(f"RAG settings updated: {response.model_dump()}")
    return response


@router.get("/features", response_model=Dict[str, bool])
async def get_features(rag_service: RAGService = Depends(get_rag_service)):
    """Get all feature flags."""
    return rag_service.features.get_all()


@router.put("/features", response_model=Dict[str, bool])
async def update_features(
    update: FeatureFlagsUpdate,
    rag_service: RAGService = Depends(get_rag_service),
):
    """
    Set one or more feature flags.

    Enabling client_side_rag on a service that started disabled initializes it.
    """
    try:
        rag_service.features.set_all(update.flags)
    except KeyError as e:
        raise HTTPException(status_code=400, detail=str(e.args[0]))

    if rag_service.features.is_enabled("client_side_rag") and not rag_service.is_ready():
        try:
            await rag_service.initialize()
        except RAGError as e:
            raise to_http_exception(e)

    logger.info(f"Feature flags updated: {update.flags}")
    return rag_service.features.get_all()
