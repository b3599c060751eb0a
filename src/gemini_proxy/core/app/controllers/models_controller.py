"""
Models Controller

Serves the static model catalog.
"""

from __future__ import annotations

from fastapi import APIRouter

from gemini_proxy.constants import MODEL_OWNER, SUPPORTED_MODELS
from gemini_proxy.models import ModelCard, ModelList

router = APIRouter(tags=["models"])


def list_supported_models() -> ModelList:
    return ModelList(
        data=[ModelCard(id=model_id, owned_by=MODEL_OWNER) for model_id in SUPPORTED_MODELS]
    )


@router.get("/v1/models", response_model=ModelList)
async def list_models() -> ModelList:
    return list_supported_models()
