from typing import List

from fastapi import APIRouter, Depends

from imagio.api.schemas import HealthResponse, ModelInfo
from imagio.core.dependencies import get_registry
from imagio.registry import ModelRegistry

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(registry: ModelRegistry = Depends(get_registry)):
    return HealthResponse(
        status="healthy",
        service="imagio-api",
        version="1.0.0",
        providers=len(registry.specs()),
    )


@router.get("/v1/models", response_model=List[ModelInfo], tags=["models"])
async def list_models(registry: ModelRegistry = Depends(get_registry)):
    return [
        ModelInfo(
            id=spec.id,
            display_name=spec.display_name,
            provider=spec.provider,
            mode=spec.mode.value,
        )
        for spec in registry.specs()
    ]
