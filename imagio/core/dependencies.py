"""FastAPI dependency injection functions.

Everything is created once by the lifespan hook and read from app state.
"""

from fastapi import HTTPException, Request, status

from imagio.clients.llm_client import LLMClient
from imagio.clients.ocr_client import OcrEngine
from imagio.media.store import MediaStore
from imagio.orchestrator import GenerationFacade
from imagio.registry import ModelRegistry


def _from_state(request: Request, name: str, label: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} unavailable",
        )
    return value


async def get_facade(request: Request) -> GenerationFacade:
    """Get the generation facade from app state.

    Raises:
        HTTPException: 503 if the facade is not initialized
    """
    return _from_state(request, "facade", "Generation facade")


async def get_registry(request: Request) -> ModelRegistry:
    return _from_state(request, "registry", "Model registry")


async def get_media_store(request: Request) -> MediaStore:
    return _from_state(request, "media_store", "Media store")


async def get_llm_client(request: Request) -> LLMClient:
    return _from_state(request, "llm_client", "LLM client")


async def get_ocr_engine(request: Request) -> OcrEngine:
    return _from_state(request, "ocr_engine", "OCR engine")
