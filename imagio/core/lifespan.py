from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI

from imagio.clients.llm_client import LLMClient
from imagio.clients.ocr_client import CommandOcrEngine
from imagio.core.settings import app_settings
from imagio.media.materializer import Materializer
from imagio.media.store import MediaStore
from imagio.orchestrator import GenerationFacade
from imagio.registry import ModelRegistry
from imagio.session import InMemorySessionStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""

    logger.info("Initializing shared HTTP client...")
    http_client = httpx.AsyncClient(timeout=app_settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True)
    app.state.http_client = http_client

    media_dir = app_settings.media_dir
    logger.info(f"Media directory: {media_dir}")
    store = MediaStore(media_dir)
    registry = ModelRegistry(http_client, Materializer(http_client, store))

    app.state.media_store = store
    app.state.registry = registry
    app.state.sessions = InMemorySessionStore()
    app.state.facade = GenerationFacade(registry, sink=app.state.sessions)
    app.state.llm_client = LLMClient(http_client)
    app.state.ocr_engine = CommandOcrEngine()
    logger.info("Generation facade ready with %d models", len(registry.specs()))

    yield

    logger.info("Shutting down generation facade...")
    try:
        await app.state.facade.shutdown()
    finally:
        await http_client.aclose()
        logger.info("HTTP client closed")
