"""FastAPI application entry point."""

from dotenv import load_dotenv

load_dotenv()

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagio.api.routes import assets, generations, health, prompts
from imagio.core.error_handlers import (
    handle_classified_error,
    handle_http_error,
    handle_unknown_error,
    handle_validation_error,
    trace_id_middleware,
)
from imagio.core.exceptions import ClassifiedError
from imagio.core.lifespan import lifespan
from imagio.core.logging_config import configure_structured_logging
from imagio.core.settings import app_settings

# Configure logging
configure_structured_logging(level=app_settings.LOG_LEVEL, json_format=app_settings.LOG_JSON)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Imagio Generation API",
        version="1.0.0",
        description="OCR-to-image generation across multiple image providers",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # 1. Register Middleware
    app.middleware("http")(trace_id_middleware)

    # 2. Register Exception Handlers
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(ClassifiedError, handle_classified_error)
    app.add_exception_handler(Exception, handle_unknown_error)

    # Routes
    app.include_router(health.router)
    app.include_router(generations.router)
    app.include_router(assets.router)
    app.include_router(prompts.router)
    return app


app = create_app()
