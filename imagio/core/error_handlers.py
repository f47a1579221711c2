"""Trace ids and RFC 7807 rendering for every error leaving the API."""

import logging
import uuid
from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagio.api.schemas import ProblemDetail
from imagio.core.exceptions import ClassifiedError

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"


def ensure_trace_id(request: Request) -> str:
    """Return the request's trace id, minting one on first use."""
    trace_id = getattr(request.state, "trace_id", None)
    if not trace_id:
        trace_id = str(uuid.uuid4())
        request.state.trace_id = trace_id
    return trace_id


async def trace_id_middleware(request: Request, call_next):
    trace_id = ensure_trace_id(request)
    response = await call_next(request)
    response.headers[TRACE_HEADER] = trace_id
    return response


def _problem(
    request: Request,
    *,
    code: str,
    title: str,
    http_status: int,
    category: str,
    retryable: bool = False,
    detail: Optional[str] = None,
) -> JSONResponse:
    trace_id = ensure_trace_id(request)
    problem = ProblemDetail(
        type=f"/errors/{code}",
        title=title,
        status=http_status,
        detail=detail,
        instance=request.url.path,
        code=code,
        category=category,
        retryable=retryable,
        trace_id=trace_id,
    )
    return JSONResponse(
        status_code=http_status,
        content=problem.model_dump(exclude_none=True),
        headers={TRACE_HEADER: trace_id},
    )


async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Validation failed")
    detail = f"{field}: {message}" if field else message

    logger.warning("Rejected request: %s", detail, extra={"trace_id": ensure_trace_id(request)})
    return _problem(
        request,
        code="VALIDATION_ERROR",
        title="Request validation failed",
        http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        category="client_error",
        detail=detail,
    )


async def handle_classified_error(request: Request, exc: ClassifiedError):
    """Terminal job errors keep their taxonomy code and provider message."""
    logger.warning(
        "Job error returned to client: %s",
        exc.message,
        extra={
            "trace_id": ensure_trace_id(request),
            "error_code": exc.error_code,
            "http_status": exc.http_status,
        },
    )
    return _problem(
        request,
        code=exc.error_code,
        title=exc.message,
        http_status=exc.http_status,
        category=exc.category,
        retryable=exc.retryable,
        detail=exc.details.get("detail"),
    )


async def handle_http_error(request: Request, exc: StarletteHTTPException):
    """404 unknown model/asset, 409 busy slot, 503 service not ready."""
    logger.info(
        "HTTP %d: %s",
        exc.status_code,
        exc.detail,
        extra={"trace_id": ensure_trace_id(request), "http_status": exc.status_code},
    )
    return _problem(
        request,
        code=f"HTTP_{exc.status_code}",
        title=str(exc.detail),
        http_status=exc.status_code,
        category="server_error" if exc.status_code >= 500 else "client_error",
        retryable=exc.status_code == status.HTTP_409_CONFLICT,
        detail=str(exc.detail),
    )


async def handle_unknown_error(request: Request, exc: Exception):
    logger.exception("Unhandled error", extra={"trace_id": ensure_trace_id(request)})
    return _problem(
        request,
        code="INTERNAL_SERVER_ERROR",
        title="Internal server error",
        http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        category="server_error",
        detail="An unexpected error occurred. Please report the trace ID.",
    )
