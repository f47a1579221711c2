"""
Map transport outcomes onto the closed ErrorCode taxonomy.

`classify` is a total function: every input (an HTTP response, an httpx
exception, a parsing failure, a cancellation or anything else) maps to
exactly one ClassifiedError. It never retries and never raises.
"""

from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import Optional

import httpx

from imagio.core.config import ERROR_BODY_MAX_CHARS
from imagio.core.exceptions import ClassifiedError
from imagio.errors.codes import ErrorCode

logger = logging.getLogger(__name__)

# Payload shapes that did not match what the adapter expected.
_MALFORMED_TYPES: tuple[type[BaseException], ...] = (
    ValueError,  # json.JSONDecodeError, binascii.Error, pydantic.ValidationError
    KeyError,
    IndexError,
    TypeError,
    httpx.DecodingError,
)


def _read_body(response: httpx.Response) -> str:
    try:
        return response.text[:ERROR_BODY_MAX_CHARS]
    except httpx.ResponseNotRead:
        return ""


def classify_status(
    status_code: int,
    body: str = "",
    *,
    provider: Optional[str] = None,
) -> ClassifiedError:
    """Classify a non-2xx HTTP status.

    Args:
        status_code: HTTP status code of the response
        body: Response body (truncated for the message)
        provider: Provider display name used in messages

    Returns:
        ClassifiedError for the status
    """
    name = provider or "provider"
    details = {"http_status": status_code, "body": body, "provider": provider}

    if status_code == HTTPStatus.UNAUTHORIZED:
        return ClassifiedError(
            ErrorCode.INVALID_CREDENTIALS,
            f"Invalid API key. Please check your {name} configuration.",
            details=details,
        )
    if status_code == HTTPStatus.PAYMENT_REQUIRED:
        return ClassifiedError(
            ErrorCode.INSUFFICIENT_CREDITS,
            f"Insufficient credits. Please check your {name} account balance.",
            details=details,
        )
    if status_code == HTTPStatus.TOO_MANY_REQUESTS:
        return ClassifiedError(ErrorCode.RATE_LIMITED, details=details)
    return ClassifiedError(
        ErrorCode.REQUEST_FAILED,
        f"HTTP {status_code}: {body or 'Unknown error'}",
        details=details,
    )


def classify(outcome: object, *, provider: Optional[str] = None) -> ClassifiedError:
    """Classify any transport outcome into exactly one ClassifiedError.

    Args:
        outcome: httpx.Response, exception, or ClassifiedError
        provider: Provider display name used in messages

    Returns:
        ClassifiedError (the input itself when already classified)
    """
    if isinstance(outcome, ClassifiedError):
        return outcome

    if isinstance(outcome, httpx.Response):
        if outcome.is_success:
            # A successful status handed to the classifier means the body
            # lacked what the caller needed.
            return ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                f"{provider or 'Provider'} response missing expected data",
                details={"http_status": outcome.status_code, "provider": provider},
            )
        return classify_status(outcome.status_code, _read_body(outcome), provider=provider)

    if isinstance(outcome, httpx.HTTPStatusError):
        error = classify(outcome.response, provider=provider)
        error.cause = outcome
        error.__cause__ = outcome
        return error

    if isinstance(outcome, asyncio.CancelledError):
        return ClassifiedError(ErrorCode.CANCELLED, cause=outcome)

    if isinstance(outcome, _MALFORMED_TYPES):
        return ClassifiedError(
            ErrorCode.MALFORMED_RESPONSE,
            f"{provider or 'Provider'} returned an unexpected response: {outcome}",
            cause=outcome,
            details={"provider": provider},
        )

    # Connection refused, DNS, TLS, protocol aborts and transport stalls.
    if isinstance(outcome, (httpx.RequestError, OSError)):
        return ClassifiedError(
            ErrorCode.NETWORK_UNREACHABLE,
            f"Network error: Cannot connect to {provider or 'provider'} API. "
            "Please check your internet connection.",
            cause=outcome,
            details={"provider": provider, "reason": str(outcome)},
        )

    if isinstance(outcome, BaseException):
        logger.debug("Unclassified failure: %s: %s", type(outcome).__name__, outcome)
        return ClassifiedError(
            ErrorCode.UNKNOWN,
            f"{provider or 'Provider'} API error: {outcome}",
            cause=outcome,
            details={"provider": provider},
        )

    return ClassifiedError(ErrorCode.UNKNOWN, details={"provider": provider})
