"""
Closed error code registry for generation jobs.

Single source of truth for every terminal error a job can end with: the
default user-facing message, the HTTP status used by the API surface, the
error category and whether the caller may resubmit.
"""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class ErrorSpec:
    """Specification for a single error type."""

    code: str
    http_status: int
    message: str  # default message, overridden when the provider says more
    category: str  # "client_error", "server_error" or "external_service"
    retryable: bool  # True if resubmitting the same request may succeed


class ErrorCode(Enum):
    """Closed taxonomy of terminal job errors.

    Usage:
        spec = ErrorCode.RATE_LIMITED.value
        print(spec.message, spec.http_status, spec.retryable)
    """

    # ========================================
    # PROVIDER REJECTED THE REQUEST
    # ========================================
    INVALID_CREDENTIALS = ErrorSpec(
        "INVALID_CREDENTIALS",
        401,
        "Invalid API key. Please check your provider configuration.",
        "client_error",
        False,
    )
    INSUFFICIENT_CREDITS = ErrorSpec(
        "INSUFFICIENT_CREDITS",
        402,
        "Insufficient credits. Please check your account balance.",
        "client_error",
        False,
    )
    RATE_LIMITED = ErrorSpec(
        "RATE_LIMITED",
        429,
        "Rate limit exceeded. Please try again later.",
        "external_service",
        True,
    )
    REQUEST_FAILED = ErrorSpec(
        "REQUEST_FAILED",
        502,
        "Generation request failed",
        "external_service",
        False,
    )

    # ========================================
    # TRANSPORT / PROTOCOL
    # ========================================
    NETWORK_UNREACHABLE = ErrorSpec(
        "NETWORK_UNREACHABLE",
        503,
        "Network error: cannot connect to the provider API.",
        "external_service",
        True,
    )
    MALFORMED_RESPONSE = ErrorSpec(
        "MALFORMED_RESPONSE",
        502,
        "Provider returned an unexpected response",
        "external_service",
        False,
    )
    TIMEOUT = ErrorSpec(
        "TIMEOUT",
        504,
        "Generation timed out after maximum polling attempts",
        "external_service",
        True,
    )

    # ========================================
    # LOCAL
    # ========================================
    CANCELLED = ErrorSpec(
        "CANCELLED",
        499,
        "Generation was cancelled",
        "client_error",
        True,
    )

    # ========================================
    # FALLBACK
    # ========================================
    UNKNOWN = ErrorSpec(
        "UNKNOWN",
        500,
        "Unknown error occurred during image generation",
        "server_error",
        False,
    )

    @property
    def spec(self) -> ErrorSpec:
        return self.value
