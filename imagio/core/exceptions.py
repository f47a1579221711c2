"""Terminal error type for generation jobs.

Every failure a job can end with is surfaced as exactly one ClassifiedError.
The error carries a code from the closed ErrorCode taxonomy and renders to
RFC 7807 Problem Details for the HTTP surface.
"""

from __future__ import annotations

from typing import Any, Optional

from imagio.errors.codes import ErrorCode


class ClassifiedError(Exception):
    """Terminal, fully populated job error.

    Attributes:
        code: ErrorCode from the closed taxonomy
        message: Human-readable message, passed through verbatim to callers
        cause: Underlying exception, if any
        details: Additional context (dict)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message or code.spec.message
        self.cause = cause
        self.details = details or {}
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_code(self) -> str:
        return self.code.spec.code

    @property
    def category(self) -> str:
        return self.code.spec.category

    @property
    def http_status(self) -> int:
        return self.code.spec.http_status

    @property
    def retryable(self) -> bool:
        return self.code.spec.retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to RFC 7807 Problem Details format.

        Returns:
            Dict containing standardized error information
        """
        return {
            "type": f"/errors/{self.error_code}",
            "title": self.message,
            "status": self.http_status,
            "code": self.error_code,
            "detail": self.details.get("detail"),
            "category": self.category,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"ClassifiedError({self.error_code}, {self.message!r})"
