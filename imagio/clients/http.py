"""Authenticated JSON transport shared by all provider adapters.

Wraps one shared httpx.AsyncClient with a provider's base URL and credential
header. Every failure leaves this module as a ClassifiedError: transport
errors, non-2xx statuses and unparsable bodies alike.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Optional, Union

import httpx
from pydantic import SecretStr

from imagio.core.exceptions import ClassifiedError
from imagio.core.logging_utils import sanitize_api_key, sanitize_url
from imagio.errors.classifier import classify
from imagio.errors.codes import ErrorCode

logger = logging.getLogger(__name__)


class AuthScheme(str, Enum):
    """How the API key travels on the wire."""

    BEARER = "bearer"  # Authorization: Bearer <key>
    X_KEY = "x-key"  # BFL official API
    GOOGLE = "x-goog-api-key"  # Gemini REST API


class ProviderHttp:
    """Per-provider view over the shared HTTP client.

    Args:
        client: Shared async client (owned by the application lifespan)
        provider: Display name used in error messages and logs
        base_url: Provider base URL, without trailing slash
        api_key: Credential; empty means "not configured"
        auth: Header scheme for the credential
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        provider: str,
        base_url: str,
        api_key: Union[SecretStr, str, None],
        auth: AuthScheme = AuthScheme.BEARER,
    ):
        self.client = client
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        if isinstance(api_key, SecretStr):
            api_key = api_key.get_secret_value()
        self._api_key = (api_key or "").strip()
        self.auth = auth

    def require_credentials(self) -> None:
        """Fail fast, before any network call, when no key is configured."""
        if not self._api_key:
            raise ClassifiedError(
                ErrorCode.INVALID_CREDENTIALS,
                f"{self.provider} API key is not configured. "
                f"Please add your {self.provider} API key in settings.",
                details={"provider": self.provider},
            )

    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.auth is AuthScheme.BEARER:
            headers["Authorization"] = f"Bearer {self._api_key}"
        else:
            headers[self.auth.value] = self._api_key
        return headers

    def url(self, path: str) -> str:
        """Resolve `path` against the base URL; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def post_json(
        self, path: str, body: dict[str, Any], *, params: Optional[dict[str, Any]] = None
    ) -> Any:
        return await self._request("POST", path, json=body, params=params)

    async def get_json(self, path: str, *, params: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("GET", path, params=params)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        self.require_credentials()
        url = self.url(path)
        logger.debug(
            "%s %s key=%s",
            method,
            sanitize_url(url),
            sanitize_api_key(self._api_key),
            extra={"provider": self.provider},
        )
        try:
            response = await self.client.request(method, url, headers=self.headers(), **kwargs)
        except httpx.HTTPError as e:
            raise classify(e, provider=self.provider) from e

        if not response.is_success:
            error = classify(response, provider=self.provider)
            logger.warning(
                "%s %s failed: %s",
                method,
                sanitize_url(url),
                error.message,
                extra={
                    "provider": self.provider,
                    "http_status": response.status_code,
                    "error_code": error.error_code,
                },
            )
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise classify(e, provider=self.provider) from e

    @asynccontextmanager
    async def stream_post(self, path: str, body: dict[str, Any]) -> AsyncIterator[httpx.Response]:
        """Open a streaming POST; yields the response once its status is 2xx."""
        self.require_credentials()
        url = self.url(path)
        headers = self.headers()
        headers["Accept"] = "text/event-stream"
        try:
            async with self.client.stream("POST", url, json=body, headers=headers) as response:
                if not response.is_success:
                    await response.aread()
                    raise classify(response, provider=self.provider)
                yield response
        except httpx.HTTPError as e:
            raise classify(e, provider=self.provider) from e
