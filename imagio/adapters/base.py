"""Common adapter contract for the four completion protocols."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from imagio.clients.http import ProviderHttp
from imagio.core.exceptions import ClassifiedError
from imagio.errors.codes import ErrorCode
from imagio.media.materializer import Materializer
from imagio.models.dto import (
    GenerationResult,
    JobHandle,
    JobRequest,
    MediaAsset,
    MediaRef,
    ProgressEvent,
    ProtocolMode,
)
from imagio.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


def emit(on_progress: Optional[ProgressCallback], message: str, percent: Optional[float] = None) -> None:
    if on_progress is not None:
        on_progress(ProgressEvent(message=message, percent=percent))


class ProviderAdapter(ABC):
    """One protocol shape bound to one backend model.

    Subclasses implement `submit`; they never swallow errors. Anything that
    leaves `submit` is a ClassifiedError.

    Args:
        http: Authenticated transport for the provider
        materializer: Turns media refs into owned assets
        api_model: Model name sent on the wire
    """

    mode: ProtocolMode

    def __init__(self, http: ProviderHttp, materializer: Materializer, *, api_model: str):
        self.http = http
        self.materializer = materializer
        self.api_model = api_model

    @property
    def provider(self) -> str:
        return self.http.provider

    @abstractmethod
    async def submit(
        self,
        request: JobRequest,
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> GenerationResult:
        """Run one job to its terminal result.

        Raises:
            ClassifiedError: terminal job failure
        """

    async def submit_action(
        self,
        task_id: str,
        action_id: str,
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> GenerationResult:
        """Run a follow-up action on a finished task (interactive shapes only)."""
        raise ClassifiedError(
            ErrorCode.REQUEST_FAILED,
            f"{self.api_model} does not support follow-up actions",
            details={"provider": self.provider, "mode": self.mode.value},
        )

    async def materialize_all(
        self,
        refs: Sequence[MediaRef],
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> list[MediaAsset]:
        """Materialize refs in provider order.

        If any ref fails, assets already materialized for this job are
        revoked before the error propagates.
        """
        if not refs:
            raise ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                f"{self.provider} API returned no images",
                details={"provider": self.provider},
            )

        assets: list[MediaAsset] = []
        try:
            for ref in refs:
                if len(refs) > 1:
                    emit(on_progress, f"Downloading image {ref.index + 1}/{len(refs)}")
                assets.append(
                    await self.materializer.materialize(ref, token=token, provider=self.provider)
                )
        except BaseException:
            for asset in assets:
                asset.revoke()
            raise
        return assets

    def new_handle(self, job_id: str) -> JobHandle:
        return JobHandle(job_id=job_id, mode=self.mode, provider=self.provider)
