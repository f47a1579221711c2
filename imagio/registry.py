"""
Model registry: model id -> backend, protocol shape and adapter factory.

Adding a model means adding a row here; nothing else branches on model ids.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx

from imagio.adapters.base import ProviderAdapter
from imagio.adapters.batch import ChatCompletionAdapter, GeminiAdapter, ImagesApiAdapter
from imagio.adapters.interactive import MidjourneyAdapter
from imagio.adapters.pollable import BflOfficialAdapter, BflProxyAdapter
from imagio.adapters.stream import SeedreamStreamAdapter
from imagio.clients.http import AuthScheme, ProviderHttp
from imagio.core.exceptions import ClassifiedError
from imagio.core.settings import ProviderSettings, provider_settings
from imagio.errors.codes import ErrorCode
from imagio.media.materializer import Materializer
from imagio.models.dto import ProtocolMode


class Backend(str, Enum):
    """Account a model is billed against (one key and base URL each)."""

    BLTCY = "bltcy"
    BFL = "bfl"
    GEMINI = "gemini"


_BACKEND_NAMES = {Backend.BLTCY: "BLTCY", Backend.BFL: "BFL", Backend.GEMINI: "Gemini"}


@dataclass(frozen=True)
class ProviderSpec:
    """One selectable model."""

    id: str
    display_name: str
    backend: Backend
    adapter_cls: type[ProviderAdapter]
    api_model: str
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def mode(self) -> ProtocolMode:
        return self.adapter_cls.mode

    @property
    def provider(self) -> str:
        return _BACKEND_NAMES[self.backend]


MODELS: tuple[ProviderSpec, ...] = (
    # BLTCY: BFL-compatible proxy
    ProviderSpec("flux-dev", "FLUX-DEV", Backend.BLTCY, BflProxyAdapter, "flux-dev"),
    ProviderSpec("flux-pro", "FLUX-Pro", Backend.BLTCY, BflProxyAdapter, "flux-pro"),
    ProviderSpec("flux-kontext-pro", "FLUX Kontext Pro", Backend.BLTCY, BflProxyAdapter, "flux-kontext-pro"),
    # BLTCY: images API
    ProviderSpec("nano-banana", "Nano Banana🍌", Backend.BLTCY, ImagesApiAdapter, "nano-banana"),
    ProviderSpec("nano-banana-hd", "Nano Banana HD🍌", Backend.BLTCY, ImagesApiAdapter, "nano-banana-hd"),
    # BLTCY: chat completions
    ProviderSpec("dall-e-3", "DALL-E 3", Backend.BLTCY, ChatCompletionAdapter, "dall-e-3"),
    ProviderSpec("recraftv3", "Recraft v3", Backend.BLTCY, ChatCompletionAdapter, "recraftv3"),
    ProviderSpec("qwen-image", "Qwen Image", Backend.BLTCY, ChatCompletionAdapter, "qwen-image"),
    ProviderSpec("gpt-image-1", "GPT Image 1", Backend.BLTCY, ChatCompletionAdapter, "gpt-image-1"),
    ProviderSpec("gpt-4o-image", "GPT-4o Image", Backend.BLTCY, ChatCompletionAdapter, "gpt-4o-image"),
    ProviderSpec("sora-image", "Sora Image", Backend.BLTCY, ChatCompletionAdapter, "sora_image"),
    ProviderSpec(
        "doubao-seededit-3-0",
        "Doubao SeedEdit 3.0",
        Backend.BLTCY,
        ChatCompletionAdapter,
        "doubao-seededit-3-0-i2i-250628",
    ),
    ProviderSpec(
        "doubao-seedream-3-0",
        "Doubao SeedDream 3.0",
        Backend.BLTCY,
        ChatCompletionAdapter,
        "doubao-seedream-3-0-t2i-250415",
    ),
    # BLTCY: event stream
    ProviderSpec(
        "doubao-seedream-4-0",
        "Doubao SeedDream 4.0",
        Backend.BLTCY,
        SeedreamStreamAdapter,
        "doubao-seedream-4-0-250828",
    ),
    # BLTCY: Midjourney interactive tasks
    ProviderSpec(
        "midjourney-fast",
        "Midjourney Fast",
        Backend.BLTCY,
        MidjourneyAdapter,
        "midjourney",
        {"task_mode": "fast"},
    ),
    ProviderSpec(
        "midjourney-relax",
        "Midjourney Relax",
        Backend.BLTCY,
        MidjourneyAdapter,
        "midjourney",
        {"task_mode": "relax"},
    ),
    # Official APIs
    ProviderSpec("flux-bfl", "FLUX (BFL)", Backend.BFL, BflOfficialAdapter, "flux-pro-1.1-ultra"),
    ProviderSpec(
        "nano-banana-gemini",
        "Nano Banana🍌 (Gemini)",
        Backend.GEMINI,
        GeminiAdapter,
        "gemini-2.5-flash-image",
    ),
)


class ModelRegistry:
    """Resolves model ids to ready-to-use adapters.

    Args:
        client: Shared HTTP client handed to every adapter
        materializer: Shared materializer
        settings: Provider credentials and base URLs
        models: Registered model table
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        materializer: Materializer,
        settings: Optional[ProviderSettings] = None,
        models: tuple[ProviderSpec, ...] = MODELS,
    ):
        self.client = client
        self.materializer = materializer
        self.settings = settings or provider_settings
        self._specs = {spec.id: spec for spec in models}

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._specs

    def specs(self) -> list[ProviderSpec]:
        return list(self._specs.values())

    def get(self, model_id: str) -> ProviderSpec:
        spec = self._specs.get(model_id)
        if spec is None:
            raise ClassifiedError(
                ErrorCode.REQUEST_FAILED,
                f"Unknown model: {model_id}",
                details={"model": model_id},
            )
        return spec

    def transport(self, backend: Backend) -> ProviderHttp:
        name = _BACKEND_NAMES[backend]
        if backend is Backend.BFL:
            return ProviderHttp(
                self.client,
                provider=name,
                base_url=self.settings.BFL_BASE_URL,
                api_key=self.settings.BFL_API_KEY,
                auth=AuthScheme.X_KEY,
            )
        if backend is Backend.GEMINI:
            return ProviderHttp(
                self.client,
                provider=name,
                base_url=self.settings.GEMINI_BASE_URL,
                api_key=self.settings.GEMINI_API_KEY,
                auth=AuthScheme.GOOGLE,
            )
        return ProviderHttp(
            self.client,
            provider=name,
            base_url=self.settings.BLTCY_BASE_URL,
            api_key=self.settings.BLTCY_API_KEY,
        )

    def adapter_for(self, model_id: str) -> ProviderAdapter:
        spec = self.get(model_id)
        return spec.adapter_cls(
            self.transport(spec.backend),
            self.materializer,
            api_model=spec.api_model,
            **spec.options,
        )
