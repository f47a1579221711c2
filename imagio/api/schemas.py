"""Pydantic request/response schemas for API endpoints."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from imagio.clients.ocr_client import OcrParams
from imagio.core.config import MAX_BATCH_COUNT
from imagio.models.dto import GenerationResult, JobRequest


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    See: https://www.rfc-editor.org/rfc/rfc7807
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary of the problem")
    status: int = Field(..., description="HTTP status code for this problem")
    detail: Optional[str] = Field(
        None, description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None, description="URI reference identifying this specific occurrence"
    )

    # Extension members (allowed by RFC 7807)
    code: str = Field(..., description="Application-specific error code")
    category: str = Field(..., description="Error category (client_error, external_service, ...)")
    retryable: bool = Field(default=False, description="Whether the request can be retried")
    trace_id: Optional[str] = Field(None, description="Tracing ID for log correlation")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "/errors/INSUFFICIENT_CREDITS",
                "title": "Insufficient credits. Please check your BLTCY account balance.",
                "status": 402,
                "instance": "/v1/generations",
                "code": "INSUFFICIENT_CREDITS",
                "category": "client_error",
                "retryable": False,
                "trace_id": "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
            }
        }
    )


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    providers: int


class ModelInfo(BaseModel):
    id: str
    display_name: str
    provider: str
    mode: str


class GenerationRequest(BaseModel):
    """Body of ``POST /v1/generations``."""

    slot: str = Field("default", min_length=1, max_length=64)
    model: str
    prompt: str = Field(..., min_length=1)
    reference_images: List[str] = Field(default_factory=list)
    count: int = Field(1, ge=1, le=MAX_BATCH_COUNT)
    size: Optional[str] = None
    quality: Optional[str] = None
    aspect_ratio: Optional[str] = None
    watermark: bool = True

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prompt must not be blank")
        return value

    def to_job(self) -> JobRequest:
        return JobRequest(
            model=self.model,
            prompt=self.prompt,
            reference_images=tuple(self.reference_images),
            count=self.count,
            size=self.size,
            quality=self.quality,
            aspect_ratio=self.aspect_ratio,
            watermark=self.watermark,
        )


class ActionRequest(BaseModel):
    """Body of ``POST /v1/generations/actions``."""

    slot: str = Field("default", min_length=1, max_length=64)
    model: str
    task_id: str = Field(..., min_length=1)
    action_id: str = Field(..., min_length=1)


class AssetInfo(BaseModel):
    asset_id: str
    mime_type: str
    size: int
    url: str
    source_url: Optional[str] = None


class ActionInfo(BaseModel):
    custom_id: str
    label: str = ""
    emoji: str = ""


class UsageInfo(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class GenerationResponse(BaseModel):
    slot: str
    job_id: str
    mode: str
    provider: str
    assets: List[AssetInfo]
    actions: List[ActionInfo] = Field(default_factory=list)
    usage: Optional[UsageInfo] = None
    progress: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, slot: str, result: GenerationResult, progress: List[str]) -> "GenerationResponse":
        usage = None
        if result.usage is not None:
            usage = UsageInfo(
                prompt_tokens=result.usage.prompt_tokens,
                completion_tokens=result.usage.completion_tokens,
                total_tokens=result.usage.total_tokens,
            )
        return cls(
            slot=slot,
            job_id=result.handle.job_id,
            mode=result.handle.mode.value,
            provider=result.provider,
            assets=[
                AssetInfo(
                    asset_id=asset.asset_id,
                    mime_type=asset.mime_type,
                    size=asset.size,
                    url=f"/v1/assets/{asset.asset_id}",
                    source_url=asset.source_url,
                )
                for asset in result.assets
            ],
            actions=[
                ActionInfo(custom_id=a.custom_id, label=a.label, emoji=a.emoji)
                for a in result.actions
            ],
            usage=usage,
            progress=progress,
        )


class CancelResponse(BaseModel):
    slot: str
    cancelled: bool


class OptimizeRequest(BaseModel):
    """Body of ``POST /v1/prompts/optimize``."""

    text: str = Field(..., min_length=1, description="OCR text to turn into a prompt")
    instructions: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, gt=0)


class OcrRequest(BaseModel):
    """Body of ``POST /v1/ocr``."""

    image_path: str = Field(..., min_length=1)
    params: OcrParams = Field(default_factory=OcrParams)
    reflow: bool = True


class OcrResponse(BaseModel):
    text: str
    processed_image_path: Optional[str] = None
