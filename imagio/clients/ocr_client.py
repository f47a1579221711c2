"""
OCR collaborator boundary.

The OCR engine itself (preprocessing, binarization, Tesseract) lives outside
this package. `OcrEngine` is the contract; `CommandOcrEngine` drives an
external executable that prints a JSON result on stdout.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shlex
from pathlib import Path
from typing import Literal, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from imagio.core.exceptions import ClassifiedError
from imagio.core.settings import app_settings
from imagio.errors.codes import ErrorCode

logger = logging.getLogger(__name__)

_SINGLE_NEWLINE_RE = re.compile(r"(?<!\n)\n(?!\n)")


class OcrParams(BaseModel):
    """Preprocessing and recognition parameters."""

    model_config = ConfigDict(populate_by_name=True)

    contrast: float = Field(1.3, ge=0.0, le=3.0)
    brightness: float = Field(0.0, ge=-1.0, le=1.0)
    sharpness: float = Field(1.2, ge=0.0, le=3.0)
    binarization_method: Literal["none", "adaptive", "otsu", "mean", "sauvola"] = Field(
        "adaptive", alias="binarizationMethod"
    )
    use_clahe: bool = Field(True, alias="useClahe")
    gaussian_blur: float = Field(0.5, ge=0.0, alias="gaussianBlur")
    bilateral_filter: bool = Field(False, alias="bilateralFilter")
    morphology: Literal["none", "erode", "dilate", "opening", "closing"] = "none"
    language: str = "eng"
    correct_skew: bool = Field(False, alias="correctSkew")
    skew_method: Literal["hough", "projection"] = Field("hough", alias="skewMethod")
    remove_borders: bool = Field(False, alias="removeBorders")
    adaptive_mode: bool = Field(False, alias="adaptiveMode")


class QualityMetrics(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    blur_score: float = Field(alias="blurScore")
    contrast_score: float = Field(alias="contrastScore")
    noise_level: float = Field(alias="noiseLevel")
    brightness_level: float = Field(alias="brightnessLevel")


class OcrResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    processed_image_path: Optional[str] = Field(None, alias="processedImagePath")
    quality_metrics: Optional[QualityMetrics] = Field(None, alias="qualityMetrics")


class OcrEngine(Protocol):  # pragma: no cover - contract
    """Abstraction over the OCR engine."""

    async def recognize(self, image_path: Path, params: OcrParams) -> OcrResult: ...


def reflow_text(text: str) -> str:
    """Join hard-wrapped lines; keep paragraph breaks."""
    return _SINGLE_NEWLINE_RE.sub(" ", text)


class CommandOcrEngine:
    """Runs ``<command> <image> --params <json>`` and parses its stdout.

    Args:
        command: Executable plus fixed arguments (shell-style string)
        timeout: Seconds before the process is killed
    """

    def __init__(self, command: Optional[str] = None, timeout: float = 120.0):
        self.command = shlex.split(command or app_settings.OCR_COMMAND)
        self.timeout = timeout

    async def recognize(self, image_path: Path, params: OcrParams) -> OcrResult:
        image_path = Path(image_path)
        if not image_path.is_file():
            raise ClassifiedError(
                ErrorCode.REQUEST_FAILED,
                f"Image not found: {image_path}",
                details={"path": str(image_path)},
            )

        args = [*self.command, str(image_path), "--params", params.model_dump_json(by_alias=True)]
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ClassifiedError(
                ErrorCode.REQUEST_FAILED,
                f"OCR command not found: {self.command[0]}",
                cause=e,
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ClassifiedError(
                ErrorCode.TIMEOUT,
                f"OCR timed out after {self.timeout:.0f}s",
                cause=e,
            ) from e

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip() or "unknown error"
            logger.warning("OCR process failed: %s", message[:200])
            raise ClassifiedError(
                ErrorCode.REQUEST_FAILED,
                f"OCR failed: {message[:200]}",
                details={"returncode": process.returncode},
            )

        try:
            result = OcrResult.model_validate(json.loads(stdout))
        except ValueError as e:
            raise ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                f"OCR output is not a valid result: {e}",
                cause=e,
            ) from e

        logger.info("OCR recognized %d chars", len(result.text))
        return result
