"""Unit tests for the OCR collaborator boundary."""

import json
import shlex
import sys

import pytest

from imagio.clients.ocr_client import CommandOcrEngine, OcrParams, reflow_text
from imagio.core.exceptions import ClassifiedError
from imagio.errors.codes import ErrorCode

ECHO_SCRIPT = """
import json, sys
image, flag, params = sys.argv[1], sys.argv[2], json.loads(sys.argv[3])
print(json.dumps({
    "text": "line one\\nline two",
    "processedImagePath": image + ".processed.png",
    "qualityMetrics": {"blurScore": 1.0, "contrastScore": 2.0, "noiseLevel": 0.1, "brightnessLevel": 0.5},
    "echo": {"flag": flag, "language": params["language"], "binarization": params["binarizationMethod"]},
}))
"""


def _command(script: str) -> str:
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(script)}"


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "scan.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n")
    return path


class TestReflow:
    """Tests for hard-wrap joining."""

    def test_single_newlines_joined(self):
        assert reflow_text("one\ntwo\n\nthree\nfour") == "one two\n\nthree four"

    def test_no_newlines(self):
        assert reflow_text("plain") == "plain"


class TestOcrParams:
    """Tests for parameter defaults and aliases."""

    def test_defaults(self):
        params = OcrParams()
        assert params.contrast == 1.3
        assert params.sharpness == 1.2
        assert params.binarization_method == "adaptive"

    def test_camel_case_aliases(self):
        params = OcrParams.model_validate({"binarizationMethod": "otsu", "useClahe": False})
        assert params.binarization_method == "otsu"
        assert params.use_clahe is False
        assert json.loads(params.model_dump_json(by_alias=True))["binarizationMethod"] == "otsu"


class TestCommandOcrEngine:
    """Tests for the external OCR process driver."""

    @pytest.mark.asyncio
    async def test_parses_stdout(self, image):
        engine = CommandOcrEngine(_command(ECHO_SCRIPT))

        result = await engine.recognize(image, OcrParams(language="deu"))

        assert result.text == "line one\nline two"
        assert result.processed_image_path == f"{image}.processed.png"
        assert result.quality_metrics.contrast_score == 2.0

    @pytest.mark.asyncio
    async def test_missing_image(self, tmp_path):
        engine = CommandOcrEngine(_command(ECHO_SCRIPT))
        with pytest.raises(ClassifiedError) as exc_info:
            await engine.recognize(tmp_path / "nope.png", OcrParams())
        assert exc_info.value.code is ErrorCode.REQUEST_FAILED

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, image):
        script = "import sys; sys.stderr.write('tesseract missing'); sys.exit(3)"
        engine = CommandOcrEngine(_command(script))

        with pytest.raises(ClassifiedError) as exc_info:
            await engine.recognize(image, OcrParams())

        assert exc_info.value.code is ErrorCode.REQUEST_FAILED
        assert exc_info.value.message == "OCR failed: tesseract missing"
        assert exc_info.value.details["returncode"] == 3

    @pytest.mark.asyncio
    async def test_invalid_output(self, image):
        engine = CommandOcrEngine(_command("print('not json')"))
        with pytest.raises(ClassifiedError) as exc_info:
            await engine.recognize(image, OcrParams())
        assert exc_info.value.code is ErrorCode.MALFORMED_RESPONSE

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, image):
        engine = CommandOcrEngine(_command("import time; time.sleep(30)"), timeout=0.2)
        with pytest.raises(ClassifiedError) as exc_info:
            await engine.recognize(image, OcrParams())
        assert exc_info.value.code is ErrorCode.TIMEOUT

    @pytest.mark.asyncio
    async def test_command_not_found(self, image):
        engine = CommandOcrEngine("/nonexistent/imagio-ocr-binary")
        with pytest.raises(ClassifiedError) as exc_info:
            await engine.recognize(image, OcrParams())
        assert exc_info.value.code is ErrorCode.REQUEST_FAILED
