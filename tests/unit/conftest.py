"""Shared fixtures for unit tests."""

import base64

import pytest

from imagio.core.settings import ProviderSettings
from imagio.media.store import MediaStore
from imagio.resilience.polling import PollBudget

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF" + b"\x00" * 20
WEBP_BYTES = b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 20


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def jpeg_bytes() -> bytes:
    return JPEG_BYTES


@pytest.fixture
def webp_bytes() -> bytes:
    return WEBP_BYTES


@pytest.fixture
def png_b64() -> str:
    return base64.b64encode(PNG_BYTES).decode("ascii")


@pytest.fixture
def store(tmp_path) -> MediaStore:
    return MediaStore(tmp_path / "media")


@pytest.fixture
def provider_config() -> ProviderSettings:
    return ProviderSettings(
        BFL_API_KEY="bfl-test-key",
        BFL_BASE_URL="https://bfl.test/v1",
        BLTCY_API_KEY="bltcy-test-key",
        BLTCY_BASE_URL="https://bltcy.test",
        GEMINI_API_KEY="gemini-test-key",
        GEMINI_BASE_URL="https://gemini.test/v1beta",
    )


@pytest.fixture
def fast_budget() -> PollBudget:
    return PollBudget(max_attempts=5, interval_seconds=0.001)
