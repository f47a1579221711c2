# =============================================================================
# Polling Configuration
# =============================================================================

POLL_INTERVAL_SECONDS = 0.5  # Fixed cadence between status checks
SHORT_POLL_MAX_ATTEMPTS = 120  # 120 * 0.5s = 60s for single-stage jobs
LONG_POLL_MAX_ATTEMPTS = 1200  # 1200 * 0.5s = 10 min for interactive tasks


# =============================================================================
# HTTP Client
# =============================================================================

HTTP_CLIENT_TIMEOUT_SECONDS = 120  # Per-request timeout for provider calls
LLM_REQUEST_TIMEOUT_SECONDS = 45  # Timeout for prompt optimization requests
DOWNLOAD_TIMEOUT_SECONDS = 60  # Timeout for fetching remote media


# =============================================================================
# Event Stream Framing
# =============================================================================

STREAM_DATA_PREFIX = "data:"
STREAM_DONE_PAYLOAD = "[DONE]"
STREAM_DONE_LINE = "data: [DONE]"


# =============================================================================
# Media
# =============================================================================

MEDIA_FILENAME_PREFIX = "imagio"
MAX_BATCH_COUNT = 4  # Images per request
DEFAULT_MIME_TYPE = "image/png"

# FLUX endpoints take explicit width/height instead of an aspect ratio
ASPECT_RATIO_DIMENSIONS: dict[str, tuple[int, int]] = {
    "1:1": (1024, 1024),
    "16:9": (1344, 768),
    "9:16": (768, 1344),
    "21:9": (1536, 640),
    "9:21": (640, 1536),
    "4:3": (1152, 896),
    "3:4": (896, 1152),
    "3:2": (1216, 832),
    "2:3": (832, 1216),
}
DEFAULT_DIMENSIONS = (1024, 1024)


# =============================================================================
# Provider Request Defaults
# =============================================================================

FLUX_OUTPUT_FORMAT = "jpeg"
FLUX_SAFETY_TOLERANCE = 2
FLUX_PROXY_STEPS = 28
FLUX_PROXY_GUIDANCE = 3.5
MIDJOURNEY_ACCEPTED_CODES = frozenset({1, 22})  # 1 = submitted, 22 = queued
DEFAULT_LLM_TEMPERATURE = 0.7


# =============================================================================
# Error Handling
# =============================================================================

ERROR_BODY_MAX_CHARS = 200  # Maximum chars from error response bodies
LOG_PROMPT_MAX_CHARS = 80  # Prompt preview length in logs
