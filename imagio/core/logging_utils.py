"""
Secret-safe logging utilities.

Provides minimal sanitization helpers to keep credentials and user prompts
out of logs while keeping them useful for debugging.
"""

from urllib.parse import urlsplit, urlunsplit

from imagio.core.config import LOG_PROMPT_MAX_CHARS


def sanitize_api_key(api_key: str | None) -> str:
    """
    Mask an API key for logs.

    Rules:
    - None / empty / <8 chars → fully masked
    - Otherwise → first 3 + last 2 chars, middle masked
    """
    if not api_key or len(api_key) < 8:
        return "***"

    return f"{api_key[:3]}***{api_key[-2:]}"


def sanitize_prompt(prompt: str | None) -> str:
    """
    Shorten a prompt for logs.
    """
    if not prompt:
        return ""

    prompt = " ".join(prompt.split())
    if len(prompt) <= LOG_PROMPT_MAX_CHARS:
        return prompt

    return f"{prompt[:LOG_PROMPT_MAX_CHARS]}… ({len(prompt)} chars)"


def sanitize_url(url: str | None) -> str:
    """
    Drop query string and fragment, which often carry signed tokens.
    """
    if not url:
        return "N/A"

    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
