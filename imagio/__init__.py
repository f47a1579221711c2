"""OCR-to-image generation job client."""

__version__ = "1.0.0"
