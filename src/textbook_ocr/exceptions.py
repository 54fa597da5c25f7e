"""
Exception hierarchy for the textbook OCR service.

The HTTP layer maps :class:`InvalidInputError` to 400 and every other
:class:`TextbookOCRError` to 500, returning ``details`` to the caller.
"""

from typing import Optional


class TextbookOCRError(Exception):
    """Base exception for all textbook OCR related errors."""

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\nDetails: {self.details}"
        return self.message


# Request input exceptions
class InvalidInputError(TextbookOCRError):
    """Raised when a request is missing its required text or image."""
    pass


class UnsupportedFileTypeError(InvalidInputError):
    """Raised when an upload is not an image."""
    pass


# API related exceptions
class APIError(TextbookOCRError):
    """Base exception for API-related errors."""
    pass


class UpstreamFailureError(APIError):
    """Raised when a call to the generative model service fails."""
    pass


class MalformedModelOutputError(APIError):
    """Raised when the model returns text that is not the JSON we asked for.

    Always recovered locally; never surfaced to HTTP clients.
    """
    pass


# Configuration exceptions
class ConfigurationError(TextbookOCRError):
    """Base exception for configuration-related errors."""
    pass


class InvalidConfigurationError(ConfigurationError):
    """Raised when configuration values are invalid."""
    pass


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration is missing."""
    pass
