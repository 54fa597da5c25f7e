"""Input validation decorators for common patterns."""

import functools
from typing import Any, Callable, Iterable, TypeVar

from .constants import (
    LOG_LEVELS,
    MAX_API_TIMEOUT_SECONDS,
    MAX_UPLOAD_MB_LIMIT,
    MIN_API_KEY_LENGTH,
)
from .exceptions import InvalidConfigurationError, InvalidInputError, UnsupportedFileTypeError
from .utils.file_operations import FileTypeUtils

F = TypeVar('F', bound=Callable[..., Any])


def validate_api_key(func: F) -> F:
    """Decorator to validate API key parameters.

    Validates that the first argument after self is a valid API key:
    - Must be a non-empty string
    - Must meet minimum length requirements

    Raises:
        InvalidConfigurationError: If API key is invalid
    """
    @functools.wraps(func)
    def wrapper(self, api_key: str, *args, **kwargs):
        if not api_key or not isinstance(api_key, str):
            raise InvalidConfigurationError("API key must be a non-empty string")

        if len(api_key.strip()) < MIN_API_KEY_LENGTH:
            raise InvalidConfigurationError("API key appears to be too short")

        return func(self, api_key, *args, **kwargs)
    return wrapper


def validate_model_name(func: F) -> F:
    """Decorator to validate model name parameters.

    Validates that the first argument after self is a valid model name:
    - Must be a non-empty string
    - Must not be whitespace only

    Raises:
        InvalidConfigurationError: If model name is invalid
    """
    @functools.wraps(func)
    def wrapper(self, model: str, *args, **kwargs):
        if not model or not isinstance(model, str):
            raise InvalidConfigurationError("Model name must be a non-empty string")

        if not model.strip():
            raise InvalidConfigurationError("Model name cannot be empty")

        return func(self, model, *args, **kwargs)
    return wrapper


def validate_int_range(name: str, minimum: int, maximum: int, unit: str = "") -> Callable[[F], F]:
    """Decorator factory validating that the first argument after self is a bounded integer.

    Args:
        name: Human-readable setting name used in the error message
        minimum: Smallest accepted value
        maximum: Largest accepted value
        unit: Optional unit appended to the error message

    Raises:
        InvalidConfigurationError: If the value is not an integer in range
    """
    suffix = f" {unit}" if unit else ""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self, value: int, *args, **kwargs):
            # bool is an int subclass; reject it explicitly
            if (
                not isinstance(value, int)
                or isinstance(value, bool)
                or value < minimum
                or value > maximum
            ):
                raise InvalidConfigurationError(
                    f"{name} must be an integer between {minimum} and {maximum}{suffix}"
                )
            return func(self, value, *args, **kwargs)
        return wrapper
    return decorator


validate_timeout_range = validate_int_range("Timeout", 1, MAX_API_TIMEOUT_SECONDS, "seconds")
validate_port = validate_int_range("Port", 1, 65535)
validate_upload_size = validate_int_range("Max upload size", 1, MAX_UPLOAD_MB_LIMIT, "MB")


def validate_log_level(func: F) -> F:
    """Decorator to validate log level names.

    Raises:
        InvalidConfigurationError: If level is not one of LOG_LEVELS
    """
    @functools.wraps(func)
    def wrapper(self, level: str, *args, **kwargs):
        if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
            raise InvalidConfigurationError(
                f"Log level must be one of: {', '.join(LOG_LEVELS)}"
            )
        return func(self, level.upper(), *args, **kwargs)
    return wrapper


def check_image_payload(image: bytes, mime_type: str) -> None:
    """Reject an empty upload or one that is not an image.

    Raises:
        InvalidInputError: If no image was provided
        UnsupportedFileTypeError: If the upload is not an image
    """
    if not image:
        raise InvalidInputError("No image file provided")

    if not FileTypeUtils.is_image_mime_type(mime_type):
        raise UnsupportedFileTypeError(f"Unsupported file type: {mime_type or 'unknown'}")


def validate_image_payload(func: F) -> F:
    """Decorator running :func:`check_image_payload` on the first two arguments after self."""
    @functools.wraps(func)
    def wrapper(self, image: bytes, mime_type: str, *args, **kwargs):
        check_image_payload(image, mime_type)
        return func(self, image, mime_type, *args, **kwargs)
    return wrapper


def first_non_blank(values: Iterable[Any]) -> str:
    """Return the first value that is a string with non-whitespace content, else ``""``."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return ""
