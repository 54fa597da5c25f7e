"""Configuration management for textbook OCR."""

import json
import os
from typing import Optional

from .constants import (
    API_KEY_ENV_VAR,
    DEFAULT_API_TIMEOUT_SECONDS,
    DEFAULT_CORS_ORIGIN,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_UPLOAD_MB,
    DEFAULT_PORT,
    DEFAULT_TEXT_MODEL,
    DEFAULT_VISION_MODEL,
    HOST_ENV_VAR,
    LOG_LEVEL_ENV_VAR,
    LOG_LEVELS,
    PORT_ENV_VAR,
    TEXT_MODEL_ENV_VAR,
    VISION_MODEL_ENV_VAR,
)
from .paths import XDGPaths
from .utils.file_operations import FileIOUtils
from .validation import (
    validate_api_key,
    validate_log_level,
    validate_model_name,
    validate_port,
    validate_timeout_range,
    validate_upload_size,
)


class ConfigurationManager:
    """Manages configuration settings for the textbook OCR service.

    Values come from environment variables first, then the JSON config file,
    then built-in defaults.
    """

    def __init__(self) -> None:
        """Initialize the configuration manager."""
        self.config_file = XDGPaths.get_config_file_path()
        self._config = self._load_config()

    def _load_config(self) -> dict[str, str]:
        """Load configuration from file."""
        if self.config_file.exists():
            try:
                return FileIOUtils.read_json_file(self.config_file)
            except (json.JSONDecodeError, IOError):
                # Corrupted config file behaves like an empty one
                return {}
        return {}

    def _save_config(self) -> None:
        """Save configuration to file."""
        FileIOUtils.write_json_file(self.config_file, self._config)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return self._config.get(key, default)  # type: ignore[return-value]

    def set(self, key: str, value: str) -> None:
        """Set a configuration value.

        Args:
            key: Configuration key
            value: Configuration value
        """
        self._config[key] = value
        self._save_config()

    def _get_int(self, key: str, env_var: Optional[str], default: int) -> int:
        raw = os.environ.get(env_var) if env_var else None
        if not raw:
            raw = self.get(key, str(default))
        try:
            return int(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return default

    # API
    def get_api_key(self) -> Optional[str]:
        """Get the model service API key.

        Returns:
            API key from environment or config file
        """
        api_key = os.environ.get(API_KEY_ENV_VAR)
        if api_key:
            return api_key

        return self.get("api_key")

    @validate_api_key
    def set_api_key(self, api_key: str) -> None:
        """Store the API key in the config file.

        Raises:
            InvalidConfigurationError: If the API key is invalid
        """
        self.set("api_key", api_key)

    def get_text_model(self) -> str:
        """Get the model used for text-only prompts."""
        return (
            os.environ.get(TEXT_MODEL_ENV_VAR)
            or self.get("text_model")
            or DEFAULT_TEXT_MODEL
        )

    @validate_model_name
    def set_text_model(self, model: str) -> None:
        """Set the text model.

        Raises:
            InvalidConfigurationError: If the model name is invalid
        """
        self.set("text_model", model)

    def get_vision_model(self) -> str:
        """Get the model used for image extraction.

        An explicit vision model wins; otherwise a text model chosen through
        the environment is reused, since it is the one the operator picked.
        """
        return (
            os.environ.get(VISION_MODEL_ENV_VAR)
            or os.environ.get(TEXT_MODEL_ENV_VAR)
            or self.get("vision_model")
            or DEFAULT_VISION_MODEL
        )

    @validate_model_name
    def set_vision_model(self, model: str) -> None:
        """Set the vision model.

        Raises:
            InvalidConfigurationError: If the model name is invalid
        """
        self.set("vision_model", model)

    def get_timeout(self) -> int:
        """Get the API timeout in seconds."""
        return self._get_int("api_timeout", None, DEFAULT_API_TIMEOUT_SECONDS)

    @validate_timeout_range
    def set_timeout(self, timeout: int) -> None:
        """Set the API timeout in seconds.

        Raises:
            InvalidConfigurationError: If timeout value is invalid
        """
        self.set("api_timeout", str(timeout))

    # Server
    def get_host(self) -> str:
        """Get the interface the HTTP server binds to."""
        return os.environ.get(HOST_ENV_VAR) or self.get("host") or DEFAULT_HOST

    def set_host(self, host: str) -> None:
        """Set the server host."""
        self.set("host", host)

    def get_port(self) -> int:
        """Get the HTTP server port."""
        return self._get_int("port", PORT_ENV_VAR, DEFAULT_PORT)

    @validate_port
    def set_port(self, port: int) -> None:
        """Set the HTTP server port.

        Raises:
            InvalidConfigurationError: If the port is out of range
        """
        self.set("port", str(port))

    def get_max_upload_mb(self) -> int:
        """Get the maximum accepted request size in megabytes."""
        return self._get_int("max_upload_mb", None, DEFAULT_MAX_UPLOAD_MB)

    @validate_upload_size
    def set_max_upload_mb(self, size: int) -> None:
        """Set the maximum accepted request size in megabytes.

        Raises:
            InvalidConfigurationError: If the size is out of range
        """
        self.set("max_upload_mb", str(size))

    def get_cors_origin(self) -> str:
        """Get the Access-Control-Allow-Origin value."""
        return self.get("cors_origin") or DEFAULT_CORS_ORIGIN

    def set_cors_origin(self, origin: str) -> None:
        """Set the Access-Control-Allow-Origin value."""
        self.set("cors_origin", origin)

    # Logging
    def get_log_level(self) -> str:
        """Get the configured log level; unknown names fall back to the default."""
        level = (
            os.environ.get(LOG_LEVEL_ENV_VAR)
            or self.get("log_level")
            or DEFAULT_LOG_LEVEL
        ).upper()
        return level if level in LOG_LEVELS else DEFAULT_LOG_LEVEL

    @validate_log_level
    def set_log_level(self, level: str) -> None:
        """Set the log level.

        Raises:
            InvalidConfigurationError: If the level name is unknown
        """
        self.set("log_level", level)

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""
        # Keep a file-based API key but reset other settings
        api_key = self.get("api_key")
        self._config = {}
        if api_key:
            self._config["api_key"] = api_key
        self._save_config()
