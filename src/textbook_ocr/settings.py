"""Unified settings management for textbook OCR."""

import pathlib
from typing import Dict, Optional

from .audit import mask_secret
from .config import ConfigurationManager
from .constants import API_KEY_ENV_VAR
from .data_types import ModelConfig, ServerConfig
from .exceptions import InvalidConfigurationError, MissingConfigurationError
from .paths import XDGPaths


class Settings:
    """Unified settings manager that combines configuration and path management."""

    SETTABLE_KEYS = (
        "api_key",
        "text_model",
        "vision_model",
        "api_timeout",
        "host",
        "port",
        "max_upload_mb",
        "cors_origin",
        "log_level",
    )
    """Keys accepted by :meth:`set_value`."""

    def __init__(self) -> None:
        """Initialize the settings manager."""
        self._config = ConfigurationManager()

    # API Configuration
    def get_api_key(self) -> str:
        """Get the model service API key.

        Returns:
            API key from environment or config file

        Raises:
            MissingConfigurationError: If no API key is found
        """
        api_key = self._config.get_api_key()
        if not api_key:
            raise MissingConfigurationError(
                f"API key must be provided in the {API_KEY_ENV_VAR} environment variable "
                "or stored with 'textbook-ocr config set api_key KEY'"
            )
        return api_key

    def get_api_key_optional(self) -> Optional[str]:
        """Get the API key without raising an exception if missing."""
        return self._config.get_api_key()

    def get_text_model(self) -> str:
        return self._config.get_text_model()

    def get_vision_model(self) -> str:
        return self._config.get_vision_model()

    def get_timeout(self) -> int:
        """Get the API timeout in seconds."""
        return self._config.get_timeout()

    def get_model_config(self) -> ModelConfig:
        """Resolve everything the model client needs.

        Raises:
            MissingConfigurationError: If no API key is configured
        """
        return ModelConfig(
            api_key=self.get_api_key(),
            text_model=self.get_text_model(),
            vision_model=self.get_vision_model(),
            timeout_seconds=self.get_timeout(),
        )

    # Server Configuration
    def get_server_config(self) -> ServerConfig:
        """Resolve the HTTP server settings."""
        return ServerConfig(
            host=self._config.get_host(),
            port=self._config.get_port(),
            max_upload_mb=self._config.get_max_upload_mb(),
            cors_origin=self._config.get_cors_origin(),
        )

    def get_log_level(self) -> str:
        return self._config.get_log_level()

    # Path Management
    @property
    def log_file_path(self) -> pathlib.Path:
        """Get the log file path."""
        return XDGPaths.get_log_file_path()

    @property
    def state_directory(self) -> pathlib.Path:
        """Get the state directory."""
        return XDGPaths.get_state_dir()

    @property
    def config_file_path(self) -> pathlib.Path:
        """Get the configuration file path."""
        return XDGPaths.get_config_file_path()

    # Configuration Management
    def set_value(self, key: str, value: str) -> None:
        """Validate and store one configuration value given as text.

        Args:
            key: One of :attr:`SETTABLE_KEYS`
            value: Raw value, as typed on the command line

        Raises:
            InvalidConfigurationError: If the key is unknown or the value invalid
        """
        setters = {
            "api_key": self._config.set_api_key,
            "text_model": self._config.set_text_model,
            "vision_model": self._config.set_vision_model,
            "host": self._config.set_host,
            "cors_origin": self._config.set_cors_origin,
            "log_level": self._config.set_log_level,
        }
        int_setters = {
            "api_timeout": self._config.set_timeout,
            "port": self._config.set_port,
            "max_upload_mb": self._config.set_max_upload_mb,
        }

        if key in setters:
            setters[key](value)
        elif key in int_setters:
            try:
                number = int(value)
            except ValueError:
                raise InvalidConfigurationError(f"{key} must be an integer, got {value!r}")
            int_setters[key](number)
        else:
            raise InvalidConfigurationError(
                f"Unknown configuration key '{key}'. "
                f"Valid keys: {', '.join(self.SETTABLE_KEYS)}"
            )

    def describe(self) -> Dict[str, str]:
        """Effective configuration for display, with the API key masked."""
        api_key = self.get_api_key_optional()
        server = self.get_server_config()
        return {
            "api_key": mask_secret(api_key),
            "text_model": self.get_text_model(),
            "vision_model": self.get_vision_model(),
            "api_timeout": str(self.get_timeout()),
            "host": server.host,
            "port": str(server.port),
            "max_upload_mb": str(server.max_upload_mb),
            "cors_origin": server.cors_origin,
            "log_level": self.get_log_level(),
            "config_file": str(self.config_file_path),
            "log_file": str(self.log_file_path),
        }

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""
        self._config.reset_to_defaults()


# Global settings instance for convenience
_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns:
        Global Settings instance
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """Reset the global settings instance (mainly for testing)."""
    global _settings_instance
    _settings_instance = None
