"""XDG Base Directory specification utilities."""

import os
import pathlib

from .constants import CONFIG_FILE_NAME, LOG_FILE_NAME
from .utils.file_operations import FileSystemUtils


class XDGPaths:
    """Utility class for managing XDG Base Directory specification paths."""

    APPLICATION_NAME = "textbook-ocr"
    """Application name used for XDG directory paths."""

    @classmethod
    def _resolve(cls, env_var: str, *fallback: str) -> pathlib.Path:
        base = os.environ.get(env_var)
        if base:
            directory = pathlib.Path(base) / cls.APPLICATION_NAME
        else:
            directory = pathlib.Path.home().joinpath(*fallback) / cls.APPLICATION_NAME

        FileSystemUtils.ensure_directory_exists(directory)
        return directory

    @classmethod
    def get_state_dir(cls) -> pathlib.Path:
        """Get the XDG state directory for the application.

        Returns:
            Path to state directory (for logs)
        """
        return cls._resolve("XDG_STATE_HOME", ".local", "state")

    @classmethod
    def get_config_dir(cls) -> pathlib.Path:
        """Get the XDG config directory for the application.

        Returns:
            Path to config directory (for configuration files)
        """
        return cls._resolve("XDG_CONFIG_HOME", ".config")

    @classmethod
    def get_log_file_path(cls) -> pathlib.Path:
        """Get the path to the application log file."""
        return cls.get_state_dir() / LOG_FILE_NAME

    @classmethod
    def get_config_file_path(cls) -> pathlib.Path:
        """Get the path to the application configuration file."""
        return cls.get_config_dir() / CONFIG_FILE_NAME
