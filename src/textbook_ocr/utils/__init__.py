"""Helpers for local files, page uploads and payload encoding."""

from .file_operations import FileEncodingUtils, FileIOUtils, FileSystemUtils, FileTypeUtils

__all__ = [
    "FileEncodingUtils",
    "FileIOUtils",
    "FileSystemUtils",
    "FileTypeUtils",
]
