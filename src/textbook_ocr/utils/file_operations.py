"""File helpers for page images, page text and the JSON config file."""

import base64
import json
import mimetypes
import pathlib
from typing import Any, Dict, Optional

from ..constants import (
    IMAGE_MIME_PREFIX,
    IMAGE_SIGNATURES,
    MIME_TYPE_JPEG,
    MIME_TYPE_OCTET_STREAM,
    MIME_TYPE_PNG,
)


class FileSystemUtils:
    """Utilities for file system operations."""

    @staticmethod
    def validate_path_exists(path: pathlib.Path) -> None:
        """Raise FileNotFoundError if ``path`` does not exist."""
        if not path.exists():
            raise FileNotFoundError(f"Path not found: {path}")

    @staticmethod
    def ensure_directory_exists(path: pathlib.Path) -> pathlib.Path:
        path.mkdir(parents=True, exist_ok=True)
        return path


class FileIOUtils:
    """Reading and writing local files."""

    @staticmethod
    def read_json_file(path: pathlib.Path) -> Dict[str, Any]:
        """Read and parse a JSON file.

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file contains invalid JSON
        """
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def write_json_file(path: pathlib.Path, data: Dict[str, Any], indent: int = 2) -> None:
        """Write ``data`` as JSON, creating parent directories as needed."""
        FileSystemUtils.ensure_directory_exists(path.parent)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)

    @staticmethod
    def read_binary_file(path: pathlib.Path) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    @staticmethod
    def read_text_file(path: pathlib.Path, encoding: str = "utf-8") -> str:
        with open(path, "r", encoding=encoding) as f:
            return f.read()


class FileEncodingUtils:
    """Utilities for encoding binary payloads."""

    @staticmethod
    def encode_to_base64(data: bytes) -> str:
        return base64.b64encode(data).decode("utf-8")

    @staticmethod
    def encode_to_data_url(data: bytes, mime_type: str) -> str:
        """Encode raw bytes as ``data:<mime>;base64,<payload>``."""
        return f"data:{mime_type};base64,{FileEncodingUtils.encode_to_base64(data)}"


class FileTypeUtils:
    """Working out what kind of image a page upload is."""

    @staticmethod
    def get_mime_type(path: pathlib.Path) -> str:
        """MIME type from the file extension, ``application/octet-stream`` if unknown."""
        ext = path.suffix.lower()
        if ext == ".png":
            return MIME_TYPE_PNG
        if ext in {".jpg", ".jpeg"}:
            return MIME_TYPE_JPEG

        mime_type, _ = mimetypes.guess_type(path.name)
        return mime_type or MIME_TYPE_OCTET_STREAM

    @staticmethod
    def sniff_image_type(data: bytes) -> Optional[str]:
        """Identify PNG, JPEG, GIF and WebP payloads by their leading bytes."""
        for signature, mime_type in IMAGE_SIGNATURES:
            if data.startswith(signature):
                # WebP is a RIFF container; the format tag sits at offset 8
                if signature == b"RIFF" and data[8:12] != b"WEBP":
                    continue
                return mime_type
        return None

    @staticmethod
    def resolve_upload_mime_type(
        declared: Optional[str], filename: Optional[str], data: bytes = b""
    ) -> str:
        """Pick the MIME type of an upload.

        Browsers send camera captures as ``application/octet-stream`` named
        ``blob``, so a generic declared type falls through to the filename
        extension and then to the payload signature.

        Args:
            declared: Content type sent with the upload
            filename: Client-side file name
            data: Upload payload, or its first bytes

        Returns:
            The most specific MIME type found
        """
        if declared and declared != MIME_TYPE_OCTET_STREAM:
            return declared

        if filename:
            guessed = FileTypeUtils.get_mime_type(pathlib.Path(filename))
            if guessed != MIME_TYPE_OCTET_STREAM:
                return guessed

        return FileTypeUtils.sniff_image_type(data) or MIME_TYPE_OCTET_STREAM

    @staticmethod
    def is_image_mime_type(mime_type: Optional[str]) -> bool:
        return bool(mime_type) and mime_type.lower().startswith(IMAGE_MIME_PREFIX)
