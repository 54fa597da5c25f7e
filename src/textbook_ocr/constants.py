"""Constants for the textbook OCR application.

This module centralizes all magic numbers and strings used throughout
the application to improve maintainability and consistency.
"""

# Model Configuration
DEFAULT_TEXT_MODEL = "mistral-small-latest"
"""Default model used for text-only prompts (reformat, layout, transformations)."""

DEFAULT_VISION_MODEL = "pixtral-large-latest"
"""Default model used for the image extraction step."""

DEFAULT_USER_ROLE = "user"
"""Role tag attached to every prompt message."""

LAYOUT_SCHEMA_NAME = "page_layout"
"""Name given to the JSON schema constraint of the structured layout pass."""

# Sampling
EXTRACTION_TEMPERATURE = 0.0
"""Temperature for extraction, reformat and layout calls (fidelity first)."""

EXPLAIN_TEMPERATURE = 0.2
"""Temperature for the explain transformation."""

DEFAULT_TOP_P = 1.0
"""Nucleus sampling value used when a call pins sampling."""

# Validation Limits
MIN_API_KEY_LENGTH = 10
"""Minimum acceptable length for API keys."""

DEFAULT_API_TIMEOUT_SECONDS = 120
"""Default timeout for API requests in seconds."""

MAX_API_TIMEOUT_SECONDS = 3600
"""Maximum allowed timeout for API requests in seconds (1 hour)."""

DEFAULT_MAX_UPLOAD_MB = 20
"""Default maximum request body size accepted by the server, in megabytes."""

MAX_UPLOAD_MB_LIMIT = 100
"""Upper bound accepted for the maximum upload size setting."""

# Server
DEFAULT_HOST = "127.0.0.1"
"""Default interface the HTTP server binds to."""

DEFAULT_PORT = 3001
"""Default HTTP port."""

DEFAULT_CORS_ORIGIN = "*"
"""Default value of the Access-Control-Allow-Origin header."""

API_URL_PREFIX = "/api"
"""Secondary mount point for every route, used by the browser frontend."""

# Environment Variables
API_KEY_ENV_VAR = "MISTRAL_API_KEY"
"""Environment variable name for API key."""

TEXT_MODEL_ENV_VAR = "TEXTBOOK_OCR_TEXT_MODEL"
"""Environment variable overriding the text model."""

VISION_MODEL_ENV_VAR = "TEXTBOOK_OCR_VISION_MODEL"
"""Environment variable overriding the vision model."""

HOST_ENV_VAR = "TEXTBOOK_OCR_HOST"
"""Environment variable overriding the server host."""

PORT_ENV_VAR = "TEXTBOOK_OCR_PORT"
"""Environment variable overriding the server port."""

LOG_LEVEL_ENV_VAR = "TEXTBOOK_OCR_LOG_LEVEL"
"""Environment variable overriding the log level."""

# File Names
LOG_FILE_NAME = "textbook_ocr.log"
"""Name of the application log file."""

CONFIG_FILE_NAME = "config.json"
"""Name of the configuration file."""

# Knowledge Tree
UNPARSEABLE_TREE_ROOT = "Unable to parse"
"""Root label of the fallback knowledge tree returned on malformed output."""

NO_CONTEXT_PLACEHOLDER = "(no additional context provided)"
"""Text inserted into prompts when no page context is available."""

# MIME Types
MIME_TYPE_PNG = "image/png"
"""MIME type for PNG image files."""

MIME_TYPE_JPEG = "image/jpeg"
"""MIME type for JPEG image files."""

MIME_TYPE_OCTET_STREAM = "application/octet-stream"
"""Generic MIME type for binary files."""

IMAGE_MIME_PREFIX = "image/"
"""Prefix every accepted upload MIME type must carry."""

IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", MIME_TYPE_PNG),
    (b"\xff\xd8\xff", MIME_TYPE_JPEG),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"RIFF", "image/webp"),
)
"""Leading bytes of the image formats recognised without a file name."""

# Logging Configuration
DEFAULT_LOG_LEVEL = "INFO"
"""Default logging level for the application."""

DEFAULT_LOG_MAX_BYTES = 50 * 1024 * 1024  # 50MB
"""Default maximum size per log file before rotation."""

DEFAULT_LOG_BACKUP_COUNT = 5
"""Default number of backup log files to keep."""

LOG_FIELD_MAX_CHARS = 2000
"""Longest string field written to the log before it is cut."""

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
"""Valid logging levels."""
