"""Type definitions for model requests and runtime configuration."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.dataclasses import dataclass

from .constants import DEFAULT_USER_ROLE
from .utils.file_operations import FileEncodingUtils


class ModelConfig(BaseModel):
    """Everything the model client needs, resolved once at start-up."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    api_key: str = Field(repr=False)
    text_model: str
    vision_model: str
    timeout_seconds: int

    @property
    def timeout_ms(self) -> int:
        return self.timeout_seconds * 1000


class ServerConfig(BaseModel):
    """HTTP server settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str
    port: int
    max_upload_mb: int
    cors_origin: str

    @property
    def max_content_length(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@dataclass(config=ConfigDict(extra="forbid", frozen=True))
class GenerationConfig:
    """Sampling options and optional JSON-schema constraint for one call."""

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    response_schema: Optional[Dict[str, Any]] = None
    schema_name: str = "response"


@dataclass(config=ConfigDict(extra="forbid", frozen=True))
class PromptText:
    """A text content part of a prompt message."""

    text: str

    def to_chunk(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


class InlineImage(BaseModel):
    """An inline image content part, sent to the model as a base64 data URL."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    data: bytes = Field(repr=False)
    mime_type: str

    @classmethod
    def from_bytes(cls, image: bytes, mime_type: str) -> "InlineImage":
        return cls(data=image, mime_type=mime_type)

    def to_data_url(self) -> str:
        return FileEncodingUtils.encode_to_data_url(self.data, self.mime_type)

    def to_chunk(self) -> Dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": self.to_data_url()}}


ContentPart = Union[PromptText, InlineImage]


@dataclass(config=ConfigDict(extra="forbid", frozen=True))
class PromptMessage:
    """A role-tagged list of content parts."""

    parts: List[ContentPart]
    role: str = DEFAULT_USER_ROLE

    def to_message(self) -> Dict[str, Any]:
        return {"role": self.role, "content": [part.to_chunk() for part in self.parts]}
