"""Client for the hosted generative model service."""

import time
from collections.abc import Mapping
from typing import Any, List, Optional, Sequence

from mistralai import Mistral

from .audit import AuditEventType, get_audit_logger
from .data_types import ContentPart, GenerationConfig, ModelConfig, PromptMessage, PromptText
from .exceptions import UpstreamFailureError


def _field(obj: Any, name: str) -> Any:
    """Read a field from an SDK object or a decoded JSON mapping."""
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _first(items: Any) -> Any:
    if isinstance(items, (list, tuple)) and items:
        return items[0]
    return None


def _join_text_chunks(chunks: Any) -> Optional[str]:
    if not isinstance(chunks, (list, tuple)):
        return None
    return "".join(
        text if isinstance(text := _field(chunk, "text"), str) else "" for chunk in chunks
    )


def extract_text(response: Any) -> str:
    """Extract plain text from a model response.

    Supports the response shapes of the services we have used:

    - a direct ``text`` field (string or zero-argument callable)
    - ``candidates[0].content.parts[*].text``
    - ``choices[0].message.content`` as a string or a list of text chunks

    Args:
        response: SDK response object or decoded JSON mapping

    Returns:
        The generated text, or "" when nothing usable is present
    """
    if response is None:
        return ""

    text = _field(response, "text")
    if isinstance(text, str):
        return text
    if callable(text):
        return str(text())

    candidate = _first(_field(response, "candidates"))
    if candidate is not None:
        joined = _join_text_chunks(_field(_field(candidate, "content"), "parts"))
        if joined is not None:
            return joined

    choice = _first(_field(response, "choices"))
    if choice is not None:
        content = _field(_field(choice, "message"), "content")
        if isinstance(content, str):
            return content
        joined = _join_text_chunks(content)
        if joined is not None:
            return joined

    return ""


class GenerativeModelClient:
    """Thin call boundary to the chat completion API.

    One instance is shared by all requests; it holds no per-request state.
    """

    def __init__(self, config: ModelConfig, sdk_client: Optional[Any] = None) -> None:
        """Initialize the client.

        Args:
            config: Resolved model configuration
            sdk_client: Pre-built SDK client; built from ``config`` when None
        """
        self.config = config
        self.audit_logger = get_audit_logger("model_client")
        self.client = sdk_client or Mistral(api_key=config.api_key, timeout_ms=config.timeout_ms)
        self.audit_logger.audit(
            AuditEventType.AUTHENTICATION,
            "Model client initialized",
            api_key=config.api_key,
            text_model=config.text_model,
            vision_model=config.vision_model,
        )

    def generate(
        self,
        parts: Sequence[ContentPart],
        *,
        model: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        operation: str = "generate",
    ) -> Any:
        """Send one user message and return the raw SDK response.

        Args:
            parts: Text and inline image content parts, in order
            model: Model name; defaults to the configured text model
            config: Sampling options and optional response schema
            operation: Name recorded in the audit trail

        Returns:
            The SDK response object

        Raises:
            UpstreamFailureError: If the service call fails for any reason
        """
        model_name = model or self.config.text_model
        request: dict[str, Any] = {
            "model": model_name,
            "messages": [PromptMessage(parts=list(parts)).to_message()],
        }
        if config is not None:
            if config.temperature is not None:
                request["temperature"] = config.temperature
            if config.top_p is not None:
                request["top_p"] = config.top_p
            if config.response_schema is not None:
                request["response_format"] = {
                    "type": "json_schema",
                    "json_schema": {
                        "name": config.schema_name,
                        "schema_definition": config.response_schema,
                        "strict": False,
                    },
                }

        self.audit_logger.audit(
            AuditEventType.API_REQUEST,
            f"Calling model for {operation}",
            level="debug",
            operation=operation,
            model=model_name,
            part_count=len(parts),
            structured=bool(config and config.response_schema),
        )

        start_time = time.time()
        try:
            response = self.client.chat.complete(**request)
        except Exception as e:
            self.audit_logger.audit(
                AuditEventType.API_RESPONSE,
                f"Model call failed for {operation}",
                level="error",
                operation=operation,
                model=model_name,
                outcome="failure",
                duration_seconds=round(time.time() - start_time, 3),
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise UpstreamFailureError(f"Model call failed during {operation}", str(e)) from e

        self.audit_logger.audit(
            AuditEventType.API_RESPONSE,
            f"Model responded for {operation}",
            operation=operation,
            model=model_name,
            duration_seconds=round(time.time() - start_time, 3),
        )
        return response

    def generate_text(
        self,
        parts: Sequence[ContentPart],
        *,
        model: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        operation: str = "generate",
    ) -> str:
        """Like :meth:`generate`, reduced to the response text."""
        response = self.generate(parts, model=model, config=config, operation=operation)
        return extract_text(response)

    def generate_from_prompt(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        operation: str = "generate",
    ) -> str:
        """Text-only convenience wrapper around :meth:`generate_text`."""
        parts: List[ContentPart] = [PromptText(text=prompt)]
        return self.generate_text(parts, model=model, config=config, operation=operation)
