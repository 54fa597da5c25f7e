"""Page extraction and excerpt transformations.

Each operation builds a prompt, calls the model through
:class:`~textbook_ocr.model_client.GenerativeModelClient` and post-processes
the reply. Handlers hold no per-request state.
"""

import json
import re
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from . import prompts
from .audit import AuditEventType, get_audit_logger
from .constants import (
    DEFAULT_TOP_P,
    EXPLAIN_TEMPERATURE,
    EXTRACTION_TEMPERATURE,
    LAYOUT_SCHEMA_NAME,
    UNPARSEABLE_TREE_ROOT,
)
from .data_types import ContentPart, GenerationConfig, InlineImage, PromptText
from .exceptions import InvalidInputError, MalformedModelOutputError, UpstreamFailureError
from .logging import get_logger
from .model_client import GenerativeModelClient
from .models import KnowledgeTree, OCRResult, parse_blocks
from .normalizer import blocks_to_markdown, normalize_markdown
from .validation import first_non_blank, validate_image_payload

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE = re.compile(r"```\s*([\s\S]*?)\s*```")

_FIDELITY_CONFIG = GenerationConfig(temperature=EXTRACTION_TEMPERATURE, top_p=DEFAULT_TOP_P)
_EXPLAIN_CONFIG = GenerationConfig(temperature=EXPLAIN_TEMPERATURE, top_p=DEFAULT_TOP_P)
_LAYOUT_CONFIG = GenerationConfig(
    temperature=EXTRACTION_TEMPERATURE,
    top_p=DEFAULT_TOP_P,
    response_schema=prompts.LAYOUT_RESPONSE_SCHEMA,
    schema_name=LAYOUT_SCHEMA_NAME,
)


def _strip_code_fence(text: str) -> str:
    match = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    return match.group(1) if match else text


def _load_knowledge_tree(text: str) -> KnowledgeTree:
    """Decode and validate a knowledge tree reply.

    Raises:
        MalformedModelOutputError: If the reply is not a valid tree
    """
    try:
        data = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise MalformedModelOutputError("Knowledge tree reply is not JSON", str(e)) from e

    if not isinstance(data, dict):
        raise MalformedModelOutputError(
            "Knowledge tree reply is not a JSON object", type(data).__name__
        )

    try:
        return KnowledgeTree.model_validate(data)
    except ValidationError as e:
        raise MalformedModelOutputError("Knowledge tree reply has the wrong shape", str(e)) from e


def parse_knowledge_tree(text: str) -> Dict[str, Any]:
    """Turn a knowledge tree reply into the response object.

    A fenced ```json block (or any fenced block) is unwrapped first.

    Args:
        text: Raw model reply

    Returns:
        The tree with camelCase keys, or a fallback tree rooted at
        "Unable to parse" that carries the raw reply
    """
    try:
        return _load_knowledge_tree(text).to_response()
    except MalformedModelOutputError:
        fallback = KnowledgeTree(root=UNPARSEABLE_TREE_ROOT, prerequisites=[], raw_response=text)
        return fallback.to_response()


class TransformationService:
    """Runs the OCR flow and the simplify, explain and knowledge tree transformations."""

    def __init__(
        self,
        model_client: GenerativeModelClient,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """Initialize the service.

        Args:
            model_client: Client used for every model call
            logger: Logger instance for reporting
        """
        self.model_client = model_client
        self.logger = logger or get_logger("transformations")
        self.audit_logger = get_audit_logger("transformations")

    @property
    def text_model(self) -> str:
        return self.model_client.config.text_model

    @property
    def vision_model(self) -> str:
        return self.model_client.config.vision_model

    @staticmethod
    def resolve_selection(text: Optional[str], highlighted_text: Optional[str]) -> str:
        """Pick the excerpt to transform; a highlight wins over ``text``.

        Raises:
            InvalidInputError: If neither carries non-whitespace content
        """
        selected = first_non_blank([highlighted_text, text])
        if not selected:
            raise InvalidInputError("No text provided")
        return selected

    def _degraded(self, step: str, error: Exception) -> None:
        self.audit_logger.audit(
            AuditEventType.ERROR_RECOVERY,
            f"{step} failed, continuing without it",
            level="warning",
            operation=step,
            outcome="degraded",
            error_type=type(error).__name__,
            error_message=str(error),
        )

    # Page extraction
    @validate_image_payload
    def extract_page(
        self,
        image: bytes,
        mime_type: str,
        highlighted_text: Optional[str] = None,
        full_text: Optional[str] = None,
    ) -> OCRResult:
        """Transcribe a page image into Markdown and, when possible, a block layout.

        Args:
            image: Raw image bytes
            mime_type: Image MIME type
            highlighted_text: Excerpt the reader highlighted, for re-scans
            full_text: Previously extracted page text, for re-scans

        Returns:
            OCRResult with every representation that could be produced

        Raises:
            InvalidInputError: If the image is empty or not an image
            UpstreamFailureError: If the extraction call itself fails
        """
        with self.audit_logger.operation_context(
            "extract_page", mime_type=mime_type, size_bytes=len(image)
        ) as record:
            parts: List[ContentPart] = [
                PromptText(text=prompts.build_extract_prompt(highlighted_text, full_text)),
                InlineImage.from_bytes(image, mime_type),
            ]
            extracted = self.model_client.generate_text(
                parts, model=self.vision_model, config=_FIDELITY_CONFIG, operation="extract"
            )
            self.logger.info(f"Extracted page text, length: {len(extracted)}")

            formatted = self._reformat(extracted)
            markdown = normalize_markdown(formatted or extracted)

            blocks = self._layout(markdown)
            blocks_markdown = None
            if blocks is not None:
                blocks_markdown = normalize_markdown(blocks_to_markdown(blocks))

            record.note(
                reformatted=bool(formatted),
                block_count=None if blocks is None else len(blocks),
            )

            return OCRResult(
                markdown=markdown,
                extracted_markdown=extracted,
                formatted_markdown=formatted,
                blocks=blocks,
                blocks_markdown=blocks_markdown,
            )

    def _reformat(self, extracted: str) -> str:
        try:
            return self.model_client.generate_from_prompt(
                prompts.build_format_prompt(extracted),
                model=self.text_model,
                config=_FIDELITY_CONFIG,
                operation="reformat",
            )
        except UpstreamFailureError as e:
            self._degraded("reformat", e)
            return ""

    def _layout(self, markdown: str) -> Optional[List[Any]]:
        """Ask for a JSON block layout; None when it cannot be obtained."""
        try:
            reply = self.model_client.generate_from_prompt(
                prompts.build_layout_prompt(markdown),
                model=self.text_model,
                config=_LAYOUT_CONFIG,
                operation="layout",
            )
        except UpstreamFailureError as e:
            self._degraded("layout", e)
            return None

        try:
            parsed = json.loads(reply)
        except json.JSONDecodeError as e:
            self._degraded("layout", MalformedModelOutputError("Layout reply is not JSON", str(e)))
            return None

        raw_blocks = parsed.get("blocks") if isinstance(parsed, dict) else None
        if not isinstance(raw_blocks, list):
            self._degraded("layout", MalformedModelOutputError("Layout reply has no blocks array"))
            return None

        blocks = parse_blocks(raw_blocks)
        if len(blocks) < len(raw_blocks):
            self.logger.warning(f"Dropped {len(raw_blocks) - len(blocks)} unusable layout blocks")
        return blocks

    # Excerpt transformations
    def simplify(
        self,
        text: Optional[str] = None,
        highlighted_text: Optional[str] = None,
        full_text: Optional[str] = None,
    ) -> str:
        """Rewrite the selected excerpt in simpler terms, as Markdown.

        Raises:
            InvalidInputError: If no excerpt was given
            UpstreamFailureError: If the model call fails
        """
        selected = self.resolve_selection(text, highlighted_text)
        with self.audit_logger.operation_context("simplify", length=len(selected)):
            return self.model_client.generate_from_prompt(
                prompts.build_simplify_prompt(selected, full_text),
                model=self.text_model,
                operation="simplify",
            )

    def explain(
        self,
        text: Optional[str] = None,
        highlighted_text: Optional[str] = None,
        full_text: Optional[str] = None,
    ) -> str:
        """Explain the selected excerpt without rewriting it, as Markdown.

        Raises:
            InvalidInputError: If no excerpt was given
            UpstreamFailureError: If the model call fails
        """
        selected = self.resolve_selection(text, highlighted_text)
        with self.audit_logger.operation_context("explain", length=len(selected)):
            return self.model_client.generate_from_prompt(
                prompts.build_explain_prompt(selected, full_text),
                model=self.text_model,
                config=_EXPLAIN_CONFIG,
                operation="explain",
            )

    def build_knowledge_tree(
        self,
        text: Optional[str] = None,
        highlighted_text: Optional[str] = None,
        full_text: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Build the prerequisite knowledge tree for the selected excerpt.

        Raises:
            InvalidInputError: If no excerpt was given
            UpstreamFailureError: If the model call fails
        """
        selected = self.resolve_selection(text, highlighted_text)
        with self.audit_logger.operation_context("knowledge_tree", length=len(selected)):
            reply = self.model_client.generate_from_prompt(
                prompts.build_knowledge_tree_prompt(selected, full_text),
                model=self.text_model,
                operation="knowledge_tree",
            )
        tree = parse_knowledge_tree(reply)
        if tree.get("root") == UNPARSEABLE_TREE_ROOT and "rawResponse" in tree:
            self._degraded("knowledge_tree", MalformedModelOutputError("Unparseable tree reply"))
        return tree

    def check_text_model(self) -> str:
        """Round-trip a trivial prompt through the text model."""
        return self.model_client.generate_from_prompt(
            prompts.HEALTH_CHECK_PROMPT, model=self.text_model, operation="test_text"
        )
