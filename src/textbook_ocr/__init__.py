"""Textbook page OCR with simplify, explain and knowledge tree transformations."""

from ._version import __version__
from .model_client import GenerativeModelClient, extract_text
from .models import KnowledgeTree, OCRResult
from .normalizer import (
    blocks_to_markdown,
    normalize_block_math,
    normalize_markdown,
    promote_standalone_inline_math_to_display,
)
from .transformations import TransformationService, parse_knowledge_tree

__all__ = [
    "GenerativeModelClient",
    "KnowledgeTree",
    "OCRResult",
    "TransformationService",
    "blocks_to_markdown",
    "extract_text",
    "normalize_block_math",
    "normalize_markdown",
    "parse_knowledge_tree",
    "promote_standalone_inline_math_to_display",
    "__version__",
]
