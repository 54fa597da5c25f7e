"""Data models for textbook page layouts, OCR results and knowledge trees.

A page layout is a sequence of blocks in reading order. Blocks and the inline
parts inside them are closed tagged unions discriminated on ``type``; the
renderer in :mod:`textbook_ocr.normalizer` dispatches over every variant.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .logging import get_logger

logger = get_logger("models")


class _LayoutModel(BaseModel):
    """Shared configuration for layout models parsed from model output."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


# Inline parts

class TextPart(_LayoutModel):
    """Literal text inside a sentence."""

    type: Literal["text"]
    text: Optional[str] = None


class VarPart(_LayoutModel):
    """A variable name such as ``x`` or ``y_i`` inside a sentence."""

    type: Literal["var"]
    latex: Optional[str] = None


class InlineMathPart(_LayoutModel):
    """Any other inline math inside a sentence."""

    type: Literal["inline_math"]
    latex: Optional[str] = None


InlinePart = Annotated[Union[TextPart, VarPart, InlineMathPart], Field(discriminator="type")]
INLINE_PART_TYPES = frozenset({"text", "var", "inline_math"})

_part_adapter: TypeAdapter = TypeAdapter(InlinePart)


def _parse_part(raw: Any) -> Optional[Any]:
    if isinstance(raw, (TextPart, VarPart, InlineMathPart)):
        return raw
    if not isinstance(raw, Mapping) or raw.get("type") not in INLINE_PART_TYPES:
        return None
    try:
        return _part_adapter.validate_python(raw)
    except ValidationError:
        return None


def _keep_known_parts(value: Any) -> List[Any]:
    # Each part is validated on its own; one bad part never costs its neighbours
    if not isinstance(value, list):
        return []
    parts = [_parse_part(raw) for raw in value]
    return [part for part in parts if part is not None]


class RichListItem(_LayoutModel):
    """A list item made of inline parts."""

    parts: List[InlinePart]

    @field_validator("parts", mode="before")
    @classmethod
    def _filter_parts(cls, value: Any) -> List[Any]:
        return _keep_known_parts(value)


def _parse_list_item(raw: Any) -> Union[str, RichListItem]:
    """A usable list item, or ``""`` so the item still holds its position."""
    if isinstance(raw, (str, RichListItem)):
        return raw
    if not isinstance(raw, Mapping) or not isinstance(raw.get("parts"), list):
        return ""
    try:
        return RichListItem.model_validate(raw)
    except ValidationError:
        return ""


# Blocks

class HeadingBlock(_LayoutModel):
    """A section heading; level 0 or missing means level 2."""

    type: Literal["heading"]
    level: Optional[int] = None
    text: Optional[str] = None


class ParagraphBlock(_LayoutModel):
    type: Literal["paragraph"]
    text: Optional[str] = None


class RichTextBlock(_LayoutModel):
    """A paragraph whose inline math is carried as separate parts."""

    type: Literal["rich_text"]
    parts: List[InlinePart] = Field(default_factory=list)

    @field_validator("parts", mode="before")
    @classmethod
    def _filter_parts(cls, value: Any) -> List[Any]:
        return _keep_known_parts(value)


class EquationBlock(_LayoutModel):
    """A LaTeX equation, displayed on its own lines unless ``display`` is false."""

    type: Literal["equation"]
    latex: Optional[str] = None
    display: Optional[bool] = True


class ListBlock(_LayoutModel):
    """An ordered or bulleted list of plain or rich items."""

    type: Literal["list"]
    ordered: Optional[bool] = False
    items: List[Union[str, RichListItem]] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _blank_unusable_items(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [_parse_list_item(item) for item in value]


Block = Annotated[
    Union[HeadingBlock, ParagraphBlock, RichTextBlock, EquationBlock, ListBlock],
    Field(discriminator="type"),
]
BLOCK_MODELS = (HeadingBlock, ParagraphBlock, RichTextBlock, EquationBlock, ListBlock)
BLOCK_TYPES = frozenset({"heading", "paragraph", "rich_text", "equation", "list"})

_block_adapter: TypeAdapter = TypeAdapter(Block)


def parse_block(raw: Any) -> Optional[Any]:
    """Validate one raw layout entry.

    Args:
        raw: A block model, or a mapping decoded from model output

    Returns:
        The validated block, or None when the entry is not an object, has a
        missing or unknown ``type``, or fails validation
    """
    if isinstance(raw, BLOCK_MODELS):
        return raw
    if not isinstance(raw, Mapping):
        logger.debug("Dropped layout entry that is not an object", entry_kind=type(raw).__name__)
        return None
    if raw.get("type") not in BLOCK_TYPES:
        logger.debug("Dropped layout entry with unknown type", block_type=repr(raw.get("type")))
        return None
    try:
        return _block_adapter.validate_python(raw)
    except ValidationError as e:
        logger.debug(
            "Dropped invalid layout entry",
            block_type=raw.get("type"),
            error_count=e.error_count(),
        )
        return None


def parse_blocks(raw: Any) -> List[Any]:
    """Validate a raw layout sequence, dropping unusable entries."""
    if not isinstance(raw, (list, tuple)):
        return []
    blocks = []
    for entry in raw:
        block = parse_block(entry)
        if block is not None:
            blocks.append(block)
    return blocks


def dump_blocks(blocks: List[Any]) -> List[Dict[str, Any]]:
    """Serialize validated blocks for JSON responses."""
    return [block.model_dump(exclude_none=True) for block in blocks]


class OCRResult(BaseModel):
    """All representations of one scanned page."""

    model_config = ConfigDict(populate_by_name=True)

    markdown: str
    extracted_markdown: str = Field(alias="extractedMarkdown")
    formatted_markdown: str = Field(default="", alias="formattedMarkdown")
    blocks: Optional[List[Block]] = None
    blocks_markdown: Optional[str] = Field(default=None, alias="blocksMarkdown")

    def to_response(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys the frontend expects."""
        return {
            "markdown": self.markdown,
            "extractedMarkdown": self.extracted_markdown,
            "formattedMarkdown": self.formatted_markdown,
            "blocks": None if self.blocks is None else dump_blocks(self.blocks),
            "blocksMarkdown": self.blocks_markdown,
        }


class Prerequisite(BaseModel):
    """A concept the reader must know first, with its own prerequisites."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    concept: str
    description: Optional[str] = None
    sub_prerequisites: List["Prerequisite"] = Field(
        default_factory=list, alias="subPrerequisites"
    )

    @field_validator("sub_prerequisites", mode="before")
    @classmethod
    def _null_means_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class KnowledgeTree(BaseModel):
    """Prerequisite knowledge tree for a highlighted excerpt."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    root: str
    prerequisites: List[Prerequisite] = Field(default_factory=list)
    raw_response: Optional[str] = Field(default=None, alias="rawResponse")

    def to_response(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)
