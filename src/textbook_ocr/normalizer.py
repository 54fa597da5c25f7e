"""Markdown rendering and math-fence repair for model output.

Two inputs reach the frontend's Markdown/KaTeX renderer: free-form Markdown
written by the model, and Markdown rendered here from a structured block
layout. Both go through the same two passes, always in this order:

1. :func:`promote_standalone_inline_math_to_display` turns a line that is a
   lone ``$...$`` expression into a ``$$`` display block.
2. :func:`normalize_block_math` puts every ``$$`` fence on its own line.

The second pass relies on the line shape produced by the first.
"""

import re
from typing import Any, Iterable, List

from .models import (
    EquationBlock,
    HeadingBlock,
    InlineMathPart,
    ListBlock,
    ParagraphBlock,
    RichListItem,
    RichTextBlock,
    TextPart,
    VarPart,
    parse_blocks,
)

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_LINE_BREAK = re.compile(r"\r?\n")

# Requires some LaTeX-ish content so currency-like lines stay inline
_MATH_MARKERS = re.compile(r"[\\^_=]|\\frac|\\sqrt|\\sum|\\int|\\left|\\right|[0-9]")

_SINGLE_LINE_DISPLAY_MATH = re.compile(r"\$\$\s*([^\n]+?)\s*\$\$")
_FENCE_AFTER_TEXT = re.compile(r"([^\n])\$\$")
_FENCE_BEFORE_TEXT = re.compile(r"\$\$([^\n])")
_STRAY_DOLLAR = re.compile(r"(?<!\\)\$")


def _collapse_blank_lines(text: str) -> str:
    return _EXCESS_NEWLINES.sub("\n\n", text)


def clean_latex(latex: Any) -> str:
    """Strip math delimiters the model left inside a ``latex`` field.

    Unescaped dollars are removed; ``\\$`` (a literal dollar sign) is kept.
    """
    if not isinstance(latex, str):
        return ""
    return _STRAY_DOLLAR.sub("", latex).strip()


def _inline_math(latex: str) -> str:
    if not latex:
        return ""
    # A trailing \$ would otherwise fuse with the closing delimiter into $$
    if latex.endswith("$"):
        latex += " "
    return f"${latex}$"


def render_inline_parts(parts: Iterable[Any]) -> str:
    """Concatenate inline parts; math parts are wrapped in single dollars."""
    rendered = []
    for part in parts:
        if isinstance(part, TextPart):
            rendered.append(part.text or "")
        elif isinstance(part, (VarPart, InlineMathPart)):
            rendered.append(_inline_math(clean_latex(part.latex)))
    return "".join(rendered)


def _render_list_item(item: Any) -> str:
    if isinstance(item, RichListItem):
        return render_inline_parts(item.parts).strip()
    return item.strip()


def _render_block(block: Any) -> List[str]:
    """Lines for one block, including its trailing blank separator."""
    if isinstance(block, HeadingBlock):
        level = min(6, max(1, block.level or 2))
        text = (block.text or "").strip()
        return [f"{'#' * level} {text}", ""] if text else []

    if isinstance(block, RichTextBlock):
        text = render_inline_parts(block.parts).strip()
        return [text, ""] if text else []

    if isinstance(block, ParagraphBlock):
        text = (block.text or "").strip()
        return [text, ""] if text else []

    if isinstance(block, EquationBlock):
        latex = clean_latex(block.latex)
        if not latex:
            return []
        if block.display is not False:
            return ["$$", latex, "$$", ""]
        return [_inline_math(latex), ""]

    if isinstance(block, ListBlock):
        lines = []
        for index, item in enumerate(block.items, start=1):
            text = _render_list_item(item)
            if not text:
                continue
            lines.append(f"{index}. {text}" if block.ordered else f"- {text}")
        lines.append("")
        return lines

    raise TypeError(f"Unhandled block type: {type(block).__name__}")


def blocks_to_markdown(blocks: Any) -> str:
    """Render a block layout as Markdown.

    Args:
        blocks: Validated blocks or raw mappings decoded from model output.
            Entries that are not objects, or whose ``type`` is missing or
            unknown, are skipped without error.

    Returns:
        Markdown with blocks separated by single blank lines, trimmed
    """
    lines: List[str] = []
    for block in parse_blocks(blocks):
        lines.extend(_render_block(block))

    return _collapse_blank_lines("\n".join(lines)).strip()


def _is_standalone_inline_math(trimmed: str) -> bool:
    return (
        len(trimmed) >= 2
        and trimmed.startswith("$")
        and trimmed.endswith("$")
        and not trimmed.startswith("$$")
        and not trimmed.endswith("$$")
        and _MATH_MARKERS.search(trimmed) is not None
    )


def promote_standalone_inline_math_to_display(markdown: Any) -> Any:
    """Promote lines that are a single ``$...$`` expression to display math.

    A matching line is replaced with a blank line, ``$$``, the inner LaTeX,
    ``$$`` and another blank line. Lines without a digit or LaTeX marker
    (``\\``, ``^``, ``_``, ``=``) are left alone. Non-string input is
    returned unchanged.
    """
    if not isinstance(markdown, str):
        return markdown

    out: List[str] = []
    for line in _LINE_BREAK.split(markdown):
        trimmed = line.strip()
        if _is_standalone_inline_math(trimmed):
            out.extend(["", "$$", trimmed[1:-1].strip(), "$$", ""])
        else:
            out.append(line)

    return _collapse_blank_lines("\n".join(out))


def normalize_block_math(markdown: Any) -> Any:
    """Put every ``$$`` fence on its own line.

    Single-line ``$$ formula $$`` becomes a three-line block surrounded by
    blank lines, and fences glued to neighbouring text get a line break.
    Output is stable under a second application when every ``$$`` opens or
    closes a block. Degenerate input such as an empty ``$$ $$`` pair glued
    to another fence (``"$$ $$x=1$$"``) may still change on a second pass;
    Markdown rendered by :func:`blocks_to_markdown` never contains such pairs.
    Non-string input is returned unchanged.
    """
    if not isinstance(markdown, str):
        return markdown

    out = _SINGLE_LINE_DISPLAY_MATH.sub(
        lambda match: f"\n\n$$\n{match.group(1).strip()}\n$$\n\n", markdown
    )
    out = _FENCE_AFTER_TEXT.sub(lambda match: f"{match.group(1)}\n$$", out)
    out = _FENCE_BEFORE_TEXT.sub(lambda match: f"$$\n{match.group(1)}", out)

    return _collapse_blank_lines(out)


def normalize_markdown(markdown: Any) -> Any:
    """Apply both math passes: promote, then normalize."""
    return normalize_block_math(promote_standalone_inline_math_to_display(markdown))
