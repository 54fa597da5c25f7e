"""Prompt templates for page extraction and excerpt transformations."""

from typing import Any, Dict, Optional

from .constants import NO_CONTEXT_PLACEHOLDER

EXTRACT_PROMPT = """
Extract all text and mathematical equations from this textbook page.

REQUIREMENTS:
- Preserve the exact wording, order, and content. Do NOT paraphrase.
- Do NOT add any explanations, examples, summaries, or interpretation.
- Do NOT remove content.
- Keep line breaks only when they appear to exist in the source (avoid "pretty" reflow).

MATH:
- Use $ for inline math and $$ for block math.
- Keep equations exactly as they appear.
- If an equation is displayed / set apart from a sentence in the source, output it as $$...$$ on its own lines.

OUTPUT:
- Return ONLY Markdown (no fences, no commentary).
"""

RESCAN_CONTEXT = """
CONTEXT FROM THE PREVIOUS SCAN (use for disambiguation only; transcribe the image, not this text):
{full_text}

PASSAGE THE READER HIGHLIGHTED (take extra care to transcribe it exactly):
{highlighted_text}
"""

FORMAT_PROMPT = """
You are given raw extracted textbook text.

TASK:
Reformat the text to be easier to read and more accessible, without changing the meaning or wording.

RULES:
- Do NOT paraphrase.
- Do NOT remove content.
- Do NOT add explanations.
- You MAY merge lines into paragraphs.
- You MAY improve spacing and layout.
- For any equation, use display math with $$ ... $$ and blank lines around it.

FORMAT:
- Output Markdown.
- Use clear paragraphs.
- Keep equations properly formatted using LaTeX.

INPUT MARKDOWN:
{extracted_markdown}
"""

LAYOUT_PROMPT = """
Convert the following textbook content into a JSON layout so the frontend can render it consistently.

CRITICAL RULES:
- Preserve the exact wording. Do NOT paraphrase or summarize.
- Do NOT add explanations.
- Do NOT remove content.
- Keep the original reading order as best as possible.

BLOCK TYPES (use only these):
- heading: {{ "type":"heading", "level":1-6, "text":"..." }}
- paragraph: {{ "type":"paragraph", "text":"..." }}
- rich_text: {{ "type":"rich_text", "parts":[ {{ "type":"text","text":"..." }}, {{ "type":"var","latex":"y" }} ] }}
- equation: {{ "type":"equation", "latex":"...", "display":true|false }}
- list: {{ "type":"list", "ordered":true|false, "items":["..."] }}

MATH RULES:
- For inline variable names in a sentence (x, y, y_i, f(x), etc.), prefer rich_text parts with {{type:"var", latex:"..."}}.
- For other inline math inside a sentence, you may use {{type:"inline_math", latex:"..."}} in rich_text parts.
- Do NOT create a separate equation block for single-letter variables that appear inline in a sentence.
- Inline math that is part of a sentence must remain inline (rich_text), not display.
- Standalone/display equation => equation block with display=true.
- Put ONLY LaTeX in latex (no $ or $$ delimiters).

OUTPUT:
- Return ONLY JSON matching the provided schema. No markdown fences, no commentary.

INPUT:
{markdown}
"""

SIMPLIFY_PROMPT = """Simplify the following highlighted textbook text to make it easier to understand for a student.
Keep the mathematical notation and equations intact, but explain concepts in simpler terms.
Return the simplified explanation as Markdown with proper formatting.

CONTEXT (entire extracted page(s); use for disambiguation only):
{full_text}

Text to simplify:
{text}"""

EXPLAIN_PROMPT = """
Explain the following highlighted textbook text in a way that is easy to understand.

REQUIREMENTS:
- Keep the meaning the same.
- Do NOT change or rewrite the original quoted text; instead, explain it.
- Use simple language and short paragraphs.
- If there is math, explain what each symbol/term represents and what the equation is saying.
- If helpful, include a tiny example (only if it does not change the meaning).

OUTPUT:
- Return Markdown only (no code fences, no commentary).

CONTEXT (entire extracted page(s); use for disambiguation only):
{full_text}

HIGHLIGHTED TEXT:
{text}
"""

KNOWLEDGE_TREE_PROMPT = """You are given a highlighted excerpt from a textbook page. Create a prerequisite knowledge tree showing what concepts a student needs BEFORE they can understand the highlighted excerpt.

CONTEXT (entire extracted page(s); use for disambiguation only):
{full_text}

Return the response as a JSON object with the following structure:
{{
  "root": "main concept name",
  "prerequisites": [
    {{
      "concept": "prerequisite concept name",
      "description": "brief description",
      "subPrerequisites": [
        {{
          "concept": "sub-concept name",
          "description": "brief description"
        }}
      ]
    }}
  ]
}}

HIGHLIGHTED TEXT TO ANALYZE:
{text}"""

HEALTH_CHECK_PROMPT = "Reply with the word OK."

_INLINE_PART_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"type": "string", "enum": ["text", "var", "inline_math"]},
        "text": {"type": "string"},
        "latex": {"type": "string"},
    },
    "additionalProperties": False,
}

LAYOUT_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["blocks"],
    "properties": {
        "blocks": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["type"],
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": ["heading", "paragraph", "rich_text", "equation", "list"],
                    },
                    "level": {"type": "integer", "minimum": 1, "maximum": 6},
                    "text": {"type": "string"},
                    "parts": {"type": "array", "items": _INLINE_PART_SCHEMA},
                    "latex": {"type": "string"},
                    "display": {"type": "boolean"},
                    "ordered": {"type": "boolean"},
                    "items": {
                        "type": "array",
                        "items": {
                            "anyOf": [
                                {"type": "string"},
                                {
                                    "type": "object",
                                    "required": ["parts"],
                                    "properties": {
                                        "parts": {"type": "array", "items": _INLINE_PART_SCHEMA},
                                    },
                                    "additionalProperties": False,
                                },
                            ]
                        },
                    },
                },
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}
"""JSON schema constraining the structured layout response."""


def _context(full_text: Optional[str]) -> str:
    return full_text if full_text else NO_CONTEXT_PLACEHOLDER


def build_extract_prompt(
    highlighted_text: Optional[str] = None, full_text: Optional[str] = None
) -> str:
    """Instructions for transcribing a page image.

    When the page is being re-scanned, the previous transcription and the
    reader's highlight are appended as disambiguation context.
    """
    if not highlighted_text and not full_text:
        return EXTRACT_PROMPT
    return EXTRACT_PROMPT + RESCAN_CONTEXT.format(
        full_text=_context(full_text),
        highlighted_text=highlighted_text or NO_CONTEXT_PLACEHOLDER,
    )


def build_format_prompt(extracted_markdown: str) -> str:
    return FORMAT_PROMPT.format(extracted_markdown=extracted_markdown)


def build_layout_prompt(markdown: str) -> str:
    return LAYOUT_PROMPT.format(markdown=markdown)


def build_simplify_prompt(text: str, full_text: Optional[str] = None) -> str:
    return SIMPLIFY_PROMPT.format(text=text, full_text=_context(full_text))


def build_explain_prompt(text: str, full_text: Optional[str] = None) -> str:
    return EXPLAIN_PROMPT.format(text=text, full_text=_context(full_text))


def build_knowledge_tree_prompt(text: str, full_text: Optional[str] = None) -> str:
    return KNOWLEDGE_TREE_PROMPT.format(text=text, full_text=_context(full_text))
