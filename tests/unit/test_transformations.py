"""Tests for the OCR flow and excerpt transformations."""

from unittest.mock import MagicMock

import pytest

from factories import PNG_BYTES, BlockFactory
from textbook_ocr.audit import AuditEventType
from textbook_ocr.data_types import InlineImage
from textbook_ocr.exceptions import (
    InvalidInputError,
    UnsupportedFileTypeError,
    UpstreamFailureError,
)
from textbook_ocr.prompts import LAYOUT_RESPONSE_SCHEMA
from textbook_ocr.transformations import TransformationService, parse_knowledge_tree
from textbook_ocr.utils.file_operations import FileEncodingUtils

pytestmark = pytest.mark.unit


def recovery_events(audit_logger):
    return [
        call for call in audit_logger.audit.call_args_list
        if call.args[0] == AuditEventType.ERROR_RECOVERY
    ]


class TestExtractPage:
    """Test the three-step OCR flow."""

    def test_full_flow(self, service, fake_model):
        """Test extraction, reformat and layout all succeeding."""
        fake_model.script("extract", "raw $x=1$")
        fake_model.script("reformat", "Formatted\n$x=1$")
        fake_model.script(
            "layout",
            BlockFactory.layout_reply(
                BlockFactory.heading("Title", level=1), BlockFactory.equation("x^2")
            ),
        )

        result = service.extract_page(PNG_BYTES, "image/png")

        assert result.extracted_markdown == "raw $x=1$"
        assert result.formatted_markdown == "Formatted\n$x=1$"
        assert result.markdown.startswith("Formatted\n\n$$\nx=1\n$$")
        assert len(result.blocks) == 2
        assert result.blocks_markdown.strip() == "# Title\n\n$$\nx^2\n$$"
        assert fake_model.operations() == ["extract", "reformat", "layout"]

    def test_extraction_uses_vision_model_and_image(self, service, fake_model):
        """Test the extraction request: vision model, temperature 0, inline image."""
        service.extract_page(PNG_BYTES, "image/jpeg")

        call = fake_model.call_for("extract")
        assert call["model"] == "vision-model"
        assert call["config"].temperature == 0.0
        assert call["config"].top_p == 1.0
        image = call["parts"][1]
        assert isinstance(image, InlineImage)
        assert image.mime_type == "image/jpeg"
        assert image.to_data_url() == FileEncodingUtils.encode_to_data_url(PNG_BYTES, "image/jpeg")

    def test_follow_up_steps_use_text_model(self, service, fake_model):
        """Test that reformat and layout run on the text model."""
        fake_model.script("extract", "Raw")
        fake_model.script("reformat", "Formatted")
        service.extract_page(PNG_BYTES, "image/png")

        assert fake_model.call_for("reformat")["model"] == "text-model"
        layout_call = fake_model.call_for("layout")
        assert layout_call["model"] == "text-model"
        assert layout_call["config"].response_schema == LAYOUT_RESPONSE_SCHEMA
        assert "Formatted" in fake_model.prompt_for("layout")

    def test_rescan_context_reaches_extraction_prompt(self, service, fake_model):
        """Test that highlight and page text are passed to the extraction prompt."""
        service.extract_page(
            PNG_BYTES, "image/png", highlighted_text="the passage", full_text="the page"
        )
        prompt = fake_model.prompt_for("extract")
        assert "the passage" in prompt
        assert "the page" in prompt

    def test_reformat_failure_falls_back_to_extraction(self, service, fake_model):
        """Test that a failed reformat leaves formatted empty and uses the raw text."""
        fake_model.script("extract", "Raw text")
        fake_model.fail("reformat")
        fake_model.script("layout", BlockFactory.layout_reply(BlockFactory.paragraph("Raw text")))

        result = service.extract_page(PNG_BYTES, "image/png")

        assert result.formatted_markdown == ""
        assert result.markdown == "Raw text"
        assert result.blocks_markdown == "Raw text"

    def test_empty_reformat_falls_back_to_extraction(self, service, fake_model):
        """Test that an empty reformat reply also falls back to the raw text."""
        fake_model.script("extract", "Raw text")
        fake_model.script("reformat", "")

        assert service.extract_page(PNG_BYTES, "image/png").markdown == "Raw text"

    @pytest.mark.parametrize(
        "reply",
        ["not json", '{"items": []}', '{"blocks": "none"}', "[1, 2]", ""],
    )
    def test_unusable_layout_leaves_blocks_null(self, service, fake_model, reply):
        """Test that undecodable or blockless layout replies give null blocks."""
        fake_model.script("extract", "Raw")
        fake_model.script("layout", reply)

        result = service.extract_page(PNG_BYTES, "image/png")

        assert result.blocks is None
        assert result.blocks_markdown is None
        assert result.markdown == "Raw"

    def test_layout_failure_leaves_blocks_null(self, service, fake_model):
        """Test that an upstream failure of the layout step is not fatal."""
        fake_model.script("extract", "Raw")
        fake_model.fail("layout")

        result = service.extract_page(PNG_BYTES, "image/png")

        assert result.blocks is None
        assert result.to_response()["blocks"] is None

    def test_layout_with_only_unknown_blocks(self, service, fake_model):
        """Test that a blocks array with nothing usable yields an empty layout."""
        fake_model.script("extract", "Raw")
        fake_model.script("layout", BlockFactory.layout_reply({"type": "figure"}))

        result = service.extract_page(PNG_BYTES, "image/png")

        assert result.blocks == []
        assert result.blocks_markdown == ""

    def test_degradations_are_audited(self, service, fake_model):
        """Test that each degraded step records an error-recovery event."""
        service.audit_logger = MagicMock()
        fake_model.script("extract", "Raw")
        fake_model.fail("reformat")
        fake_model.script("layout", "not json")

        service.extract_page(PNG_BYTES, "image/png")

        operations = [call.kwargs["operation"] for call in recovery_events(service.audit_logger)]
        assert operations == ["reformat", "layout"]

    def test_extraction_failure_is_fatal(self, service, fake_model):
        """Test that a failed extraction aborts the flow."""
        fake_model.fail("extract", "model overloaded")

        with pytest.raises(UpstreamFailureError, match="model overloaded"):
            service.extract_page(PNG_BYTES, "image/png")

        assert fake_model.operations() == ["extract"]

    def test_empty_image_is_rejected(self, service, fake_model):
        """Test that an empty upload is rejected before any model call."""
        with pytest.raises(InvalidInputError, match="No image file provided"):
            service.extract_page(b"", "image/png")
        assert fake_model.calls == []

    def test_non_image_is_rejected(self, service, fake_model):
        """Test that a non-image upload is rejected before any model call."""
        with pytest.raises(UnsupportedFileTypeError):
            service.extract_page(b"%PDF-1.7", "application/pdf")
        assert fake_model.calls == []


class TestResolveSelection:
    """Test selection of the excerpt to transform."""

    def test_highlight_wins(self):
        """Test that highlighted text is preferred over text."""
        assert TransformationService.resolve_selection("text", "highlight") == "highlight"

    def test_falls_back_to_text(self):
        """Test that text is used without a highlight."""
        assert TransformationService.resolve_selection("text", None) == "text"

    def test_blank_highlight_falls_back_to_text(self):
        """Test that a whitespace-only highlight does not count."""
        assert TransformationService.resolve_selection("text", "   ") == "text"

    @pytest.mark.parametrize("text,highlighted", [(None, None), ("", ""), ("  \n", None)])
    def test_nothing_selected_is_invalid(self, text, highlighted):
        """Test that an empty or whitespace-only selection is rejected."""
        with pytest.raises(InvalidInputError, match="No text provided"):
            TransformationService.resolve_selection(text, highlighted)


class TestExcerptTransformations:
    """Test simplify, explain and knowledge tree."""

    def test_simplify(self, service, fake_model):
        """Test that simplify returns the model reply for the highlighted excerpt."""
        fake_model.script("simplify", "A simpler version.")

        assert service.simplify(text="ignored", highlighted_text="F = ma") == "A simpler version."
        assert "Text to simplify:\nF = ma" in fake_model.prompt_for("simplify")
        assert fake_model.call_for("simplify")["model"] == "text-model"

    def test_explain_sampling(self, service, fake_model):
        """Test that explain runs with temperature 0.2 and top-p 1."""
        fake_model.script("explain", "It means...")

        assert service.explain(text="F = ma", full_text="Chapter 3") == "It means..."
        config = fake_model.call_for("explain")["config"]
        assert config.temperature == 0.2
        assert config.top_p == 1.0
        assert "Chapter 3" in fake_model.prompt_for("explain")

    def test_blank_selection_makes_no_call(self, service, fake_model):
        """Test that invalid input never reaches the model."""
        with pytest.raises(InvalidInputError):
            service.explain(text="  ")
        assert fake_model.calls == []

    def test_upstream_failure_propagates(self, service, fake_model):
        """Test that a failed transformation call is raised to the caller."""
        fake_model.fail("simplify", "timeout")
        with pytest.raises(UpstreamFailureError):
            service.simplify(text="x")

    def test_knowledge_tree(self, service, fake_model):
        """Test that the knowledge tree reply is parsed."""
        fake_model.script("knowledge_tree", '```json\n{"root": "A", "prerequisites": []}\n```')

        assert service.build_knowledge_tree(text="excerpt") == {"root": "A", "prerequisites": []}

    def test_unparseable_knowledge_tree_is_audited(self, service, fake_model):
        """Test that a fallback tree records an error-recovery event."""
        service.audit_logger = MagicMock()
        fake_model.script("knowledge_tree", "Sorry, I cannot help.")

        tree = service.build_knowledge_tree(text="excerpt")

        assert tree["rawResponse"] == "Sorry, I cannot help."
        assert len(recovery_events(service.audit_logger)) == 1

    def test_check_text_model(self, service, fake_model):
        """Test the text model round trip used by the diagnostic route."""
        fake_model.script("test_text", "OK")
        assert service.check_text_model() == "OK"
        assert "Reply with the word OK." in fake_model.prompt_for("test_text")


class TestParseKnowledgeTree:
    """Test knowledge tree reply parsing."""

    def test_fenced_json(self):
        """Test that a ```json fence is unwrapped."""
        reply = '```json\n{"root": "A", "prerequisites": []}\n```'
        assert parse_knowledge_tree(reply) == {"root": "A", "prerequisites": []}

    def test_plain_fence_with_surrounding_text(self):
        """Test that a bare fence inside prose is unwrapped."""
        reply = 'Here you go:\n```\n{"root": "B"}\n```\nGood luck!'
        assert parse_knowledge_tree(reply) == {"root": "B", "prerequisites": []}

    def test_bare_json(self):
        """Test that unfenced JSON is parsed directly."""
        reply = (
            '{"root": "Derivatives", "prerequisites": '
            '[{"concept": "Limits", "subPrerequisites": [{"concept": "Functions"}]}]}'
        )
        assert parse_knowledge_tree(reply) == {
            "root": "Derivatives",
            "prerequisites": [
                {
                    "concept": "Limits",
                    "subPrerequisites": [{"concept": "Functions", "subPrerequisites": []}],
                }
            ],
        }

    @pytest.mark.parametrize(
        "reply",
        ["not json", "[1, 2]", '{"prerequisites": []}', '```json\n{"root": \n```', ""],
    )
    def test_malformed_reply_falls_back(self, reply):
        """Test that anything that is not a tree yields the fallback tree."""
        assert parse_knowledge_tree(reply) == {
            "root": "Unable to parse",
            "prerequisites": [],
            "rawResponse": reply,
        }
