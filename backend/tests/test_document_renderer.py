"""
Tests for the Document Renderer.

Verifies:
1. Output is a valid A4 PDF with title block and page footer
2. Long letters flow across pages without truncation
3. Output is deterministic for identical input
4. Failures surface as RenderFailed
"""
from io import BytesIO

import pytest
from pypdf import PdfReader

from challenge_engine.errors import RenderFailed
from challenge_engine.models.ssot import Letterhead
from challenge_engine.services.renderer import DocumentRenderer, render_document, TEMPLATE_VERSION
from challenge_engine.services.renderer.engine import split_paragraphs

from conftest import valid_letter


def pdf_text(content: bytes) -> list:
    reader = PdfReader(BytesIO(content))
    return [page.extract_text() or "" for page in reader.pages]


def long_body(target_chars: int = 50_000) -> str:
    sentence = "I do not accept liability for this penalty charge notice and request its cancellation. "
    paragraphs = []
    total = 0
    index = 0
    while total < target_chars:
        paragraph = f"Paragraph {index}. " + sentence * 6
        paragraphs.append(paragraph)
        total += len(paragraph) + 2
        index += 1
    paragraphs.append("Yours faithfully,\nJane Smith\nFINALMARKER")
    return "\n\n".join(paragraphs)


# =============================================================================
# TEST: BASIC RENDERING
# =============================================================================

class TestRendering:

    def test_renders_pdf_bytes(self):
        document = render_document(valid_letter(), pcn_number="LN12345")

        assert document.content.startswith(b"%PDF")
        assert document.page_count == 1
        assert document.template_version == TEMPLATE_VERSION
        assert document.content_type == "application/pdf"

    def test_page_is_a4(self):
        document = render_document(valid_letter(), pcn_number="LN12345")
        page = PdfReader(BytesIO(document.content)).pages[0]
        width, height = float(page.mediabox.width), float(page.mediabox.height)
        assert round(width) == 595
        assert round(height) == 842

    def test_title_and_footer(self):
        text = pdf_text(render_document(valid_letter(), pcn_number="LN12345").content)[0]
        assert "RE: Penalty Charge Notice LN12345" in text
        assert "Page 1" in text

    def test_letterhead_blocks(self):
        letterhead = Letterhead(
            sender_name="Jane Smith",
            sender_lines=("1 Acacia Avenue", "London", "SW1A 1AA"),
            recipient_name="Westminster Council",
            letter_date="03 April 2024",
        )
        text = pdf_text(render_document(valid_letter(), "LN12345", letterhead).content)[0]
        assert "1 Acacia Avenue" in text
        assert "Westminster Council" in text
        assert "03 April 2024" in text

    def test_markup_characters_are_escaped(self):
        body = "Dear Sir or Madam,\n\nBays <A> & <B> were unmarked.\n\nYours faithfully,\nJane Smith"
        text = pdf_text(render_document(body, "LN12345").content)[0]
        assert "<A> & <B>" in text


# =============================================================================
# TEST: PAGINATION
# =============================================================================

class TestPagination:

    def test_long_letter_spans_pages_without_truncation(self):
        body = long_body()
        assert len(body) >= 50_000

        document = render_document(body, pcn_number="LN12345")
        pages = pdf_text(document.content)

        assert document.page_count > 1
        assert len(pages) == document.page_count
        assert "FINALMARKER" in pages[-1]
        assert f"Page {document.page_count}" in pages[-1]

        full_text = "".join(pages)
        last_index = body.count("Paragraph ") - 1
        assert f"Paragraph {last_index}." in full_text


# =============================================================================
# TEST: DETERMINISM AND FAILURE
# =============================================================================

class TestDeterminism:

    def test_identical_input_identical_bytes(self):
        renderer = DocumentRenderer()
        first = renderer.render(valid_letter(), "LN12345")
        second = renderer.render(valid_letter(), "LN12345")
        assert first.content == second.content

    def test_empty_body_is_render_failed(self):
        with pytest.raises(RenderFailed):
            render_document("   ", "LN12345")

    def test_layout_error_is_render_failed(self, monkeypatch):
        renderer = DocumentRenderer()

        def broken(*args, **kwargs):
            raise ValueError("font missing")

        monkeypatch.setattr(renderer, "_render", broken)
        with pytest.raises(RenderFailed) as exc_info:
            renderer.render(valid_letter(), "LN12345")
        assert exc_info.value.retryable is False


class TestSplitParagraphs:

    def test_blank_lines_separate_blocks(self):
        assert split_paragraphs("a\nb\n\n\nc\r\n\r\nd") == ["a\nb", "c", "d"]
