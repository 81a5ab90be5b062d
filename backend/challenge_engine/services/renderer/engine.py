"""
PCN Challenge Engine - Document Renderer

Takes LetterDraft (SSOT #3) text and renders a printable A4 PDF (SSOT #4).

Layout:
- Optional letterhead: sender block (right), date, recipient block (left)
- Title block: "RE: Penalty Charge Notice <PCN>"
- Body paragraphs, flowed across as many pages as needed
- Page-number footer on every page

Output is byte-for-byte deterministic for identical input and template
version (reportlab invariant mode, no embedded timestamps).
"""
from __future__ import annotations
import logging
from io import BytesIO
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib.enums import TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer

from ...errors import RenderFailed
from ...models.ssot import Letterhead, RenderedDocument

logger = logging.getLogger(__name__)


TEMPLATE_VERSION = "pcn-a4-letter-v1"

PAGE_MARGIN = 25 * mm
FOOTER_OFFSET = 12 * mm


def _styles():
    base = getSampleStyleSheet()
    return {
        "body": ParagraphStyle(
            "LetterBody", parent=base["Normal"], fontName="Helvetica",
            fontSize=11, leading=15, alignment=TA_LEFT, spaceAfter=8,
        ),
        "title": ParagraphStyle(
            "LetterTitle", parent=base["Normal"], fontName="Helvetica-Bold",
            fontSize=12, leading=16, spaceBefore=6, spaceAfter=12,
        ),
        "sender": ParagraphStyle(
            "SenderBlock", parent=base["Normal"], fontName="Helvetica",
            fontSize=10, leading=13, alignment=TA_RIGHT,
        ),
        "recipient": ParagraphStyle(
            "RecipientBlock", parent=base["Normal"], fontName="Helvetica",
            fontSize=10, leading=13, alignment=TA_LEFT,
        ),
    }


def _paragraph_markup(block: str) -> str:
    """Escape reportlab mini-markup and keep single line breaks."""
    return "<br/>".join(escape(line) for line in block.split("\n"))


def split_paragraphs(text: str) -> List[str]:
    """Blank-line separated blocks; single newlines stay inside a block."""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    blocks = []
    current: List[str] = []
    for line in normalized.split("\n"):
        if line.strip():
            current.append(line.rstrip())
        elif current:
            blocks.append("\n".join(current))
            current = []
    if current:
        blocks.append("\n".join(current))
    return blocks


class DocumentRenderer:
    """
    Render challenge letters as A4 PDFs.

    Input: letter body text (+ optional Letterhead)
    Output: RenderedDocument (SSOT #4)

    Renderer CANNOT alter the letter text; it only lays it out.
    """

    def __init__(self, template_version: str = TEMPLATE_VERSION):
        self.template_version = template_version
        self.styles = _styles()

    def render(
        self,
        body: str,
        pcn_number: Optional[str] = None,
        letterhead: Optional[Letterhead] = None,
    ) -> RenderedDocument:
        """
        Lay out the letter and build the PDF.

        Raises:
            RenderFailed: on any layout or build failure (non-retryable)
        """
        try:
            return self._render(body, pcn_number, letterhead)
        except RenderFailed:
            raise
        except Exception as exc:
            logger.error(f"Rendering failed for PCN {pcn_number}: {type(exc).__name__}: {exc}")
            raise RenderFailed(f"Could not render letter: {exc}") from exc

    def _render(
        self,
        body: str,
        pcn_number: Optional[str],
        letterhead: Optional[Letterhead],
    ) -> RenderedDocument:
        if not body or not body.strip():
            raise RenderFailed("Cannot render an empty letter")

        buffer = BytesIO()
        pages: List[int] = []
        footer_ref = f"PCN {pcn_number}" if pcn_number else ""

        def draw_footer(canvas, doc):
            pages.append(doc.page)
            canvas.saveState()
            canvas.setFont("Helvetica", 8)
            width = doc.pagesize[0]
            canvas.drawCentredString(width / 2.0, FOOTER_OFFSET, f"Page {doc.page}")
            if footer_ref:
                canvas.drawString(PAGE_MARGIN, FOOTER_OFFSET, footer_ref)
            canvas.restoreState()

        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=PAGE_MARGIN,
            rightMargin=PAGE_MARGIN,
            topMargin=PAGE_MARGIN,
            bottomMargin=PAGE_MARGIN,
            title=f"Challenge to Penalty Charge Notice {pcn_number}" if pcn_number else "Challenge letter",
            author="",
            creator=self.template_version,
            invariant=1,
        )

        story = []
        if letterhead is not None:
            story.extend(self._letterhead_flowables(letterhead))

        title = f"RE: Penalty Charge Notice {pcn_number}" if pcn_number else "RE: Penalty Charge Notice"
        story.append(Paragraph(escape(title), self.styles["title"]))

        for block in split_paragraphs(body):
            story.append(Paragraph(_paragraph_markup(block), self.styles["body"]))

        doc.build(story, onFirstPage=draw_footer, onLaterPages=draw_footer)

        page_count = max(pages) if pages else 0
        content = buffer.getvalue()
        logger.info(f"Rendered PCN {pcn_number}: {page_count} page(s), {len(content)} bytes")

        return RenderedDocument(
            content=content,
            page_count=page_count,
            template_version=self.template_version,
        )

    def _letterhead_flowables(self, letterhead: Letterhead) -> list:
        flowables = []
        sender_lines = [letterhead.sender_name, *letterhead.sender_lines]
        flowables.append(Paragraph(
            "<br/>".join(escape(line) for line in sender_lines if line),
            self.styles["sender"],
        ))
        if letterhead.letter_date:
            flowables.append(Spacer(1, 4 * mm))
            flowables.append(Paragraph(escape(letterhead.letter_date), self.styles["sender"]))

        recipient_lines = [letterhead.recipient_name, *letterhead.recipient_lines]
        recipient_lines = [line for line in recipient_lines if line]
        if recipient_lines:
            flowables.append(Spacer(1, 8 * mm))
            flowables.append(Paragraph(
                "<br/>".join(escape(line) for line in recipient_lines),
                self.styles["recipient"],
            ))
        flowables.append(Spacer(1, 8 * mm))
        return flowables


def render_document(
    body: str,
    pcn_number: Optional[str] = None,
    letterhead: Optional[Letterhead] = None,
) -> RenderedDocument:
    """
    Factory function to render a challenge letter PDF.

    Args:
        body: Accepted letter text (LetterDraft.body)
        pcn_number: PCN reference for the title block and footer
        letterhead: Optional sender/recipient blocks

    Returns:
        RenderedDocument (SSOT #4)
    """
    renderer = DocumentRenderer()
    return renderer.render(body, pcn_number, letterhead)
