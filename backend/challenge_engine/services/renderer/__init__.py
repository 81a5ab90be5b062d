"""PCN Challenge Engine - Document Renderer

This layer takes LetterDraft (SSOT #3) text and renders a PDF (SSOT #4).
"""
from .engine import DocumentRenderer, render_document, TEMPLATE_VERSION

__all__ = ["DocumentRenderer", "render_document", "TEMPLATE_VERSION"]
