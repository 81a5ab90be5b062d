"""
PCN Challenge Engine - Tesseract OCR

Implements OCREngine with pytesseract. Blocking; the orchestrator calls it
through asyncio.to_thread.
"""
import logging
from io import BytesIO

import pytesseract
from PIL import Image

logger = logging.getLogger(__name__)


class TesseractOCR:
    def __init__(self, lang: str = "eng"):
        self.lang = lang

    def extract_text(self, image: bytes) -> str:
        with Image.open(BytesIO(image)) as img:
            text = pytesseract.image_to_string(img.convert("RGB"), lang=self.lang)
        logger.info(f"OCR extracted {len(text)} chars")
        return text
