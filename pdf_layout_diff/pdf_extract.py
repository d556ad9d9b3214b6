# pdf_layout_diff/pdf_extract.py
"""
Page layouts from open PDF documents.

Words become text elements in top-left page space (whitespace-only words are
dropped), placed images are appended after the text. A page that cannot be
read is logged and left out of the layout.
"""
from __future__ import annotations
from typing import Any, Dict, Optional
import logging

from .models import DocumentLayout, ImageElement, PageLayout, TextElement
from .pdf_service import PdfDocumentService

logger = logging.getLogger(__name__)


def _text_element(word: Dict[str, Any], page_height: float) -> TextElement:
    # words come with a lower-left origin; elements live in render space
    height = float(word["height"])
    y = page_height - float(word["y"]) - height
    return TextElement(
        x=float(word["x"]),
        y=y,
        width=float(word["width"]),
        height=height,
        text=word["text"],
    )


def extract_page(service: PdfDocumentService, handle: Any, page_index: int) -> PageLayout:
    """Build the layout of one page: non-whitespace words first, then images."""
    width, height = service.page_size(handle, page_index)
    page = PageLayout(index=page_index, width=width, height=height)

    for word in service.page_text_words(handle, page_index):
        if word.get("is_whitespace"):
            continue
        page.add_element(_text_element(word, height))

    # image boxes are already top-left, in a page-sized render space
    for b in service.page_image_boxes(handle, page_index, width, height):
        page.add_element(ImageElement(
            x=float(b["x"]),
            y=float(b["y"]),
            width=float(b["width"]),
            height=float(b["height"]),
        ))

    return page


def extract_layout(
    service: PdfDocumentService,
    handle: Any,
    name: Optional[str] = None,
) -> DocumentLayout:
    """
    Walk all pages of an opened document and build its ``DocumentLayout``.

    A page that fails to extract is logged and left out; the comparator then
    treats it as a page missing on this side.
    """
    page_count = service.page_count(handle)
    layout = DocumentLayout(page_count=page_count)
    for i in range(page_count):
        try:
            layout.add_page(extract_page(service, handle, i))
        except MemoryError:
            raise
        except Exception as e:
            logger.error(f"{name or '?'}: could not extract page {i + 1}: {e}", exc_info=True)
    return layout
