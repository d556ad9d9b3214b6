# pdf_layout_diff/pdf_service.py
"""
Thin PDF document service on top of PyMuPDF.

Everything the comparison engine needs from a PDF goes through
``PdfDocumentService``: page count and size, words, image placements and
rendered pixels. Tests substitute their own service object with the same
methods.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import numpy as np
import fitz  # PyMuPDF


class LoadError(RuntimeError):
    """A PDF could not be opened or parsed."""


@dataclass(frozen=True)
class PixelBuffer:
    width: int
    height: int
    rgba: np.ndarray      # (height, width, 4) uint8


class PdfDocumentService:

    def open(self, path: str) -> "fitz.Document":
        try:
            doc = fitz.open(path)
        except Exception as e:
            raise LoadError(f"Unable to load PDF: {path}. Reason: {e}") from e
        if not doc.is_pdf or doc.page_count == 0:
            doc.close()
            raise LoadError(f"Unable to load PDF: {path}. Reason: not a PDF document or no pages")
        return doc

    def close(self, handle: "fitz.Document") -> None:
        handle.close()

    def page_count(self, handle: "fitz.Document") -> int:
        return handle.page_count

    def page_size(self, handle: "fitz.Document", page_index: int) -> Tuple[float, float]:
        rect = handle[page_index].rect
        return float(rect.width), float(rect.height)

    def page_text_words(self, handle: "fitz.Document", page_index: int) -> List[Dict[str, Any]]:
        """
        Words of a page as ``{"x", "y", "width", "height", "text", "is_whitespace"}``
        with a lower-left origin (PDF user space).
        """
        page = handle[page_index]
        page_height = float(page.rect.height)
        words: List[Dict[str, Any]] = []
        # (x0, y0, x1, y1, word, block_no, line_no, word_no), top-left origin
        for x0, y0, x1, y1, text, *_ in page.get_text("words", sort=True):
            words.append({
                "x": float(x0),
                "y": page_height - float(y1),
                "width": float(x1 - x0),
                "height": float(y1 - y0),
                "text": text,
                "is_whitespace": not text.strip(),
            })
        return words

    def page_image_boxes(
        self,
        handle: "fitz.Document",
        page_index: int,
        render_width: float,
        render_height: float,
    ) -> List[Dict[str, float]]:
        """
        Bounding boxes of raster images placed on a page, top-left origin,
        expressed in a ``render_width`` x ``render_height`` page space.
        """
        page = handle[page_index]
        sx = render_width / float(page.rect.width) if page.rect.width else 1.0
        sy = render_height / float(page.rect.height) if page.rect.height else 1.0
        boxes: List[Dict[str, float]] = []
        for info in page.get_image_info():
            r = fitz.Rect(info["bbox"])
            if r.is_empty or r.is_infinite:
                continue
            boxes.append({
                "x": float(r.x0) * sx,
                "y": float(r.y0) * sy,
                "width": float(r.width) * sx,
                "height": float(r.height) * sy,
            })
        return boxes

    def render_page_to_rgba(self, handle: "fitz.Document", page_index: int, scale: float) -> PixelBuffer:
        page = handle[page_index]
        mat = fitz.Matrix(scale, scale)
        pix = page.get_pixmap(matrix=mat, alpha=False)
        img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.h, pix.w, pix.n)
        if pix.n == 1:
            img = np.repeat(img, 3, axis=2)
        rgba = np.empty((pix.h, pix.w, 4), dtype=np.uint8)
        rgba[:, :, :3] = img[:, :, :3]
        rgba[:, :, 3] = 255
        return PixelBuffer(width=pix.w, height=pix.h, rgba=rgba)
