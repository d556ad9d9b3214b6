# pdf_layout_diff/raster_diff.py
"""
Pixel level comparison of layout elements.

Both pages are rendered at the same scale; every element's box is scaled into
pixel space and the two renders are compared inside that box only. An element
counts as visually different when more than ``visual_threshold`` of its box
(weighted, see ``pixel_importance``) changed by more than ``noise_floor``.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import logging
import math

import numpy as np

from .difference_log import DifferenceLogger, format_number
from .models import CompareConfig, Element, ImageElement, PageLayout, TextElement

logger = logging.getLogger(__name__)

# Edge pixels of an image weigh up to this much more than its center
IMAGE_EDGE_WEIGHT = 10.0


# -----------------------
# Scratch buffers
# -----------------------
class ScratchBuffers:
    """
    Reusable pixel buffers of one worker, one slot per purpose
    ("image_a", "image_b", "diff"). A slot only grows; smaller requests get
    a view into the existing allocation. Never share an instance between
    concurrently running jobs.
    """

    SLOTS = ("image_a", "image_b", "diff")

    def __init__(self):
        self._buffers: Dict[str, np.ndarray] = {}

    def get(self, slot: str, shape: Tuple[int, ...], dtype=np.uint8) -> np.ndarray:
        if slot not in self.SLOTS:
            raise KeyError(f"Unknown scratch slot: {slot}")
        need = int(np.prod(shape))
        buf = self._buffers.get(slot)
        if buf is None or buf.dtype != np.dtype(dtype) or buf.size < need:
            buf = np.empty(need, dtype=dtype)
            self._buffers[slot] = buf
        return buf[:need].reshape(shape)

    def load(self, slot: str, image: np.ndarray) -> np.ndarray:
        view = self.get(slot, image.shape, image.dtype)
        np.copyto(view, image)
        return view

    def capacity(self, slot: str) -> int:
        buf = self._buffers.get(slot)
        return 0 if buf is None else int(buf.size)


def prepare_renders(
    rgba_a: np.ndarray,
    rgba_b: np.ndarray,
    scratch: Optional[ScratchBuffers] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Copy both renders into the scratch slots, cropped to their common size.
    Pages of slightly different size are compared on the shared area only.
    """
    h = min(rgba_a.shape[0], rgba_b.shape[0])
    w = min(rgba_a.shape[1], rgba_b.shape[1])
    if rgba_a.shape[:2] != rgba_b.shape[:2]:
        logger.warning(f"Rendered pages differ in size: {rgba_a.shape[:2]} vs {rgba_b.shape[:2]}, comparing {h}x{w}")
    a = rgba_a[:h, :w]
    b = rgba_b[:h, :w]
    if scratch is None:
        return np.ascontiguousarray(a), np.ascontiguousarray(b)
    return scratch.load("image_a", a), scratch.load("image_b", b)


# -----------------------
# Geometry helpers
# -----------------------
def scale_box(element: Element, scale: float) -> Tuple[int, int, int, int]:
    """(x, y, width, height) of an element in pixels, truncated like the renderer's grid."""
    return (
        int(element.x * scale),
        int(element.y * scale),
        int(element.width * scale),
        int(element.height * scale),
    )


def clip_box(x: int, y: int, w: int, h: int, shape: Tuple[int, ...]) -> Tuple[int, int, int, int, bool]:
    """
    Clip a pixel box to an image of ``shape``.
    Returns (x0, y0, x1, y1, out_of_bounds); x0/y0 are clamped at 0.
    """
    height, width = shape[0], shape[1]
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = x + w, y + h
    out_of_bounds = x1 > width or y1 > height
    return x0, y0, min(x1, width), min(y1, height), out_of_bounds


def pixel_importance(element: Element, box: Tuple[int, int, int, int], x0: int, y0: int, x1: int, y1: int):
    """
    Weight of every pixel of the clipped box. 1.0 for text; for images the
    weight grows with the distance from the center,
    ``1 + (10 * max(|dx|, |dy|))**2 / 10`` with dx/dy normalized to [-1, 1].
    """
    if not isinstance(element, ImageElement):
        return 1.0
    x, y, w, h = box
    half_w, half_h = w / 2.0, h / 2.0
    ys = np.arange(y0, y1, dtype=np.float64)[:, None]
    xs = np.arange(x0, x1, dtype=np.float64)[None, :]
    dy = np.abs((y + half_h) - ys) / half_h if half_h > 0 else np.zeros_like(ys)
    dx = np.abs((x + half_w) - xs) / half_w if half_w > 0 else np.zeros_like(xs)
    deviation = np.maximum(dx, dy)
    return 1.0 + (IMAGE_EDGE_WEIGHT * deviation) ** 2 / IMAGE_EDGE_WEIGHT


def mean_color_diff(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """(|dR| + |dG| + |dB|) / 3 per pixel."""
    d = np.abs(a[..., :3].astype(np.int16) - b[..., :3].astype(np.int16))
    return d.sum(axis=-1) / 3.0


# -----------------------
# Scoring
# -----------------------
@dataclass(frozen=True)
class ElementScore:
    diff_value: float       # weighted count of pixels above the noise floor
    diff_l1: float          # weighted sum of mean color differences
    diff_l2: float          # sqrt of weighted sum of squares; informational only
    pixel_amount: int       # scaled width * height (unclipped)
    out_of_bounds: bool

    @property
    def relative_diff(self) -> float:
        if self.pixel_amount <= 0:
            return 0.0
        return self.diff_value / self.pixel_amount

    def is_different(self, threshold: float) -> bool:
        return self.relative_diff > threshold


def score_element(
    img_a: np.ndarray,
    img_b: np.ndarray,
    element: Element,
    scale: float,
    noise_floor: float = 5.0,
) -> ElementScore:
    """Compare two same-sized renders inside the scaled box of ``element``."""
    box = scale_box(element, scale)
    x, y, w, h = box
    pixel_amount = w * h if w > 0 and h > 0 else 0

    x0, y0, x1, y1, out_of_bounds = clip_box(x, y, w, h, img_a.shape)
    if x0 >= x1 or y0 >= y1:
        return ElementScore(0.0, 0.0, 0.0, pixel_amount, out_of_bounds)

    mean = mean_color_diff(img_a[y0:y1, x0:x1], img_b[y0:y1, x0:x1])
    importance = pixel_importance(element, box, x0, y0, x1, y1)

    diff_value = float(((mean > noise_floor) * importance).sum())
    diff_l1 = float((mean * importance).sum())
    diff_l2 = math.sqrt(float((mean * mean * importance).sum()))
    return ElementScore(diff_value, diff_l1, diff_l2, pixel_amount, out_of_bounds)


def describe_visual(filename: str, element: Element, page_number: int) -> str:
    where = (
        f"on page {page_number} at position {format_number(element.x)} | {format_number(element.y)} "
        f"with size {format_number(element.width)} width and {format_number(element.height)} height"
    )
    if isinstance(element, TextElement):
        return f'{filename}: Text "{element.text}" {where} looks different'
    return f"{filename}: Image {where} looks different"


def compare_page_visually(
    page_a: PageLayout,
    page_b: PageLayout,
    img_a: np.ndarray,
    img_b: np.ndarray,
    config: CompareConfig,
    difflog: DifferenceLogger,
) -> int:
    """
    Score every element of both pages against both renders and flag the
    visually different ones. Returns the number of flagged elements.
    """
    flagged = 0
    for page in (page_a, page_b):
        for i, element in enumerate(page.elements):
            score = score_element(img_a, img_b, element, config.scale, config.noise_floor)
            if score.out_of_bounds:
                logger.error(
                    f"{difflog.filename}: graphics boundaries exceed page boundaries on page {page.number} "
                    f"(box {scale_box(element, config.scale)}, page {img_a.shape[1]}x{img_a.shape[0]})"
                )
            # geometry past the render cannot be fully compared and counts as different
            if not (score.out_of_bounds or score.is_different(config.visual_threshold)):
                continue
            page.mark_different(i)
            flagged += 1
            difflog.log(describe_visual(difflog.filename, element, page.number))
    page_a.check_difference()
    page_b.check_difference()
    return flagged
