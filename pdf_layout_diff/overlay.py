# pdf_layout_diff/overlay.py
"""
Difference images.

A difference image is the grayscale render of the old page with every
flagged element tinted: red where the old render is darker than the new one
(something was removed), green where it is lighter (something was added).
Flagged images are outlined in red, flagged text is underlined in red.
"""
from __future__ import annotations
from pathlib import Path
from typing import Iterable, Optional
import logging

import cv2
import numpy as np

from .colorize import Colorize
from .difference_log import DifferenceLogger
from .models import CompareConfig, Element, ImageElement, PageLayout
from .raster_diff import (
    ScratchBuffers, clip_box, compare_page_visually, mean_color_diff, prepare_renders, scale_box
)

logger = logging.getLogger(__name__)

OUTLINE_COLOR = (255, 0, 0)   # RGB


def page_image_path(output_dir: str, name: str, page_number: int) -> Path:
    """``<output_dir>/<stem>_pdf/page_<n>.png`` for document ``name``."""
    return Path(output_dir) / f"{Path(name).stem}_pdf" / f"page_{page_number}.png"


def write_png(path: Path, rgb: np.ndarray) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)):
        raise OSError(f"Could not write image: {path}")
    logger.debug(f"Wrote {path}")
    return path


def _grayscale(rgba: np.ndarray) -> np.ndarray:
    return (rgba[..., :3].astype(np.int32).sum(axis=-1) // 3).astype(np.uint8)


def visualise_differences(
    img_a: np.ndarray,
    img_b: np.ndarray,
    flagged: Iterable[Element],
    scale: float,
    noise_floor: float = 5.0,
    scratch: Optional[ScratchBuffers] = None,
) -> np.ndarray:
    """
    Build the RGB difference image of two same-sized renders.

    Tints are computed from the two renders only, never from the image being
    drawn, so overlapping boxes and repeated runs give the same pixels.
    """
    gray_a = _grayscale(img_a)
    gray_b = _grayscale(img_b)
    h, w = gray_a.shape

    out = scratch.get("diff", (h, w, 3)) if scratch is not None else np.empty((h, w, 3), dtype=np.uint8)
    out[...] = gray_a[..., None]

    flagged = list(flagged)
    for element in flagged:
        x, y, bw, bh = scale_box(element, scale)
        x0, y0, x1, y1, _ = clip_box(x, y, bw, bh, gray_a.shape)
        if x0 >= x1 or y0 >= y1:
            continue
        changed = mean_color_diff(img_a[y0:y1, x0:x1], img_b[y0:y1, x0:x1]) > noise_floor
        ga = gray_a[y0:y1, x0:x1]
        gb = gray_b[y0:y1, x0:x1]
        lum = np.minimum(ga, gb)
        region = out[y0:y1, x0:x1]

        removed = changed & (ga < gb)
        region[removed, 0] = 255
        region[removed, 1] = lum[removed]
        region[removed, 2] = lum[removed]

        added = changed & (ga > gb)
        region[added, 0] = lum[added]
        region[added, 1] = 255
        region[added, 2] = lum[added]

    for element in flagged:
        x, y, bw, bh = scale_box(element, scale)
        if isinstance(element, ImageElement):
            cv2.rectangle(out, (x, y), (x + bw, y + bh), OUTLINE_COLOR, 1)
        else:
            cv2.line(out, (x, y + bh), (x + bw, y + bh), OUTLINE_COLOR, 1)
    return out


def paint_missing_page(rgba: np.ndarray, colorize: Optional[Colorize] = None) -> np.ndarray:
    """Render of a page without counterpart, washed in red."""
    colorize = colorize or Colorize.red()
    return colorize.apply(np.ascontiguousarray(rgba[..., :3]))


# -----------------------
# Per-page entry points
# -----------------------
def visualise_page(
    name: str,
    page_a: PageLayout,
    page_b: PageLayout,
    rgba_a: np.ndarray,
    rgba_b: np.ndarray,
    config: CompareConfig,
    scratch: Optional[ScratchBuffers] = None,
) -> Optional[Path]:
    """
    Write the difference image of an already compared page pair.
    Returns the written path, or None when the page shows no differences or
    no output directory is configured.
    """
    if not (page_a.different or page_b.different) or not config.output_dir:
        return None
    img_a, img_b = prepare_renders(rgba_a, rgba_b, scratch)
    flagged = page_a.flagged_elements() + page_b.flagged_elements()
    rgb = visualise_differences(img_a, img_b, flagged, config.scale, config.noise_floor, scratch)
    return write_png(page_image_path(config.output_dir, name, page_a.number), rgb)


def compare_and_visualise_page(
    name: str,
    page_a: PageLayout,
    page_b: PageLayout,
    rgba_a: np.ndarray,
    rgba_b: np.ndarray,
    config: CompareConfig,
    difflog: DifferenceLogger,
    scratch: Optional[ScratchBuffers] = None,
) -> Optional[Path]:
    """Pixel-compare one page pair, then write its difference image if it differs."""
    img_a, img_b = prepare_renders(rgba_a, rgba_b, scratch)
    compare_page_visually(page_a, page_b, img_a, img_b, config, difflog)
    if not (page_a.different or page_b.different) or not config.output_dir:
        return None
    flagged = page_a.flagged_elements() + page_b.flagged_elements()
    rgb = visualise_differences(img_a, img_b, flagged, config.scale, config.noise_floor, scratch)
    return write_png(page_image_path(config.output_dir, name, page_a.number), rgb)


__all__ = [
    "page_image_path", "write_png", "visualise_differences", "paint_missing_page",
    "visualise_page", "compare_and_visualise_page",
]
