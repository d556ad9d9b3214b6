# pdf_layout_diff/compare.py
"""
Structural comparison of two document layouts.

Every element of one document is searched on the same page of the other
document. Two elements are "the same" when they are of the same kind, carry
the same text (case-insensitive) and their boxes cover each other enough:

- images: more than 99 %
- text, SIMPLE mode: more than 65 % of the vertical extent (55 % if malformed)
- text, STRUCTURAL mode: more than 85 % of the area, 2 % less per character
  below five characters, another 10 % less if malformed

The search runs in both directions, since coverage is not symmetric in what
it can find: a small element sitting inside a large one is only noticed when
the small one is the element searched for.
"""
from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import logging

from shapely.geometry import box

from .difference_log import DifferenceLogger, format_number
from .models import (
    ComparisonMode, DocumentLayout, DocumentPair, Element, PageLayout, TextElement
)

logger = logging.getLogger(__name__)

# Degenerate text boxes: height at or below this is an extraction artifact
MALFORMED_HEIGHT = 1.0

# Acceptance thresholds, in percent to keep the arithmetic exact
IMAGE_MIN_COVERAGE_PCT = 99
SIMPLE_TEXT_MIN_COVERAGE_PCT = 65
STRUCTURAL_TEXT_MIN_COVERAGE_PCT = 85
MALFORMED_REDUCTION_PCT = 10


# -----------------------
# Pairwise measures
# -----------------------
def _same_text(e1: TextElement, e2: TextElement) -> bool:
    return e1.text.lower() == e2.text.lower()


def is_malformed_text(e1: Element, e2: Element) -> bool:
    """
    True for two text elements with equal text where exactly one of them has
    a degenerate height. PDF text extraction sometimes yields zero-height runs
    for otherwise identical words.
    """
    if not (isinstance(e1, TextElement) and isinstance(e2, TextElement)):
        return False
    if not _same_text(e1, e2):
        return False
    return (e1.height <= MALFORMED_HEIGHT < e2.height) or (e2.height <= MALFORMED_HEIGHT < e1.height)


def _repaired_vertical(e1: Element, e2: Element, malformed: bool) -> Tuple[float, float, float, float]:
    """
    (y1, h1, y2, h2) where a degenerate side borrows the other side's height.
    The borrowed box grows upwards so its bottom edge stays where it was.
    This is a heuristic for broken text runs only.
    """
    y1, h1, y2, h2 = e1.y, e1.height, e2.y, e2.height
    if malformed:
        if h1 <= MALFORMED_HEIGHT < h2:
            y1 -= h2 - h1
            h1 = h2
        elif h2 <= MALFORMED_HEIGHT < h1:
            y2 -= h1 - h2
            h2 = h1
    return y1, h1, y2, h2


def area_coverage(e1: Element, e2: Element, malformed: bool, mode: ComparisonMode) -> float:
    """
    How strongly two boxes cover each other, as the smaller of the two
    one-sided ratios (a small box inside a big one must not score 100 %).

    SIMPLE: only the vertical overlap is considered.
    STRUCTURAL (and VISUAL): full rectangle intersection.
    """
    y1, h1, y2, h2 = _repaired_vertical(e1, e2, malformed)
    if h1 <= 0 or h2 <= 0:
        return 0.0

    if mode is ComparisonMode.SIMPLE:
        covered = min(y1 + h1, y2 + h2) - max(y1, y2)
        if covered <= 0:
            return 0.0
        return min(covered / h1, covered / h2)

    if e1.width <= 0 or e2.width <= 0:
        return 0.0
    r1 = box(e1.x, y1, e1.x + e1.width, y1 + h1)
    r2 = box(e2.x, y2, e2.x + e2.width, y2 + h2)
    if not r1.intersects(r2):
        return 0.0
    overlap = r1.intersection(r2).area
    if overlap <= 0:
        return 0.0
    return min(overlap / r1.area, overlap / r2.area)


def edge_position(element: Element, page_width: float) -> int:
    """-1 if cut by the left page border, 1 if cut by the right one, else 0."""
    if element.x < 0:
        return -1
    if element.x + element.width > page_width:
        return 1
    return 0


def coverage_threshold(element: Optional[Element], mode: ComparisonMode, malformed: bool) -> float:
    """Coverage an element needs to exceed to count as found."""
    if not isinstance(element, TextElement):
        return IMAGE_MIN_COVERAGE_PCT / 100

    malformed_pct = MALFORMED_REDUCTION_PCT if malformed else 0
    if mode is ComparisonMode.SIMPLE:
        return (SIMPLE_TEXT_MIN_COVERAGE_PCT - malformed_pct) / 100

    # 2 % per character below five: 1 char -> 8 %, 4 chars -> 2 %
    reduction = 10 - min(len(element.text), 5) * 2 + malformed_pct
    return (STRUCTURAL_TEXT_MIN_COVERAGE_PCT - max(reduction, 0)) / 100


# -----------------------
# Candidate search
# -----------------------
class _PageIndex:
    """Candidates of one page grouped by kind (and lower-cased text)."""

    def __init__(self, page: PageLayout):
        self.page = page
        self.texts: Dict[str, List[int]] = {}
        self.images: List[int] = []
        for i, e in enumerate(page.elements):
            if isinstance(e, TextElement):
                self.texts.setdefault(e.text.lower(), []).append(i)
            else:
                self.images.append(i)

    def candidates(self, element: Element) -> List[int]:
        if isinstance(element, TextElement):
            # unequal text always scores 0 and can never become the best match
            return self.texts.get(element.text.lower(), [])
        return self.images


def find_best_match(
    element: Element,
    target: "PageLayout | _PageIndex",
    mode: ComparisonMode,
) -> Optional[int]:
    """
    Index of the element on ``target`` most similar to ``element``, or None
    when even the best candidate misses its coverage threshold.

    Candidates are scanned in page order and only a strictly better coverage
    replaces the current best, so ties go to the first candidate.
    """
    index = target if isinstance(target, _PageIndex) else _PageIndex(target)
    page = index.page
    # both sides are judged against the page being searched
    own_edge = edge_position(element, page.width)

    best_coverage = 0.0
    best: Optional[int] = None
    best_malformed = False

    for i in index.candidates(element):
        candidate = page.elements[i]
        malformed = is_malformed_text(element, candidate)
        coverage = area_coverage(element, candidate, malformed, mode)

        if isinstance(element, TextElement) and not _same_text(element, candidate):
            coverage = 0.0

        # an element cut by the page border only matches one cut the same way
        if edge_position(candidate, page.width) != own_edge:
            coverage = 0.0

        if coverage > best_coverage:
            best_coverage = coverage
            best = i
            best_malformed = malformed

    if best is None:
        return None
    if best_coverage > coverage_threshold(page.elements[best], mode, best_malformed):
        return best
    return None


# -----------------------
# Reporting
# -----------------------
def describe_missing(filename: str, element: Element, page_number: int) -> str:
    where = (
        f"on page {page_number} at position {format_number(element.x)} | {format_number(element.y)} "
        f"with size {format_number(element.width)} width and {format_number(element.height)} height"
    )
    if isinstance(element, TextElement):
        return f'{filename}: Could not find similar text "{element.text}" {where}'
    return f"{filename}: Could not find similar image {where}"


# -----------------------
# Public API
# -----------------------
def compare_layouts(
    source: DocumentLayout,
    target: DocumentLayout,
    mode: ComparisonMode,
    difflog: DifferenceLogger,
) -> int:
    """
    Flag every element of ``source`` without an equivalent on the same page of
    ``target``. Returns the number of newly flagged elements.
    """
    flagged = 0
    for page in source.iter_pages():
        counterpart = target.page(page.index)
        if counterpart is None:
            difflog.log(f"{difflog.filename}: page {page.number} missing in other pdf")
            page.different = True
            continue

        index = _PageIndex(counterpart)
        for i, element in enumerate(page.elements):
            if find_best_match(element, index, mode) is not None:
                continue
            if not page.is_flagged(i):
                flagged += 1
            page.mark_different(i)
            difflog.log(describe_missing(difflog.filename, element, page.number))
    return flagged


def compare_structure(pair: DocumentPair, mode: ComparisonMode, difflog: DifferenceLogger) -> bool:
    """
    Structural comparison of a loaded and extracted pair, in both directions.

    Does nothing when the pair is already known to differ (e.g. different
    page counts). Returns the pair's ``different`` flag.
    """
    if pair.different:
        return True

    if pair.layout_a is None or pair.layout_b is None:
        pair.mark_different()
        return True

    missing_in_b = compare_layouts(pair.layout_a, pair.layout_b, mode, difflog)
    missing_in_a = compare_layouts(pair.layout_b, pair.layout_a, mode, difflog)
    logger.debug(f"{pair.name}: {missing_in_b} element(s) not found in new, {missing_in_a} not found in old")

    return pair.check_difference()


__all__ = [
    "is_malformed_text", "area_coverage", "edge_position", "coverage_threshold",
    "find_best_match", "describe_missing", "compare_layouts", "compare_structure",
]
