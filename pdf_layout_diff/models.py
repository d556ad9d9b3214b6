from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Dict, List, Optional, Union

# --------------------------------------------------------------------
# Layout elements (top-left origin, PDF user units)
# --------------------------------------------------------------------
@dataclass(frozen=True)
class TextElement:
    x: float
    y: float
    width: float
    height: float
    text: str

    @property
    def kind(self) -> str:
        return "text"

@dataclass(frozen=True)
class ImageElement:
    x: float
    y: float
    width: float
    height: float

    @property
    def kind(self) -> str:
        return "image"

Element = Union[TextElement, ImageElement]

# --------------------------------------------------------------------
# Page / document layouts
# --------------------------------------------------------------------
@dataclass
class PageLayout:
    """
    Elements of one page plus a parallel list of difference flags.

    Elements are only appended while the page is extracted. Comparators
    address them by index and flip ``flags[i]``; a flag never goes back
    to False within one comparison run.
    """
    index: int           # 0-based
    width: float
    height: float
    elements: List[Element] = field(default_factory=list)
    flags: List[bool] = field(default_factory=list)
    different: bool = False

    @property
    def number(self) -> int:
        return self.index + 1

    def add_element(self, element: Element) -> int:
        self.elements.append(element)
        self.flags.append(False)
        return len(self.elements) - 1

    def mark_different(self, i: int) -> None:
        self.flags[i] = True

    def is_flagged(self, i: int) -> bool:
        return self.flags[i]

    def flagged_elements(self) -> List[Element]:
        return [e for e, f in zip(self.elements, self.flags) if f]

    def check_difference(self) -> bool:
        if any(self.flags):
            self.different = True
        return self.different

@dataclass
class DocumentLayout:
    page_count: int
    pages: Dict[int, PageLayout] = field(default_factory=dict)
    different: bool = False

    def add_page(self, page: PageLayout) -> None:
        self.pages[page.index] = page

    def page(self, index: int) -> Optional[PageLayout]:
        return self.pages.get(index)

    def iter_pages(self) -> List[PageLayout]:
        return [self.pages[i] for i in sorted(self.pages)]

    def check_difference(self) -> bool:
        for page in self.pages.values():
            if page.check_difference():
                self.different = True
        return self.different

# --------------------------------------------------------------------
# Comparison modes / job states
# --------------------------------------------------------------------
class ComparisonMode(Enum):
    SIMPLE = 1
    STRUCTURAL = 2
    VISUAL = 3

    @classmethod
    def parse(cls, value: "str | int | ComparisonMode") -> "ComparisonMode":
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            value = value.strip()
            if value.isdigit():
                return cls(int(value))
            return cls[value.upper()]
        except (KeyError, ValueError):
            raise ValueError(f"Unknown comparison mode: {value!r}") from None

class PairState(Enum):
    LOADED = auto()
    STRUCTURE_EXTRACTED = auto()
    STRUCTURE_COMPARED = auto()
    VISUALLY_COMPARED = auto()
    DONE = auto()
    FAILED = auto()

@dataclass
class DocumentPair:
    name: str                      # file name of the "old" document
    path_a: str
    path_b: str
    layout_a: Optional[DocumentLayout] = None
    layout_b: Optional[DocumentLayout] = None
    different: bool = False
    state: Optional[PairState] = None
    differing_pages: List[int] = field(default_factory=list)   # 1-based
    error: Optional[str] = None

    def mark_different(self) -> None:
        self.different = True

    def check_difference(self) -> bool:
        # evaluate both sides, no short-circuit: each layout caches its own flag
        diff_a = self.layout_a.check_difference() if self.layout_a else False
        diff_b = self.layout_b.check_difference() if self.layout_b else False
        if diff_a or diff_b:
            self.different = True
        return self.different

    def collect_differing_pages(self) -> List[int]:
        pages = set()
        for layout in (self.layout_a, self.layout_b):
            if layout is None:
                continue
            for page in layout.pages.values():
                if page.different:
                    pages.add(page.number)
        self.differing_pages = sorted(pages)
        return self.differing_pages

# --------------------------------------------------------------------
# Configuration
# --------------------------------------------------------------------
DEFAULT_SCALE = 2.1389   # PDF user units -> pixels of the rendered page

@dataclass(frozen=True)
class CompareConfig:
    mode: ComparisonMode = ComparisonMode.SIMPLE
    workers: int = 0                      # 0 = PDF_LAYOUT_DIFF_WORKERS env or 4
    scale: float = DEFAULT_SCALE
    noise_floor: float = 5.0              # mean channel diff counted as "changed"
    visual_threshold: float = 0.10        # changed share of an element's pixels
    output_dir: Optional[str] = None      # difference images; None = don't write
    log_dir: Optional[str] = None         # per-document difference logs
    prefix: Optional[str] = None

    def copy(self, **changes) -> "CompareConfig":
        return replace(self, **changes)

__all__ = [
    # layout
    "TextElement", "ImageElement", "Element", "PageLayout", "DocumentLayout", "DocumentPair",
    # modes/config
    "ComparisonMode", "PairState", "CompareConfig", "DEFAULT_SCALE",
]
