# pdf_layout_diff/__init__.py
from .models import (
    TextElement, ImageElement, PageLayout, DocumentLayout, DocumentPair,
    ComparisonMode, PairState, CompareConfig,
)
from .pdf_service import PdfDocumentService, LoadError
from .compare import compare_structure
from .raster_diff import ScratchBuffers, score_element
from .overlay import visualise_differences
from .discovery import discover_pairs
from .batch import compare_pair_job, BatchComparator

__version__ = "0.1.0"

__all__ = [
    "TextElement",
    "ImageElement",
    "PageLayout",
    "DocumentLayout",
    "DocumentPair",
    "ComparisonMode",
    "PairState",
    "CompareConfig",
    "PdfDocumentService",
    "LoadError",
    "compare_structure",
    "ScratchBuffers",
    "score_element",
    "visualise_differences",
    "discover_pairs",
    "compare_pair_job",
    "BatchComparator",
]
