# pdf_layout_diff/discovery.py
"""
Pairing of same-named PDF files from two directories.
"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional
import logging

from .models import DocumentPair

logger = logging.getLogger(__name__)


def _list_pdfs(directory: Path, prefix: Optional[str]) -> List[Path]:
    files = []
    for p in directory.iterdir():
        if not p.is_file() or p.suffix.lower() != ".pdf":
            continue
        if prefix and not p.name.startswith(prefix):
            continue
        files.append(p)
    return sorted(files, key=lambda p: p.name)


def discover_pairs(dir_a: str, dir_b: str, prefix: Optional[str] = None) -> List[DocumentPair]:
    """
    Pair up PDFs of two directories by file name.

    Names are matched case-insensitively, the ``.pdf`` suffix is matched
    case-insensitively, an optional ``prefix`` case-sensitively. Files without
    a counterpart are logged and skipped. Returns the pairs sorted by name;
    an empty list if either directory is invalid.
    """
    a, b = Path(dir_a), Path(dir_b)
    if not a.is_dir() or not b.is_dir():
        logger.error(f"The path is not valid: {dir_a} / {dir_b}")
        return []

    files_b: Dict[str, Path] = {p.name.lower(): p for p in _list_pdfs(b, prefix)}
    matched = set()
    pairs: List[DocumentPair] = []
    for path_a in _list_pdfs(a, prefix):
        path_b = files_b.get(path_a.name.lower())
        if path_b is None:
            logger.info(f"Could not find {path_a.name} in {b.resolve()}")
            continue
        matched.add(path_a.name.lower())
        pairs.append(DocumentPair(name=path_a.name, path_a=str(path_a), path_b=str(path_b)))

    for key, path_b in files_b.items():
        if key not in matched:
            logger.info(f"Could not find {path_b.name} in {a.resolve()}")

    logger.debug(f"Found {len(pairs)} document pair(s)")
    return pairs
