# pdf_layout_diff/difference_log.py
"""
Logging helpers.

Two kinds of output exist:

- process logs (``_error.log`` / ``_results.log`` and optional console output),
  configured once per process with ``configure_logging``
- one difference log per compared document (``<log_dir>/<name>.log``),
  written by a ``DifferenceLogger`` owned by exactly one job
"""
from __future__ import annotations
from pathlib import Path
from typing import List, Optional, TextIO
import logging

logger = logging.getLogger(__name__)

CONSOLE_FORMAT = "%(levelname)5s [%(processName)s] (%(filename)s:%(lineno)d) - %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(filename)s - %(message)s"

ERROR_LOG_NAME = "_error.log"
RESULTS_LOG_NAME = "_results.log"

_HANDLER_TAG = "_pdf_layout_diff_handler"


class _InfoOnlyFilter(logging.Filter):
    """Let only INFO records through (the results log)."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == logging.INFO


def _tag(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def configure_logging(log_dir: Optional[str] = None, console: bool = False, append: bool = False) -> None:
    """
    Configure the package root logger.

    Args:
        log_dir: Directory for ``_error.log`` and ``_results.log`` (None = no files)
        console: Also log DEBUG and above to stderr
        append: Append to existing log files (worker processes) instead of truncating
    """
    root = logging.getLogger("pdf_layout_diff")
    root.setLevel(logging.DEBUG)

    # re-configuration replaces our own handlers only
    for h in list(root.handlers):
        if getattr(h, _HANDLER_TAG, False):
            root.removeHandler(h)
            h.close()

    if console:
        stream = logging.StreamHandler()
        stream.setLevel(logging.DEBUG)
        stream.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root.addHandler(_tag(stream))

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        mode = "a" if append else "w"

        errors = logging.FileHandler(Path(log_dir) / ERROR_LOG_NAME, mode=mode, encoding="utf-8")
        errors.setLevel(logging.ERROR)
        errors.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(_tag(errors))

        results = logging.FileHandler(Path(log_dir) / RESULTS_LOG_NAME, mode=mode, encoding="utf-8")
        results.setLevel(logging.INFO)
        results.addFilter(_InfoOnlyFilter())
        results.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(_tag(results))

    if not root.handlers:
        root.addHandler(_tag(logging.NullHandler()))


def format_number(value: float) -> str:
    """Up to three decimals, no trailing zeros (``12.5``, ``3``, ``0.125``)."""
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


class DifferenceLogger:
    """
    Sink for the human readable difference lines of one document pair.

    The file ``<log_dir>/<stem>.log`` is only created once the first line is
    written, so documents without differences leave no log behind.
    """

    def __init__(self, log_dir: Optional[str], filename: str):
        self.filename = filename
        self.path: Optional[Path] = None
        if log_dir:
            self.path = Path(log_dir) / f"{Path(filename).stem}.log"
        self.lines: List[str] = []
        self._fh: Optional[TextIO] = None

    def log(self, message: str) -> None:
        self.lines.append(message)
        logger.debug(message)
        if self.path is None:
            return
        if self._fh is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self.path, "w", encoding="utf-8")
        self._fh.write(message + "\n")

    def close(self) -> None:
        if self._fh is not None:
            self._fh.flush()
            self._fh.close()
            self._fh = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
