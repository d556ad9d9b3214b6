# pdf_layout_diff/batch.py
"""
Comparison of whole document pairs and batches of pairs.

One job compares one pair: load both PDFs, extract their layouts, compare
them structurally (SIMPLE / STRUCTURAL) or pixel by pixel (VISUAL), write
difference images and log a one line result. Jobs share nothing, so a batch
runs them in a process pool and only OR-reduces their verdicts.
"""
from __future__ import annotations
from typing import Any, Iterable, List, Optional, Tuple
import logging
import threading
import time

from .compare import compare_structure
from .difference_log import DifferenceLogger
from .discovery import discover_pairs
from .models import CompareConfig, ComparisonMode, DocumentLayout, DocumentPair, PageLayout, PairState
from .overlay import compare_and_visualise_page, page_image_path, paint_missing_page, visualise_page, write_png
from .pdf_extract import extract_layout
from .pdf_service import LoadError, PdfDocumentService
from .raster_diff import ScratchBuffers
from .worker_pool import ThrottledPoolExecutor, get_optimal_workers, run_serial, worker_init

logger = logging.getLogger(__name__)


# -----------------------
# Result reporting
# -----------------------
def result_line(pair: DocumentPair) -> str:
    if not pair.different:
        return f"{pair.name}: no differences found"
    if pair.differing_pages:
        pages = ",".join(str(p) for p in pair.differing_pages)
        return f"{pair.name}: found differences on pages: {pages}"
    return f"{pair.name}: found differences (documents could not be compared page by page)"


# -----------------------
# Job steps
# -----------------------
def _open(service: PdfDocumentService, path: str, pair: DocumentPair, difflog: DifferenceLogger) -> Any:
    try:
        return service.open(path)
    except LoadError as e:
        logger.error(f"{pair.name}: {e}")
        difflog.log(f"{pair.name}: {e}")
        pair.mark_different()
        pair.error = str(e)
        return None


def _paint_missing_pages(
    service: PdfDocumentService,
    handle: Any,
    pages: Iterable[int],
    pair: DocumentPair,
    config: CompareConfig,
) -> None:
    """Write red washed renders of pages (0-based) that have no counterpart."""
    if not config.output_dir:
        return
    for index in pages:
        rgba = service.render_page_to_rgba(handle, index, config.scale).rgba
        write_png(page_image_path(config.output_dir, pair.name, index + 1), paint_missing_page(rgba))


def _matched_pages(
    layout_a: DocumentLayout,
    layout_b: DocumentLayout,
    name: str,
    difflog: DifferenceLogger,
) -> List[Tuple[PageLayout, PageLayout]]:
    """Page pairs present on both sides; pages present on one side only are flagged."""
    matched = []
    for page in layout_a.iter_pages():
        other = layout_b.page(page.index)
        if other is None:
            difflog.log(f"{name}: page {page.number} missing in other pdf")
            page.different = True
            continue
        matched.append((page, other))
    for page in layout_b.iter_pages():
        if layout_a.page(page.index) is None:
            difflog.log(f"{name}: page {page.number} missing in other pdf")
            page.different = True
    return matched


def _compare_visually(
    service: PdfDocumentService,
    handles: Tuple[Any, Any],
    pair: DocumentPair,
    config: CompareConfig,
    difflog: DifferenceLogger,
    scratch: ScratchBuffers,
) -> None:
    for page_a, page_b in _matched_pages(pair.layout_a, pair.layout_b, pair.name, difflog):
        try:
            rgba_a = service.render_page_to_rgba(handles[0], page_a.index, config.scale).rgba
            rgba_b = service.render_page_to_rgba(handles[1], page_b.index, config.scale).rgba
            compare_and_visualise_page(pair.name, page_a, page_b, rgba_a, rgba_b, config, difflog, scratch)
        except MemoryError:
            raise
        except Exception as e:
            _page_failed(pair, page_a, e, difflog)
    pair.check_difference()


def _page_failed(pair: DocumentPair, page: PageLayout, error: Exception, difflog: DifferenceLogger) -> None:
    """A page that cannot be rendered or drawn counts as different; the other pages go on."""
    logger.error(f"{pair.name}: page {page.number} could not be compared: {error}", exc_info=True)
    difflog.log(f"{pair.name}: page {page.number} could not be compared")
    page.different = True


def _visualise_structural(
    service: PdfDocumentService,
    handles: Tuple[Any, Any],
    pair: DocumentPair,
    config: CompareConfig,
    difflog: DifferenceLogger,
    scratch: ScratchBuffers,
) -> None:
    if not pair.different or not config.output_dir:
        return
    for page_a in pair.layout_a.iter_pages():
        page_b = pair.layout_b.page(page_a.index)
        if page_b is None or not (page_a.different or page_b.different):
            continue
        try:
            rgba_a = service.render_page_to_rgba(handles[0], page_a.index, config.scale).rgba
            rgba_b = service.render_page_to_rgba(handles[1], page_b.index, config.scale).rgba
            visualise_page(pair.name, page_a, page_b, rgba_a, rgba_b, config, scratch)
        except MemoryError:
            raise
        except Exception as e:
            _page_failed(pair, page_a, e, difflog)


def _run_job(
    pair: DocumentPair,
    config: CompareConfig,
    service: PdfDocumentService,
    scratch: ScratchBuffers,
    difflog: DifferenceLogger,
    handles: List[Any],
) -> None:
    logger.info(f"{pair.name}: Process {pair.name}")

    handle_a = _open(service, pair.path_a, pair, difflog)
    handle_b = _open(service, pair.path_b, pair, difflog)
    handles.extend(h for h in (handle_a, handle_b) if h is not None)
    if handle_a is None or handle_b is None:
        loaded = handle_a if handle_a is not None else handle_b
        if loaded is not None:
            _paint_missing_pages(service, loaded, range(service.page_count(loaded)), pair, config)
        pair.state = PairState.FAILED
        return
    pair.state = PairState.LOADED

    count_a, count_b = service.page_count(handle_a), service.page_count(handle_b)
    if count_a != count_b:
        difflog.log(f"{pair.name}: Different amount of pages: {count_a} to {count_b}")
        pair.mark_different()
        longer = handle_a if count_a > count_b else handle_b
        surplus = range(min(count_a, count_b), max(count_a, count_b))
        pair.differing_pages = [i + 1 for i in surplus]
        _paint_missing_pages(service, longer, surplus, pair, config)
        pair.state = PairState.DONE
        return

    logger.debug(f"{pair.name}: analyse PDF structure ...")
    pair.layout_a = extract_layout(service, handle_a, pair.name)
    pair.layout_b = extract_layout(service, handle_b, pair.name)
    pair.state = PairState.STRUCTURE_EXTRACTED

    if config.mode is ComparisonMode.VISUAL:
        logger.debug(f"{pair.name}: compare PDF pages visually ...")
        _compare_visually(service, (handle_a, handle_b), pair, config, difflog, scratch)
        pair.state = PairState.VISUALLY_COMPARED
    else:
        logger.debug(f"{pair.name}: compare PDF structure ...")
        compare_structure(pair, config.mode, difflog)
        pair.state = PairState.STRUCTURE_COMPARED
        logger.debug(f"{pair.name}: visualise differences ...")
        _visualise_structural(service, (handle_a, handle_b), pair, config, difflog, scratch)
        pair.state = PairState.VISUALLY_COMPARED

    pair.collect_differing_pages()
    pair.state = PairState.DONE


def compare_pair_job(
    pair: DocumentPair,
    config: CompareConfig,
    service: Optional[PdfDocumentService] = None,
    scratch: Optional[ScratchBuffers] = None,
) -> DocumentPair:
    """
    Compare one document pair end to end and return it with its verdict.

    Never raises for a broken pair: failures end in ``PairState.FAILED`` with
    the pair marked different. ``MemoryError`` is propagated.
    """
    service = service or PdfDocumentService()
    scratch = scratch or ScratchBuffers()
    handles: List[Any] = []
    start = time.perf_counter()
    with DifferenceLogger(config.log_dir, pair.name) as difflog:
        try:
            _run_job(pair, config, service, scratch, difflog, handles)
        except MemoryError:
            raise
        except Exception as e:
            logger.error(f"{pair.name}: {e}", exc_info=True)
            pair.state = PairState.FAILED
            pair.error = str(e)
            pair.mark_different()
        finally:
            for h in handles:
                service.close(h)

    logger.info(result_line(pair))
    logger.info(f"{pair.name}: processing took {(time.perf_counter() - start) * 1000:.0f}ms")
    return pair


# -----------------------
# Batch
# -----------------------
class BatchComparator:
    """
    Runs one ``compare_pair_job`` per document pair on a bounded pool and
    reduces the verdicts into ``found_difference``.
    """

    def __init__(self, config: Optional[CompareConfig] = None, console: bool = False):
        self.config = config or CompareConfig()
        self.console = console
        self.found_difference = False
        self.results: List[DocumentPair] = []
        self._lock = threading.Lock()

    def _finished(self, pair: DocumentPair, result: DocumentPair) -> None:
        with self._lock:
            self.found_difference |= result.different
            self.results.append(result)

    def _failed(self, pair: DocumentPair, exc: BaseException) -> DocumentPair:
        logger.error(f"{pair.name}: {exc}", exc_info=exc)
        pair.state = PairState.FAILED
        pair.error = str(exc)
        pair.mark_different()
        return pair

    def _progress(self, done: int, total: int) -> None:
        logger.debug(f"Compared {done}/{total} pair(s)")

    def run_pairs(self, pairs: List[DocumentPair], config: Optional[CompareConfig] = None) -> bool:
        config = config or self.config
        self.found_difference = False
        self.results = []
        if not pairs:
            return False

        workers = get_optimal_workers(config.workers, len(pairs))
        logger.debug(f"Comparing {len(pairs)} pair(s) with {workers} worker(s), mode {config.mode.name}")

        if workers == 1:
            scratch = ScratchBuffers()
            run_serial(
                compare_pair_job,
                pairs,
                progress_callback=self._progress,
                item_to_args=lambda p: (p, config, None, scratch),
                on_result=self._finished,
                on_error=self._failed,
            )
        else:
            with ThrottledPoolExecutor(
                max_workers=workers,
                initializer=worker_init,
                initargs=(config.log_dir, self.console),
            ) as pool:
                pool.submit_throttled(
                    compare_pair_job,
                    pairs,
                    progress_callback=self._progress,
                    item_to_args=lambda p: (p, config),
                    on_result=self._finished,
                    on_error=self._failed,
                )

        self.results.sort(key=lambda p: p.name.lower())
        return self.found_difference

    def run(
        self,
        dir_a: str,
        dir_b: str,
        output_dir: Optional[str] = None,
        prefix: Optional[str] = None,
    ) -> bool:
        """Compare all same-named PDFs of two directories. True if any pair differs."""
        start = time.perf_counter()
        config = self.config.copy(
            output_dir=output_dir if output_dir is not None else self.config.output_dir,
            prefix=prefix if prefix is not None else self.config.prefix,
        )
        pairs = discover_pairs(dir_a, dir_b, config.prefix)
        found = self.run_pairs(pairs, config)
        logger.info(f"Execution time: {(time.perf_counter() - start) * 1000:.0f}ms")
        return found


__all__ = ["result_line", "compare_pair_job", "BatchComparator"]
