# pdf_layout_diff/worker_pool.py
"""
Worker pool for document pair jobs.

PyMuPDF handles are not thread-safe, so jobs run in worker processes:

- BLAS/OpenMP threads are pinned to one per worker
- only ``workers x multiplier`` futures are in flight at once, which bounds
  the number of rendered pages held in memory
- results are handed to the caller as each future completes

Usage:
    with ThrottledPoolExecutor(max_workers=4, initializer=worker_init) as pool:
        results = pool.submit_throttled(compare_pair_job, pairs, item_to_args=lambda p: (p, config))
"""
from __future__ import annotations
from typing import Dict, Any, Callable, Optional, Iterable, List
from concurrent.futures import ProcessPoolExecutor, Future, wait, FIRST_COMPLETED
from concurrent.futures.process import BrokenProcessPool
from collections import deque
import multiprocessing as mp
import logging
import atexit
import os

from threadpoolctl import threadpool_limits

from .difference_log import configure_logging

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4
WORKERS_ENV = "PDF_LAYOUT_DIFF_WORKERS"

# -----------------------
# Thread control helpers
# -----------------------
_THREAD_ENV_VARS = (
    "OMP_NUM_THREADS",
    "OPENBLAS_NUM_THREADS",
    "MKL_NUM_THREADS",
    "NUMEXPR_NUM_THREADS",
    "VECLIB_MAXIMUM_THREADS",
)

_THREADPOOL_LIMITER = None
_THREADPOOL_EXIT_REGISTERED = False


def _set_thread_env_defaults() -> None:
    for var in _THREAD_ENV_VARS:
        os.environ.setdefault(var, "1")


def _activate_threadpool_limits() -> None:
    """Clamp native threadpools (NumPy/OpenCV) to a single thread."""
    global _THREADPOOL_LIMITER, _THREADPOOL_EXIT_REGISTERED

    if _THREADPOOL_LIMITER is not None:
        return

    limiter = threadpool_limits(limits=1)
    limiter.__enter__()
    _THREADPOOL_LIMITER = limiter

    if not _THREADPOOL_EXIT_REGISTERED:
        atexit.register(_shutdown_threadpool_limits)
        _THREADPOOL_EXIT_REGISTERED = True


def _shutdown_threadpool_limits() -> None:
    global _THREADPOOL_LIMITER
    if _THREADPOOL_LIMITER is not None:
        try:
            _THREADPOOL_LIMITER.__exit__(None, None, None)
        finally:
            _THREADPOOL_LIMITER = None


def configure_thread_env() -> None:
    """Prepare the current process for safe multiprocessing imports."""
    _set_thread_env_defaults()


# -----------------------
# Worker Process Initialization
# -----------------------
def worker_init(log_dir: Optional[str] = None, console: bool = False):
    """
    Initializer for pool workers.

    Caps native threads at one per worker (4 workers x 8 BLAS threads would
    oversubscribe a 4 core box) and attaches the same log handlers as the
    parent process, appending to its files.
    """
    configure_thread_env()
    _activate_threadpool_limits()
    configure_logging(log_dir, console=console, append=True)


# -----------------------
# Throttled Pool Executor
# -----------------------
class ThrottledPoolExecutor:
    """
    ProcessPoolExecutor wrapper with throttled submission.

    Keeps at most ``max_workers * in_flight_multiplier`` futures in flight and
    refills as they complete. Always uses the 'spawn' start method to avoid
    fork+thread deadlocks.
    """

    def __init__(
        self,
        max_workers: int,
        initializer: Optional[Callable] = None,
        initargs: tuple = (),
        mp_context: Optional[mp.context.BaseContext] = None,
        in_flight_multiplier: int = 2,
    ):
        self.max_workers = max_workers
        self.initializer = initializer
        self.initargs = initargs
        self.mp_context = mp_context or mp.get_context("spawn")
        self.max_in_flight = max_workers * in_flight_multiplier
        self.executor: Optional[ProcessPoolExecutor] = None

    def __enter__(self):
        self.executor = ProcessPoolExecutor(
            max_workers=self.max_workers,
            mp_context=self.mp_context,
            initializer=self.initializer,
            initargs=self.initargs,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.executor:
            self.executor.shutdown(wait=True)
        return False

    def submit_throttled(
        self,
        worker_func: Callable,
        items: Iterable[Any],
        progress_callback: Optional[Callable[[int, int], None]] = None,
        item_to_args: Optional[Callable[[Any], tuple]] = None,
        on_result: Optional[Callable[[Any, Any], None]] = None,
        on_error: Optional[Callable[[Any, BaseException], Any]] = None,
    ) -> List[Any]:
        """
        Run ``worker_func`` for every item with bounded in-flight futures.

        Args:
            worker_func: Function to call for each item (must be picklable)
            items: Items to process
            progress_callback: Optional callback(completed_count, total_count)
            item_to_args: Converts an item to the args tuple for worker_func
                          (default: the item as single argument)
            on_result: Called in this process as callback(item, result) for
                       every completed item, in completion order
            on_error: callback(item, exc) returning a substitute result for a
                      failed item; without it the first failure raises

        Returns:
            List of results in submission order (not completion order)

        Raises:
            RuntimeError: An item failed and no ``on_error`` was given
            MemoryError, BrokenProcessPool: Always propagated
        """
        if not self.executor:
            raise RuntimeError("ThrottledPoolExecutor not entered (use 'with' statement)")

        items_list = list(items)
        total_items = len(items_list)
        if total_items == 0:
            return []

        if item_to_args is None:
            item_to_args = lambda item: (item,)

        pending_items = deque(enumerate(items_list))
        in_flight: Dict[Future, int] = {}
        results_dict: Dict[int, Any] = {}

        def refill():
            while pending_items and len(in_flight) < self.max_in_flight:
                item_idx, item = pending_items.popleft()
                fut = self.executor.submit(worker_func, *item_to_args(item))
                in_flight[fut] = item_idx

        refill()
        completed_count = 0
        while in_flight:
            done, _ = wait(in_flight.keys(), return_when=FIRST_COMPLETED, timeout=300)

            if not done:
                logger.warning(f"Timeout waiting for work completion after 300s ({completed_count}/{total_items} done)")
                continue

            for fut in done:
                item_idx = in_flight.pop(fut)
                item = items_list[item_idx]
                try:
                    result = fut.result(timeout=10)
                except (MemoryError, BrokenProcessPool):
                    raise
                except Exception as e:
                    if on_error is None:
                        error_msg = f"Item {item_idx} (of {total_items}) processing failed: {e}"
                        logger.error(error_msg)
                        raise RuntimeError(error_msg) from e
                    result = on_error(item, e)

                results_dict[item_idx] = result
                completed_count += 1
                if on_result:
                    on_result(item, result)
                if progress_callback:
                    progress_callback(completed_count, total_items)

            refill()

        return [results_dict[i] for i in range(total_items)]


def run_serial(
    worker_func: Callable,
    items: Iterable[Any],
    progress_callback: Optional[Callable[[int, int], None]] = None,
    item_to_args: Optional[Callable[[Any], tuple]] = None,
    on_result: Optional[Callable[[Any, Any], None]] = None,
    on_error: Optional[Callable[[Any, BaseException], Any]] = None,
) -> List[Any]:
    """In-process counterpart of ``submit_throttled`` for a single worker."""
    if item_to_args is None:
        item_to_args = lambda item: (item,)
    items = list(items)
    results = []
    for item in items:
        try:
            result = worker_func(*item_to_args(item))
        except MemoryError:
            raise
        except Exception as e:
            if on_error is None:
                raise
            result = on_error(item, e)
        if on_result:
            on_result(item, result)
        results.append(result)
        if progress_callback:
            progress_callback(len(results), len(items))
    return results


# -----------------------
# Helper Functions
# -----------------------
def default_workers() -> int:
    """``PDF_LAYOUT_DIFF_WORKERS`` from the environment, else 4."""
    raw = os.getenv(WORKERS_ENV)
    if not raw:
        return DEFAULT_WORKERS
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring {WORKERS_ENV}={raw!r}: not an integer")
        return DEFAULT_WORKERS
    return max(1, value)


def get_optimal_workers(requested_workers: int = 0, job_count: int = 1) -> int:
    """
    Worker count for a batch.

    Args:
        requested_workers: Requested worker count (0 = from environment / default)
        job_count: Number of jobs; no more workers than jobs are started

    Returns:
        Worker count, at least 1
    """
    if requested_workers <= 0:
        requested_workers = default_workers()
    return max(1, min(requested_workers, job_count))


__all__ = [
    "configure_thread_env", "worker_init", "ThrottledPoolExecutor", "run_serial",
    "default_workers", "get_optimal_workers",
]
