"""Chunked process-pool execution for independent Monte Carlo trials.

Trials are grouped into contiguous chunks of trial indices, each chunk is
submitted to a ``ProcessPoolExecutor``, and the per-trial results are put
back in trial-index order before reduction.  The worker count is bounded by
the detected CPU resources and one core is left free.

Cancellation and timeouts are checked while waiting on chunks.  When either
fires, queued chunks are cancelled and :class:`SimulationCancelled` is
raised; a failure inside a worker re-raises in the caller the same way.  No
partial result is ever returned.

Example:
    >>> from surplus_ruin.parallel_executor import ParallelExecutor
    >>> executor = ParallelExecutor(n_workers=4)
    >>> outcomes = executor.map_reduce(
    ...     work_function=simulate_trial,
    ...     work_items=range(100000),
    ...     shared_data={"config": config, "random_source_factory": factory},
    ... )
"""

from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, wait
from dataclasses import dataclass
import logging
import multiprocessing as mp
import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import psutil
from tqdm import tqdm

from .exceptions import SimulationCancelled

logger = logging.getLogger(__name__)

#: Seconds between cancel-flag checks while waiting on workers.
_POLL_INTERVAL = 0.05

ProgressCallback = Callable[[int, int, float], None]


@dataclass
class CPUProfile:
    """CPU resources used for worker-count and chunking decisions."""

    n_cores: int
    n_threads: int
    available_memory: int
    system_load: float

    @classmethod
    def detect(cls) -> "CPUProfile":
        """Detect the current CPU profile.

        Returns:
            CPUProfile: Current system CPU profile
        """
        load_avg = os.getloadavg()[0] if hasattr(os, "getloadavg") else 0.5
        return cls(
            n_cores=psutil.cpu_count(logical=False) or 1,
            n_threads=psutil.cpu_count(logical=True) or 1,
            available_memory=psutil.virtual_memory().available,
            system_load=load_avg,
        )

    def default_workers(self) -> int:
        """Physical cores minus one, but at least two when there are two cores."""
        return min(self.n_cores, max(2, self.n_cores - 1)) if self.n_cores > 1 else 1


@dataclass
class ChunkingStrategy:
    """Splits a run of trials into chunks for the pool.

    Attributes:
        initial_chunk_size: Chunk size used when ``adaptive`` is off.
        min_chunk_size: Lower bound for adaptive chunks.
        max_chunk_size: Upper bound for adaptive chunks.
        target_chunks_per_worker: Adaptive target, trades IPC overhead for
            cancellation latency and load balance.
        adaptive: Size chunks from the workload instead of using the fixed size.
    """

    initial_chunk_size: int = 500
    min_chunk_size: int = 50
    max_chunk_size: int = 5000
    target_chunks_per_worker: int = 8
    adaptive: bool = True

    def calculate_optimal_chunk_size(
        self,
        n_items: int,
        n_workers: int,
        cpu_profile: Optional[CPUProfile] = None,
    ) -> int:
        """Calculate the chunk size for a workload.

        Args:
            n_items: Total number of trials
            n_workers: Number of parallel workers
            cpu_profile: CPU profile; a busy machine gets larger chunks

        Returns:
            int: Chunk size
        """
        if not self.adaptive:
            return self.initial_chunk_size

        size = n_items // max(1, n_workers * self.target_chunks_per_worker)
        if cpu_profile is not None and cpu_profile.system_load > 0.8 * cpu_profile.n_threads:
            size = int(size * 1.5)
        return min(self.max_chunk_size, max(self.min_chunk_size, size))

    @staticmethod
    def create_chunks(work_items: Sequence[int], chunk_size: int) -> List[Tuple[int, int, List[int]]]:
        """Split items into ``(start, end, items)`` chunks of at most ``chunk_size``."""
        items = list(work_items)
        return [
            (i, min(i + chunk_size, len(items)), items[i : i + chunk_size])
            for i in range(0, len(items), chunk_size)
        ]


@dataclass
class PerformanceMetrics:
    """Timing and resource figures for the last ``map_reduce`` call."""

    total_time: float = 0.0
    computation_time: float = 0.0
    reduction_time: float = 0.0
    memory_peak: int = 0
    items_per_second: float = 0.0
    total_items: int = 0
    n_chunks: int = 0

    def summary(self) -> str:
        """Generate performance summary.

        Returns:
            str: Formatted performance summary
        """
        lines = [
            "Performance Summary",
            "=" * 50,
            f"Total Time: {self.total_time:.2f}s",
            f"Computation: {self.computation_time:.2f}s",
            f"Reduction: {self.reduction_time:.2f}s",
            f"Chunks: {self.n_chunks}",
            f"Peak Memory: {self.memory_peak / 1024**2:.1f} MB",
            f"Throughput: {self.items_per_second:.0f} trials/s",
        ]
        return "\n".join(lines)


class ParallelExecutor:
    """Process-pool map-reduce over trial indices.

    Args:
        n_workers: Worker processes (``None`` = physical cores minus one).
        chunking_strategy: How trials are grouped into chunks.
        chunk_size: Fixed chunk size; overrides the strategy when given.
        monitor_performance: Record peak memory after each run.
    """

    def __init__(
        self,
        n_workers: Optional[int] = None,
        chunking_strategy: Optional[ChunkingStrategy] = None,
        chunk_size: Optional[int] = None,
        monitor_performance: bool = True,
    ):
        self.cpu_profile = CPUProfile.detect()
        self.n_workers = n_workers if n_workers is not None else self.cpu_profile.default_workers()
        self.chunking_strategy = chunking_strategy or ChunkingStrategy()
        self.chunk_size = chunk_size
        self.monitor_performance = monitor_performance
        self.performance_metrics = PerformanceMetrics()

    def map_reduce(
        self,
        work_function: Callable,
        work_items: Sequence[int],
        reduce_function: Optional[Callable[[List[Any]], Any]] = None,
        shared_data: Optional[Dict[str, Any]] = None,
        progress_bar: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Apply ``work_function`` to every item in worker processes, then reduce.

        Args:
            work_function: Module-level (picklable) function called as
                ``work_function(item, **shared_data)``.
            work_items: Items to process, typically trial indices.
            reduce_function: Combines the ordered per-item results
                (``None`` returns the list itself).
            shared_data: Keyword arguments passed to every call.
            progress_bar: Show a ``tqdm`` bar over chunks.
            progress_callback: Called as ``(completed, total, elapsed_seconds)``
                after each chunk.
            cancel_event: Set it to stop the run.
            timeout: Seconds after which the run is stopped.

        Returns:
            Reduced result, or the per-item results in item order.

        Raises:
            SimulationCancelled: If cancelled or timed out.
            Exception: Whatever ``work_function`` raised in a worker.
        """
        start_time = time.time()
        n_items = len(work_items)
        chunk_size = self.chunk_size or self.chunking_strategy.calculate_optimal_chunk_size(
            n_items, self.n_workers, self.cpu_profile
        )
        chunks = ChunkingStrategy.create_chunks(work_items, chunk_size)
        logger.debug(
            "Running %d items in %d chunks of <=%d on %d workers",
            n_items,
            len(chunks),
            chunk_size,
            self.n_workers,
        )

        comp_start = time.time()
        chunk_results = self._execute_parallel(
            work_function,
            chunks,
            shared_data or {},
            progress_bar=progress_bar,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
            timeout=timeout,
            total_items=n_items,
        )
        self.performance_metrics.computation_time = time.time() - comp_start

        reduce_start = time.time()
        result = reduce_function(chunk_results) if reduce_function else chunk_results
        self.performance_metrics.reduction_time = time.time() - reduce_start

        self.performance_metrics.total_time = time.time() - start_time
        self.performance_metrics.total_items = n_items
        self.performance_metrics.n_chunks = len(chunks)
        if self.performance_metrics.total_time > 0:
            self.performance_metrics.items_per_second = n_items / self.performance_metrics.total_time
        if self.monitor_performance:
            self._update_memory_metrics()

        return result

    def _execute_parallel(
        self,
        work_function: Callable,
        chunks: List[Tuple[int, int, List[int]]],
        shared_data: Dict[str, Any],
        progress_bar: bool,
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
        timeout: Optional[float],
        total_items: int,
    ) -> List[Any]:
        results: List[Tuple[int, List[Any]]] = []
        completed_items = 0
        exec_start = time.time()
        deadline = exec_start + timeout if timeout is not None else None

        executor = ProcessPoolExecutor(max_workers=self.n_workers, mp_context=mp.get_context())
        pbar = tqdm(total=len(chunks), desc="Simulating trials") if progress_bar else None
        try:
            futures: Dict[Future, Tuple[int, int, List[int]]] = {
                executor.submit(_execute_chunk, work_function, chunk[2], shared_data): chunk
                for chunk in chunks
            }
            pending = set(futures)
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    self._abort(executor, pending)
                    logger.warning("Run cancelled after %d/%d items", completed_items, total_items)
                    raise SimulationCancelled("cancelled", completed_items, total_items)
                if deadline is not None and time.time() >= deadline:
                    self._abort(executor, pending)
                    logger.warning(
                        "Run timed out after %.1fs (%d/%d items)",
                        timeout,
                        completed_items,
                        total_items,
                    )
                    raise SimulationCancelled("timed out", completed_items, total_items)

                done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    start, end, _ = futures[future]
                    try:
                        chunk_results = future.result()
                    except Exception:
                        self._abort(executor, pending)
                        logger.warning("Chunk [%d, %d) failed; cancelling remaining chunks", start, end)
                        raise
                    results.append((start, chunk_results))
                    completed_items += end - start
                    if pbar is not None:
                        pbar.update(1)
                    if progress_callback is not None:
                        progress_callback(completed_items, total_items, time.time() - exec_start)
        finally:
            if pbar is not None:
                pbar.close()
            executor.shutdown(wait=True, cancel_futures=True)

        results.sort(key=lambda x: x[0])
        flattened: List[Any] = []
        for _, chunk_results in results:
            flattened.extend(chunk_results)
        return flattened

    @staticmethod
    def _abort(executor: ProcessPoolExecutor, pending) -> None:
        for future in pending:
            future.cancel()
        executor.shutdown(wait=False, cancel_futures=True)

    def _update_memory_metrics(self):
        process = psutil.Process()
        self.performance_metrics.memory_peak = max(
            self.performance_metrics.memory_peak, process.memory_info().rss
        )

    def get_performance_report(self) -> str:
        """Get performance report.

        Returns:
            str: Formatted performance report
        """
        return self.performance_metrics.summary()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


def _execute_chunk(work_function: Callable, items: List[int], shared_data: Dict[str, Any]) -> List[Any]:
    """Run one chunk in a worker process; the first failure propagates."""
    return [work_function(item, **shared_data) for item in items]
