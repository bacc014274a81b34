"""Sensitivity of the ruin probability to initial capital.

The sweep re-runs the ruin estimator once per initial-capital value while
every other setting of the process stays fixed.  Points are statistically
independent: point ``i`` draws from ``random_source_factory.spawn(i)``, or
from trial indices ``i * trial_count`` onwards when the factory is a plain
callable, so no random numbers are shared between points.  Large sweeps run
every (point, trial) pair as one pooled job, and ``analysis.timeout`` bounds
the sweep as a whole.  The result is always ordered by ascending initial
capital.

Example:
    Ruin probability over the default 0..200 grid::

        from surplus_ruin import SimulationConfig, default_capital_grid, sweep_initial_capital

        result = sweep_initial_capital(
            SimulationConfig(), default_capital_grid(), trial_count=200, seed=1
        )
        print(result.to_dataframe())
"""

from dataclasses import dataclass
import logging
import math
import threading
import time
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config.simulation import AnalysisConfig, SimulationConfig
from .exceptions import SimulationCancelled, ValidationError
from .parallel_executor import ParallelExecutor, ProgressCallback
from .random_sources import RandomSourceCallable, resolve_factory, spawn_factory
from .ruin_probability import (
    RuinEstimate,
    RuinProbabilityAnalyzer,
    TrialOutcome,
    _is_picklable,
    _simulate_trial,
    _validate_trial_count,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepPoint:
    """Ruin probability at one initial-capital value."""

    initial_capital: float
    ruin_probability: float
    estimate: RuinEstimate


@dataclass(frozen=True)
class SweepResult:
    """Ruin probability across a grid of initial-capital values.

    Attributes:
        points: One point per grid value, ascending initial capital.
        trial_count: Trials run at every point.
    """

    points: Tuple[SweepPoint, ...]
    trial_count: int

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[SweepPoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> SweepPoint:
        return self.points[index]

    @property
    def initial_capitals(self) -> np.ndarray:
        return np.array([p.initial_capital for p in self.points])

    @property
    def ruin_probabilities(self) -> np.ndarray:
        return np.array([p.ruin_probability for p in self.points])

    def probability_at(self, initial_capital: float) -> float:
        """Ruin probability at a grid value.

        Raises:
            KeyError: If the value is not on the grid.
        """
        for point in self.points:
            if point.initial_capital == initial_capital:
                return point.ruin_probability
        raise KeyError(initial_capital)

    def is_monotone(self, tolerance: float = 0.0) -> bool:
        """Whether the probability is non-increasing in capital, up to ``tolerance``.

        Monte Carlo noise can make neighbouring estimates tick upwards; a
        tolerance of a few standard errors absorbs that.
        """
        probs = self.ruin_probabilities
        return bool(np.all(np.diff(probs) <= tolerance))

    def to_dataframe(self) -> pd.DataFrame:
        """Table with ``Initial_Capital`` and ``Ruin_Probability`` columns."""
        return pd.DataFrame(
            {
                "Initial_Capital": self.initial_capitals,
                "Ruin_Probability": self.ruin_probabilities,
            }
        )

    def summary(self) -> str:
        """Generate summary report."""
        lines = [
            "Ruin Probability vs Initial Capital",
            "=" * 40,
            f"Trials per point: {self.trial_count:,}",
            "",
            f"  {'Initial_Capital':>15s}  {'Ruin_Probability':>16s}",
        ]
        for point in self.points:
            lines.append(f"  {point.initial_capital:15.2f}  {round(point.ruin_probability, 4):16.4f}")
        return "\n".join(lines)


def default_capital_grid(start: float = 0.0, stop: float = 200.0, step: float = 20.0) -> List[float]:
    """Evenly spaced grid from ``start`` to ``stop`` inclusive.

    The defaults give 0, 20, ..., 200.
    """
    if step <= 0:
        raise ValidationError(f"step must be positive, got {step}")
    if stop < start:
        raise ValidationError(f"stop ({stop}) must not be below start ({start})")
    n = int(math.floor((stop - start) / step + 1e-9)) + 1
    return [start + i * step for i in range(n)]


def _validate_capital_grid(capital_grid: Sequence[float]) -> List[float]:
    values = list(capital_grid)
    issues = []
    if not values:
        issues.append("capital_grid must contain at least one value")
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
            issues.append(f"capital_grid value {value!r} is not a number")
        elif not math.isfinite(value):
            issues.append(f"capital_grid value {value} is not finite")
        elif value < 0:
            issues.append(f"capital_grid value {value} is negative")
    if issues:
        raise ValidationError(issues)
    if len(set(values)) != len(values):
        duplicates = sorted({v for v in values if values.count(v) > 1})
        raise ValidationError(f"capital_grid contains duplicate values: {duplicates}")
    return sorted(float(v) for v in values)


def sweep_initial_capital(
    config: SimulationConfig,
    capital_grid: Sequence[float],
    trial_count: int,
    random_source_factory: Optional[RandomSourceCallable] = None,
    *,
    seed: Optional[int] = None,
    analysis: Optional[AnalysisConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> SweepResult:
    """Estimate the ruin probability at each initial-capital value.

    Args:
        config: Base process configuration; only ``initial_capital`` varies.
        capital_grid: Initial-capital values, any order.
        trial_count: Trials per point (>= 1).
        random_source_factory: Parent factory; point ``i`` of the sorted grid
            uses ``random_source_factory.spawn(i)``, or trial indices
            ``i * trial_count + j`` when the factory has no ``spawn``.
        seed: Root seed used when no factory is given.
        analysis: Scheduling settings. The pool is used when the sweep's
            total trial count reaches the threshold, and ``timeout`` covers
            the whole sweep.
        cancel_event: Set it to stop the sweep.
        progress_callback: Called as ``(trials_done, total_trials, elapsed_seconds)``.

    Returns:
        SweepResult in ascending initial-capital order.

    Raises:
        ValidationError: If the grid is empty or has negative or duplicate
            values, or ``trial_count`` < 1.
        SimulationCancelled: If cancelled or timed out.
    """
    grid = _validate_capital_grid(capital_grid)
    _validate_trial_count(trial_count)
    analysis = analysis or AnalysisConfig()
    factory = resolve_factory(random_source_factory, seed, default_seed=analysis.seed)

    configs = [config.with_initial_capital(capital) for capital in grid]
    factories = [spawn_factory(factory, i, stride=trial_count) for i in range(len(grid))]
    total = len(grid) * trial_count

    parallel = analysis.use_parallel(total)
    if parallel and not _is_picklable(factories):
        logger.warning("Random source factory cannot be pickled; running serially")
        parallel = False

    logger.info(
        "Sweeping initial capital over %d points, %d trials each, %s",
        len(grid),
        trial_count,
        "parallel" if parallel else "serial",
    )
    if parallel:
        estimates = _sweep_parallel(configs, factories, trial_count, analysis, cancel_event, progress_callback)
    else:
        estimates = _sweep_sequential(configs, factories, trial_count, analysis, cancel_event, progress_callback)

    points = []
    for capital, estimate in zip(grid, estimates):
        points.append(SweepPoint(capital, estimate.probability, estimate))
        logger.debug("u=%g: ruin probability %.4f", capital, estimate.probability)
    return SweepResult(points=tuple(points), trial_count=trial_count)


def _simulate_sweep_trial(
    item: int,
    configs: List[SimulationConfig],
    factories: List[RandomSourceCallable],
    trial_count: int,
) -> TrialOutcome:
    """Run item ``point * trial_count + trial`` of a flattened sweep (runs in worker processes)."""
    point, trial_index = divmod(item, trial_count)
    return _simulate_trial(trial_index, configs[point], factories[point])


def _sweep_sequential(
    configs: List[SimulationConfig],
    factories: List[RandomSourceCallable],
    trial_count: int,
    analysis: AnalysisConfig,
    cancel_event: Optional[threading.Event],
    progress_callback: Optional[ProgressCallback],
) -> List[RuinEstimate]:
    total = len(configs) * trial_count
    point_analysis = analysis.model_copy(update={"parallel": False})
    start_time = time.time()
    deadline = None if analysis.timeout is None else start_time + analysis.timeout
    estimates = []

    for i, (point_config, point_factory) in enumerate(zip(configs, factories)):
        done = i * trial_count
        remaining = None
        if deadline is not None:
            remaining = deadline - time.time()
            if remaining <= 0:
                logger.warning("Sweep timed out after %.1fs (%d/%d trials)", analysis.timeout, done, total)
                raise SimulationCancelled("timed out", done, total)

        analyzer = RuinProbabilityAnalyzer(point_analysis.model_copy(update={"timeout": remaining}))
        try:
            estimate = analyzer.estimate(point_config, trial_count, point_factory, cancel_event=cancel_event)
        except SimulationCancelled as exc:
            raise SimulationCancelled(exc.reason, done + exc.completed, total) from exc
        estimates.append(estimate)

        if progress_callback is not None:
            progress_callback(done + trial_count, total, time.time() - start_time)

    return estimates


def _sweep_parallel(
    configs: List[SimulationConfig],
    factories: List[RandomSourceCallable],
    trial_count: int,
    analysis: AnalysisConfig,
    cancel_event: Optional[threading.Event],
    progress_callback: Optional[ProgressCallback],
) -> List[RuinEstimate]:
    """Run every (point, trial) pair as one pooled job, then split per point."""
    executor = ParallelExecutor(n_workers=analysis.n_workers, chunk_size=analysis.chunk_size)
    start_time = time.time()
    with executor:
        outcomes = executor.map_reduce(
            work_function=_simulate_sweep_trial,
            work_items=range(len(configs) * trial_count),
            shared_data={"configs": configs, "factories": factories, "trial_count": trial_count},
            progress_bar=analysis.progress_bar,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
            timeout=analysis.timeout,
        )
    logger.debug("Pool sweep finished:\n%s", executor.get_performance_report())

    per_point_time = (time.time() - start_time) / len(configs)
    return [
        RuinEstimate.from_outcomes(
            outcomes[i * trial_count : (i + 1) * trial_count], point_config.time_horizon, per_point_time
        )
        for i, point_config in enumerate(configs)
    ]
