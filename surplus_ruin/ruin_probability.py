"""Finite-horizon ruin probability by plain Monte Carlo.

Each trial simulates one surplus path with its own random source,
``random_source_factory(trial_index)``, and records the first time the
surplus is negative together with the shortfall at that time.  A trial is
ruined if *any* point of its path is negative, not only the last one.  The
estimate is the ruined fraction; no variance reduction is applied.

Because a trial's draws depend only on its index, the serial loop and the
process pool produce identical estimates for the same factory.
"""

from dataclasses import dataclass, field
import logging
import pickle
import threading
import time
from typing import List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from .config.constants import DEFAULT_CONFIDENCE_LEVEL
from .config.simulation import AnalysisConfig, SimulationConfig
from .convergence import (
    ConvergenceStats,
    binomial_standard_error,
    check_convergence,
    deficit_statistics,
    ruin_time_statistics,
    survival_curve,
    wilson_interval,
)
from .exceptions import SimulationCancelled, ValidationError
from .parallel_executor import ParallelExecutor, ProgressCallback
from .random_sources import RandomSourceCallable, resolve_factory, spawn_factory
from .surplus_process import simulate_surplus

logger = logging.getLogger(__name__)

TrialOutcome = Tuple[int, float]


@dataclass(frozen=True)
class RuinEstimate:
    """Result of one ruin-probability estimate.

    Equality compares the estimate itself (probability and counts), not the
    timing.

    Attributes:
        probability: Ruined fraction of trials, in [0, 1].
        trial_count: Number of trials run.
        ruined_count: Number of ruined trials.
        time_horizon: Path length of every trial.
        ruin_times: First ruin time per trial; ``time_horizon + 1`` for survivors.
        deficits: Shortfall below zero at first ruin per trial; 0 for survivors.
        execution_time: Wall-clock seconds.
    """

    probability: float
    trial_count: int
    ruined_count: int
    time_horizon: int
    ruin_times: np.ndarray = field(compare=False, repr=False)
    deficits: np.ndarray = field(compare=False, repr=False)
    execution_time: float = field(default=0.0, compare=False)

    def __post_init__(self):
        self.ruin_times.setflags(write=False)
        self.deficits.setflags(write=False)

    @classmethod
    def from_outcomes(
        cls, outcomes: List[TrialOutcome], time_horizon: int, execution_time: float = 0.0
    ) -> "RuinEstimate":
        """Aggregate per-trial ``(ruin_time, deficit)`` pairs, given in trial order."""
        ruin_times = np.fromiter((o[0] for o in outcomes), dtype=np.int64, count=len(outcomes))
        deficits = np.fromiter((o[1] for o in outcomes), dtype=np.float64, count=len(outcomes))
        ruined_count = int(np.count_nonzero(ruin_times <= time_horizon))
        return cls(
            probability=ruined_count / len(outcomes),
            trial_count=len(outcomes),
            ruined_count=ruined_count,
            time_horizon=time_horizon,
            ruin_times=ruin_times,
            deficits=deficits,
            execution_time=execution_time,
        )

    @property
    def ruined(self) -> np.ndarray:
        """Boolean ruin outcome per trial."""
        return self.ruin_times <= self.time_horizon

    @property
    def standard_error(self) -> float:
        """Binomial standard error ``sqrt(p(1-p)/N)``."""
        return binomial_standard_error(self.probability, self.trial_count)

    def confidence_interval(self, level: float = DEFAULT_CONFIDENCE_LEVEL) -> Tuple[float, float]:
        """Wilson score interval for the ruin probability."""
        return wilson_interval(self.ruined_count, self.trial_count, level)

    def convergence(self, relative_error_threshold: float = 0.1) -> ConvergenceStats:
        return check_convergence(self.ruined, relative_error_threshold)

    def survival_curve(self) -> np.ndarray:
        """Fraction of trials still solvent at each time point."""
        return survival_curve(self.ruin_times, self.time_horizon)

    def summary(self) -> str:
        """Generate summary report."""
        lower, upper = self.confidence_interval()
        lines = [
            f"Estimated Probability of Ruin: {round(self.probability, 4)}",
            "=" * 40,
            f"Trials: {self.trial_count:,} ({self.ruined_count:,} ruined)",
            f"Standard error: {self.standard_error:.4f}",
            f"{DEFAULT_CONFIDENCE_LEVEL:.0%} confidence interval: [{lower:.4f}, {upper:.4f}]",
            f"Execution time: {self.execution_time:.2f} seconds",
        ]
        times = ruin_time_statistics(self.ruin_times, self.time_horizon)
        if times:
            deficits = deficit_statistics(self.deficits)
            lines.append("")
            lines.append("Among ruined trials:")
            lines.append(f"  Mean first ruin time: {times['mean']:.1f} (earliest {times['min']:.0f})")
            lines.append(f"  Mean deficit at ruin: {deficits['mean']:.2f} (max {deficits['max']:.2f})")
        return "\n".join(lines)


def _simulate_trial(
    trial_index: int, config: SimulationConfig, random_source_factory: RandomSourceCallable
) -> TrialOutcome:
    """Run one trial and return ``(first_ruin_time, deficit)`` (runs in worker processes)."""
    path = simulate_surplus(config, random_source_factory(trial_index))
    ruin_time = path.first_ruin_time
    if ruin_time is None:
        return config.time_horizon + 1, 0.0
    return ruin_time, path.deficit_at_ruin


def _validate_trial_count(trial_count: int) -> None:
    if isinstance(trial_count, bool) or not isinstance(trial_count, (int, np.integer)):
        raise ValidationError(f"trial_count must be an integer, got {trial_count!r}")
    if trial_count < 1:
        raise ValidationError(f"trial_count must be >= 1, got {trial_count}")


def _is_picklable(obj: object) -> bool:
    try:
        pickle.dumps(obj)
    except (pickle.PicklingError, AttributeError, TypeError):
        return False
    return True


class RuinProbabilityAnalyzer:
    """Runs ruin-probability estimates serially or on a process pool.

    Args:
        analysis: Scheduling settings (parallel switch and threshold, workers,
            chunk size, progress bar, timeout, default seed).

    Examples:
        Serial estimate::

            analyzer = RuinProbabilityAnalyzer()
            estimate = analyzer.estimate(SimulationConfig(), 300, seed=1)

        Pool for every run::

            analyzer = RuinProbabilityAnalyzer(AnalysisConfig(parallel_threshold=1))
    """

    def __init__(self, analysis: Optional[AnalysisConfig] = None):
        self.analysis = analysis or AnalysisConfig()

    def estimate(
        self,
        config: SimulationConfig,
        trial_count: int,
        random_source_factory: Optional[RandomSourceCallable] = None,
        *,
        seed: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RuinEstimate:
        """Estimate the ruin probability from ``trial_count`` independent paths.

        Args:
            config: Validated process configuration.
            trial_count: Number of trials N (>= 1).
            random_source_factory: Trial-index to generator mapping.
            seed: Root seed used when no factory is given (falls back to the
                analysis seed).
            cancel_event: Set it to stop the run.
            progress_callback: Called as ``(completed, total, elapsed_seconds)``.

        Returns:
            RuinEstimate over all N trials.

        Raises:
            ValidationError: If ``trial_count`` is not a positive integer.
            SimulationCancelled: If cancelled or timed out.
            NumericAnomaly: If any trial produced a non-finite value.
        """
        _validate_trial_count(trial_count)
        factory = resolve_factory(random_source_factory, seed, default_seed=self.analysis.seed)

        parallel = self.analysis.use_parallel(trial_count)
        if parallel and not _is_picklable(factory):
            logger.warning("Random source factory cannot be pickled; running serially")
            parallel = False

        logger.info(
            "Estimating ruin probability: %d trials, horizon %d, %s",
            trial_count,
            config.time_horizon,
            "parallel" if parallel else "serial",
        )
        start_time = time.time()
        if parallel:
            outcomes = self._run_parallel(config, trial_count, factory, cancel_event, progress_callback)
        else:
            outcomes = self._run_sequential(
                config, trial_count, factory, cancel_event, progress_callback
            )
        estimate = RuinEstimate.from_outcomes(outcomes, config.time_horizon, time.time() - start_time)
        logger.info(
            "Ruin probability %.4f (%d/%d) in %.2fs",
            estimate.probability,
            estimate.ruined_count,
            trial_count,
            estimate.execution_time,
        )
        return estimate

    def _run_sequential(
        self,
        config: SimulationConfig,
        trial_count: int,
        factory: RandomSourceCallable,
        cancel_event: Optional[threading.Event],
        progress_callback: Optional[ProgressCallback],
    ) -> List[TrialOutcome]:
        timeout = self.analysis.timeout
        report_every = self.analysis.chunk_size or max(1, trial_count // 20)
        start_time = time.time()
        outcomes: List[TrialOutcome] = []

        iterator = range(trial_count)
        if self.analysis.progress_bar:
            iterator = tqdm(iterator, desc="Simulating trials")

        for trial_index in iterator:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Run cancelled after %d/%d trials", trial_index, trial_count)
                raise SimulationCancelled("cancelled", trial_index, trial_count)
            if timeout is not None and time.time() - start_time >= timeout:
                logger.warning("Run timed out after %.1fs (%d/%d trials)", timeout, trial_index, trial_count)
                raise SimulationCancelled("timed out", trial_index, trial_count)

            outcomes.append(_simulate_trial(trial_index, config, factory))

            completed = trial_index + 1
            if progress_callback is not None and (
                completed % report_every == 0 or completed == trial_count
            ):
                progress_callback(completed, trial_count, time.time() - start_time)

        return outcomes

    def _run_parallel(
        self,
        config: SimulationConfig,
        trial_count: int,
        factory: RandomSourceCallable,
        cancel_event: Optional[threading.Event],
        progress_callback: Optional[ProgressCallback],
    ) -> List[TrialOutcome]:
        executor = ParallelExecutor(n_workers=self.analysis.n_workers, chunk_size=self.analysis.chunk_size)
        with executor:
            outcomes = executor.map_reduce(
                work_function=_simulate_trial,
                work_items=range(trial_count),
                shared_data={"config": config, "random_source_factory": factory},
                progress_bar=self.analysis.progress_bar,
                progress_callback=progress_callback,
                cancel_event=cancel_event,
                timeout=self.analysis.timeout,
            )
        logger.debug("Pool run finished:\n%s", executor.get_performance_report())
        return outcomes  # type: ignore[no-any-return]

    def repeat_estimates(
        self,
        config: SimulationConfig,
        trial_count: int,
        n_repeats: int,
        random_source_factory: Optional[RandomSourceCallable] = None,
        *,
        seed: Optional[int] = None,
    ) -> np.ndarray:
        """Independent repeated estimates, repeat ``r`` drawing from its own child factory.

        Their spread shows the Monte Carlo error at a given trial count.

        Args:
            config: Validated process configuration.
            trial_count: Trials per estimate.
            n_repeats: Number of estimates (>= 2).
            random_source_factory: Parent factory.  One without ``spawn`` is
                offset by ``r * trial_count`` for repeat ``r``.
            seed: Root seed used when no factory is given.

        Returns:
            Array of ``n_repeats`` ruin probabilities.
        """
        if n_repeats < 2:
            raise ValidationError(f"n_repeats must be >= 2, got {n_repeats}")
        factory = resolve_factory(random_source_factory, seed, default_seed=self.analysis.seed)
        children = [spawn_factory(factory, r, stride=trial_count) for r in range(n_repeats)]
        return np.array([self.estimate(config, trial_count, child).probability for child in children])


def estimate_ruin_probability(
    config: SimulationConfig,
    trial_count: int,
    random_source_factory: Optional[RandomSourceCallable] = None,
    *,
    seed: Optional[int] = None,
    analysis: Optional[AnalysisConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> RuinEstimate:
    """Estimate the finite-horizon ruin probability of a surplus process.

    Runs ``trial_count`` independent paths; trial ``i`` draws from
    ``random_source_factory(i)``.  A trial is ruined if its surplus is
    negative at any time point.

    Args:
        config: Validated process configuration.
        trial_count: Number of trials N (>= 1).
        random_source_factory: Trial-index to generator mapping.  Defaults to
            a :class:`~surplus_ruin.random_sources.RandomSourceFactory` built
            from ``seed``.
        seed: Root seed used when no factory is given.
        analysis: Scheduling settings; serial below the parallel threshold.
        cancel_event: Set it to stop the run.
        progress_callback: Called as ``(completed, total, elapsed_seconds)``.

    Returns:
        RuinEstimate with ``probability = ruined_count / N``.

    Raises:
        ValidationError: If ``trial_count`` < 1.
        SimulationCancelled: If cancelled or timed out.
        NumericAnomaly: If any trial produced a non-finite value.

    Examples:
        >>> estimate = estimate_ruin_probability(SimulationConfig(), 300, seed=42)
        >>> print(estimate.summary())
    """
    return RuinProbabilityAnalyzer(analysis).estimate(
        config,
        trial_count,
        random_source_factory,
        seed=seed,
        cancel_event=cancel_event,
        progress_callback=progress_callback,
    )
