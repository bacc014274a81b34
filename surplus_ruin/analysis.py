"""One-call ruin study: sample path, headline estimate and capital sweep.

:func:`run_ruin_analysis` produces the three outputs of an interactive ruin
study from a single :class:`~surplus_ruin.config.RuinStudyConfig`.  Each
output draws from its own child of the study's random-source factory, so
changing the sweep grid never changes the sample path or the headline
estimate.
"""

from dataclasses import dataclass
import logging
import threading
import time
from typing import Optional

from .config.core import RuinStudyConfig
from .random_sources import RandomSourceFactory
from .ruin_probability import RuinEstimate, RuinProbabilityAnalyzer
from .sensitivity import SweepResult, sweep_initial_capital
from .surplus_process import SurplusPath, simulate_surplus

logger = logging.getLogger(__name__)

_SAMPLE_PATH_STREAM = 0
_ESTIMATE_STREAM = 1
_SWEEP_STREAM = 2


@dataclass(frozen=True)
class RuinAnalysisResults:
    """Everything a ruin study produces.

    Attributes:
        study: Configuration the results were computed from.
        sample_path: One illustrative surplus path.
        estimate: Headline ruin-probability estimate.
        sweep: Ruin probability over the capital grid, or ``None`` if skipped.
        execution_time: Wall-clock seconds for the whole study.
    """

    study: RuinStudyConfig
    sample_path: SurplusPath
    estimate: RuinEstimate
    sweep: Optional[SweepResult]
    execution_time: float

    def summary(self) -> str:
        """Generate summary report."""
        sim = self.study.simulation
        lines = [
            "Ruin Study",
            "=" * 40,
            f"Initial capital: {sim.initial_capital:g}",
            f"Premium rate: {sim.premium_rate:g}",
            f"Time horizon: {sim.time_horizon}",
            f"Claim counts: {sim.claim_count_distribution!r}",
            f"Claim sizes: {sim.claim_size_distribution!r}",
            f"Expected claims per step: {sim.expected_claims_per_step:.4g}",
            "",
            f"Sample path: final surplus {self.sample_path.final_surplus:.2f}, "
            f"minimum {self.sample_path.min_surplus:.2f}",
            "",
            self.estimate.summary(),
        ]
        if self.sweep is not None:
            lines.extend(["", self.sweep.summary()])
        lines.extend(["", f"Total time: {self.execution_time:.2f} seconds"])
        return "\n".join(lines)


def run_ruin_analysis(
    study: Optional[RuinStudyConfig] = None,
    *,
    include_sweep: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> RuinAnalysisResults:
    """Run a complete ruin study.

    Args:
        study: Study configuration (defaults to ``RuinStudyConfig()``).
        include_sweep: Also sweep the capital grid.
        cancel_event: Set it to stop the study.

    Returns:
        RuinAnalysisResults for the study.

    Raises:
        SimulationCancelled: If cancelled or timed out.

    Examples:
        >>> results = run_ruin_analysis(RuinStudyConfig.from_yaml("study.yaml"))
        >>> print(results.summary())
    """
    study = study or RuinStudyConfig()
    start_time = time.time()
    factory = RandomSourceFactory(study.analysis.seed)
    logger.info("Starting ruin study (seed=%s)", study.analysis.seed)

    sample_path = simulate_surplus(study.simulation, factory.spawn(_SAMPLE_PATH_STREAM)(0))

    analyzer = RuinProbabilityAnalyzer(study.analysis)
    estimate = analyzer.estimate(
        study.simulation,
        study.analysis.estimate_trials,
        factory.spawn(_ESTIMATE_STREAM),
        cancel_event=cancel_event,
    )

    sweep = None
    if include_sweep:
        sweep = sweep_initial_capital(
            study.simulation,
            study.analysis.capital_grid,
            study.analysis.sweep_trials,
            factory.spawn(_SWEEP_STREAM),
            analysis=study.analysis,
            cancel_event=cancel_event,
        )

    execution_time = time.time() - start_time
    logger.info("Ruin study finished in %.2fs", execution_time)
    return RuinAnalysisResults(
        study=study,
        sample_path=sample_path,
        estimate=estimate,
        sweep=sweep,
        execution_time=execution_time,
    )
