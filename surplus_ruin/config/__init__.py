"""Configuration management using Pydantic v2 models.

This package provides the configuration classes for the surplus_ruin
simulation engine.  Pydantic models give validation, immutability of the
process definition and YAML round-tripping.

Sub-modules:
    constants: Default trial counts, capital grid and model parameters.
    core: :class:`RuinStudyConfig` composing all sections, plus logging setup.
    simulation: :class:`SimulationConfig` (the surplus process) and
        :class:`AnalysisConfig` (trial budget and scheduling).
    utils: Merge helpers and pydantic error translation.

Examples:
    Quick start with defaults::

        from surplus_ruin.config import SimulationConfig

        config = SimulationConfig()

    Full control::

        config = SimulationConfig(
            initial_capital=50,
            premium_rate=12,
            time_horizon=100,
            claim_count_model="Negative Binomial",
            claim_size_model="Gamma",
            params={"size": 10, "mu": 2, "shape": 2, "rate": 0.2},
        )

    Loading from file::

        study = RuinStudyConfig.from_yaml(Path("study.yaml"))
"""

from .constants import (
    DEFAULT_CAPITAL_GRID,
    DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_ESTIMATE_TRIALS,
    DEFAULT_PARALLEL_THRESHOLD,
    DEFAULT_PARAMS,
    DEFAULT_SWEEP_TRIALS,
)
from .core import LoggingConfig, RuinStudyConfig
from .simulation import AnalysisConfig, SimulationConfig

__all__ = [
    # Constants
    "DEFAULT_CAPITAL_GRID",
    "DEFAULT_CONFIDENCE_LEVEL",
    "DEFAULT_ESTIMATE_TRIALS",
    "DEFAULT_PARALLEL_THRESHOLD",
    "DEFAULT_PARAMS",
    "DEFAULT_SWEEP_TRIALS",
    # Core
    "LoggingConfig",
    "RuinStudyConfig",
    # Simulation
    "AnalysisConfig",
    "SimulationConfig",
]
