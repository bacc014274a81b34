"""Surplus Ruin: Monte Carlo finite-horizon ruin probability"""

from ._version import __version__

# Use lazy imports to avoid import issues during test discovery
# Direct imports are defined but modules are imported only when accessed

__all__ = [
    "__version__",
    "AnalysisConfig",
    "ConfigurationError",
    "NumericAnomaly",
    "RandomSourceFactory",
    "RuinAnalysisResults",
    "RuinEstimate",
    "RuinProbabilityAnalyzer",
    "RuinStudyConfig",
    "SimulationCancelled",
    "SimulationConfig",
    "SurplusPath",
    "SurplusRuinError",
    "SweepPoint",
    "SweepResult",
    "ValidationError",
    "default_capital_grid",
    "estimate_ruin_probability",
    "run_ruin_analysis",
    "simulate_paths",
    "simulate_surplus",
    "sweep_initial_capital",
]


def __getattr__(name):
    """Lazy import modules to avoid circular dependencies during test discovery."""
    if name in ["AnalysisConfig", "RuinStudyConfig", "SimulationConfig"]:
        from .config import AnalysisConfig, RuinStudyConfig, SimulationConfig

        return locals()[name]
    elif name in [
        "ConfigurationError",
        "NumericAnomaly",
        "SimulationCancelled",
        "SurplusRuinError",
        "ValidationError",
    ]:
        from . import exceptions

        return getattr(exceptions, name)
    elif name == "RandomSourceFactory":
        from .random_sources import RandomSourceFactory

        return RandomSourceFactory
    elif name in ["SurplusPath", "simulate_paths", "simulate_surplus"]:
        from .surplus_process import SurplusPath, simulate_paths, simulate_surplus

        return locals()[name]
    elif name in ["RuinEstimate", "RuinProbabilityAnalyzer", "estimate_ruin_probability"]:
        from .ruin_probability import (
            RuinEstimate,
            RuinProbabilityAnalyzer,
            estimate_ruin_probability,
        )

        return locals()[name]
    elif name in ["SweepPoint", "SweepResult", "default_capital_grid", "sweep_initial_capital"]:
        from .sensitivity import (
            SweepPoint,
            SweepResult,
            default_capital_grid,
            sweep_initial_capital,
        )

        return locals()[name]
    elif name == "RuinAnalysisResults" or name == "run_ruin_analysis":
        from .analysis import RuinAnalysisResults, run_ruin_analysis

        return locals()[name]
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
