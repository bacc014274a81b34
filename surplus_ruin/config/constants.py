"""Module-level defaults for the surplus_ruin framework.

Centralizes the trial counts and capital grid used by the interactive
analysis, so the engine and its callers share a single source of truth.
"""

from typing import Dict, Tuple

DEFAULT_ESTIMATE_TRIALS: int = 300
"""Trials behind the single headline ruin-probability estimate."""

DEFAULT_SWEEP_TRIALS: int = 200
"""Trials per point of the initial-capital sweep; only the curve's shape matters there."""

DEFAULT_CAPITAL_GRID: Tuple[float, ...] = tuple(float(u) for u in range(0, 201, 20))
"""Initial-capital values 0, 20, ..., 200 swept by default."""

DEFAULT_PARALLEL_THRESHOLD: int = 5000
"""Below this many trials the process-pool start-up cost outweighs the gain."""

DEFAULT_CONFIDENCE_LEVEL: float = 0.95
"""Confidence level for reported ruin-probability intervals."""

DEFAULT_PARAMS: Dict[str, float] = {"lambda": 2.0, "rate": 0.1}
"""Poisson(2) claim counts with Exponential(0.1) claim sizes."""
