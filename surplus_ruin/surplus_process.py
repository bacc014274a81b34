"""Discrete-time surplus paths under a compound-claims risk process.

The surplus starts at the initial capital and moves one step at a time:

    U(1)   = u
    U(t+1) = U(t) + c - (X_1 + ... + X_N),   N ~ count model, X_i ~ size model

Each transition consumes the random source in a fixed order: one claim-count
draw, then exactly ``N`` claim-size draws (none when ``N == 0``).  Given the
same configuration and the same seed, a path is therefore reproduced bit for
bit.  Paths are never truncated at ruin; detecting ruin is left to callers.

Example:
    >>> config = SimulationConfig(initial_capital=100, premium_rate=20, time_horizon=50)
    >>> path = simulate_surplus(config, np.random.default_rng(7))
    >>> path[0]
    (1, 100.0)
"""

from dataclasses import dataclass
import logging
import math
from typing import Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from .config.simulation import SimulationConfig
from .exceptions import NumericAnomaly, ValidationError
from .random_sources import RandomSourceCallable, RandomSourceLike, as_generator, resolve_factory

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SurplusPath:
    """One simulated surplus trajectory.

    The backing arrays are made read-only on construction.

    Attributes:
        times: Time points ``1..T``.
        surplus: Surplus at each time point; ``surplus[0]`` is the initial capital.
        claim_counts: Claims settled on the step *into* each time point
            (``claim_counts[0]`` is always 0).
        claim_totals: Aggregate claim amount on the step into each time point.
    """

    times: np.ndarray
    surplus: np.ndarray
    claim_counts: np.ndarray
    claim_totals: np.ndarray

    def __post_init__(self):
        lengths = {len(self.times), len(self.surplus), len(self.claim_counts), len(self.claim_totals)}
        if len(lengths) != 1:
            raise ValueError(f"SurplusPath arrays must have equal length, got {sorted(lengths)}")
        for array in (self.times, self.surplus, self.claim_counts, self.claim_totals):
            array.setflags(write=False)

    def __len__(self) -> int:
        return len(self.times)

    def __getitem__(self, index: int) -> Tuple[int, float]:
        return int(self.times[index]), float(self.surplus[index])

    def __iter__(self) -> Iterator[Tuple[int, float]]:
        for t, s in zip(self.times, self.surplus):
            yield int(t), float(s)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SurplusPath):
            return NotImplemented
        return (
            np.array_equal(self.times, other.times)
            and np.array_equal(self.surplus, other.surplus)
            and np.array_equal(self.claim_counts, other.claim_counts)
            and np.array_equal(self.claim_totals, other.claim_totals)
        )

    __hash__ = None  # type: ignore[assignment]

    @property
    def time_horizon(self) -> int:
        return len(self.times)

    @property
    def initial_capital(self) -> float:
        return float(self.surplus[0])

    @property
    def final_surplus(self) -> float:
        return float(self.surplus[-1])

    @property
    def min_surplus(self) -> float:
        return float(self.surplus.min())

    @property
    def is_ruined(self) -> bool:
        """True if the surplus is negative at any time point (first passage)."""
        return bool((self.surplus < 0).any())

    @property
    def first_ruin_time(self) -> Optional[int]:
        """Earliest time point with negative surplus, or ``None`` if never ruined."""
        below = np.flatnonzero(self.surplus < 0)
        if below.size == 0:
            return None
        return int(self.times[below[0]])

    @property
    def deficit_at_ruin(self) -> float:
        """Shortfall below zero at the first ruin time (0.0 if never ruined)."""
        below = np.flatnonzero(self.surplus < 0)
        if below.size == 0:
            return 0.0
        return float(-self.surplus[below[0]])

    @property
    def total_claims(self) -> float:
        return float(self.claim_totals.sum())

    def to_dataframe(self) -> pd.DataFrame:
        """Path as a two-column frame (``Time``, ``Surplus``) ready for plotting."""
        return pd.DataFrame({"Time": self.times, "Surplus": self.surplus})


def simulate_surplus(config: SimulationConfig, rng: RandomSourceLike = None) -> SurplusPath:
    """Simulate one surplus path.

    Args:
        config: Validated process configuration.
        rng: Random source.  A ``Generator`` is consumed in place; an integer
            seed or ``SeedSequence`` builds a fresh generator; ``None`` uses
            fresh entropy.

    Returns:
        Path of length ``config.time_horizon`` starting at the initial capital.

    Raises:
        NumericAnomaly: If a claim total or surplus value is NaN or infinite.
    """
    rng = as_generator(rng)
    horizon = config.time_horizon
    count_dist = config.claim_count_distribution
    size_dist = config.claim_size_distribution

    claim_counts = np.zeros(horizon, dtype=np.int64)
    claim_totals = np.zeros(horizon, dtype=np.float64)

    for t in range(1, horizon):
        n_claims = count_dist.sample_count(rng)
        if n_claims > 0:
            total = float(size_dist.generate_severity(n_claims, rng).sum())
            if not math.isfinite(total):
                raise NumericAnomaly("Non-finite aggregate claim amount", step=t + 1, value=total)
            claim_counts[t] = n_claims
            claim_totals[t] = total

    # Closed form of the recursion: u + c * (t - 1) - cumulative claims.
    elapsed = np.arange(horizon, dtype=np.float64)
    surplus = config.initial_capital + config.premium_rate * elapsed - np.cumsum(claim_totals)

    non_finite = np.flatnonzero(~np.isfinite(surplus))
    if non_finite.size:
        idx = int(non_finite[0])
        raise NumericAnomaly("Non-finite surplus", step=idx + 1, value=float(surplus[idx]))

    return SurplusPath(
        times=np.arange(1, horizon + 1, dtype=np.int64),
        surplus=surplus,
        claim_counts=claim_counts,
        claim_totals=claim_totals,
    )


def simulate_paths(
    config: SimulationConfig,
    n_paths: int,
    random_source_factory: Optional[RandomSourceCallable] = None,
    seed: Optional[int] = None,
) -> List[SurplusPath]:
    """Simulate several independent paths, path ``i`` drawing from ``factory(i)``.

    Args:
        config: Validated process configuration.
        n_paths: Number of paths.
        random_source_factory: Trial-index to generator mapping.
        seed: Root seed used when no factory is given.

    Returns:
        List of paths in trial-index order.
    """
    if n_paths < 1:
        raise ValidationError(f"n_paths must be >= 1, got {n_paths}")
    factory = resolve_factory(random_source_factory, seed)
    logger.debug("Simulating %d surplus paths over %d steps", n_paths, config.time_horizon)
    return [simulate_surplus(config, factory(i)) for i in range(n_paths)]
