"""Convergence diagnostics for Monte Carlo ruin-probability estimates.

A ruin estimate is the mean of independent Bernoulli outcomes, so its
accuracy is governed by the binomial standard error ``sqrt(p(1-p)/N)``.
This module provides that error, Wilson score intervals, running estimates
over the trial sequence, and summaries of ruin times and deficits.
"""

from dataclasses import dataclass
import math
from typing import Dict, Tuple

import numpy as np
from scipy import stats

from .exceptions import ValidationError


@dataclass
class ConvergenceStats:
    """Container for convergence statistics of one estimate."""

    probability: float
    standard_error: float
    relative_error: float
    n_trials: int
    converged: bool

    def __str__(self) -> str:
        rel = "inf" if math.isinf(self.relative_error) else f"{self.relative_error:.3f}"
        return (
            f"ConvergenceStats(p={self.probability:.4f}, se={self.standard_error:.4f}, "
            f"rel_error={rel}, n={self.n_trials}, converged={self.converged})"
        )


def binomial_standard_error(probability: float, n_trials: int) -> float:
    """Standard error ``sqrt(p(1-p)/N)`` of an empirical frequency."""
    if n_trials < 1:
        raise ValidationError(f"n_trials must be >= 1, got {n_trials}")
    return math.sqrt(probability * (1.0 - probability) / n_trials)


def wilson_interval(
    successes: int, n_trials: int, confidence_level: float = 0.95
) -> Tuple[float, float]:
    """Wilson score interval for a binomial proportion.

    Unlike the normal-approximation interval, it stays inside [0, 1] and has
    non-zero width when no (or every) trial was ruined.

    Args:
        successes: Number of ruined trials.
        n_trials: Number of trials.
        confidence_level: Two-sided coverage, in (0, 1).

    Returns:
        Tuple of (lower, upper) bounds.

    Raises:
        ValidationError: If the counts or the level are out of range.
    """
    issues = []
    if n_trials < 1:
        issues.append(f"n_trials must be >= 1, got {n_trials}")
    if not 0 <= successes <= max(n_trials, 0):
        issues.append(f"successes must be in [0, n_trials], got {successes}")
    if not 0 < confidence_level < 1:
        issues.append(f"confidence_level must be in (0, 1), got {confidence_level}")
    if issues:
        raise ValidationError(issues)

    z = stats.norm.ppf(0.5 + confidence_level / 2)
    p_hat = successes / n_trials
    denominator = 1 + z**2 / n_trials
    centre = (p_hat + z**2 / (2 * n_trials)) / denominator
    half_width = z * math.sqrt(p_hat * (1 - p_hat) / n_trials + z**2 / (4 * n_trials**2)) / denominator
    return max(0.0, centre - half_width), min(1.0, centre + half_width)


def running_ruin_probability(ruined: np.ndarray) -> np.ndarray:
    """Estimate after each trial: ``cumsum(ruined) / (1..N)``.

    Args:
        ruined: Boolean (or 0/1) outcome per trial, in trial order.

    Returns:
        Running estimate of the same length.
    """
    ruined = np.asarray(ruined, dtype=np.float64)
    return np.cumsum(ruined) / np.arange(1, len(ruined) + 1)


def check_convergence(
    ruined: np.ndarray, relative_error_threshold: float = 0.1
) -> ConvergenceStats:
    """Judge whether an estimate is precise enough.

    Converged means the standard error is at most ``relative_error_threshold``
    times the estimate.  An estimate of exactly 0 is never converged, because
    its relative error is undefined.

    Args:
        ruined: Per-trial ruin outcomes.
        relative_error_threshold: Maximum standard error relative to the estimate.

    Returns:
        ConvergenceStats for the full sequence.
    """
    ruined = np.asarray(ruined, dtype=bool)
    n = len(ruined)
    p = float(ruined.mean()) if n else 0.0
    se = binomial_standard_error(p, n)
    rel = se / p if p > 0 else math.inf
    return ConvergenceStats(
        probability=p,
        standard_error=se,
        relative_error=rel,
        n_trials=n,
        converged=rel <= relative_error_threshold,
    )


def required_trials(probability: float, relative_error: float = 0.1) -> int:
    """Trials needed for a target relative standard error at a given ruin probability.

    Solves ``sqrt(p(1-p)/N) / p = relative_error`` for N.
    """
    if not 0 < probability < 1:
        raise ValidationError(f"probability must be in (0, 1), got {probability}")
    if relative_error <= 0:
        raise ValidationError(f"relative_error must be positive, got {relative_error}")
    trials = (1 - probability) / (probability * relative_error**2)
    return int(math.ceil(trials - 1e-9))


def survival_curve(ruin_times: np.ndarray, time_horizon: int) -> np.ndarray:
    """Fraction of trials not yet ruined at each time point ``1..T``.

    Args:
        ruin_times: First ruin time per trial, ``time_horizon + 1`` for survivors.
        time_horizon: Path length T.

    Returns:
        Array of length T, non-increasing, ending at ``1 - p``.
    """
    ruin_times = np.asarray(ruin_times)
    counts = np.bincount(ruin_times, minlength=time_horizon + 2)[1 : time_horizon + 1]
    return 1.0 - np.cumsum(counts) / len(ruin_times)


def ruin_time_statistics(ruin_times: np.ndarray, time_horizon: int) -> Dict[str, float]:
    """Summary of first ruin times among ruined trials.

    Returns an empty dict when no trial was ruined.
    """
    ruin_times = np.asarray(ruin_times)
    ruined_times = ruin_times[ruin_times <= time_horizon]
    if ruined_times.size == 0:
        return {}
    return {
        "mean": float(np.mean(ruined_times)),
        "median": float(np.median(ruined_times)),
        "min": float(np.min(ruined_times)),
        "max": float(np.max(ruined_times)),
        "std": float(np.std(ruined_times)),
    }


def deficit_statistics(deficits: np.ndarray) -> Dict[str, float]:
    """Summary of the shortfall at first ruin among ruined trials.

    Returns an empty dict when no trial was ruined.
    """
    deficits = np.asarray(deficits, dtype=np.float64)
    positive = deficits[deficits > 0]
    if positive.size == 0:
        return {}
    return {
        "mean": float(np.mean(positive)),
        "median": float(np.median(positive)),
        "p95": float(np.percentile(positive, 95)),
        "max": float(np.max(positive)),
    }
