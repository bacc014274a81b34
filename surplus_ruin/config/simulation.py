"""Surplus-process and analysis-run configuration.

Contains the validated, immutable :class:`SimulationConfig` that fully
determines one surplus process, and :class:`AnalysisConfig` which controls
how many trials are run and how they are scheduled.

Validation is eager.  A configuration that constructs successfully can be
simulated without any further parameter errors: the claim-count and
claim-size samplers are resolved once here and cached on the instance.
"""

import logging
from typing import Any, Dict, List, Optional
import warnings

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_serializer,
    field_validator,
    model_validator,
)

from .._warnings import ConfigurationWarning, DataQualityWarning
from ..distributions import (
    ClaimCountDistribution,
    ClaimCountModel,
    ClaimSizeDistribution,
    ClaimSizeModel,
    create_claim_count_distribution,
    create_claim_size_distribution,
)
from ..exceptions import ValidationError
from .constants import (
    DEFAULT_CAPITAL_GRID,
    DEFAULT_ESTIMATE_TRIALS,
    DEFAULT_PARALLEL_THRESHOLD,
    DEFAULT_PARAMS,
    DEFAULT_SWEEP_TRIALS,
)
from .utils import FrozenParams, translate_validation_errors

logger = logging.getLogger(__name__)


class ValidatedModel(BaseModel):
    """Base model whose failures surface as :class:`surplus_ruin.exceptions.ValidationError`.

    Field-constraint failures detected by pydantic are translated on both
    construction paths (``Model(**data)`` and ``Model.model_validate(data)``).
    Errors raised by this package's own validators pass through unchanged.
    """

    def __init__(self, **data: Any) -> None:
        with translate_validation_errors():
            super().__init__(**data)

    @classmethod
    def model_validate(cls, obj: Any, *args: Any, **kwargs: Any):  # type: ignore[override]
        with translate_validation_errors():
            return super().model_validate(obj, *args, **kwargs)


class SimulationConfig(ValidatedModel):
    """Discrete-time compound-claims surplus process.

    The surplus evolves as ``U(t+1) = U(t) + premium_rate - S_t`` where
    ``S_t`` is the sum of a random number of random-sized claims.  All claim
    parameters live in one flat ``params`` mapping; the keys read depend on
    the selected models:

    ===================  ====================
    Model                Keys in ``params``
    ===================  ====================
    poisson              ``lambda``
    binomial             ``size``, ``prob``
    negative_binomial    ``size``, ``mu``
    exponential          ``rate``
    erlang / gamma       ``shape``, ``rate``
    pareto               ``shape``, ``scale``
    ===================  ====================

    Attributes:
        initial_capital: Surplus at time 1.
        premium_rate: Deterministic income per step.
        time_horizon: Number of time points in a path (>= 1).
        claim_count_model: Claim-count model tag.
        claim_size_model: Claim-size model tag.
        params: Model parameters, see table above.

    Examples:
        Default process (Poisson(2) counts, Exponential(0.1) sizes)::

            config = SimulationConfig()

        Heavy-tailed severity::

            config = SimulationConfig(
                claim_size_model="pareto",
                params={"lambda": 2.0, "shape": 3.0, "scale": 1.0},
            )

    Raises:
        ConfigurationError: Unknown model tag.
        ValidationError: Any value outside its domain.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    initial_capital: float = Field(default=100.0, ge=0, description="Initial surplus u")
    premium_rate: float = Field(default=20.0, ge=0, description="Premium income per step c")
    time_horizon: int = Field(default=50, ge=1, description="Number of time points T")
    claim_count_model: ClaimCountModel = Field(
        default=ClaimCountModel.POISSON, description="Claim-count model"
    )
    claim_size_model: ClaimSizeModel = Field(
        default=ClaimSizeModel.EXPONENTIAL, description="Claim-size model"
    )
    params: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_PARAMS), description="Model parameters"
    )

    _claim_count: ClaimCountDistribution = PrivateAttr()
    _claim_size: ClaimSizeDistribution = PrivateAttr()

    @field_validator("claim_count_model", mode="before")
    @classmethod
    def parse_claim_count_model(cls, v: Any) -> ClaimCountModel:
        """Accept loosely spelled tags; unknown tags raise ``ConfigurationError``."""
        return ClaimCountModel.parse(v)

    @field_validator("claim_size_model", mode="before")
    @classmethod
    def parse_claim_size_model(cls, v: Any) -> ClaimSizeModel:
        """Accept loosely spelled tags; unknown tags raise ``ConfigurationError``."""
        return ClaimSizeModel.parse(v)

    @field_validator("params")
    @classmethod
    def freeze_params(cls, v: Dict[str, float]) -> FrozenParams:
        """Store the parameters read-only so the config stays immutable and hashable."""
        return FrozenParams(v)

    @field_serializer("params")
    def serialize_params(self, params: FrozenParams) -> Dict[str, float]:
        return dict(params)

    @model_validator(mode="after")
    def resolve_distributions(self):
        """Resolve and cache both samplers, reporting every parameter problem at once.

        Returns:
            Validated simulation config.

        Raises:
            ValidationError: If the parameters are invalid for either model.
        """
        issues: List[str] = []
        claim_count = claim_size = None
        try:
            claim_count = create_claim_count_distribution(self.claim_count_model, self.params)
        except ValidationError as e:
            issues.extend(e.issues)
        try:
            claim_size = create_claim_size_distribution(self.claim_size_model, self.params)
        except ValidationError as e:
            issues.extend(e.issues)
        if issues:
            raise ValidationError(issues)

        self._claim_count = claim_count
        self._claim_size = claim_size
        self._warn_on_unfavourable_parameters()
        return self

    def _warn_on_unfavourable_parameters(self) -> None:
        mean_size = self._claim_size.expected_value()
        if mean_size == float("inf"):
            warnings.warn(
                f"Claim-size distribution {self._claim_size!r} has an infinite mean; "
                "path averages will not settle",
                DataQualityWarning,
            )
            return
        expected = self.expected_claims_per_step
        if self.premium_rate < expected:
            logger.debug(
                "Negative drift: premium %.4g < expected claims %.4g", self.premium_rate, expected
            )
            warnings.warn(
                f"Premium rate {self.premium_rate:g} is below the expected claims per step "
                f"{expected:g}; surplus drifts downward and long-run ruin is certain",
                ConfigurationWarning,
            )

    @property
    def claim_count_distribution(self) -> ClaimCountDistribution:
        """Resolved claim-count sampler."""
        return self._claim_count

    @property
    def claim_size_distribution(self) -> ClaimSizeDistribution:
        """Resolved claim-size sampler."""
        return self._claim_size

    @property
    def expected_claims_per_step(self) -> float:
        """E[N] * E[X], the mean aggregate claim per step."""
        return self._claim_count.expected_value() * self._claim_size.expected_value()

    @property
    def drift_per_step(self) -> float:
        """Expected surplus change per step (premium minus expected claims)."""
        return self.premium_rate - self.expected_claims_per_step

    def with_initial_capital(self, initial_capital: float) -> "SimulationConfig":
        """Validated copy with a different initial capital, all else held fixed."""
        return self.with_updates(initial_capital=initial_capital)

    def with_updates(self, **changes: Any) -> "SimulationConfig":
        """Validated copy with some fields replaced.

        Args:
            **changes: Field values to replace.

        Returns:
            New simulation config; the original is untouched.
        """
        data = self.model_dump()
        data.update(changes)
        return type(self)(**data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationConfig":
        """Build from a plain mapping, e.g. values collected by a form."""
        return cls(**data)


class AnalysisConfig(ValidatedModel):
    """How many trials to run and how to schedule them.

    Attributes:
        estimate_trials: Trials for the headline ruin-probability estimate.
        sweep_trials: Trials per initial-capital sweep point.
        capital_grid: Initial-capital values to sweep (sorted on validation).
        seed: Root seed; ``None`` for fresh entropy.
        parallel: Allow process-pool execution.
        parallel_threshold: Minimum trials in one run before the pool is used.
        n_workers: Worker processes (``None`` = detected cores minus one).
        chunk_size: Trials per submitted chunk (``None`` = adaptive).
        progress_bar: Show a ``tqdm`` progress bar for pooled runs.
        timeout: Seconds after which a run is cancelled (``None`` = no limit).
    """

    estimate_trials: int = Field(default=DEFAULT_ESTIMATE_TRIALS, ge=1)
    sweep_trials: int = Field(default=DEFAULT_SWEEP_TRIALS, ge=1)
    capital_grid: List[float] = Field(default_factory=lambda: list(DEFAULT_CAPITAL_GRID))
    seed: Optional[int] = Field(default=None, ge=0)
    parallel: bool = True
    parallel_threshold: int = Field(default=DEFAULT_PARALLEL_THRESHOLD, ge=1)
    n_workers: Optional[int] = Field(default=None, ge=1)
    chunk_size: Optional[int] = Field(default=None, ge=1)
    progress_bar: bool = False
    timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("capital_grid")
    @classmethod
    def validate_capital_grid(cls, v: List[float]) -> List[float]:
        """Ensure the grid is non-empty, non-negative and free of duplicates.

        Args:
            v: Grid values in any order.

        Returns:
            Grid sorted ascending.

        Raises:
            ValueError: If the grid is empty, has negative values or duplicates.
        """
        if not v:
            raise ValueError("capital_grid must contain at least one value")
        if any(u < 0 for u in v):
            raise ValueError(f"capital_grid values must be non-negative, got {v}")
        if len(set(v)) != len(v):
            raise ValueError(f"capital_grid contains duplicate values: {v}")
        return sorted(v)

    def use_parallel(self, n_trials: int) -> bool:
        """Whether a run of ``n_trials`` should go through the process pool."""
        return self.parallel and n_trials >= self.parallel_threshold and self.n_workers != 1
