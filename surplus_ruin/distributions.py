"""Claim-count and claim-size distributions for the compound surplus process.

This module resolves a named claim model plus its parameters into a sampler.
Claim-count samplers return non-negative integer draws, claim-size samplers
return arrays of non-negative real draws.  Neither holds random state: every
sampling call takes an explicit ``numpy.random.Generator`` so that each
simulated trial owns its random source.

Model tags form two closed families, :class:`ClaimCountModel` and
:class:`ClaimSizeModel`.  A tag is resolved to its implementing class once,
when the configuration is validated, and the resulting object is reused for
every draw.

Example:
    Drawing one step of a compound Poisson-exponential process::

        rng = np.random.default_rng(42)
        counts = create_claim_count_distribution("poisson", {"lambda": 2.0})
        sizes = create_claim_size_distribution("exponential", {"rate": 0.1})
        n = counts.sample_count(rng)
        total = sizes.generate_severity(n, rng).sum()
"""

from abc import ABC, abstractmethod
from enum import Enum
import logging
import math
import re
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, Union

import numpy as np
from scipy import stats

from .exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

_TAG_SEPARATORS = re.compile(r"[\s_\-]+")
_FAMILY_NAMES = {"ClaimCountModel": "claim count", "ClaimSizeModel": "claim size"}


def _normalize_tag(tag: str) -> str:
    return _TAG_SEPARATORS.sub("", tag).lower()


class _ModelTag(str, Enum):
    """Enum base that accepts loosely spelled tags ("Negative Binomial")."""

    @classmethod
    def parse(cls, tag: Any):
        """Resolve a user-supplied tag to an enum member.

        Args:
            tag: Enum member or string; case, spaces, hyphens and underscores
                are ignored.

        Returns:
            The matching enum member.

        Raises:
            ConfigurationError: If the tag names no known model.
        """
        if isinstance(tag, cls):
            return tag
        if isinstance(tag, str):
            wanted = _normalize_tag(tag)
            for member in cls:
                if _normalize_tag(member.value) == wanted:
                    return member
        raise ConfigurationError(tag, _FAMILY_NAMES[cls.__name__], [m.value for m in cls])


class ClaimCountModel(_ModelTag):
    """Claim-count (frequency) model tags."""

    POISSON = "poisson"
    BINOMIAL = "binomial"
    NEGATIVE_BINOMIAL = "negative_binomial"


class ClaimSizeModel(_ModelTag):
    """Claim-size (severity) model tags."""

    EXPONENTIAL = "exponential"
    ERLANG = "erlang"
    GAMMA = "gamma"
    PARETO = "pareto"


def _read_params(
    params: Mapping[str, Any], names: Tuple[str, ...], model: str
) -> Tuple[Dict[str, float], List[str]]:
    """Pull named reals out of a flat parameter mapping, collecting problems."""
    values: Dict[str, float] = {}
    issues: List[str] = []
    for name in names:
        if name not in params or params[name] is None:
            issues.append(f"{model}: missing parameter '{name}'")
            continue
        raw = params[name]
        if isinstance(raw, bool):
            issues.append(f"{model}: parameter '{name}' must be a real number, got {raw!r}")
            continue
        try:
            value = float(raw)
        except (TypeError, ValueError):
            issues.append(f"{model}: parameter '{name}' must be a real number, got {raw!r}")
            continue
        if not math.isfinite(value):
            issues.append(f"{model}: parameter '{name}' must be finite, got {value}")
            continue
        values[name] = value
    return values, issues


class ClaimCountDistribution(ABC):
    """Abstract base class for per-step claim-count distributions."""

    model: ClassVar[ClaimCountModel]
    required_params: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "ClaimCountDistribution":
        """Build the distribution from a flat parameter mapping.

        Args:
            params: Mapping that holds at least ``required_params``; other keys
                are ignored.

        Returns:
            Validated distribution instance.

        Raises:
            ValidationError: If a parameter is missing, non-numeric or out of range.
        """
        values, issues = _read_params(params, cls.required_params, cls.model.value)
        if issues:
            raise ValidationError(issues)
        return cls(**values)

    @abstractmethod
    def sample_count(self, rng: np.random.Generator) -> int:
        """Draw a single claim count."""

    def sample_counts(self, n_samples: int, rng: np.random.Generator) -> np.ndarray:
        """Draw ``n_samples`` independent claim counts.

        Args:
            n_samples: Number of draws.
            rng: Random source to consume.

        Returns:
            Integer array of claim counts.
        """
        if n_samples <= 0:
            return np.array([], dtype=np.int64)
        return np.array([self.sample_count(rng) for _ in range(n_samples)], dtype=np.int64)

    @abstractmethod
    def expected_value(self) -> float:
        """Mean number of claims per step."""

    @abstractmethod
    def variance(self) -> float:
        """Variance of the number of claims per step."""

    @abstractmethod
    def frozen(self) -> Any:
        """Equivalent frozen ``scipy.stats`` distribution."""

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and vars(self) == vars(other)

    def __hash__(self) -> int:
        return hash((type(self), tuple(sorted(vars(self).items()))))


class PoissonClaimCount(ClaimCountDistribution):
    """Poisson claim count with intensity ``lambda``."""

    model = ClaimCountModel.POISSON
    required_params = ("lambda",)

    def __init__(self, lam: Optional[float] = None, **params: float):
        # "lambda" is a keyword, so the flat-mapping spelling arrives via **params
        lam = params.get("lambda", lam)
        if lam is None or not lam > 0:
            raise ValidationError(f"poisson: lambda must be positive, got {lam}")
        self.lam = float(lam)

    def sample_count(self, rng: np.random.Generator) -> int:
        return int(rng.poisson(self.lam))

    def expected_value(self) -> float:
        return self.lam

    def variance(self) -> float:
        return self.lam

    def frozen(self) -> Any:
        return stats.poisson(mu=self.lam)

    def __repr__(self) -> str:
        return f"PoissonClaimCount(lambda={self.lam})"


class BinomialClaimCount(ClaimCountDistribution):
    """Binomial claim count: ``size`` independent exposures each claiming with ``prob``."""

    model = ClaimCountModel.BINOMIAL
    required_params = ("size", "prob")

    def __init__(self, size: float, prob: float):
        issues = []
        if not (size >= 1 and float(size).is_integer()):
            issues.append(f"binomial: size must be an integer >= 1, got {size}")
        if not 0 < prob <= 1:
            issues.append(f"binomial: prob must lie in (0, 1], got {prob}")
        if issues:
            raise ValidationError(issues)
        self.size = int(size)
        self.prob = float(prob)

    def sample_count(self, rng: np.random.Generator) -> int:
        return int(rng.binomial(self.size, self.prob))

    def expected_value(self) -> float:
        return self.size * self.prob

    def variance(self) -> float:
        return self.size * self.prob * (1.0 - self.prob)

    def frozen(self) -> Any:
        return stats.binom(n=self.size, p=self.prob)

    def __repr__(self) -> str:
        return f"BinomialClaimCount(size={self.size}, prob={self.prob})"


class NegativeBinomialClaimCount(ClaimCountDistribution):
    """Negative binomial claim count in mean/dispersion form.

    With mean ``mu`` and dispersion ``size`` the variance is
    ``mu + mu**2 / size``.  Draws use numpy's (n, p) form with ``n = size``
    and ``p = size / (size + mu)``.
    """

    model = ClaimCountModel.NEGATIVE_BINOMIAL
    required_params = ("size", "mu")

    def __init__(self, size: float, mu: float):
        issues = []
        if not size > 0:
            issues.append(f"negative_binomial: size must be positive, got {size}")
        if not mu > 0:
            issues.append(f"negative_binomial: mu must be positive, got {mu}")
        if issues:
            raise ValidationError(issues)
        self.size = float(size)
        self.mu = float(mu)
        self.prob = self.size / (self.size + self.mu)

    def sample_count(self, rng: np.random.Generator) -> int:
        return int(rng.negative_binomial(self.size, self.prob))

    def expected_value(self) -> float:
        return self.mu

    def variance(self) -> float:
        return self.mu + self.mu**2 / self.size

    def frozen(self) -> Any:
        return stats.nbinom(n=self.size, p=self.prob)

    def __repr__(self) -> str:
        return f"NegativeBinomialClaimCount(size={self.size}, mu={self.mu})"


class ClaimSizeDistribution(ABC):
    """Abstract base class for claim severity distributions.

    Provides a common interface for generating claim amounts and
    calculating statistical properties of the distribution.
    """

    model: ClassVar[ClaimSizeModel]
    required_params: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "ClaimSizeDistribution":
        """Build the distribution from a flat parameter mapping.

        Args:
            params: Mapping that holds at least ``required_params``; other keys
                are ignored.

        Returns:
            Validated distribution instance.

        Raises:
            ValidationError: If a parameter is missing, non-numeric or out of range.
        """
        values, issues = _read_params(params, cls.required_params, cls.model.value)
        if issues:
            raise ValidationError(issues)
        return cls(**values)

    def generate_severity(self, n_samples: int, rng: np.random.Generator) -> np.ndarray:
        """Generate claim size samples.

        No draws are consumed when ``n_samples`` is zero.

        Args:
            n_samples: Number of claims.
            rng: Random source to consume.

        Returns:
            Array of claim amounts (empty when ``n_samples <= 0``).
        """
        if n_samples <= 0:
            return np.array([])
        return self._draw(int(n_samples), rng)

    @abstractmethod
    def _draw(self, n_samples: int, rng: np.random.Generator) -> np.ndarray:
        """Draw a strictly positive number of samples."""

    @abstractmethod
    def expected_value(self) -> float:
        """Calculate the analytical expected value of the distribution.

        Returns:
            Mean claim size, ``inf`` when it does not exist.
        """

    @abstractmethod
    def variance(self) -> float:
        """Variance of a single claim, ``inf`` when it does not exist."""

    @abstractmethod
    def frozen(self) -> Any:
        """Equivalent frozen ``scipy.stats`` distribution."""

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and vars(self) == vars(other)

    def __hash__(self) -> int:
        return hash((type(self), tuple(sorted(vars(self).items()))))


class ExponentialClaimSize(ClaimSizeDistribution):
    """Exponential claim sizes with the given ``rate`` (mean ``1 / rate``)."""

    model = ClaimSizeModel.EXPONENTIAL
    required_params = ("rate",)

    def __init__(self, rate: float):
        if not rate > 0:
            raise ValidationError(f"exponential: rate must be positive, got {rate}")
        self.rate = float(rate)

    def _draw(self, n_samples: int, rng: np.random.Generator) -> np.ndarray:
        return rng.exponential(1.0 / self.rate, size=n_samples)

    def expected_value(self) -> float:
        return 1.0 / self.rate

    def variance(self) -> float:
        return 1.0 / self.rate**2

    def frozen(self) -> Any:
        return stats.expon(scale=1.0 / self.rate)

    def __repr__(self) -> str:
        return f"ExponentialClaimSize(rate={self.rate})"


class GammaClaimSize(ClaimSizeDistribution):
    """Gamma claim sizes in shape/rate form."""

    model = ClaimSizeModel.GAMMA
    required_params = ("shape", "rate")

    def __init__(self, shape: float, rate: float):
        issues = self._check(shape, rate)
        if issues:
            raise ValidationError(issues)
        self.shape = float(shape)
        self.rate = float(rate)

    def _check(self, shape: float, rate: float) -> List[str]:
        issues = []
        if not shape >= 1:
            issues.append(f"{self.model.value}: shape must be >= 1, got {shape}")
        if not rate > 0:
            issues.append(f"{self.model.value}: rate must be positive, got {rate}")
        return issues

    def _draw(self, n_samples: int, rng: np.random.Generator) -> np.ndarray:
        return rng.gamma(self.shape, 1.0 / self.rate, size=n_samples)

    def expected_value(self) -> float:
        return self.shape / self.rate

    def variance(self) -> float:
        return self.shape / self.rate**2

    def frozen(self) -> Any:
        return stats.gamma(a=self.shape, scale=1.0 / self.rate)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(shape={self.shape}, rate={self.rate})"


class ErlangClaimSize(GammaClaimSize):
    """Erlang claim sizes: the integer-shape case of the gamma generator."""

    model = ClaimSizeModel.ERLANG

    def _check(self, shape: float, rate: float) -> List[str]:
        issues = super()._check(shape, rate)
        if shape >= 1 and not float(shape).is_integer():
            issues.append(f"erlang: shape must be an integer, got {shape}")
        return issues


class ParetoClaimSize(ClaimSizeDistribution):
    """Pareto (Type I) claim sizes for heavy-tailed severity.

    Sizes are generated by inverse transform, ``scale / U**(1 / shape)`` with a
    fresh ``U`` drawn uniformly from ``(0, 1]`` per claim.  ``U`` is never zero,
    every draw is at least ``scale`` and the survival function is ``(scale / x)**shape``.
    """

    model = ClaimSizeModel.PARETO
    required_params = ("shape", "scale")

    def __init__(self, shape: float, scale: float):
        issues = []
        if not shape > 0:
            issues.append(f"pareto: shape must be positive, got {shape}")
        if not scale > 0:
            issues.append(f"pareto: scale must be positive, got {scale}")
        if issues:
            raise ValidationError(issues)
        self.shape = float(shape)
        self.scale = float(scale)

    def _draw(self, n_samples: int, rng: np.random.Generator) -> np.ndarray:
        u = 1.0 - rng.random(n_samples)
        return self.scale / (u ** (1.0 / self.shape))

    def survival(self, x: Union[float, np.ndarray]) -> np.ndarray:
        """Analytical survival function P(X > x)."""
        x = np.asarray(x, dtype=float)
        return np.where(x < self.scale, 1.0, (self.scale / np.maximum(x, self.scale)) ** self.shape)

    def expected_value(self) -> float:
        if self.shape <= 1:
            return np.inf
        return self.shape * self.scale / (self.shape - 1)

    def variance(self) -> float:
        if self.shape <= 2:
            return np.inf
        return self.scale**2 * self.shape / ((self.shape - 1) ** 2 * (self.shape - 2))

    def frozen(self) -> Any:
        return stats.pareto(b=self.shape, scale=self.scale)

    def __repr__(self) -> str:
        return f"ParetoClaimSize(shape={self.shape}, scale={self.scale})"


_CLAIM_COUNT_CLASSES: Dict[ClaimCountModel, Type[ClaimCountDistribution]] = {
    ClaimCountModel.POISSON: PoissonClaimCount,
    ClaimCountModel.BINOMIAL: BinomialClaimCount,
    ClaimCountModel.NEGATIVE_BINOMIAL: NegativeBinomialClaimCount,
}

_CLAIM_SIZE_CLASSES: Dict[ClaimSizeModel, Type[ClaimSizeDistribution]] = {
    ClaimSizeModel.EXPONENTIAL: ExponentialClaimSize,
    ClaimSizeModel.ERLANG: ErlangClaimSize,
    ClaimSizeModel.GAMMA: GammaClaimSize,
    ClaimSizeModel.PARETO: ParetoClaimSize,
}


def create_claim_count_distribution(
    model: Union[str, ClaimCountModel], params: Mapping[str, Any]
) -> ClaimCountDistribution:
    """Factory function to create claim-count distributions.

    Args:
        model: Model tag ("poisson", "binomial", "negative_binomial").
        params: Flat parameter mapping.

    Returns:
        ClaimCountDistribution instance

    Raises:
        ConfigurationError: If the model tag is not recognized.
        ValidationError: If the parameters are invalid for the model.
    """
    dist = _CLAIM_COUNT_CLASSES[ClaimCountModel.parse(model)].from_params(params)
    logger.debug("Resolved claim count model %r", dist)
    return dist


def create_claim_size_distribution(
    model: Union[str, ClaimSizeModel], params: Mapping[str, Any]
) -> ClaimSizeDistribution:
    """Factory function to create claim-size distributions.

    Args:
        model: Model tag ("exponential", "erlang", "gamma", "pareto").
        params: Flat parameter mapping.

    Returns:
        ClaimSizeDistribution instance

    Raises:
        ConfigurationError: If the model tag is not recognized.
        ValidationError: If the parameters are invalid for the model.
    """
    dist = _CLAIM_SIZE_CLASSES[ClaimSizeModel.parse(model)].from_params(params)
    logger.debug("Resolved claim size model %r", dist)
    return dist
