"""Exception hierarchy for the surplus_ruin package.

All errors raised by the simulation core derive from :class:`SurplusRuinError`
so callers can catch the whole family with a single ``except`` clause.  None of
them subclass ``ValueError``: pydantic wraps ``ValueError`` raised inside model
validators, and these errors must reach the caller unchanged.

Examples:
    Inspecting parameter problems::

        try:
            SimulationConfig(claim_count_model="poisson", params={"lambda": -1}, ...)
        except ValidationError as e:
            for issue in e.issues:
                print(f"  - {issue}")
"""

from typing import List, Optional, Union


class SurplusRuinError(Exception):
    """Base class for all surplus_ruin errors."""


class ConfigurationError(SurplusRuinError):
    """Raised for an unknown or unsupported distribution tag.

    Attributes:
        tag: The offending model tag as supplied by the caller.
        choices: Accepted tags for the model family.
    """

    def __init__(self, tag: object, family: str, choices: List[str]) -> None:
        self.tag = tag
        self.family = family
        self.choices = choices
        super().__init__(f"Unknown {family} model: {tag!r}. Choose from: {choices}")

    def __reduce__(self):
        return type(self), (self.tag, self.family, self.choices)


class ValidationError(SurplusRuinError):
    """Raised when parameters fall outside their mathematical domain.

    Every problem found is collected before raising, so one exception reports
    all of them.

    Attributes:
        issues: List of specific parameter problems found.
    """

    def __init__(self, issues: Union[str, List[str]]) -> None:
        if isinstance(issues, str):
            issues = [issues]
        self.issues = issues
        bullet_list = "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(
            f"Invalid parameters ({len(issues)} "
            f"{'issue' if len(issues) == 1 else 'issues'}):\n{bullet_list}"
        )

    def __reduce__(self):
        return type(self), (self.issues,)


class NumericAnomaly(SurplusRuinError):
    """Raised when sampling or accumulation produces NaN or Inf.

    Attributes:
        step: Time step (1-based) at which the anomaly appeared, if known.
        value: The offending value.
    """

    def __init__(self, message: str, step: Optional[int] = None, value: float = float("nan")):
        self.message = message
        self.step = step
        self.value = value
        if step is not None:
            message = f"{message} (step {step}, value={value})"
        super().__init__(message)

    def __reduce__(self):
        return type(self), (self.message, self.step, self.value)


class SimulationCancelled(SurplusRuinError):
    """Raised when a run is cancelled or times out; no partial result exists.

    Attributes:
        completed: Number of trials finished before cancellation.
        total: Number of trials requested.
    """

    def __init__(self, reason: str, completed: int = 0, total: int = 0) -> None:
        self.reason = reason
        self.completed = completed
        self.total = total
        super().__init__(f"Simulation {reason} after {completed}/{total} trials")

    def __reduce__(self):
        return type(self), (self.reason, self.completed, self.total)
