"""Custom warning classes for the surplus_ruin package.

These warning classes allow users to programmatically filter, suppress,
or capture warnings using Python's standard ``warnings`` module.

Example:
    Suppress drift warnings in a batch sweep::

        import warnings
        from surplus_ruin._warnings import ConfigurationWarning

        warnings.filterwarnings("ignore", category=ConfigurationWarning)
"""


class SurplusRuinWarning(UserWarning):
    """Base class for all surplus_ruin warnings."""


class ConfigurationWarning(SurplusRuinWarning):
    """Valid but economically suspicious configuration.

    Raised when the premium rate is below the expected aggregate claims
    per step, so the surplus drifts downward.
    """


class DataQualityWarning(SurplusRuinWarning):
    """Distributional properties that make estimates unreliable.

    Raised when the claim-size distribution has no finite mean (Pareto
    with shape <= 1), so path averages do not settle.
    """
