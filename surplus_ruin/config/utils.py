"""Shared configuration utilities.

Contains common helper functions used across the configuration system
to avoid duplication.
"""

from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ValidationError


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override dictionary into base dictionary.

    Creates a new dictionary with values from ``base`` updated by ``override``.
    Nested dictionaries are merged recursively rather than replaced wholesale.

    Args:
        base: Base dictionary providing default values.
        override: Override dictionary whose values take precedence.

    Returns:
        New merged dictionary (neither input is mutated).
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def expand_dotted(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Turn ``{"simulation.premium_rate": 5}`` into ``{"simulation": {"premium_rate": 5}}``.

    Keys without dots are kept as they are, so section-level dicts and
    dotted keys can be mixed.

    Args:
        overrides: Flat or nested override mapping.

    Returns:
        Nested override mapping.
    """
    nested: Dict[str, Any] = {}
    for key, value in overrides.items():
        parts = key.split(".")
        update: Any = value
        for part in reversed(parts[1:]):
            update = {part: update}
        nested = deep_merge(nested, {parts[0]: update})
    return nested


def format_pydantic_errors(exc: PydanticValidationError) -> List[str]:
    """One readable line per pydantic error: ``location: message``."""
    issues = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        issues.append(f"{location}: {error['msg']}")
    return issues


@contextmanager
def translate_validation_errors() -> Iterator[None]:
    """Re-raise pydantic validation failures as the package's ``ValidationError``."""
    try:
        yield
    except PydanticValidationError as exc:
        raise ValidationError(format_pydantic_errors(exc)) from exc


class FrozenParams(Mapping):
    """Read-only, hashable and picklable parameter mapping."""

    def __init__(self, data: Mapping[str, Any]):
        self._data = dict(data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __hash__(self) -> int:
        return hash(frozenset(self._data.items()))

    def __repr__(self) -> str:
        return f"FrozenParams({self._data!r})"
