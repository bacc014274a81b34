"""Explicit random sources for independent simulation trials.

Every trial draws from its own ``numpy.random.Generator``.  The generator
for a trial is derived from ``SeedSequence(entropy, spawn_key=(*key, trial))``,
so it depends only on the factory's entropy, its key and the trial index,
never on which worker runs the trial or in what order trials complete.
Serial and parallel runs of the same factory therefore see identical draws.

Factories are small picklable objects and are shipped to worker processes
as-is.
"""

import logging
from typing import Callable, Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

#: Anything that maps a trial index to an independent generator.
RandomSourceCallable = Callable[[int], np.random.Generator]

RandomSourceLike = Union[None, int, np.random.SeedSequence, np.random.Generator]

# Spawn-key level that separates child factories from the parent's trial indices.
_CHILD_MARKER = 2**32


class RandomSourceFactory:
    """Deterministic factory of per-trial random generators.

    Args:
        seed: Root entropy.  ``None`` draws fresh OS entropy once, at
            construction, so a single factory stays reproducible for its
            own lifetime.
        key: Spawn key prefix; children created with :meth:`spawn` extend it.

    Examples:
        One generator per trial::

            factory = RandomSourceFactory(seed=42)
            rng_0 = factory(0)
            rng_1 = factory(1)  # independent of rng_0

        Independent families for sweep points::

            point_factory = factory.spawn(3)
    """

    def __init__(
        self,
        seed: Optional[Union[int, np.random.SeedSequence]] = None,
        key: Tuple[int, ...] = (),
    ):
        if isinstance(seed, np.random.SeedSequence):
            self.entropy = seed.entropy
            key = tuple(seed.spawn_key) + tuple(key)
        else:
            self.entropy = np.random.SeedSequence(seed).entropy
        self.key = tuple(int(k) for k in key)

    def seed_sequence(self, trial_index: int) -> np.random.SeedSequence:
        """Seed sequence for one trial."""
        if trial_index < 0:
            raise IndexError(f"trial_index must be non-negative, got {trial_index}")
        return np.random.SeedSequence(self.entropy, spawn_key=self.key + (int(trial_index),))

    def __call__(self, trial_index: int) -> np.random.Generator:
        """Return a fresh generator for ``trial_index``."""
        return np.random.default_rng(self.seed_sequence(trial_index))

    def spawn(self, key: int) -> "RandomSourceFactory":
        """Child factory whose streams never overlap with this one's trials.

        Args:
            key: Child identifier, e.g. the index of a sweep point.

        Returns:
            New factory sharing the root entropy with an extended spawn key.
        """
        child = RandomSourceFactory.__new__(RandomSourceFactory)
        child.entropy = self.entropy
        child.key = self.key + (_CHILD_MARKER, int(key))
        return child

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RandomSourceFactory):
            return NotImplemented
        return self.entropy == other.entropy and self.key == other.key

    def __hash__(self) -> int:
        return hash((self.entropy, self.key))

    def __repr__(self) -> str:
        return f"RandomSourceFactory(entropy={self.entropy}, key={self.key})"


def as_generator(source: RandomSourceLike) -> np.random.Generator:
    """Coerce a seed-like value into a ``numpy.random.Generator``.

    A generator passed in is returned unchanged (and will be consumed).

    Args:
        source: Generator, integer seed, SeedSequence, or None for fresh entropy.

    Returns:
        Generator to draw from.
    """
    if isinstance(source, np.random.Generator):
        return source
    return np.random.default_rng(source)


def resolve_factory(
    random_source_factory: Optional[RandomSourceCallable] = None,
    seed: Optional[int] = None,
    default_seed: Optional[int] = None,
) -> RandomSourceCallable:
    """Pick the caller's factory, or build one from ``seed``.

    Args:
        random_source_factory: Explicit factory; wins over ``seed``.
        seed: Root seed for a new :class:`RandomSourceFactory`.
        default_seed: Seed used when neither a factory nor ``seed`` is given,
            typically the configured analysis seed.

    Returns:
        Callable mapping trial index to generator.
    """
    if random_source_factory is not None:
        if seed is not None:
            logger.warning("Both random_source_factory and seed given; seed %s ignored", seed)
        return random_source_factory
    return RandomSourceFactory(seed if seed is not None else default_seed)


class OffsetRandomSource:
    """Shifts a plain trial-index factory so a child family starts at ``offset``.

    Used when a caller's factory has no ``spawn``: child ``k`` of a run with
    ``stride`` trials per child maps trial ``j`` to ``factory(k * stride + j)``,
    so children never share a trial index.  Picklable whenever the wrapped
    factory is.
    """

    def __init__(self, random_source_factory: RandomSourceCallable, offset: int):
        self.random_source_factory = random_source_factory
        self.offset = int(offset)

    def __call__(self, trial_index: int) -> np.random.Generator:
        return self.random_source_factory(self.offset + int(trial_index))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OffsetRandomSource):
            return NotImplemented
        return self.random_source_factory == other.random_source_factory and self.offset == other.offset

    def __hash__(self) -> int:
        return hash((self.random_source_factory, self.offset))

    def __repr__(self) -> str:
        return f"OffsetRandomSource({self.random_source_factory!r}, offset={self.offset})"


def spawn_factory(
    random_source_factory: RandomSourceCallable, key: int, stride: Optional[int] = None
) -> RandomSourceCallable:
    """Child factory for an independent family of trials (a sweep point, a repeat).

    A factory with ``spawn(key)`` is asked for its child.  Any other callable
    is wrapped in :class:`OffsetRandomSource` at offset ``key * stride``.

    Args:
        random_source_factory: Parent factory.
        key: Child identifier.
        stride: Trials per child; required for factories without ``spawn``.

    Returns:
        Child factory.

    Raises:
        TypeError: If the parent cannot spawn children and no stride is given.
    """
    spawn = getattr(random_source_factory, "spawn", None)
    if spawn is not None:
        return spawn(key)  # type: ignore[no-any-return]
    if stride is None:
        raise TypeError(
            f"{type(random_source_factory).__name__} has no spawn(key) method; "
            "pass stride to offset its trial indices"
        )
    return OffsetRandomSource(random_source_factory, int(key) * int(stride))
