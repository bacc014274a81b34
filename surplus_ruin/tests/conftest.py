"""Pytest configuration and shared fixtures."""

import warnings

import numpy as np
import pytest

from surplus_ruin.config import AnalysisConfig, RuinStudyConfig, SimulationConfig
from surplus_ruin.random_sources import RandomSourceFactory


def pytest_configure(config):
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "slow: long-running statistical tests")
    config.addinivalue_line("markers", "integration: end-to-end scenarios")
    config.addinivalue_line("markers", "requires_multiprocessing: spawns a process pool")


@pytest.fixture
def base_config():
    """Classical example: u=100, c=20, T=50, Poisson(2) counts, Exponential(0.1) sizes."""
    return SimulationConfig(
        initial_capital=100,
        premium_rate=20,
        time_horizon=50,
        claim_count_model="poisson",
        claim_size_model="exponential",
        params={"lambda": 2.0, "rate": 0.1},
    )


@pytest.fixture
def short_config():
    """Short horizon with a moderate ruin probability, cheap to simulate."""
    return SimulationConfig(
        initial_capital=20,
        premium_rate=22,
        time_horizon=20,
        params={"lambda": 2.0, "rate": 0.1},
    )


@pytest.fixture
def draining_config():
    """Premium far below expected claims; ruin is very likely."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return SimulationConfig(
            initial_capital=100,
            premium_rate=5,
            time_horizon=50,
            params={"lambda": 2.0, "rate": 0.1},
        )


@pytest.fixture
def no_claims_config():
    """Claim intensity so small that no claim ever occurs in practice."""
    return SimulationConfig(
        initial_capital=50,
        premium_rate=3,
        time_horizon=40,
        params={"lambda": 1e-12, "rate": 0.1},
    )


@pytest.fixture
def factory():
    """Seeded random-source factory."""
    return RandomSourceFactory(seed=12345)


@pytest.fixture
def rng():
    """Seeded generator."""
    return np.random.default_rng(42)


@pytest.fixture
def serial_analysis():
    """Analysis settings that never use the process pool."""
    return AnalysisConfig(parallel=False)


@pytest.fixture
def pooled_analysis():
    """Analysis settings that always use a two-worker pool."""
    return AnalysisConfig(parallel=True, parallel_threshold=1, n_workers=2, chunk_size=25)


@pytest.fixture
def small_study():
    """Study small enough for fast end-to-end runs."""
    return RuinStudyConfig(
        simulation=SimulationConfig(time_horizon=20),
        analysis=AnalysisConfig(
            estimate_trials=60,
            sweep_trials=30,
            capital_grid=[0, 50, 100],
            seed=7,
            parallel=False,
        ),
        logging={"enabled": False},
    )
