"""Tests for the initial-capital sensitivity sweep."""

import itertools
import logging
import threading
from unittest.mock import Mock, patch

import numpy as np
import pandas as pd
import pytest

from surplus_ruin.config import AnalysisConfig
from surplus_ruin.exceptions import SimulationCancelled, ValidationError
from surplus_ruin.parallel_executor import ParallelExecutor
from surplus_ruin.random_sources import OffsetRandomSource, RandomSourceFactory
from surplus_ruin.ruin_probability import RuinEstimate, estimate_ruin_probability
from surplus_ruin.sensitivity import (
    SweepPoint,
    SweepResult,
    default_capital_grid,
    sweep_initial_capital,
)


def _result(probabilities, capitals=None):
    """Build a sweep result by hand."""
    capitals = capitals or [float(10 * i) for i in range(len(probabilities))]
    points = []
    for u, p in zip(capitals, probabilities):
        ruined = int(round(p * 100))
        estimate = RuinEstimate.from_outcomes(
            [(1, 1.0)] * ruined + [(11, 0.0)] * (100 - ruined), time_horizon=10
        )
        points.append(SweepPoint(u, estimate.probability, estimate))
    return SweepResult(points=tuple(points), trial_count=100)


class TestDefaultCapitalGrid:
    """Test grid construction."""

    def test_default(self):
        assert default_capital_grid() == [0.0, 20.0, 40.0, 60.0, 80.0, 100.0, 120.0, 140.0, 160.0, 180.0, 200.0]

    def test_custom(self):
        assert default_capital_grid(10, 30, 5) == [10, 15, 20, 25, 30]

    def test_stop_not_on_step(self):
        assert default_capital_grid(0, 25, 10) == [0, 10, 20]

    @pytest.mark.parametrize("args", [(0, 100, 0), (0, 100, -5), (50, 10, 5)])
    def test_invalid(self, args):
        with pytest.raises(ValidationError):
            default_capital_grid(*args)


class TestSweepInitialCapital:
    """Test the sweep entry point."""

    def test_sorted_output(self, short_config, factory):
        result = sweep_initial_capital(short_config, [60, 0, 30], 40, factory)
        np.testing.assert_array_equal(result.initial_capitals, [0.0, 30.0, 60.0])
        assert result.trial_count == 40
        assert len(result) == 3

    def test_points_use_spawned_factories(self, short_config, factory):
        """Point i of the sorted grid is an estimate from factory.spawn(i)."""
        result = sweep_initial_capital(short_config, [50, 0], 30, factory)
        for i, point in enumerate(result):
            expected = estimate_ruin_probability(
                short_config.with_initial_capital(point.initial_capital), 30, factory.spawn(i)
            )
            assert point.estimate == expected
            assert point.ruin_probability == expected.probability

    def test_other_settings_held_fixed(self, short_config, factory):
        result = sweep_initial_capital(short_config, [0, 10], 5, factory)
        assert result[0].estimate.time_horizon == short_config.time_horizon

    def test_deterministic(self, short_config):
        first = sweep_initial_capital(short_config, [0, 40], 30, seed=5)
        second = sweep_initial_capital(short_config, [0, 40], 30, RandomSourceFactory(5))
        np.testing.assert_array_equal(first.ruin_probabilities, second.ruin_probabilities)

    def test_no_claims_all_zero(self, no_claims_config):
        result = sweep_initial_capital(no_claims_config, default_capital_grid(), 20, seed=1)
        assert (result.ruin_probabilities == 0.0).all()

    @pytest.mark.parametrize(
        "grid",
        [[], [-10, 0, 10], [0, 20, 20], [0, float("nan")], [0, float("inf")], ["a"]],
    )
    def test_invalid_grid(self, short_config, grid):
        with pytest.raises(ValidationError):
            sweep_initial_capital(short_config, grid, 10, seed=1)

    def test_invalid_trial_count(self, short_config):
        with pytest.raises(ValidationError):
            sweep_initial_capital(short_config, [0, 10], 0, seed=1)

    def test_plain_callable_factory(self, short_config, pooled_analysis, caplog):
        """A factory without spawn gives point i the trial indices i*N .. i*N + N - 1."""
        plain = lambda i: np.random.default_rng(i)  # noqa: E731
        with caplog.at_level(logging.WARNING, logger="surplus_ruin.sensitivity"):
            result = sweep_initial_capital(short_config, [0, 25], 20, plain, analysis=pooled_analysis)
        assert "running serially" in caplog.text
        for i, point in enumerate(result):
            expected = estimate_ruin_probability(
                short_config.with_initial_capital(point.initial_capital),
                20,
                OffsetRandomSource(plain, i * 20),
            )
            assert point.estimate == expected
            np.testing.assert_array_equal(point.estimate.ruin_times, expected.ruin_times)

    def test_plain_callable_points_share_no_draws(self, short_config):
        """Every trial of every point draws from its own index."""
        seen = []

        def recording(i):
            seen.append(i)
            return np.random.default_rng(i)

        sweep_initial_capital(short_config, [0, 10], 15, recording, analysis=AnalysisConfig(parallel=False))
        assert sorted(seen) == list(range(30))

    def test_cancelled(self, short_config):
        event = threading.Event()
        event.set()
        with pytest.raises(SimulationCancelled):
            sweep_initial_capital(short_config, [0, 10], 20, seed=1, cancel_event=event)

    def test_progress_callback(self, short_config):
        calls = []
        sweep_initial_capital(
            short_config,
            [0, 10, 20],
            5,
            seed=1,
            progress_callback=lambda done, total, elapsed: calls.append((done, total)),
        )
        assert calls == [(5, 15), (10, 15), (15, 15)]

    def test_timeout_covers_whole_sweep(self, short_config):
        """The timeout is one budget for all points, not a fresh one per point."""
        clock = Mock()
        clock.time.side_effect = itertools.count(0.0, 1.0)
        analysis = AnalysisConfig(parallel=False, timeout=3.0)
        with patch("surplus_ruin.sensitivity.time", clock):
            with pytest.raises(SimulationCancelled) as exc_info:
                sweep_initial_capital(short_config, default_capital_grid(0, 90, 10), 5, seed=1, analysis=analysis)
        assert exc_info.value.reason == "timed out"
        assert exc_info.value.total == 50
        assert exc_info.value.completed < 50
        assert exc_info.value.completed % 5 == 0

    def test_cancelled_counts_sweep_trials(self, short_config):
        event = threading.Event()
        calls = []

        def stop_after_first_point(done, total, elapsed):
            calls.append(done)
            event.set()

        with pytest.raises(SimulationCancelled) as exc_info:
            sweep_initial_capital(
                short_config,
                [0, 10, 20],
                8,
                seed=1,
                analysis=AnalysisConfig(parallel=False),
                cancel_event=event,
                progress_callback=stop_after_first_point,
            )
        assert calls == [8]
        assert (exc_info.value.completed, exc_info.value.total) == (8, 24)

    @pytest.mark.requires_multiprocessing
    def test_pooled_sweep_matches_serial(self, short_config, factory, serial_analysis):
        """A sweep over the threshold runs as one pooled job with serial results."""
        pooled = AnalysisConfig(parallel=True, parallel_threshold=100, n_workers=2, chunk_size=25)
        original = ParallelExecutor.map_reduce
        with patch.object(ParallelExecutor, "map_reduce", autospec=True, side_effect=original) as mapped:
            pooled_result = sweep_initial_capital(short_config, [0, 20, 40], 50, factory, analysis=pooled)
        assert mapped.call_count == 1

        serial_result = sweep_initial_capital(short_config, [0, 20, 40], 50, factory, analysis=serial_analysis)
        for pooled_point, serial_point in zip(pooled_result, serial_result):
            assert pooled_point.estimate == serial_point.estimate
            np.testing.assert_array_equal(pooled_point.estimate.ruin_times, serial_point.estimate.ruin_times)
            np.testing.assert_array_equal(pooled_point.estimate.deficits, serial_point.estimate.deficits)

    def test_analysis_passed_through(self, short_config):
        """The analysis seed drives the sweep when no seed or factory is given."""
        analysis = AnalysisConfig(seed=9, parallel=False)
        a = sweep_initial_capital(short_config, [0, 30], 20, analysis=analysis)
        b = sweep_initial_capital(short_config, [0, 30], 20, seed=9)
        np.testing.assert_array_equal(a.ruin_probabilities, b.ruin_probabilities)

    @pytest.mark.slow
    def test_monotone_in_capital(self, short_config):
        """More capital never raises the ruin probability beyond Monte Carlo noise."""
        result = sweep_initial_capital(short_config, [0, 20, 40, 80, 160], 1500, seed=21)
        max_se = max(point.estimate.standard_error for point in result)
        assert result.is_monotone(tolerance=3 * max_se)
        assert result.ruin_probabilities[0] > result.ruin_probabilities[-1]


class TestSweepResult:
    """Test the result container."""

    def test_is_monotone(self):
        result = _result([0.5, 0.52, 0.3])
        assert not result.is_monotone()
        assert result.is_monotone(tolerance=0.05)
        assert _result([0.5, 0.4, 0.4, 0.1]).is_monotone()

    def test_to_dataframe(self):
        df = _result([0.5, 0.25]).to_dataframe()
        assert list(df.columns) == ["Initial_Capital", "Ruin_Probability"]
        pd.testing.assert_series_equal(
            df["Ruin_Probability"], pd.Series([0.5, 0.25], name="Ruin_Probability")
        )

    def test_probability_at(self):
        result = _result([0.5, 0.25])
        assert result.probability_at(10.0) == 0.25
        with pytest.raises(KeyError):
            result.probability_at(5.0)

    def test_summary(self):
        summary = _result([0.5, 0.25]).summary()
        assert "Ruin Probability vs Initial Capital" in summary
        assert "Trials per point: 100" in summary
        assert "0.2500" in summary
