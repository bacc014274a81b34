"""Tests for the pydantic configuration models."""

import logging
import pickle
import warnings

from pydantic import ValidationError as PydanticValidationError
import pytest
import yaml

from surplus_ruin._warnings import ConfigurationWarning, DataQualityWarning
from surplus_ruin.config import (
    DEFAULT_CAPITAL_GRID,
    AnalysisConfig,
    RuinStudyConfig,
    SimulationConfig,
)
from surplus_ruin.distributions import (
    ClaimCountModel,
    ClaimSizeModel,
    NegativeBinomialClaimCount,
    ParetoClaimSize,
    PoissonClaimCount,
)
from surplus_ruin.exceptions import ConfigurationError, ValidationError


@pytest.fixture
def restore_package_logger():
    """Put the package logger back the way it was after the test."""
    package_logger = logging.getLogger("surplus_ruin")
    handlers, level = list(package_logger.handlers), package_logger.level
    yield package_logger
    for handler in package_logger.handlers:
        if handler not in handlers:
            handler.close()
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)


class TestSimulationConfig:
    """Test the surplus-process configuration."""

    def test_defaults(self):
        config = SimulationConfig()
        assert config.initial_capital == 100.0
        assert config.premium_rate == 20.0
        assert config.time_horizon == 50
        assert config.claim_count_model is ClaimCountModel.POISSON
        assert config.claim_size_model is ClaimSizeModel.EXPONENTIAL
        assert config.params == {"lambda": 2.0, "rate": 0.1}
        assert config.claim_count_distribution == PoissonClaimCount(lam=2.0)

    def test_expected_claims_and_drift(self):
        config = SimulationConfig()
        assert config.expected_claims_per_step == pytest.approx(20.0)
        assert config.drift_per_step == pytest.approx(0.0)

    def test_frozen(self):
        config = SimulationConfig()
        with pytest.raises(PydanticValidationError):
            config.premium_rate = 5.0

    def test_params_read_only(self):
        """Parameters cannot be changed behind the cached samplers' back."""
        config = SimulationConfig()
        with pytest.raises(TypeError):
            config.params["lambda"] = -1.0
        with pytest.raises(TypeError):
            del config.params["rate"]
        assert config.claim_count_distribution == PoissonClaimCount(lam=2.0)

    def test_params_not_aliased_to_input(self):
        params = {"lambda": 2.0, "rate": 0.1}
        config = SimulationConfig(params=params)
        params["lambda"] = 50.0
        assert config.params["lambda"] == 2.0

    def test_hashable(self):
        assert hash(SimulationConfig()) == hash(SimulationConfig())
        assert len({SimulationConfig(), SimulationConfig(), SimulationConfig(premium_rate=25)}) == 2

    def test_dump_gives_plain_params(self):
        dumped = SimulationConfig().model_dump()
        assert type(dumped["params"]) is dict
        assert dumped["params"] == {"lambda": 2.0, "rate": 0.1}
        assert SimulationConfig(**dumped) == SimulationConfig()

    @pytest.mark.parametrize("tag", ["Negative Binomial", "negative-binomial", "NEGATIVE_BINOMIAL"])
    def test_loose_count_tags(self, tag):
        config = SimulationConfig(
            claim_count_model=tag, params={"size": 10, "mu": 2, "rate": 0.1}
        )
        assert config.claim_count_model is ClaimCountModel.NEGATIVE_BINOMIAL
        assert isinstance(config.claim_count_distribution, NegativeBinomialClaimCount)

    def test_unknown_tag_raises_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SimulationConfig(claim_size_model="lognormal")
        assert exc_info.value.tag == "lognormal"
        assert "pareto" in exc_info.value.choices

    @pytest.mark.parametrize(
        "field,value",
        [
            ("initial_capital", -1.0),
            ("premium_rate", -0.5),
            ("time_horizon", 0),
            ("initial_capital", float("nan")),
            ("premium_rate", float("inf")),
        ],
    )
    def test_out_of_domain_fields(self, field, value):
        with pytest.raises(ValidationError) as exc_info:
            SimulationConfig(**{field: value})
        assert any(field in issue for issue in exc_info.value.issues)

    def test_missing_params_all_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            SimulationConfig(params={})
        assert len(exc_info.value.issues) == 2
        assert any("lambda" in issue for issue in exc_info.value.issues)
        assert any("rate" in issue for issue in exc_info.value.issues)

    def test_invalid_params_from_both_models(self):
        with pytest.raises(ValidationError) as exc_info:
            SimulationConfig(params={"lambda": -1.0, "rate": 0.0})
        assert len(exc_info.value.issues) == 2

    def test_non_numeric_param(self):
        with pytest.raises(ValidationError):
            SimulationConfig(params={"lambda": "many", "rate": 0.1})

    def test_extra_params_ignored(self):
        config = SimulationConfig(params={"lambda": 2.0, "rate": 0.1, "shape": 3.0})
        assert config.claim_size_distribution.expected_value() == pytest.approx(10.0)

    def test_negative_drift_warns(self):
        with pytest.warns(ConfigurationWarning, match="below the expected claims"):
            SimulationConfig(premium_rate=19.9)

    def test_break_even_does_not_warn(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            SimulationConfig(premium_rate=20.0)

    def test_infinite_mean_warns(self):
        with pytest.warns(DataQualityWarning, match="infinite mean"):
            config = SimulationConfig(
                claim_size_model="pareto", params={"lambda": 2.0, "shape": 0.8, "scale": 1.0}
            )
        assert isinstance(config.claim_size_distribution, ParetoClaimSize)

    def test_with_initial_capital(self):
        config = SimulationConfig()
        changed = config.with_initial_capital(40)
        assert changed.initial_capital == 40.0
        assert changed.premium_rate == config.premium_rate
        assert changed.params == config.params
        assert config.initial_capital == 100.0

    def test_with_updates_revalidates(self):
        config = SimulationConfig()
        with pytest.raises(ValidationError):
            config.with_updates(time_horizon=0)
        with pytest.raises(ValidationError):
            config.with_initial_capital(-5)

    def test_from_dict(self):
        config = SimulationConfig.from_dict({"premium_rate": 25, "claim_size_model": "gamma",
                                             "params": {"lambda": 2, "shape": 2, "rate": 0.2}})
        assert config.expected_claims_per_step == pytest.approx(20.0)

    def test_pickle_round_trip(self):
        config = SimulationConfig(claim_count_model="binomial", params={"size": 5, "prob": 0.4, "rate": 0.1})
        restored = pickle.loads(pickle.dumps(config))
        assert restored == config
        assert restored.claim_count_distribution == config.claim_count_distribution
        assert hash(restored) == hash(config)
        with pytest.raises(TypeError):
            restored.params["size"] = 1


class TestAnalysisConfig:
    """Test trial-budget and scheduling settings."""

    def test_defaults(self):
        analysis = AnalysisConfig()
        assert analysis.estimate_trials == 300
        assert analysis.sweep_trials == 200
        assert analysis.capital_grid == list(DEFAULT_CAPITAL_GRID)
        assert analysis.parallel_threshold == 5000
        assert analysis.seed is None

    def test_grid_sorted(self):
        assert AnalysisConfig(capital_grid=[50, 0, 10]).capital_grid == [0, 10, 50]

    @pytest.mark.parametrize("grid", [[], [-10, 0], [0, 10, 10]])
    def test_invalid_grid(self, grid):
        with pytest.raises(ValidationError):
            AnalysisConfig(capital_grid=grid)

    @pytest.mark.parametrize(
        "field,value", [("estimate_trials", 0), ("n_workers", 0), ("timeout", 0.0), ("seed", -1)]
    )
    def test_invalid_fields(self, field, value):
        with pytest.raises(ValidationError):
            AnalysisConfig(**{field: value})

    def test_model_validate_translates_errors(self):
        with pytest.raises(ValidationError):
            AnalysisConfig.model_validate({"sweep_trials": 0})

    def test_use_parallel(self):
        analysis = AnalysisConfig(parallel_threshold=100)
        assert analysis.use_parallel(100)
        assert not analysis.use_parallel(99)
        assert not AnalysisConfig(parallel=False, parallel_threshold=1).use_parallel(10)
        assert not AnalysisConfig(parallel_threshold=1, n_workers=1).use_parallel(10)


class TestRuinStudyConfig:
    """Test the composed study configuration."""

    def test_defaults(self):
        study = RuinStudyConfig()
        assert study.simulation == SimulationConfig()
        assert study.analysis.estimate_trials == 300
        assert study.logging.level == "INFO"

    def test_yaml_round_trip(self, tmp_path):
        study = RuinStudyConfig(
            simulation=SimulationConfig(
                claim_size_model="erlang", params={"lambda": 2, "shape": 2, "rate": 0.2}
            ),
            analysis=AnalysisConfig(seed=11, capital_grid=[0, 25]),
        )
        path = tmp_path / "nested" / "study.yaml"
        study.to_yaml(path)
        loaded = RuinStudyConfig.from_yaml(path)
        assert loaded.model_dump() == study.model_dump()
        assert loaded.simulation.claim_size_model is ClaimSizeModel.ERLANG

    def test_yaml_uses_plain_values(self, tmp_path):
        path = tmp_path / "study.yaml"
        RuinStudyConfig().to_yaml(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        assert data["simulation"]["claim_count_model"] == "poisson"
        assert data["simulation"]["params"] == {"lambda": 2.0, "rate": 0.1}

    def test_partial_yaml(self, tmp_path):
        path = tmp_path / "partial.yaml"
        path.write_text("simulation:\n  premium_rate: 25\n", encoding="utf-8")
        study = RuinStudyConfig.from_yaml(path)
        assert study.simulation.premium_rate == 25.0
        assert study.simulation.initial_capital == 100.0
        assert study.analysis == AnalysisConfig()

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert RuinStudyConfig.from_yaml(path).model_dump() == RuinStudyConfig().model_dump()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RuinStudyConfig.from_yaml(tmp_path / "missing.yaml")

    def test_unknown_tag_in_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("simulation:\n  claim_count_model: geometric\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            RuinStudyConfig.from_yaml(path)

    def test_invalid_value_in_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("analysis:\n  estimate_trials: 0\n", encoding="utf-8")
        with pytest.raises(ValidationError):
            RuinStudyConfig.from_yaml(path)

    def test_dotted_override(self):
        study = RuinStudyConfig().with_overrides({"simulation.premium_rate": 25, "analysis.seed": 3})
        assert study.simulation.premium_rate == 25.0
        assert study.analysis.seed == 3

    def test_nested_override(self):
        study = RuinStudyConfig().with_overrides({"analysis": {"estimate_trials": 50}})
        assert study.analysis.estimate_trials == 50
        assert study.analysis.sweep_trials == 200

    def test_params_override_merges(self):
        study = RuinStudyConfig().with_overrides({"simulation.params.rate": 0.2})
        assert study.simulation.params == {"lambda": 2.0, "rate": 0.2}

    def test_override_leaves_original(self):
        study = RuinStudyConfig()
        study.with_overrides({"simulation.time_horizon": 10})
        assert study.simulation.time_horizon == 50

    def test_invalid_override(self):
        with pytest.raises(ValidationError):
            RuinStudyConfig().with_overrides({"simulation.time_horizon": 0})


class TestSetupLogging:
    """Test logger configuration from the study."""

    def test_console_handler(self, restore_package_logger):
        RuinStudyConfig(logging={"level": "DEBUG"}).setup_logging()
        assert restore_package_logger.level == logging.DEBUG
        assert len(restore_package_logger.handlers) == 1
        assert isinstance(restore_package_logger.handlers[0], logging.StreamHandler)

    def test_file_handler(self, tmp_path, restore_package_logger):
        log_path = tmp_path / "logs" / "run.log"
        study = RuinStudyConfig(logging={"log_file": str(log_path), "console_output": False})
        study.setup_logging()
        assert len(restore_package_logger.handlers) == 1
        assert isinstance(restore_package_logger.handlers[0], logging.FileHandler)

        logging.getLogger("surplus_ruin.test").info("written to file")
        restore_package_logger.handlers[0].flush()
        assert "written to file" in log_path.read_text(encoding="utf-8")

    def test_replaces_previous_handlers(self, restore_package_logger):
        study = RuinStudyConfig()
        study.setup_logging()
        study.setup_logging()
        assert len(restore_package_logger.handlers) == 1

    def test_disabled_is_noop(self, restore_package_logger):
        before = list(restore_package_logger.handlers)
        RuinStudyConfig(logging={"enabled": False}).setup_logging()
        assert restore_package_logger.handlers == before
