"""Top-level study configuration composing process, analysis and logging settings.

A :class:`RuinStudyConfig` carries everything needed to reproduce one ruin
study: the surplus process, the trial budget and scheduling, and logging.
It round-trips through YAML and supports dotted overrides.
"""

import logging
from pathlib import Path
import sys
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field
import yaml

from .simulation import AnalysisConfig, SimulationConfig, ValidatedModel
from .utils import deep_merge, expand_dotted

logger = logging.getLogger(__name__)


class LoggingConfig(BaseModel):
    """Logging configuration for the ``surplus_ruin`` logger.

    Attributes:
        enabled: Install handlers at all.
        level: Logger level.
        log_file: Optional path of a log file.
        console_output: Also log to stdout.
        format: ``logging.Formatter`` format string.
    """

    enabled: bool = Field(default=True, description="Enable logging")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path (None=no file)")
    console_output: bool = Field(default=True, description="Log to console")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )


class RuinStudyConfig(ValidatedModel):
    """Complete configuration of a ruin study.

    All sections have defaults, so ``RuinStudyConfig()`` describes the
    classical example: u=100, c=20, T=50, Poisson(2) claim counts and
    Exponential(0.1) claim sizes, 300 headline trials and a 0..200 capital
    sweep at 200 trials per point.

    Examples:
        Loading from file::

            study = RuinStudyConfig.from_yaml(Path("study.yaml"))

        Tweaking one value::

            study = RuinStudyConfig().with_overrides({"simulation.premium_rate": 5})
    """

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RuinStudyConfig":
        """Load a study from a YAML file.

        Missing sections and fields take their defaults.

        Args:
            path: YAML file path.

        Returns:
            Validated study configuration.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigurationError: Unknown model tag in the file.
            ValidationError: Any invalid value in the file.
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.debug("Loaded study configuration from %s", path)
        return cls.model_validate(data)

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save the study to a YAML file.

        Args:
            path: Where to save; parent directories are created.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)

    def with_overrides(self, overrides: Dict[str, Any]) -> "RuinStudyConfig":
        """Return a re-validated copy with overrides applied.

        Supports dot-notation keys (``{"simulation.premium_rate": 5}``) and
        section-level dicts (``{"simulation": {"premium_rate": 5}}``).  A
        ``params`` override is merged into, not substituted for, the
        existing parameter mapping.

        Args:
            overrides: Values to change.

        Returns:
            New study configuration.
        """
        merged = deep_merge(self.model_dump(mode="json"), expand_dotted(overrides))
        return type(self).model_validate(merged)

    def setup_logging(self) -> None:
        """Configure the ``surplus_ruin`` logger from the logging section.

        Replaces any handlers previously installed on that logger.
        """
        if not self.logging.enabled:
            return

        package_logger = logging.getLogger("surplus_ruin")
        package_logger.setLevel(getattr(logging, self.logging.level))
        package_logger.handlers.clear()

        formatter = logging.Formatter(self.logging.format)

        if self.logging.console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            package_logger.addHandler(console_handler)

        if self.logging.log_file:
            log_path = Path(self.logging.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)
