import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

TELEMETRY_SOURCES = ("prometheus", "csv")
EXECUTORS = ("log", "kubernetes")
RUN_MODES = ("once", "loop")

_THRESHOLD_FIELDS = (
    "cpu_threshold_up",
    "cpu_threshold_down",
    "memory_threshold_up",
    "memory_threshold_down",
    "performance_threshold_up",
    "performance_threshold_down",
)

# Keys used by the dashboard and the serverless handler payloads.
_WIRE_KEYS = {
    "minInstances": "min_instances",
    "maxInstances": "max_instances",
    "cpuThresholdUp": "cpu_threshold_up",
    "cpuThresholdDown": "cpu_threshold_down",
    "memoryThresholdUp": "memory_threshold_up",
    "memoryThresholdDown": "memory_threshold_down",
    "performanceThresholdUp": "performance_threshold_up",
    "performanceThresholdDown": "performance_threshold_down",
    "cooldownPeriod": "cooldown_period",
}


class ConfigurationError(ValueError):
    """Raised when a scaling policy or runtime setting is malformed."""


@dataclass(frozen=True)
class ScalingConfig:
    """
    Scaling policy applied to every agent during one evaluation run.

    The "up" and "down" thresholds are independent. Overlapping values are accepted
    (with a warning) because the precedence of the scale-up rule already makes the
    outcome deterministic.
    """

    min_instances: int = 1
    max_instances: int = 10
    cpu_threshold_up: float = 80
    cpu_threshold_down: float = 30
    memory_threshold_up: float = 85
    memory_threshold_down: float = 40
    performance_threshold_up: float = 60
    performance_threshold_down: float = 95
    cooldown_period: float = 60

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for name in ("min_instances", "max_instances"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")

        if self.min_instances < 1:
            raise ConfigurationError(f"min_instances must be >= 1, got {self.min_instances}")
        if self.max_instances < self.min_instances:
            raise ConfigurationError(
                f"max_instances ({self.max_instances}) must be >= min_instances ({self.min_instances})"
            )

        for name in _THRESHOLD_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be within [0, 100], got {value}")

        if isinstance(self.cooldown_period, bool) or not isinstance(self.cooldown_period, (int, float)):
            raise ConfigurationError(f"cooldown_period must be a number, got {self.cooldown_period!r}")
        if self.cooldown_period < 0:
            raise ConfigurationError(f"cooldown_period must be >= 0, got {self.cooldown_period}")

        self._warn_on_overlapping_thresholds()

    def _warn_on_overlapping_thresholds(self) -> None:
        overlaps = []
        if self.cpu_threshold_down >= self.cpu_threshold_up:
            overlaps.append("cpu")
        if self.memory_threshold_down >= self.memory_threshold_up:
            overlaps.append("memory")
        # Performance is inverted: low performance triggers scale up.
        if self.performance_threshold_down <= self.performance_threshold_up:
            overlaps.append("performance")
        if overlaps:
            logger.warning(f"Overlapping scale up/down thresholds for: {', '.join(overlaps)}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ScalingConfig":
        """Builds a config from snake_case or camelCase keys."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in raw.items():
            name = _WIRE_KEYS.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown scaling option: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        values = asdict(self)
        return {wire: values[name] for wire, name in _WIRE_KEYS.items()}


def load_scaling_config(path: str | Path) -> ScalingConfig:
    """Reads the `scaling` section of a YAML policy file."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Scaling config file not found: '{path}'")

    with open(path, "r") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    section = raw.get("scaling", {}) if isinstance(raw, dict) else None
    if not isinstance(section, dict):
        raise ConfigurationError(f"'scaling' section in {path} must be a mapping")

    return ScalingConfig.from_mapping(section)


def _choice(env_name: str, default: str, choices: tuple[str, ...]) -> str:
    value = os.getenv(env_name, default).strip().lower()
    if value not in choices:
        raise ConfigurationError(f"{env_name} must be one of {choices}, got '{value}'")
    return value


def _positive_int(env_name: str, default: str) -> int:
    raw = os.getenv(env_name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{env_name} must be an integer, got '{raw}'") from e
    if value <= 0:
        raise ConfigurationError(f"{env_name} must be > 0, got {value}")
    return value


def _flag(env_name: str, default: str = "false") -> bool:
    return os.getenv(env_name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AutoscalerConfig:
    """
    Immutable runtime settings for the autoscaler process.
    """

    telemetry_source: str = "prometheus"
    prometheus_url: str = "http://localhost:9090"
    telemetry_csv_path: str = "dataset/agent_metrics.csv"
    telemetry_window: str = "10m"
    sample_limit: int = 100
    scaling_config_path: str = "scaling_config.yaml"
    executor: str = "log"
    namespace: str = "default"
    auto_execute: bool = False
    run_mode: str = "once"
    alerts_dir: str = "alerts"
    log_file: str | None = None

    @classmethod
    def from_env(cls) -> "AutoscalerConfig":
        return cls(
            telemetry_source=_choice("TELEMETRY_SOURCE", "prometheus", TELEMETRY_SOURCES),
            prometheus_url=os.getenv("PROMETHEUS_URL", "http://localhost:9090"),
            telemetry_csv_path=os.getenv("TELEMETRY_CSV_PATH", "dataset/agent_metrics.csv"),
            telemetry_window=os.getenv("TELEMETRY_WINDOW", "10m"),
            sample_limit=_positive_int("SAMPLE_LIMIT", "100"),
            scaling_config_path=os.getenv("SCALING_CONFIG_PATH", "scaling_config.yaml"),
            executor=_choice("EXECUTOR", "log", EXECUTORS),
            namespace=os.getenv("KUBERNETES_NAMESPACE", "default"),
            auto_execute=_flag("AUTO_EXECUTE"),
            run_mode=_choice("RUN_MODE", "once", RUN_MODES),
            alerts_dir=os.getenv("ALERTS_DIR", "alerts"),
            log_file=os.getenv("LOG_FILE") or None,
        )
