import logging

import pytest

from agent_autoscaler.config import (
    AutoscalerConfig,
    ConfigurationError,
    ScalingConfig,
    load_scaling_config,
)


def test_scaling_config_defaults_match_dashboard_defaults():
    assert ScalingConfig().to_dict() == {
        "minInstances": 1,
        "maxInstances": 10,
        "cpuThresholdUp": 80,
        "cpuThresholdDown": 30,
        "memoryThresholdUp": 85,
        "memoryThresholdDown": 40,
        "performanceThresholdUp": 60,
        "performanceThresholdDown": 95,
        "cooldownPeriod": 60,
    }


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"min_instances": 0}, "min_instances"),
        ({"min_instances": 5, "max_instances": 4}, "max_instances"),
        ({"max_instances": 2.5}, "max_instances"),
        ({"cpu_threshold_up": 101}, "cpu_threshold_up"),
        ({"memory_threshold_down": -1}, "memory_threshold_down"),
        ({"performance_threshold_up": "60"}, "performance_threshold_up"),
        ({"cooldown_period": -5}, "cooldown_period"),
    ],
)
def test_scaling_config_when_invalid_raises_configuration_error(kwargs, message):
    with pytest.raises(ConfigurationError, match=message):
        ScalingConfig(**kwargs)


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        ScalingConfig(min_instances=0)


def test_scaling_config_when_thresholds_overlap_logs_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="agent_autoscaler.config"):
        ScalingConfig(cpu_threshold_down=90)
    assert "Overlapping scale up/down thresholds for: cpu" in caplog.text


def test_from_mapping_accepts_camel_case_and_snake_case_keys():
    camel = ScalingConfig.from_mapping({"maxInstances": 5, "cpuThresholdUp": 70})
    snake = ScalingConfig.from_mapping({"max_instances": 5, "cpu_threshold_up": 70})
    assert camel == snake
    assert camel.max_instances == 5


def test_from_mapping_when_key_is_unknown_raises_configuration_error():
    with pytest.raises(ConfigurationError, match="Unknown scaling option"):
        ScalingConfig.from_mapping({"gpuThresholdUp": 80})


def test_load_scaling_config_reads_scaling_section(tmp_path):
    path = tmp_path / "scaling.yaml"
    path.write_text("scaling:\n  max_instances: 6\n  performanceThresholdUp: 50\n")

    config = load_scaling_config(path)

    assert config.max_instances == 6
    assert config.performance_threshold_up == 50
    assert config.min_instances == 1


def test_load_scaling_config_when_file_is_missing_raises_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_scaling_config(tmp_path / "missing.yaml")


def test_load_scaling_config_when_section_is_not_a_mapping_raises_configuration_error(tmp_path):
    path = tmp_path / "scaling.yaml"
    path.write_text("scaling:\n  - 1\n  - 2\n")
    with pytest.raises(ConfigurationError, match="must be a mapping"):
        load_scaling_config(path)


def test_autoscaler_config_from_env_reads_variables(monkeypatch):
    monkeypatch.setenv("TELEMETRY_SOURCE", "CSV")
    monkeypatch.setenv("SAMPLE_LIMIT", "25")
    monkeypatch.setenv("AUTO_EXECUTE", "true")
    monkeypatch.setenv("RUN_MODE", "loop")
    monkeypatch.setenv("EXECUTOR", "kubernetes")

    config = AutoscalerConfig.from_env()

    assert config.telemetry_source == "csv"
    assert config.sample_limit == 25
    assert config.auto_execute is True
    assert config.run_mode == "loop"
    assert config.executor == "kubernetes"


def test_autoscaler_config_from_env_when_source_is_unknown_raises(monkeypatch):
    monkeypatch.setenv("TELEMETRY_SOURCE", "supabase")
    with pytest.raises(ConfigurationError, match="TELEMETRY_SOURCE"):
        AutoscalerConfig.from_env()


def test_autoscaler_config_from_env_when_limit_is_not_positive_raises(monkeypatch):
    monkeypatch.setenv("SAMPLE_LIMIT", "0")
    with pytest.raises(ConfigurationError, match="SAMPLE_LIMIT"):
        AutoscalerConfig.from_env()
