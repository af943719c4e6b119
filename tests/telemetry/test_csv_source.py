from datetime import datetime, timezone
from pathlib import Path

import pytest

from agent_autoscaler.telemetry.csv_source import REQUIRED_COLUMNS, CsvTelemetrySource
from agent_autoscaler.telemetry.source import TelemetryError

HEADER = ",".join(REQUIRED_COLUMNS)


@pytest.fixture
def metrics_csv(tmp_path) -> Path:
    path = tmp_path / "agent_metrics.csv"
    path.write_text(
        "\n".join(
            [
                HEADER,
                "1700000000,planner,Planner,90,30,20,0",
                "1700000120,planner,Planner,80,35,,1",
                "1700000060,writer,Writer,40,50,45,",
            ]
        )
        + "\n"
    )
    return path


def test_fetch_recent_returns_newest_first(metrics_csv):
    samples = CsvTelemetrySource(metrics_csv).fetch_recent(limit=10)

    assert [s.agent_id for s in samples] == ["planner", "writer", "planner"]
    assert samples[0].captured_at == datetime.fromtimestamp(1700000120, tz=timezone.utc)


def test_fetch_recent_fills_missing_cpu_and_errors_with_zero(metrics_csv):
    samples = {(s.agent_id, s.performance): s for s in CsvTelemetrySource(metrics_csv).fetch_recent(10)}

    assert samples[("planner", 80)].cpu_usage == 0.0
    assert samples[("planner", 80)].error_count == 1
    assert samples[("writer", 40)].error_count == 0
    assert samples[("writer", 40)].cpu_usage == pytest.approx(45)


def test_fetch_recent_applies_limit(metrics_csv):
    samples = CsvTelemetrySource(metrics_csv).fetch_recent(limit=1)
    assert len(samples) == 1
    assert samples[0].performance == pytest.approx(80)


def test_fetch_recent_parses_iso_timestamps(tmp_path):
    path = tmp_path / "iso.csv"
    path.write_text(HEADER + "\n2026-01-01T10:00:00Z,planner,Planner,90,30,20,0\n")

    [sample] = CsvTelemetrySource(path).fetch_recent(limit=10)

    assert sample.captured_at == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_fetch_recent_when_file_is_missing_raises_telemetry_error(tmp_path):
    with pytest.raises(TelemetryError, match="not found"):
        CsvTelemetrySource(tmp_path / "missing.csv").fetch_recent(limit=10)


def test_fetch_recent_when_columns_are_missing_raises_telemetry_error(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("Captured At,Agent ID,Performance\n1700000000,planner,90\n")
    with pytest.raises(TelemetryError, match="Missing required metrics"):
        CsvTelemetrySource(path).fetch_recent(limit=10)


def test_fetch_recent_when_error_count_is_negative_raises_telemetry_error(tmp_path):
    path = tmp_path / "negative.csv"
    path.write_text(HEADER + "\n1700000000,planner,Planner,90,30,20,-1\n")
    with pytest.raises(TelemetryError, match="Negative error counts"):
        CsvTelemetrySource(path).fetch_recent(limit=10)


def test_fetch_recent_drops_rows_with_non_numeric_metrics(tmp_path):
    path = tmp_path / "garbled.csv"
    path.write_text(
        "\n".join(
            [
                HEADER,
                "1700000000,planner,Planner,90,30,20,0",
                "1700000060,planner,Planner,abc,30,20,0",
                "1700000120,planner,Planner,85,30,fast,0",
                "1700000180,planner,Planner,80,30,20,many",
            ]
        )
        + "\n"
    )

    samples = CsvTelemetrySource(path).fetch_recent(limit=10)

    assert [s.performance for s in samples] == [90]
    assert samples[0].error_count == 0


def test_fetch_recent_when_error_count_is_fractional_raises_telemetry_error(tmp_path):
    path = tmp_path / "fractional.csv"
    path.write_text(HEADER + "\n1700000000,planner,Planner,90,30,20,1.9\n")
    with pytest.raises(TelemetryError, match="Fractional error counts"):
        CsvTelemetrySource(path).fetch_recent(limit=10)


def test_fetch_recent_accepts_whole_error_counts_written_as_floats(tmp_path):
    path = tmp_path / "floats.csv"
    path.write_text(HEADER + "\n1700000000,planner,Planner,90,30,20,2.0\n")

    [sample] = CsvTelemetrySource(path).fetch_recent(limit=10)

    assert sample.error_count == 2
    assert isinstance(sample.error_count, int)
