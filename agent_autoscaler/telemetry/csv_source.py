import logging
from pathlib import Path

import pandas as pd

from agent_autoscaler.sample import MetricSample
from agent_autoscaler.telemetry.source import TelemetryError

REQUIRED_COLUMNS = [
    "Captured At",
    "Agent ID",
    "Agent Name",
    "Performance",
    "Memory Usage %",
    "CPU Usage %",
    "Error Count",
]

NUMERIC_COLUMNS = ["Performance", "Memory Usage %", "CPU Usage %", "Error Count"]

logger = logging.getLogger(__name__)


class CsvTelemetrySource:
    """Reads agent samples exported to CSV. The file is re-read on every fetch."""

    path: Path

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def fetch_recent(self, limit: int) -> list[MetricSample]:
        df = self._load_data()
        df = df.sort_values("Captured At", ascending=False).head(limit)

        return [
            MetricSample(
                agent_id=str(row["Agent ID"]),
                agent_name=str(row["Agent Name"]),
                performance=float(row["Performance"]),
                memory_usage=float(row["Memory Usage %"]),
                captured_at=row["Captured At"].to_pydatetime(),
                cpu_usage=float(row["CPU Usage %"]),
                error_count=int(row["Error Count"]),
            )
            for _, row in df.iterrows()
        ]

    def _load_data(self) -> pd.DataFrame:
        """
        Loads the CSV, validates the header and normalizes types.
        Numeric timestamps are Unix seconds; anything else is parsed as a date string.
        """
        if not self.path.exists():
            raise TelemetryError(f"Telemetry file not found: '{self.path}'")

        try:
            df = pd.read_csv(self.path)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise TelemetryError(f"Cannot parse {self.path}: {e}") from e

        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise TelemetryError(f"Missing required metrics: {missing}")

        try:
            if pd.api.types.is_numeric_dtype(df["Captured At"]):
                df["Captured At"] = pd.to_datetime(df["Captured At"], unit="s", utc=True)
            else:
                df["Captured At"] = pd.to_datetime(df["Captured At"], utc=True)
        except ValueError as e:
            raise TelemetryError(f"Invalid timestamps in {self.path}: {e}") from e

        # Cells present but not parseable as numbers are invalid; blanks are merely missing.
        invalid = pd.Series(False, index=df.index)
        for col in NUMERIC_COLUMNS:
            coerced = pd.to_numeric(df[col], errors="coerce")
            invalid |= coerced.isna() & df[col].notna()
            df[col] = coerced
        if invalid.any():
            logger.warning(f"Dropping {int(invalid.sum())} rows with non-numeric metric values.")
            df = df[~invalid].copy()

        df["CPU Usage %"] = df["CPU Usage %"].fillna(0.0)
        df["Error Count"] = df["Error Count"].fillna(0)

        incomplete = df[["Performance", "Memory Usage %"]].isna().any(axis=1)
        if incomplete.any():
            logger.warning(f"Dropping {int(incomplete.sum())} rows without performance or memory values.")
            df = df[~incomplete]

        if (df["Error Count"] < 0).any():
            raise TelemetryError(f"Negative error counts found in {self.path}")
        if (df["Error Count"] % 1 != 0).any():
            raise TelemetryError(f"Fractional error counts found in {self.path}")

        return df.astype({"Error Count": int})
