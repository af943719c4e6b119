import csv
import logging
import time
from pathlib import Path

logger = logging.getLogger(__name__)

HEADERS = [
    "Timestamp",
    "Agent ID",
    "Agent Name",
    "Alert Type",
    "Severity",
    "Message",
    "Resolved",
]

_DEFAULT_ALERTS_DIR = Path("alerts")


class AlertWriter:
    """Appends scaling alerts to a CSV file created once per process."""

    filename: Path

    def __init__(self, alerts_dir: Path = _DEFAULT_ALERTS_DIR) -> None:
        """Creates the file using a timestamp in the name and writes the header."""
        alerts_dir.mkdir(parents=True, exist_ok=True)
        self.filename = alerts_dir / f"scaling_alerts_{time.strftime('%Y%m%d-%H%M%S')}.csv"
        self._initialize_file()

    def _initialize_file(self) -> None:
        with open(self.filename, mode="a", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(HEADERS)

    def write_alert(
        self,
        agent_id: str,
        agent_name: str,
        message: str,
        alert_type: str = "scaling",
        severity: str = "low",
        resolved: bool = True,
        timestamp: float | None = None,
    ) -> None:
        with open(self.filename, mode="a", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(
                [
                    timestamp if timestamp is not None else time.time(),
                    agent_id,
                    agent_name,
                    alert_type,
                    severity,
                    message,
                    resolved,
                ]
            )
        logger.debug(f"wrote {alert_type} alert for {agent_id}")
