from typing import Protocol

from agent_autoscaler.sample import MetricSample


class TelemetryError(RuntimeError):
    """Raised when recent agent samples cannot be fetched."""


class TelemetrySource(Protocol):
    def fetch_recent(self, limit: int) -> list[MetricSample]:
        """Returns at most `limit` of the most recent samples across all agents."""
        ...


def most_recent(samples: list[MetricSample], limit: int) -> list[MetricSample]:
    """Keeps the `limit` newest samples, newest first."""
    return sorted(samples, key=lambda s: s.captured_at, reverse=True)[:limit]
