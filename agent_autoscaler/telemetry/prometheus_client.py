import logging
from datetime import datetime, timezone
from typing import Any

from prometheus_api_client import PrometheusConnect
from prometheus_api_client.exceptions import PrometheusApiClientException
from requests.exceptions import RequestException

from agent_autoscaler.sample import MetricSample
from agent_autoscaler.telemetry.source import TelemetryError, most_recent

PERFORMANCE_METRIC = "agent_performance_score"
MEMORY_METRIC = "agent_memory_usage_percent"
CPU_METRIC = "agent_cpu_usage_percent"
ERRORS_METRIC = "agent_error_count"

AGENT_ID_LABEL = "agent_id"
AGENT_NAME_LABEL = "agent_name"
VALUES_KEY = "values"
METRIC_KEY = "metric"

logger = logging.getLogger(__name__)


class PrometheusTelemetrySource:
    """
    Adapter turning the agent gauges scraped by Prometheus into metric samples.

    Each gauge is fetched as a range vector over `window`; points from the four gauges
    are joined on (agent_id, timestamp). A point needs both performance and memory to
    become a sample. CPU defaults to 0 and the error count to 0 when not reported.
    """

    prom: PrometheusConnect

    def __init__(self, prom: PrometheusConnect, window: str = "10m") -> None:
        self.prom = prom
        self.window = window
        self._agent_names: dict[str, str] = {}

    def fetch_recent(self, limit: int) -> list[MetricSample]:
        self._agent_names = {}
        performance = self._query_series(PERFORMANCE_METRIC)
        memory = self._query_series(MEMORY_METRIC)
        cpu = self._query_series(CPU_METRIC)
        errors = self._query_series(ERRORS_METRIC)

        samples = []
        for key, perf_value in performance.items():
            if key not in memory:
                continue
            agent_id, timestamp = key
            samples.append(
                MetricSample(
                    agent_id=agent_id,
                    agent_name=self._agent_names.get(agent_id, agent_id),
                    performance=perf_value,
                    memory_usage=memory[key],
                    captured_at=datetime.fromtimestamp(timestamp, tz=timezone.utc),
                    cpu_usage=cpu.get(key, 0.0),
                    error_count=int(errors.get(key, 0)),
                )
            )

        logger.debug(f"Joined {len(samples)} samples from Prometheus over {self.window}")
        return most_recent(samples, limit)

    def _query_series(self, metric: str) -> dict[tuple[str, float], float]:
        response = self._query(f"{metric}[{self.window}]")

        points: dict[tuple[str, float], float] = {}
        for series in response or []:
            labels = series.get(METRIC_KEY, {})
            agent_id = labels.get(AGENT_ID_LABEL)
            if agent_id is None:
                logger.warning(f"Series of {metric} without an {AGENT_ID_LABEL} label, skipping")
                continue
            if AGENT_NAME_LABEL in labels:
                self._agent_names[agent_id] = labels[AGENT_NAME_LABEL]
            for timestamp, value in series.get(VALUES_KEY, []):
                points[(agent_id, float(timestamp))] = float(value)
        return points

    def _query(self, promql: str) -> Any:
        try:
            return self.prom.custom_query(query=promql)
        except (PrometheusApiClientException, RequestException) as e:
            raise TelemetryError(f"Prometheus query '{promql}' failed: {e}") from e
