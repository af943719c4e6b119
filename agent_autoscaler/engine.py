import math
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from agent_autoscaler.config import ScalingConfig
from agent_autoscaler.provisioning.registry import InstanceRegistry
from agent_autoscaler.sample import MetricSample

DEFAULT_CURRENT_INSTANCES = 1

ERROR_RATE_THRESHOLD = 3
ERROR_RATE_INSTANCES = 3

# Percentage points of deficit/excess covered by each extra instance.
PERFORMANCE_STEP = 10
MEMORY_STEP = 15
CPU_STEP = 15

OPTIMAL_REASON = "Metrics within optimal range"


class ScalingAction(str, Enum):
    SCALE_UP = "scale_up"
    SCALE_DOWN = "scale_down"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class AgentMetrics:
    avg_performance: float
    avg_memory: float
    avg_cpu: float
    error_rate: float

    def to_dict(self) -> dict[str, float]:
        return {
            "avgPerformance": round(self.avg_performance, 1),
            "avgMemory": round(self.avg_memory, 1),
            "avgCpu": round(self.avg_cpu, 1),
            "errorRate": round(self.error_rate, 1),
        }


@dataclass(frozen=True)
class ScalingDecision:
    agent_id: str
    agent_name: str
    action: ScalingAction
    reason: str
    current_instances: int
    recommended_instances: int
    metrics: AgentMetrics

    @property
    def requires_scaling(self) -> bool:
        return self.action is not ScalingAction.NO_CHANGE

    def to_dict(self) -> dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "action": self.action.value,
            "reason": self.reason,
            "currentInstances": self.current_instances,
            "recommendedInstances": self.recommended_instances,
            "metrics": self.metrics.to_dict(),
        }


@dataclass(frozen=True)
class ScalingSummary:
    total: int
    scale_up_count: int
    scale_down_count: int
    no_change_count: int

    def to_dict(self) -> dict[str, int]:
        return {
            "totalAgents": self.total,
            "scaleUpCount": self.scale_up_count,
            "scaleDownCount": self.scale_down_count,
            "noChangeCount": self.no_change_count,
        }


def evaluate(
    samples: Iterable[MetricSample],
    config: ScalingConfig,
    registry: InstanceRegistry | None = None,
) -> list[ScalingDecision]:
    """
    Produces one scaling decision per agent present in `samples`.

    The samples are an unordered window chosen by the caller. Every sample of an agent
    contributes equally to its averages; the most recent one provides the display name.
    Agents without samples produce no decision.
    """
    decisions = []
    for agent_id, agent_samples in _group_by_agent(samples).items():
        metrics = aggregate(agent_samples)
        latest = max(agent_samples, key=lambda s: s.captured_at)
        current = registry.get_instances(agent_id) if registry is not None else DEFAULT_CURRENT_INSTANCES
        action, reason, recommended = _classify(metrics, config, current)
        decisions.append(
            ScalingDecision(
                agent_id=agent_id,
                agent_name=latest.agent_name,
                action=action,
                reason=reason,
                current_instances=current,
                recommended_instances=recommended,
                metrics=metrics,
            )
        )
    return decisions


def summarize(decisions: Iterable[ScalingDecision]) -> ScalingSummary:
    counts = Counter(d.action for d in decisions)
    return ScalingSummary(
        total=sum(counts.values()),
        scale_up_count=counts[ScalingAction.SCALE_UP],
        scale_down_count=counts[ScalingAction.SCALE_DOWN],
        no_change_count=counts[ScalingAction.NO_CHANGE],
    )


def aggregate(samples: list[MetricSample]) -> AgentMetrics:
    """Simple arithmetic means over the window, not time-weighted."""
    count = len(samples)
    return AgentMetrics(
        avg_performance=sum(s.performance for s in samples) / count,
        avg_memory=sum(s.memory_usage for s in samples) / count,
        avg_cpu=sum(s.cpu_usage for s in samples) / count,
        error_rate=sum(s.error_count for s in samples) / count,
    )


def _group_by_agent(samples: Iterable[MetricSample]) -> dict[str, list[MetricSample]]:
    groups: dict[str, list[MetricSample]] = {}
    for sample in samples:
        groups.setdefault(sample.agent_id, []).append(sample)
    return groups


def _classify(
    metrics: AgentMetrics, config: ScalingConfig, current: int
) -> tuple[ScalingAction, str, int]:
    action, reason, recommended = _classify_load(metrics, config, current)

    # Errors override whatever the load said.
    if metrics.error_rate > ERROR_RATE_THRESHOLD:
        return (
            ScalingAction.SCALE_UP,
            f"High error rate ({metrics.error_rate:.1f} errors/interval)",
            min(config.max_instances, ERROR_RATE_INSTANCES),
        )

    return action, reason, recommended


def _classify_load(
    metrics: AgentMetrics, config: ScalingConfig, current: int
) -> tuple[ScalingAction, str, int]:
    perf, memory, cpu = metrics.avg_performance, metrics.avg_memory, metrics.avg_cpu

    # Only the first matching cause is reported, in the order performance, memory, CPU.
    if perf < config.performance_threshold_up:
        return (
            ScalingAction.SCALE_UP,
            f"Low performance ({perf:.1f}% < {config.performance_threshold_up:g}%)",
            _scale_up_count(config.performance_threshold_up - perf, PERFORMANCE_STEP, config),
        )
    if memory > config.memory_threshold_up:
        return (
            ScalingAction.SCALE_UP,
            f"High memory usage ({memory:.1f}% > {config.memory_threshold_up:g}%)",
            _scale_up_count(memory - config.memory_threshold_up, MEMORY_STEP, config),
        )
    if cpu > config.cpu_threshold_up:
        return (
            ScalingAction.SCALE_UP,
            f"High CPU usage ({cpu:.1f}% > {config.cpu_threshold_up:g}%)",
            _scale_up_count(cpu - config.cpu_threshold_up, CPU_STEP, config),
        )

    if (
        perf > config.performance_threshold_down
        and memory < config.memory_threshold_down
        and cpu < config.cpu_threshold_down
    ):
        return (
            ScalingAction.SCALE_DOWN,
            f"Resources underutilized (Performance: {perf:.1f}%, Memory: {memory:.1f}%, CPU: {cpu:.1f}%)",
            max(config.min_instances, 1),
        )

    return (
        ScalingAction.NO_CHANGE,
        OPTIMAL_REASON,
        min(max(current, config.min_instances), config.max_instances),
    )


def _scale_up_count(gap: float, step: int, config: ScalingConfig) -> int:
    return min(max(math.ceil(gap / step) + 1, 1), config.max_instances)
