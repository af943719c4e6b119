import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from agent_autoscaler.config import ScalingConfig
from agent_autoscaler.engine import ScalingAction, ScalingDecision, ScalingSummary, evaluate, summarize
from agent_autoscaler.provisioning.executor import ScalingExecutor
from agent_autoscaler.provisioning.registry import InstanceRegistry
from agent_autoscaler.telemetry.source import TelemetryError, TelemetrySource

DEFAULT_SAMPLE_LIMIT = 100
EXECUTED_REASON = "Scaling executed"
SATISFIED_REASON = "Current instances already satisfy the recommendation"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScalingReport:
    decisions: list[ScalingDecision]
    summary: ScalingSummary
    analyzed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "decisions": [d.to_dict() for d in self.decisions],
            "summary": self.summary.to_dict(),
        }


class AutoScaler:
    """
    Runs the decision engine on a timer and applies its recommendations on request.

    Flow of one cycle:
    1. Fetch the most recent samples from the telemetry source.
    2. Evaluate them against the scaling policy and keep the decisions per agent.
    3. Optionally apply every decision that requires scaling through the executor.

    The engine holds no state; the latest decision per agent lives here so that
    `execute` can be called for a single agent between cycles, possibly from another thread.
    """

    def __init__(
        self,
        source: TelemetrySource,
        config: ScalingConfig,
        executor: ScalingExecutor,
        registry: InstanceRegistry | None = None,
        sample_limit: int = DEFAULT_SAMPLE_LIMIT,
    ) -> None:
        self.source = source
        self.config = config
        self.executor = executor
        self.registry = registry
        self.sample_limit = sample_limit
        self.last_report: ScalingReport | None = None
        self._decisions: dict[str, ScalingDecision] = {}
        self._lock = threading.Lock()

    @property
    def decisions(self) -> list[ScalingDecision]:
        with self._lock:
            return list(self._decisions.values())

    def analyze(self) -> ScalingReport | None:
        """Returns None when telemetry is unavailable; earlier decisions are kept in that case."""
        try:
            samples = self.source.fetch_recent(self.sample_limit)
        except TelemetryError as e:
            logger.error(f"Failed to fetch telemetry: {e}")
            return None

        decisions = evaluate(samples, self.config, self.registry)
        summary = summarize(decisions)
        report = ScalingReport(decisions, summary, datetime.now(timezone.utc))

        with self._lock:
            self._decisions = {d.agent_id: d for d in decisions}
            self.last_report = report

        requiring = summary.scale_up_count + summary.scale_down_count
        logger.info(f"Analyzed {summary.total} agents, {requiring} require scaling")
        if requiring:
            logger.info(
                f"Scaling analysis complete: {summary.scale_up_count} scale up, "
                f"{summary.scale_down_count} scale down"
            )
        else:
            logger.info("All agents operating within optimal range")

        return report

    def execute(self, agent_id: str) -> bool:
        """
        Applies the latest decision for `agent_id`. A failed apply leaves the decision as it
        was so the agent is picked up again on the next cycle.
        """
        with self._lock:
            decision = self._decisions.get(agent_id)
        if decision is None:
            logger.warning(f"No scaling decision available for agent {agent_id}")
            return False

        # Without a registry the current count is assumed, not observed.
        if self.registry is not None and _already_satisfied(decision):
            logger.info(
                f"{decision.agent_name} already runs {decision.current_instances} instance(s), "
                f"which satisfies the {decision.action.value} recommendation of "
                f"{decision.recommended_instances}"
            )
            self._store_if_current(
                decision,
                replace(decision, action=ScalingAction.NO_CHANGE, reason=SATISFIED_REASON),
            )
            return True

        if not self.executor.apply(decision):
            logger.error(f"Failed to execute scaling for {decision.agent_name}")
            return False

        executed = replace(
            decision,
            action=ScalingAction.NO_CHANGE,
            reason=EXECUTED_REASON,
            current_instances=decision.recommended_instances,
        )
        self._store_if_current(decision, executed)
        if self.registry is not None:
            self.registry.set_instances(agent_id, decision.recommended_instances)

        logger.info(f"Scaling executed for {decision.agent_name}")
        return True

    def _store_if_current(self, decision: ScalingDecision, updated: ScalingDecision) -> None:
        with self._lock:
            # A newer analysis may have replaced the decision while the executor ran.
            if self._decisions.get(decision.agent_id) is decision:
                self._decisions[decision.agent_id] = updated

    def execute_all(self) -> int:
        pending = [d for d in self.decisions if d.requires_scaling]
        executed = sum(1 for d in pending if self.execute(d.agent_id))
        if pending:
            logger.info(f"Executed scaling for {executed}/{len(pending)} agents")
        return executed

    def run_forever(self, auto_execute: bool = False, max_cycles: int | None = None) -> None:
        """Re-evaluates every `cooldown_period` seconds until interrupted or `max_cycles` is reached."""
        cycles = 0
        logger.info(
            f"Autoscaler started (cooldown {self.config.cooldown_period:g}s, auto-execute {auto_execute})"
        )
        try:
            while max_cycles is None or cycles < max_cycles:
                report = self.analyze()
                if report is not None and auto_execute:
                    self.execute_all()
                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                time.sleep(self.config.cooldown_period)
        except KeyboardInterrupt:
            logger.info("Autoscaler interrupted by the user")

        logger.info(f"Autoscaler stopped after {cycles} cycle(s)")


def _already_satisfied(decision: ScalingDecision) -> bool:
    """True when applying the decision would not move the instance count in its direction."""
    if decision.action is ScalingAction.SCALE_UP:
        return decision.recommended_instances <= decision.current_instances
    if decision.action is ScalingAction.SCALE_DOWN:
        return decision.recommended_instances >= decision.current_instances
    return False
