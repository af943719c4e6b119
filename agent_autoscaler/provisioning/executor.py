import logging
from typing import Protocol

from kubernetes import client
from urllib3.exceptions import HTTPError

from agent_autoscaler.engine import ScalingDecision
from agent_autoscaler.provisioning.alert_writer import AlertWriter
from agent_autoscaler.provisioning.kubernetes_client import KubernetesClient

logger = logging.getLogger(__name__)


class ScalingExecutor(Protocol):
    def apply(self, decision: ScalingDecision) -> bool:
        """Attempts to realize `decision.recommended_instances`. Returns whether it succeeded."""
        ...


class LoggingExecutor:
    """Acknowledges every decision without provisioning anything."""

    def __init__(self, alert_writer: AlertWriter | None = None) -> None:
        self.alert_writer = alert_writer

    def apply(self, decision: ScalingDecision) -> bool:
        logger.info(
            f"Auto-scaling executed for {decision.agent_name} ({decision.agent_id}): "
            f"{decision.action.value} to {decision.recommended_instances} instance(s)"
        )
        _record_alert(self.alert_writer, decision)
        return True


class KubernetesExecutor:
    """Scales the agent's Deployment to the recommended replica count."""

    def __init__(self, kube_client: KubernetesClient, alert_writer: AlertWriter | None = None) -> None:
        self.kube_client = kube_client
        self.alert_writer = alert_writer

    def apply(self, decision: ScalingDecision) -> bool:
        try:
            self.kube_client.scale_deployment(decision.agent_id, decision.recommended_instances)
        except client.ApiException as e:
            logger.error(f"Failed to scale {decision.agent_id}: {e}")
            return False
        except TimeoutError as e:
            logger.error(f"Scaling {decision.agent_id} timed out: {e}")
            return False
        except HTTPError as e:
            logger.error(f"Kubernetes API unreachable while scaling {decision.agent_id}: {e}")
            return False

        _record_alert(self.alert_writer, decision)
        return True


def _record_alert(alert_writer: AlertWriter | None, decision: ScalingDecision) -> None:
    if alert_writer is None:
        return
    alert_writer.write_alert(
        agent_id=decision.agent_id,
        agent_name=decision.agent_name,
        message=f"Auto-scaling executed for {decision.agent_name}",
    )
