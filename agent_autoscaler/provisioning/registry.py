import logging
from typing import Protocol

from kubernetes import client
from urllib3.exceptions import HTTPError

from agent_autoscaler.provisioning.kubernetes_client import KubernetesClient

logger = logging.getLogger(__name__)


class InstanceRegistry(Protocol):
    """Maps an agent id to the number of instances currently running its workload."""

    def get_instances(self, agent_id: str) -> int: ...

    def set_instances(self, agent_id: str, count: int) -> None: ...


class StaticInstanceRegistry:
    """In-memory registry. Agents that were never set report `default`."""

    def __init__(self, default: int = 1) -> None:
        self.default = default
        self._counts: dict[str, int] = {}

    def get_instances(self, agent_id: str) -> int:
        return self._counts.get(agent_id, self.default)

    def set_instances(self, agent_id: str, count: int) -> None:
        self._counts[agent_id] = count


class KubernetesInstanceRegistry:
    """
    Reads instance counts from the replica count of the Deployment named after the agent.

    Writes are recorded locally only: the KubernetesExecutor is the one patching the cluster,
    and the next read picks up the real value.
    """

    def __init__(self, kube_client: KubernetesClient, default: int = 1) -> None:
        self.kube_client = kube_client
        self.default = default
        self._pending: dict[str, int] = {}

    def get_instances(self, agent_id: str) -> int:
        try:
            replicas = self.kube_client.get_replicas(agent_id)
        except client.ApiException as e:
            if e.status != 404:
                logger.error(f"Error reading replicas for {agent_id}: {e}")
            return self._pending.get(agent_id, self.default)
        except HTTPError as e:
            logger.error(f"Kubernetes API unreachable reading replicas for {agent_id}: {e}")
            return self._pending.get(agent_id, self.default)

        self._pending.pop(agent_id, None)
        return replicas

    def set_instances(self, agent_id: str, count: int) -> None:
        self._pending[agent_id] = count
