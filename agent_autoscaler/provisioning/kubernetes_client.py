import logging
import time
from typing import cast

from kubernetes import client

DEFAULT_NAMESPACE = "default"
PATCH_TIMEOUT_SECONDS = 180
PATCH_POLL_INTERVAL_SECONDS = 5

logger = logging.getLogger(__name__)


class KubernetesClient:
    """Adapter over the Deployments API. Each agent runs as a Deployment named after its id."""

    apps_api: client.AppsV1Api
    namespace: str

    def __init__(self, apps_api: client.AppsV1Api, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.apps_api = apps_api
        self.namespace = namespace

    def get_replicas(self, name: str) -> int:
        """Returns the desired replica count of a Deployment. Raises ApiException if it is missing."""
        deployment = cast(
            client.V1Deployment,
            self.apps_api.read_namespaced_deployment(name=name, namespace=self.namespace),
        )
        return deployment.spec.replicas or 0

    def scale_deployment(self, name: str, replicas: int) -> None:
        """
        Scales a Deployment to the given replica count and waits for the rollout.
        """
        logger.info(f"Scaling deployment {name} to {replicas} replicas")
        body = {"spec": {"replicas": replicas}}
        patched = self.apps_api.patch_namespaced_deployment(
            name=name, namespace=self.namespace, body=body
        )
        self._wait_for_patch_completion(cast(client.V1Deployment, patched))

    def _wait_for_patch_completion(self, patched_deployment: client.V1Deployment) -> None:
        deployment_name = patched_deployment.metadata.name
        target_generation = patched_deployment.metadata.generation
        start_time = time.time()

        while time.time() - start_time < PATCH_TIMEOUT_SECONDS:
            try:
                deployment = cast(
                    client.V1Deployment,
                    self.apps_api.read_namespaced_deployment(
                        name=deployment_name, namespace=self.namespace
                    ),
                )
            except client.ApiException as e:
                logger.error(f"Error reading deployment status: {e}")
                time.sleep(PATCH_POLL_INTERVAL_SECONDS)
                continue

            observed_generation = deployment.status.observed_generation or 0
            updated_replicas = deployment.status.updated_replicas or 0
            available_replicas = deployment.status.available_replicas or 0
            desired_replicas = deployment.spec.replicas or 0

            if (
                observed_generation >= target_generation
                and updated_replicas == desired_replicas
                and available_replicas == desired_replicas
            ):
                logger.info(f"Deployment {deployment_name} rollout is complete.")
                return

            time.sleep(PATCH_POLL_INTERVAL_SECONDS)

        raise TimeoutError(
            f"Deployment '{deployment_name}' did not complete within {PATCH_TIMEOUT_SECONDS} seconds."
        )
