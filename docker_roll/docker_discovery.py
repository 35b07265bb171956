"""
Discovery of live service instances.

Finds the running container of a compose service by querying the
container runtime's labels. Read-only.
"""

import logging
from typing import Optional

from docker_roll.models import COMPOSE_PROJECT_LABEL, COMPOSE_SERVICE_LABEL, InstanceRef
from docker_roll.runtime import ContainerRuntime

logger = logging.getLogger("docker_roll.docker_discovery")


class InstanceDiscovery:
    """Looks up live instances of a service."""

    def __init__(self, runtime: ContainerRuntime) -> None:
        self.runtime = runtime

    def find_live(
        self, service: str, namespace: str, fallback: bool = True
    ) -> Optional[InstanceRef]:
        """
        Find the running instance of a service within a project namespace.

        Args:
            service: Compose service name
            namespace: Compose project name
            fallback: When nothing matches project and service together,
                retry on the service label alone. Instances started before
                namespaced lookups existed only match this way.

        Returns:
            The first matching instance, or None
        """
        matches = self.runtime.list_instances(
            {COMPOSE_PROJECT_LABEL: namespace, COMPOSE_SERVICE_LABEL: service}
        )
        if not matches and fallback:
            logger.debug(f"No '{service}' in project '{namespace}', trying service label alone")
            matches = self.runtime.list_instances({COMPOSE_SERVICE_LABEL: service})

        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                f"Found {len(matches)} live instances of '{service}', using {matches[0].short_id}"
            )
        return matches[0]

    def resolve_address(self, instance: InstanceRef) -> Optional[str]:
        """Current network address of an instance, None if it is gone."""
        current = self.runtime.inspect(instance.instance_id)
        if current is None:
            return None
        return current.address
