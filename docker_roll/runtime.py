"""
Container runtime access for rollouts.

The orchestrator only talks to the runtime through the ContainerRuntime
protocol so tests can substitute a fake. DockerComposeRuntime is the real
implementation: the Docker SDK for queries and container lifecycle, the
compose CLI for build/up/down of a descriptor under a project namespace.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import docker
from docker.errors import DockerException, NotFound

from docker_roll.errors import PrerequisiteError, RuntimeCommandError
from docker_roll.models import (
    COMPOSE_PROJECT_LABEL,
    COMPOSE_SERVICE_LABEL,
    SLOT_LABEL,
    InstanceRef,
)
from docker_roll.utils.compose_command import compose_cmd

logger = logging.getLogger("docker_roll.runtime")

COMPOSE_TIMEOUT = 1800  # builds can be slow


@runtime_checkable
class ContainerRuntime(Protocol):
    """Operations the rollout needs from the container runtime."""

    def list_instances(self, labels: Dict[str, str]) -> List[InstanceRef]:
        """Running instances carrying all of the given labels."""
        ...

    def inspect(self, instance_id: str) -> Optional[InstanceRef]:
        """Current labels and network address of an instance, None if gone."""
        ...

    def build(self, descriptor: Path, namespace: str) -> None:
        """Build images for a descriptor under a project namespace."""
        ...

    def up(self, descriptor: Path, namespace: str) -> None:
        """Start a descriptor detached under a project namespace."""
        ...

    def down(self, namespace: str, descriptor: Optional[Path] = None) -> None:
        """Stop and remove everything in a project namespace."""
        ...

    def stop(self, instance_id: str) -> None:
        """Stop an instance. Absent instances are ignored."""
        ...

    def remove(self, instance_id: str) -> None:
        """Remove an instance. Absent instances are ignored."""
        ...


def _network_address(attrs: Dict[str, Any]) -> Optional[str]:
    """First non-empty IP address across the container's networks."""
    networks = attrs.get("NetworkSettings", {}).get("Networks") or {}
    for network in networks.values():
        ip = (network or {}).get("IPAddress")
        if ip:
            return ip
    return None


def _to_ref(container: Any) -> InstanceRef:
    labels = container.labels or {}
    return InstanceRef(
        instance_id=container.id,
        namespace=labels.get(COMPOSE_PROJECT_LABEL),
        service=labels.get(COMPOSE_SERVICE_LABEL),
        slot=labels.get(SLOT_LABEL),
        name=container.name,
        address=_network_address(container.attrs),
    )


class DockerComposeRuntime:
    """ContainerRuntime backed by the local Docker daemon."""

    def __init__(self, client: Optional[docker.DockerClient] = None) -> None:
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
                logger.debug("Connected to Docker daemon successfully")
            except DockerException as e:
                raise PrerequisiteError(f"Cannot connect to the Docker daemon: {e}") from e
        return self._client

    def list_instances(self, labels: Dict[str, str]) -> List[InstanceRef]:
        filters = {"label": [f"{k}={v}" for k, v in labels.items()]} if labels else None
        containers = self.client.containers.list(filters=filters)
        logger.debug(f"Found {len(containers)} running containers matching {labels}")
        return [_to_ref(c) for c in containers]

    def inspect(self, instance_id: str) -> Optional[InstanceRef]:
        try:
            container = self.client.containers.get(instance_id)
        except NotFound:
            return None
        return _to_ref(container)

    def _compose(self, namespace: str, *args: str, cwd: Optional[Path] = None) -> None:
        cmd = compose_cmd("-p", namespace, *args)
        env = dict(os.environ, COMPOSE_PROJECT_NAME=namespace)
        logger.debug(f"Running: {' '.join(cmd)}")
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            cwd=str(cwd) if cwd else None,
            env=env,
            timeout=COMPOSE_TIMEOUT,
        )
        if result.stdout:
            logger.debug(result.stdout.strip())
        if result.returncode != 0:
            raise RuntimeCommandError(" ".join(cmd), result.returncode, result.stderr or "")

    def build(self, descriptor: Path, namespace: str) -> None:
        self._compose(
            namespace, "-f", str(descriptor), "build", "--no-cache", cwd=descriptor.parent
        )

    def up(self, descriptor: Path, namespace: str) -> None:
        self._compose(namespace, "-f", str(descriptor), "up", "-d", cwd=descriptor.parent)

    def down(self, namespace: str, descriptor: Optional[Path] = None) -> None:
        if descriptor is not None and descriptor.exists():
            self._compose(namespace, "-f", str(descriptor), "down", cwd=descriptor.parent)
        else:
            self._compose(namespace, "down")

    def stop(self, instance_id: str) -> None:
        try:
            self.client.containers.get(instance_id).stop()
        except NotFound:
            logger.debug(f"Container {instance_id[:12]} already gone, nothing to stop")

    def remove(self, instance_id: str) -> None:
        try:
            self.client.containers.get(instance_id).remove()
        except NotFound:
            logger.debug(f"Container {instance_id[:12]} already gone, nothing to remove")
