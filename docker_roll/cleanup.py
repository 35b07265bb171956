"""
Rollback and finalization of a rollout.

Both paths are best-effort: every step is attempted even when an earlier
one failed, and running them again after a partial failure is safe.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

from docker_roll.errors import CleanupError
from docker_roll.models import InstanceRef
from docker_roll.runtime import ContainerRuntime
from docker_roll.traefik_manager import TraefikConfigWriter

logger = logging.getLogger("docker_roll.cleanup")


class CleanupManager:
    """Tears down the losing slot and transient files."""

    def __init__(self, runtime: ContainerRuntime) -> None:
        self.runtime = runtime

    def _attempt(self, step: str, action: Callable[[], object], errors: List[CleanupError]) -> None:
        try:
            action()
        except Exception as e:
            error = CleanupError(f"{step} failed: {e}")
            logger.warning(str(error))
            errors.append(error)

    @staticmethod
    def delete_file(path: Path) -> None:
        Path(path).unlink(missing_ok=True)

    def rollback(self, namespace: str, descriptor: Path) -> List[CleanupError]:
        """
        Remove a new slot that failed its health gate.

        The old slot and the proxy configuration are left untouched.

        Args:
            namespace: Compose project of the new slot
            descriptor: The slot's generated compose file

        Returns:
            Errors from steps that failed
        """
        errors: List[CleanupError] = []
        self._attempt(
            f"Stopping new deployment '{namespace}'",
            lambda: self.runtime.down(namespace, descriptor),
            errors,
        )
        self._attempt(
            f"Removing {Path(descriptor).name}", lambda: self.delete_file(descriptor), errors
        )
        return errors

    def finalize(
        self,
        descriptor: Path,
        writer: Optional[TraefikConfigWriter] = None,
        old_instance: Optional[InstanceRef] = None,
        old_namespace: Optional[str] = None,
    ) -> List[CleanupError]:
        """
        Retire the old slot once the new one serves all traffic.

        Args:
            descriptor: The new slot's generated compose file
            writer: Proxy config writer whose split file is deleted
            old_instance: The replaced container, removed by id
            old_namespace: Compose project of the old slot; when given the
                whole project is taken down instead of a single container

        Returns:
            Errors from steps that failed
        """
        errors: List[CleanupError] = []

        logger.info("Removing old container...")
        if old_namespace:
            self._attempt(
                f"Stopping old deployment '{old_namespace}'",
                lambda: self.runtime.down(old_namespace),
                errors,
            )
        elif old_instance is not None:
            self._attempt(
                f"Stopping container {old_instance.short_id}",
                lambda: self.runtime.stop(old_instance.instance_id),
                errors,
            )
            self._attempt(
                f"Removing container {old_instance.short_id}",
                lambda: self.runtime.remove(old_instance.instance_id),
                errors,
            )

        self._attempt(
            f"Removing {Path(descriptor).name}", lambda: self.delete_file(descriptor), errors
        )
        if writer is not None:
            self._attempt("Removing weighted split file", writer.remove, errors)
        return errors
