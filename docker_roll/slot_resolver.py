"""
Slot identity resolution.

The naming scheme is decided here and nowhere else. Everything downstream
works with the opaque slot string and its namespace.
"""

import logging
import time
from typing import Callable, Optional, Tuple

from docker_roll.config.settings import NamingScheme
from docker_roll.docker_discovery import InstanceDiscovery
from docker_roll.models import InstanceRef, SlotResolution, slot_namespace

logger = logging.getLogger("docker_roll.slot_resolver")

ALTERNATING_SLOTS: Tuple[str, str] = ("blue", "green")


def other_slot(current: Optional[str]) -> str:
    """The alternating slot not currently in use, blue when neither is."""
    first, second = ALTERNATING_SLOTS
    return second if current == first else first


class SlotIdentityResolver:
    """Computes the identity of the slot the new version will run in."""

    def __init__(
        self, discovery: InstanceDiscovery, clock: Callable[[], float] = time.time
    ) -> None:
        self.discovery = discovery
        self.clock = clock

    def resolve(self, scheme: NamingScheme, project: str, service: str) -> SlotResolution:
        """
        Pick the slot for a new deployment of a service.

        Args:
            scheme: Naming scheme to use
            project: Compose project name
            service: Compose service name

        Returns:
            SlotResolution with the new slot, its namespace and the live
            instance it will replace (if any)
        """
        if scheme == NamingScheme.ALTERNATING:
            return self._resolve_alternating(project, service)
        return self._resolve_sequential(project, service)

    def _resolve_sequential(self, project: str, service: str) -> SlotResolution:
        # Two rollouts of one service within the same second collide; not checked.
        slot = str(int(self.clock()))
        live = self.discovery.find_live(service, project)
        if live is None:
            logger.info("No existing service found. Proceeding with initial deployment.")
        else:
            logger.info(f"Found existing service: {live.service} in project {live.namespace}")

        return SlotResolution(
            slot=slot,
            namespace=slot_namespace(project, slot),
            initial_deployment=live is None,
            previous_slot=live.slot if live else None,
            previous_instance=live,
            previous_namespace=live.namespace if live else None,
        )

    def _resolve_alternating(self, project: str, service: str) -> SlotResolution:
        current: Optional[str] = None
        live: Optional[InstanceRef] = None
        for candidate in ALTERNATING_SLOTS:
            live = self.discovery.find_live(
                service, slot_namespace(project, candidate), fallback=False
            )
            if live is not None:
                current = candidate
                break

        slot = other_slot(current)
        logger.info(f"Using {slot} deployment (current: {current or 'none'})")

        return SlotResolution(
            slot=slot,
            namespace=slot_namespace(project, slot),
            initial_deployment=current is None,
            previous_slot=current,
            previous_instance=live,
            previous_namespace=slot_namespace(project, current) if current else None,
            retire_namespace=True,
        )
