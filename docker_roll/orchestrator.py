"""
Rolling update orchestration.

Sequences one rollout end to end:

    INIT -> RESOLVING_SLOT -> STARTING_NEW -> AWAITING_HEALTH
        -> SHIFTING -> FINALIZED
        -> ROLLING_BACK -> ROLLED_BACK
    STARTING_NEW -> INITIAL_DEPLOY_DONE  (nothing live to protect)

Nothing is persisted between invocations; the live slot is rediscovered
from the container runtime every time.
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

import httpx

from docker_roll.cleanup import CleanupManager
from docker_roll.compose_transformer import DescriptorTransformer
from docker_roll.config.settings import RolloutConfig
from docker_roll.docker_discovery import InstanceDiscovery
from docker_roll.errors import HealthTimeout, RolloutError, StartFailure
from docker_roll.health_gate import HealthGate, HealthStatus
from docker_roll.logging_config import log_success
from docker_roll.models import (
    InstanceRef,
    ServiceDescriptor,
    SlotResolution,
    composite_key,
)
from docker_roll.runtime import ContainerRuntime
from docker_roll.slot_resolver import SlotIdentityResolver
from docker_roll.traefik_manager import TraefikConfigWriter
from docker_roll.traffic_shift import TrafficShiftController

logger = logging.getLogger("docker_roll.orchestrator")


class RolloutState(str, Enum):
    INIT = "init"
    RESOLVING_SLOT = "resolving_slot"
    STARTING_NEW = "starting_new"
    AWAITING_HEALTH = "awaiting_health"
    SHIFTING = "shifting"
    FINALIZED = "finalized"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    INITIAL_DEPLOY_DONE = "initial_deploy_done"
    FAILED = "failed"


SUCCESS_STATES = {RolloutState.FINALIZED, RolloutState.INITIAL_DEPLOY_DONE}


class RolloutOrchestrator:
    """Runs one rolling update of one service."""

    def __init__(
        self,
        config: RolloutConfig,
        runtime: ContainerRuntime,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: Settings for this rollout
            runtime: Container runtime used to start, inspect and remove slots
            sleep: Sleep function shared by the health gate and traffic shift
            clock: Wall clock used for sequential slot identities
            http_client: Client for health probes, created on demand if None
        """
        self.config = config
        self.runtime = runtime
        self.discovery = InstanceDiscovery(runtime)
        self.resolver = SlotIdentityResolver(self.discovery, clock=clock)
        self.transformer = DescriptorTransformer(health_timeout=config.health_timeout)
        self.health_gate = HealthGate(self.discovery, http_client=http_client, sleep=sleep)
        self.cleanup = CleanupManager(runtime)
        self.sleep = sleep

        self.state = RolloutState.INIT
        self.history: List[RolloutState] = [RolloutState.INIT]

    def _transition(self, state: RolloutState) -> None:
        logger.debug(f"Rollout state: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def run(self) -> RolloutState:
        """
        Perform the rollout.

        Returns:
            FINALIZED or INITIAL_DEPLOY_DONE

        Raises:
            DescriptorError: Base compose file unusable, nothing was started
            RuntimeCommandError: Build or start of the new slot failed
            StartFailure: The new slot never became discoverable
            HealthTimeout: The new slot failed its health gate and was
                rolled back
        """
        config = self.config
        project = config.project
        logger.info(f"Starting rolling update for project: {project}")

        try:
            self._transition(RolloutState.RESOLVING_SLOT)
            resolution = self.resolver.resolve(config.naming_scheme, project, config.service)

            descriptor = self.transformer.transform(
                config.resolved_compose_file,
                slot=resolution.slot,
                service=config.service,
                domain=config.domain,
                port=config.port,
                health_path=config.health_path,
                namespace=resolution.namespace,
            )

            self._transition(RolloutState.STARTING_NEW)
            new_instance = self._start_new(descriptor)

            if resolution.initial_deployment:
                self.cleanup.delete_file(descriptor.path)
                self._transition(RolloutState.INITIAL_DEPLOY_DONE)
                log_success(
                    logger,
                    f"Initial deployment complete. Service is available at https://{config.domain}",
                )
                return self.state

            self._transition(RolloutState.AWAITING_HEALTH)
            status = self.health_gate.await_healthy(
                new_instance, config.health_path, config.port, config.health_timeout
            )
            if status != HealthStatus.HEALTHY:
                self._roll_back(descriptor)
                raise HealthTimeout(
                    f"New deployment {descriptor.key} did not become healthy within "
                    f"{config.health_timeout}s, rolled back"
                )

            self._transition(RolloutState.SHIFTING)
            writer = TraefikConfigWriter(
                config.dynamic_conf_dir, project, config.domain, descriptor.edge
            )
            TrafficShiftController(writer, sleep=self.sleep).shift(
                self._old_key(resolution, project),
                descriptor.key,
                config.shift_interval,
                no_shift=config.no_shift,
            )
            log_success(logger, "Traffic fully shifted to new version.")

            self.cleanup.finalize(
                descriptor.path,
                writer=writer,
                old_instance=resolution.previous_instance,
                old_namespace=(
                    resolution.previous_namespace if resolution.retire_namespace else None
                ),
            )
            self._transition(RolloutState.FINALIZED)
            log_success(
                logger, "Rolling update complete! New version is now serving 100% of traffic."
            )
            return self.state
        except RolloutError:
            if self.state not in (RolloutState.ROLLED_BACK, RolloutState.FAILED):
                self._transition(RolloutState.FAILED)
            raise
        finally:
            self.health_gate.close()

    def _start_new(self, descriptor: ServiceDescriptor) -> InstanceRef:
        logger.info("Building and starting new version...")
        try:
            self.runtime.build(descriptor.path, descriptor.namespace)
            self.runtime.up(descriptor.path, descriptor.namespace)
        except RolloutError:
            self.cleanup.delete_file(descriptor.path)
            raise

        # Only the new namespace counts; falling back to the service label
        # alone would find the old slot.
        instance = self.discovery.find_live(
            descriptor.service, descriptor.namespace, fallback=False
        )
        if instance is None:
            self.cleanup.delete_file(descriptor.path)
            self._transition(RolloutState.FAILED)
            raise StartFailure("Failed to start new container")

        logger.info(f"New container {instance.short_id} started in project {descriptor.namespace}")
        return instance

    def _roll_back(self, descriptor: ServiceDescriptor) -> None:
        logger.error("New container is not healthy. Rolling back...")
        self._transition(RolloutState.ROLLING_BACK)
        self.cleanup.rollback(descriptor.namespace, descriptor.path)
        self._transition(RolloutState.ROLLED_BACK)
        logger.info("Rollback complete. Still using old version.")

    def _old_key(self, resolution: SlotResolution, project: str) -> str:
        old = resolution.previous_instance
        service = (old.service if old else None) or self.config.service
        namespace = resolution.previous_namespace or project
        return composite_key(namespace, service)
