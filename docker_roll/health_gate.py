"""
Health gate for a newly started slot.

Polls the instance's health endpoint once per second until it answers or
the attempt budget runs out.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

import httpx

from docker_roll.docker_discovery import InstanceDiscovery
from docker_roll.logging_config import log_success
from docker_roll.models import InstanceRef

logger = logging.getLogger("docker_roll.health_gate")

POLL_INTERVAL = 1.0
REQUEST_TIMEOUT = 2.0
PROGRESS_EVERY = 10


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthGate:
    """Bounded, fixed-cadence health polling."""

    def __init__(
        self,
        discovery: InstanceDiscovery,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the gate.

        Args:
            discovery: Used to resolve the instance's network address
            http_client: Client used for probes, created on demand if None
            sleep: Sleep function, replaced in tests
        """
        self.discovery = discovery
        self._client = http_client
        self.sleep = sleep

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=REQUEST_TIMEOUT, follow_redirects=False)
        return self._client

    def probe(self, url: str) -> bool:
        """One health request. Connection errors and 4xx/5xx count as failure."""
        try:
            response = self._http().get(url)
        except httpx.HTTPError as e:
            logger.debug(f"Health probe {url} failed: {type(e).__name__}: {e}")
            return False
        if response.is_error:
            logger.debug(f"Health probe {url} returned HTTP {response.status_code}")
            return False
        return True

    def await_healthy(
        self, instance: InstanceRef, path: str, port: int, timeout: int
    ) -> HealthStatus:
        """
        Wait for an instance to answer its health endpoint.

        Args:
            instance: The new instance
            path: Health endpoint path
            port: Internal container port
            timeout: Number of 1 second attempts

        Returns:
            HEALTHY on the first successful probe, UNHEALTHY once all
            attempts have failed
        """
        logger.info(f"Waiting for container to be healthy (timeout: {timeout}s)...")

        address = self.discovery.resolve_address(instance)
        if not address:
            logger.error(f"Container {instance.short_id} has no network address")
            return HealthStatus.UNHEALTHY

        url = f"http://{address}:{port}{path}"
        for attempt in range(1, timeout + 1):
            if self.probe(url):
                log_success(logger, "Container is healthy!")
                return HealthStatus.HEALTHY

            if attempt % PROGRESS_EVERY == 0:
                logger.info(f"Still waiting for {url} ({attempt}/{timeout})")

            self.sleep(POLL_INTERVAL)

        logger.error("Health check timed out. Container is not healthy.")
        return HealthStatus.UNHEALTHY

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
