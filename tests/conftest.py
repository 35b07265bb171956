"""
Pytest configuration and fixtures for docker-roll tests.
"""

from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest
from unittest.mock import Mock, patch

from docker_roll.config.settings import RolloutConfig
from docker_roll.errors import RuntimeCommandError
from docker_roll.models import (
    COMPOSE_PROJECT_LABEL,
    COMPOSE_SERVICE_LABEL,
    SLOT_LABEL,
    InstanceRef,
)

BASE_COMPOSE = """\
services:
  web:
    build: .
    container_name: shop-web
    ports:
      - "8080:3000"
    labels:
      - "traefik.enable=true"
      - "traefik.http.routers.web.rule=Host(`old.example.com`)"
      - "traefik.http.routers.web.entrypoints=websecure"
      - "traefik.http.routers.web.tls.certresolver=letsencrypt"
      - "traefik.http.routers.web.middlewares=secure-headers@docker,gzip-compress@docker"
      - "traefik.http.services.web.loadbalancer.server.port=3000"
  redis:
    image: redis:7
    ports:
      - "6379:6379"
"""


class FakeRuntime:
    """In-memory stand-in for the container runtime."""

    def __init__(self, service: str = "web") -> None:
        self.service = service
        self.instances: List[InstanceRef] = []
        self.calls: List[tuple] = []
        self.start_succeeds = True
        self.failing: Set[str] = set()

    def add(
        self, instance_id: str, namespace: str, service: Optional[str] = None, **kw
    ) -> InstanceRef:
        ref = InstanceRef(
            instance_id=instance_id,
            namespace=namespace,
            service=service or self.service,
            address=kw.pop("address", "10.0.0.2"),
            **kw,
        )
        self.instances.append(ref)
        return ref

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise RuntimeCommandError(f"docker compose {operation}", 1, "boom")

    def list_instances(self, labels: Dict[str, str]) -> List[InstanceRef]:
        self.calls.append(("list", dict(labels)))
        fields = {
            COMPOSE_PROJECT_LABEL: "namespace",
            COMPOSE_SERVICE_LABEL: "service",
            SLOT_LABEL: "slot",
        }
        return [
            i
            for i in self.instances
            if all(getattr(i, fields[k]) == v for k, v in labels.items())
        ]

    def inspect(self, instance_id: str) -> Optional[InstanceRef]:
        self.calls.append(("inspect", instance_id))
        for i in self.instances:
            if i.instance_id == instance_id:
                return i
        return None

    def build(self, descriptor: Path, namespace: str) -> None:
        self.calls.append(("build", namespace))
        self._check("build")

    def up(self, descriptor: Path, namespace: str) -> None:
        self.calls.append(("up", namespace))
        self._check("up")
        if self.start_succeeds:
            self.add(f"new-{namespace}", namespace, address="10.0.0.9")

    def down(self, namespace: str, descriptor: Optional[Path] = None) -> None:
        self.calls.append(("down", namespace))
        self._check("down")
        self.instances = [i for i in self.instances if i.namespace != namespace]

    def stop(self, instance_id: str) -> None:
        self.calls.append(("stop", instance_id))
        self._check("stop")

    def remove(self, instance_id: str) -> None:
        self.calls.append(("remove", instance_id))
        self._check("remove")
        self.instances = [i for i in self.instances if i.instance_id != instance_id]

    def ops(self, *names: str) -> List[tuple]:
        return [c for c in self.calls if c[0] in names]


@pytest.fixture
def fake_runtime():
    """Fake container runtime with no running instances."""
    return FakeRuntime()


@pytest.fixture
def project_dir(tmp_path):
    """A compose project directory named 'shop'."""
    path = tmp_path / "shop"
    path.mkdir()
    (path / "docker-compose.yml").write_text(BASE_COMPOSE)
    return path


@pytest.fixture
def make_config(tmp_path, project_dir):
    """Factory for rollout configs pointing at the temp project."""

    def _make(**overrides) -> RolloutConfig:
        values = {
            "domain": "shop.example.com",
            "service": "web",
            "port": 3000,
            "health_timeout": 5,
            "shift_interval": 20,
            "project_dir": project_dir,
            "proxy_dir": tmp_path / "traefik",
        }
        values.update(overrides)
        return RolloutConfig(**values)

    return _make


@pytest.fixture
def sleeps():
    """Records requested sleeps instead of sleeping."""
    recorded: List[float] = []
    return recorded


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def mock_docker_client():
    """Mock Docker client for tests."""
    with patch("docker.from_env") as mock_docker:
        client = Mock()
        mock_docker.return_value = client
        yield client
