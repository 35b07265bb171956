"""
Tests for instance discovery and the Docker-backed runtime.
"""

from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import pytest
from docker.errors import NotFound

from docker_roll.docker_discovery import InstanceDiscovery
from docker_roll.errors import RuntimeCommandError
from docker_roll.models import COMPOSE_PROJECT_LABEL, COMPOSE_SERVICE_LABEL
from docker_roll.runtime import ContainerRuntime, DockerComposeRuntime


class TestInstanceDiscovery:
    """find_live lookup rules."""

    def test_matches_project_and_service(self, fake_runtime):
        fake_runtime.add("other", "blog")
        wanted = fake_runtime.add("mine", "shop")

        found = InstanceDiscovery(fake_runtime).find_live("web", "shop")

        assert found == wanted
        assert fake_runtime.calls[0] == (
            "list",
            {COMPOSE_PROJECT_LABEL: "shop", COMPOSE_SERVICE_LABEL: "web"},
        )

    def test_falls_back_to_service_label(self, fake_runtime):
        legacy = fake_runtime.add("legacy", "something-else")

        found = InstanceDiscovery(fake_runtime).find_live("web", "shop")

        assert found == legacy
        assert fake_runtime.calls[-1] == ("list", {COMPOSE_SERVICE_LABEL: "web"})

    def test_no_fallback_when_disabled(self, fake_runtime):
        fake_runtime.add("legacy", "something-else")

        assert InstanceDiscovery(fake_runtime).find_live("web", "shop", fallback=False) is None

    def test_nothing_running(self, fake_runtime):
        assert InstanceDiscovery(fake_runtime).find_live("web", "shop") is None

    def test_resolve_address(self, fake_runtime):
        ref = fake_runtime.add("c1", "shop", address="172.18.0.5")

        assert InstanceDiscovery(fake_runtime).resolve_address(ref) == "172.18.0.5"

    def test_resolve_address_of_vanished_instance(self, fake_runtime):
        ref = fake_runtime.add("c1", "shop")
        fake_runtime.instances.clear()

        assert InstanceDiscovery(fake_runtime).resolve_address(ref) is None


def _container(cid="abc123", labels=None, ip="172.20.0.3", name="shop-web-1"):
    container = Mock()
    container.id = cid
    container.name = name
    container.labels = labels or {COMPOSE_PROJECT_LABEL: "shop", COMPOSE_SERVICE_LABEL: "web"}
    networks = {"bridge": {"IPAddress": ""}, "shop_default": {"IPAddress": ip}}
    container.attrs = {"NetworkSettings": {"Networks": networks}}
    return container


def _fake_compose_cmd(*args):
    return ["docker", "compose", *args]


class TestDockerComposeRuntime:
    """The Docker SDK / compose CLI implementation."""

    def test_satisfies_protocol(self, mock_docker_client):
        assert isinstance(DockerComposeRuntime(), ContainerRuntime)

    def test_list_instances_uses_label_filters(self, mock_docker_client):
        mock_docker_client.containers.list.return_value = [_container()]

        refs = DockerComposeRuntime().list_instances(
            {COMPOSE_PROJECT_LABEL: "shop", COMPOSE_SERVICE_LABEL: "web"}
        )

        mock_docker_client.containers.list.assert_called_once_with(
            filters={
                "label": [
                    "com.docker.compose.project=shop",
                    "com.docker.compose.service=web",
                ]
            }
        )
        assert len(refs) == 1
        assert refs[0].namespace == "shop"
        assert refs[0].service == "web"
        assert refs[0].address == "172.20.0.3"

    def test_inspect_missing_container(self, mock_docker_client):
        mock_docker_client.containers.get.side_effect = NotFound("gone")

        assert DockerComposeRuntime().inspect("abc") is None

    def test_stop_and_remove_tolerate_absent_container(self, mock_docker_client):
        mock_docker_client.containers.get.side_effect = NotFound("gone")
        runtime = DockerComposeRuntime()

        runtime.stop("abc")
        runtime.remove("abc")

    def test_up_runs_compose_in_namespace(self, tmp_path):
        descriptor = tmp_path / "docker-compose.rolling.yml"
        descriptor.write_text("services: {}\n")
        result = MagicMock(returncode=0, stdout="", stderr="")

        with patch("docker_roll.runtime.compose_cmd", side_effect=_fake_compose_cmd):
            with patch("subprocess.run", return_value=result) as mock_run:
                DockerComposeRuntime(client=Mock()).up(descriptor, "shop-blue")

        cmd = mock_run.call_args[0][0]
        assert cmd == ["docker", "compose", "-p", "shop-blue", "-f", str(descriptor), "up", "-d"]
        assert mock_run.call_args[1]["env"]["COMPOSE_PROJECT_NAME"] == "shop-blue"
        assert mock_run.call_args[1]["cwd"] == str(tmp_path)

    def test_failed_compose_command_raises(self, tmp_path):
        result = MagicMock(returncode=1, stdout="", stderr="no such image")

        with patch("docker_roll.runtime.compose_cmd", side_effect=_fake_compose_cmd):
            with patch("subprocess.run", return_value=result):
                with pytest.raises(RuntimeCommandError, match="no such image"):
                    DockerComposeRuntime(client=Mock()).build(tmp_path / "x.yml", "shop-blue")

    def test_down_without_descriptor_uses_project_only(self):
        result = MagicMock(returncode=0, stdout="", stderr="")

        with patch("docker_roll.runtime.compose_cmd", side_effect=_fake_compose_cmd):
            with patch("subprocess.run", return_value=result) as mock_run:
                DockerComposeRuntime(client=Mock()).down("shop-green", Path("/nonexistent.yml"))

        assert mock_run.call_args[0][0] == ["docker", "compose", "-p", "shop-green", "down"]
