"""
Unit tests for compose_command utility module.
"""

import logging
import subprocess
from unittest.mock import MagicMock, patch

import pytest

import docker_roll.utils.compose_command as compose_module
from docker_roll.errors import PrerequisiteError
from docker_roll.utils.compose_command import (
    ComposeNotFoundError,
    compose_cmd,
    get_compose_command,
    reset_compose_command_cache,
)


@pytest.fixture(autouse=True)
def reset_cache():
    """Reset the compose command cache around each test."""
    reset_compose_command_cache()
    yield
    reset_compose_command_cache()


def _result(returncode, stderr=b""):
    result = MagicMock()
    result.returncode = returncode
    result.stderr = stderr
    return result


class TestGetComposeCommand:
    """Tests for get_compose_command function."""

    def test_detects_compose_v2(self):
        with patch("subprocess.run", return_value=_result(0)) as mock_run:
            assert get_compose_command() == ["docker", "compose"]
            mock_run.assert_called_once_with(
                ["docker", "compose", "version"],
                capture_output=True,
                timeout=5,
            )

    def test_falls_back_to_compose_v1(self):
        with patch("subprocess.run", return_value=_result(1)):
            with patch("shutil.which", return_value="/usr/bin/docker-compose") as mock_which:
                assert get_compose_command() == ["docker-compose"]
                mock_which.assert_called_once_with("docker-compose")

    def test_raises_when_neither_available(self):
        with patch("subprocess.run", return_value=_result(1, b"compose is not a docker command")):
            with patch("shutil.which", return_value=None):
                with pytest.raises(ComposeNotFoundError) as exc_info:
                    get_compose_command()

        error_msg = str(exc_info.value)
        assert "Neither docker-compose nor docker compose is available" in error_msg
        assert "compose is not a docker command" in error_msg
        assert "install the compose plugin" in error_msg
        assert isinstance(exc_info.value, PrerequisiteError)

    def test_handles_v2_timeout(self):
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd=[], timeout=5)):
            with patch("shutil.which", return_value="/usr/bin/docker-compose"):
                assert get_compose_command() == ["docker-compose"]

    def test_handles_docker_not_found(self):
        with patch("subprocess.run", side_effect=FileNotFoundError("docker not found")):
            with patch("shutil.which", return_value=None):
                with pytest.raises(ComposeNotFoundError) as exc_info:
                    get_compose_command()

        assert exc_info.value.v2_error == "Docker binary not found in PATH"

    def test_caches_result(self):
        with patch("subprocess.run", return_value=_result(0)) as mock_run:
            assert get_compose_command() == get_compose_command() == ["docker", "compose"]
            assert mock_run.call_count == 1

    def test_logs_detection(self, caplog):
        with patch("subprocess.run", return_value=_result(1)):
            with patch("shutil.which", return_value="/usr/bin/docker-compose"):
                with caplog.at_level(logging.DEBUG):
                    get_compose_command()

        assert "Using Docker Compose v1 (docker-compose)" in caplog.text
        assert "plugin check: Command returned exit code 1" in caplog.text


class TestComposeCmd:
    """Tests for compose_cmd function."""

    def test_builds_v2_command(self):
        with patch("subprocess.run", return_value=_result(0)):
            result = compose_cmd("-p", "shop-green", "-f", "docker-compose.rolling.yml", "up", "-d")

        assert result == [
            "docker",
            "compose",
            "-p",
            "shop-green",
            "-f",
            "docker-compose.rolling.yml",
            "up",
            "-d",
        ]

    def test_builds_v1_command(self):
        with patch("subprocess.run", return_value=_result(1)):
            with patch("shutil.which", return_value="/usr/bin/docker-compose"):
                assert compose_cmd("down") == ["docker-compose", "down"]

    def test_reset_allows_redetection(self):
        with patch("subprocess.run", return_value=_result(0)):
            assert get_compose_command() == ["docker", "compose"]

        reset_compose_command_cache()
        assert compose_module._compose_command is None

        with patch("subprocess.run", return_value=_result(1)):
            with patch("shutil.which", return_value="/usr/bin/docker-compose"):
                assert get_compose_command() == ["docker-compose"]
