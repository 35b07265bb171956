"""
Locating the Docker Compose executable.

Rollouts drive build/up/down of each slot through the compose CLI. The
plugin form (``docker compose``) is preferred; the standalone
``docker-compose`` binary is accepted when the plugin is missing. The
choice is made once per process.
"""

import logging
import shutil
import subprocess
from typing import List, Optional, Tuple

from docker_roll.errors import PrerequisiteError

logger = logging.getLogger(__name__)

PLUGIN_COMMAND = ["docker", "compose"]
STANDALONE_BINARY = "docker-compose"
PLUGIN_CHECK_TIMEOUT = 5

_compose_command: Optional[List[str]] = None


class ComposeNotFoundError(PrerequisiteError):
    """No usable Docker Compose was found; slots cannot be started."""

    def __init__(self, v2_error: Optional[str] = None):
        self.v2_error = v2_error
        message = (
            "Neither docker-compose nor docker compose is available. "
            "docker-roll starts each slot with Docker Compose; install the compose plugin."
        )
        if v2_error:
            message += f" (docker compose check failed: {v2_error})"
        super().__init__(message)


def reset_compose_command_cache() -> None:
    global _compose_command
    _compose_command = None


def _check_plugin() -> Tuple[bool, Optional[str]]:
    """Run ``docker compose version``; returns (usable, reason it is not)."""
    try:
        result = subprocess.run(
            PLUGIN_COMMAND + ["version"],
            capture_output=True,
            timeout=PLUGIN_CHECK_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        return False, f"Command timed out after {PLUGIN_CHECK_TIMEOUT} seconds"
    except FileNotFoundError:
        return False, "Docker binary not found in PATH"

    if result.returncode == 0:
        return True, None
    reason = f"Command returned exit code {result.returncode}"
    if result.stderr:
        reason += f": {result.stderr.decode().strip()}"
    return False, reason


def get_compose_command() -> List[str]:
    """
    The compose command prefix for this host, detected on first use.

    Raises:
        ComposeNotFoundError: Neither the plugin nor the standalone binary works
    """
    global _compose_command
    if _compose_command is not None:
        return _compose_command

    usable, reason = _check_plugin()
    if usable:
        _compose_command = list(PLUGIN_COMMAND)
        logger.debug("Using Docker Compose v2 (docker compose)")
    elif shutil.which(STANDALONE_BINARY):
        _compose_command = [STANDALONE_BINARY]
        logger.debug(f"Using Docker Compose v1 ({STANDALONE_BINARY}), plugin check: {reason}")
    else:
        raise ComposeNotFoundError(v2_error=reason)
    return _compose_command


def compose_cmd(*args: str) -> List[str]:
    """Full argv for a compose invocation, e.g. ``compose_cmd("-p", "shop-blue", "down")``."""
    return get_compose_command() + list(args)
