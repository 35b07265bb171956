"""
Pre-flight checks run before a rollout touches anything.
"""

import logging
import shutil

from docker_roll.config.settings import RolloutConfig
from docker_roll.errors import ConfigError, PrerequisiteError
from docker_roll.runtime import ContainerRuntime
from docker_roll.utils.compose_command import get_compose_command

logger = logging.getLogger("docker_roll.preflight")

REQUIRED_TOOLS = ("docker",)
PROXY_CONTAINER_HINT = "traefik"


def check_requirements(config: RolloutConfig, runtime: ContainerRuntime) -> None:
    """
    Verify tools, files and directories a rollout depends on.

    Raises:
        PrerequisiteError: A required tool is missing
        ConfigError: The compose file does not exist
    """
    for tool in REQUIRED_TOOLS:
        if shutil.which(tool) is None:
            raise PrerequisiteError(
                f"{tool} is required but not installed. Please install it first."
            )

    get_compose_command()

    compose_file = config.resolved_compose_file
    if not compose_file.is_file():
        raise ConfigError(f"Docker Compose file not found: {compose_file}")

    running = runtime.list_instances({})
    if not any(PROXY_CONTAINER_HINT in (instance.name or "") for instance in running):
        logger.warning("Traefik container not detected. Make sure it's running.")

    conf_dir = config.dynamic_conf_dir
    if not conf_dir.is_dir():
        logger.warning(f"Traefik dynamic configuration directory not found at {conf_dir}")
        logger.info(f"Creating directory: {conf_dir}")
        conf_dir.mkdir(parents=True, exist_ok=True)
