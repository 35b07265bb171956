"""
Traefik dynamic configuration for weighted traffic splits.

The proxy watches its dynamic configuration directory and hot-reloads any
file that changes. We only ever write or delete one file per project there;
we never talk to Traefik directly.
"""

import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from docker_roll.logging_config import log_proxy_operation
from docker_roll.models import EdgeRouting, TrafficSplit

logger = logging.getLogger("docker_roll.proxy")


class TraefikConfigWriter:
    """Writes the weighted split file for one project."""

    def __init__(self, conf_dir: Path, project: str, domain: str, edge: EdgeRouting):
        """
        Initialize the writer.

        Args:
            conf_dir: Traefik dynamic configuration directory
            project: Compose project name, scopes the file and its routers
            domain: Domain the weighted router matches
            edge: Entry points, TLS and middlewares for the router
        """
        self.conf_dir = Path(conf_dir)
        self.project = project
        self.domain = domain
        self.edge = edge
        self.name = f"weighted-{project}"
        self.config_path = self.conf_dir / f"{self.name}.yml"
        # Not a .yml file, so the file provider ignores it
        self.new_config_path = self.conf_dir / f"{self.name}.yml.new"

    def generate_config(self, split: TrafficSplit) -> Dict[str, Any]:
        """Build the dynamic configuration document for a split."""
        router: Dict[str, Any] = {
            "rule": f"Host(`{self.domain}`)",
            "entryPoints": list(self.edge.entrypoints),
            "service": self.name,
        }
        if self.edge.cert_resolver:
            router["tls"] = {"certResolver": self.edge.cert_resolver}
        if self.edge.middlewares:
            router["middlewares"] = list(self.edge.middlewares)

        return {
            "http": {
                "services": {
                    self.name: {
                        "weighted": {
                            "services": [
                                {"name": f"{split.old_key}@docker", "weight": split.old_weight},
                                {"name": f"{split.new_key}@docker", "weight": split.new_weight},
                            ]
                        }
                    }
                },
                "routers": {self.name: router},
            }
        }

    def write(self, split: TrafficSplit) -> None:
        """Replace the split file with the given weights."""
        logger.info(
            f"Updating traffic weights: {split.old_weight}% old, {split.new_weight}% new"
        )
        self.conf_dir.mkdir(parents=True, exist_ok=True)
        content = yaml.safe_dump(
            self.generate_config(split), default_flow_style=False, sort_keys=False
        )

        self.new_config_path.write_text(content)
        # Write in-place so a bind-mounted file keeps its inode
        with open(self.config_path, "w") as f:
            f.write(self.new_config_path.read_text())
        self.new_config_path.unlink()

        log_proxy_operation(
            "write",
            success=True,
            details={
                "file": str(self.config_path),
                "old": split.old_weight,
                "new": split.new_weight,
            },
        )

    def remove(self) -> bool:
        """
        Delete the split file.

        Returns:
            True if a file was removed, False if there was none
        """
        self.new_config_path.unlink(missing_ok=True)
        if not self.config_path.exists():
            log_proxy_operation("remove", success=True, details={"file": "absent"})
            return False
        self.config_path.unlink()
        log_proxy_operation("remove", success=True, details={"file": str(self.config_path)})
        return True

    def exists(self) -> bool:
        return self.config_path.exists()
