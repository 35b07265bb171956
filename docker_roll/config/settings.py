"""
Rollout configuration.

A RolloutConfig is built once per invocation (from CLI flags, optionally on
top of a YAML defaults file) and passed explicitly to every component.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from docker_roll.errors import ConfigError

DEFAULT_PROXY_DIR = "/home/ssw/traefik"
DYNAMIC_CONF_SUBDIR = Path("data") / "dynamic_conf"


class NamingScheme(str, Enum):
    """How the new slot is named."""

    SEQUENTIAL = "sequential"
    ALTERNATING = "alternating"


def resolve_project_name(project_dir: Path) -> str:
    """
    Determine the compose project name for a project directory.

    COMPOSE_PROJECT_NAME from the directory's .env wins; otherwise the
    directory basename is used.
    """
    env_file = project_dir / ".env"
    if env_file.is_file():
        for line in env_file.read_text().splitlines():
            line = line.strip()
            if line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            if key.strip() == "COMPOSE_PROJECT_NAME":
                value = value.strip().strip("'\"")
                if value:
                    return value
    return project_dir.resolve().name


class RolloutConfig(BaseModel):
    """Immutable settings for one rollout."""

    model_config = ConfigDict(frozen=True)

    domain: str = Field(..., description="Domain routed to the service")
    service: str = Field("app", description="Compose service to update")
    port: int = Field(3000, description="Internal container port")
    compose_file: Path = Field(Path("docker-compose.yml"), description="Base compose file")
    health_path: str = Field("/health", description="Health check endpoint path")
    health_timeout: int = Field(60, description="Health check attempts (1 per second)")
    shift_interval: float = Field(20, description="Seconds between traffic shift steps")
    proxy_dir: Path = Field(Path(DEFAULT_PROXY_DIR), description="Traefik directory")
    no_shift: bool = Field(False, description="Cut over directly without gradual shifting")
    naming_scheme: NamingScheme = Field(NamingScheme.SEQUENTIAL, description="Slot naming scheme")
    project_dir: Path = Field(default_factory=Path.cwd, description="Compose project directory")
    project_name: Optional[str] = Field(None, description="Compose project name override")

    @field_validator("domain")
    @classmethod
    def domain_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Domain is required. Use --domain or -d to specify.")
        return v

    @field_validator("service")
    @classmethod
    def service_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Service name must not be empty")
        return v.strip()

    @field_validator("port")
    @classmethod
    def port_in_range(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {v}")
        return v

    @field_validator("health_path")
    @classmethod
    def health_path_is_simple(cls, v: str) -> str:
        # Keep it a path, not a URL.
        if not v.startswith("/"):
            raise ValueError("health_path must start with '/'")
        if "://" in v or ".." in v:
            raise ValueError("health_path must be a simple absolute path (no scheme, no '..')")
        return v

    @field_validator("health_timeout")
    @classmethod
    def health_timeout_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("health_timeout must be at least 1 second")
        return v

    @field_validator("shift_interval")
    @classmethod
    def shift_interval_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("shift_interval must not be negative")
        return v

    @classmethod
    def build(cls, **values: Any) -> "RolloutConfig":
        """Construct a config, reporting validation problems as ConfigError."""
        try:
            return cls(**values)
        except ValidationError as e:
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigError(f"Invalid configuration: {messages}") from e

    @classmethod
    def from_file(cls, path: Path, **overrides: Any) -> "RolloutConfig":
        """
        Load defaults from a YAML file and apply overrides on top.

        Overrides with a value of None are ignored so unset CLI flags
        don't clobber file values.
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: {path}")
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Configuration file {path} is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {path} must contain a mapping")

        values: Dict[str, Any] = dict(data)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.build(**values)

    def save(self, path: Path) -> None:
        """Write this configuration as YAML."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)

    @property
    def dynamic_conf_dir(self) -> Path:
        """Directory watched by the Traefik file provider."""
        return self.proxy_dir / DYNAMIC_CONF_SUBDIR

    @property
    def resolved_compose_file(self) -> Path:
        """Compose file path, relative paths taken from the project directory."""
        if self.compose_file.is_absolute():
            return self.compose_file
        return self.project_dir / self.compose_file

    @property
    def project(self) -> str:
        """Compose project name for this rollout."""
        return self.project_name or resolve_project_name(self.project_dir)

    def log_summary(self) -> Dict[str, Any]:
        """Non-sensitive summary for startup logging."""
        return {
            "domain": self.domain,
            "service": self.service,
            "port": self.port,
            "compose_file": str(self.compose_file),
            "naming_scheme": self.naming_scheme.value,
            "no_shift": self.no_shift,
        }


def env_default(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read a DOCKER_ROLL_* environment default."""
    return os.getenv(f"DOCKER_ROLL_{name}", default)
