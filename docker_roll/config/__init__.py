"""Configuration for docker-roll."""

from .settings import NamingScheme, RolloutConfig, resolve_project_name

__all__ = ["NamingScheme", "RolloutConfig", "resolve_project_name"]
