"""docker-roll - Zero-downtime rolling updates for Docker Compose services behind Traefik."""

__version__ = "1.0.3"

from .config.settings import NamingScheme, RolloutConfig
from .orchestrator import RolloutOrchestrator, RolloutState

__all__ = ["NamingScheme", "RolloutConfig", "RolloutOrchestrator", "RolloutState"]
