"""
Data models for docker-roll.

Keep it simple. Keep it typed.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"
SLOT_LABEL = "deployment.id"


def slot_namespace(project: str, slot: str) -> str:
    """Compose project name for a slot, e.g. ``shop-green``."""
    return f"{project}-{slot}"


def composite_key(namespace: str, service: str) -> str:
    """Routing identity of one instance at the proxy, e.g. ``shop-green_web``."""
    return f"{namespace}_{service}"


class InstanceRef(BaseModel):
    """Non-owning reference to a running container."""

    model_config = ConfigDict(frozen=True)

    instance_id: str = Field(..., description="Runtime-assigned container id")
    namespace: Optional[str] = Field(None, description="Compose project label")
    service: Optional[str] = Field(None, description="Compose service label")
    slot: Optional[str] = Field(None, description="Slot identity label if present")
    name: Optional[str] = Field(None, description="Container name")
    address: Optional[str] = Field(None, description="Container network address")

    @property
    def short_id(self) -> str:
        return self.instance_id[:12]

    @property
    def key(self) -> Optional[str]:
        """Composite service key, if the instance carries compose labels."""
        if not self.namespace or not self.service:
            return None
        return composite_key(self.namespace, self.service)


class SlotResolution(BaseModel):
    """Outcome of slot identity resolution."""

    model_config = ConfigDict(frozen=True)

    slot: str = Field(..., description="Identity of the new slot")
    namespace: str = Field(..., description="Slot-qualified compose project name")
    initial_deployment: bool = Field(..., description="No prior live instance to protect")
    previous_slot: Optional[str] = Field(None, description="Live slot being replaced, if known")
    previous_instance: Optional[InstanceRef] = Field(None, description="Live old instance")
    previous_namespace: Optional[str] = Field(None, description="Compose project of old instance")
    retire_namespace: bool = Field(
        False, description="Retire the old slot by taking down its whole compose project"
    )


class EdgeRouting(BaseModel):
    """Edge routing metadata carried from the base descriptor to the split file."""

    model_config = ConfigDict(frozen=True)

    entrypoints: List[str] = Field(default_factory=lambda: ["websecure"])
    cert_resolver: Optional[str] = Field("letsencrypt")
    middlewares: List[str] = Field(
        default_factory=lambda: ["secure-headers@docker", "gzip-compress@docker"]
    )


class ServiceDescriptor(BaseModel):
    """A per-slot compose file derived from the base descriptor."""

    path: Path = Field(..., description="Where the descriptor was written")
    slot: str
    service: str
    namespace: str
    key: str = Field(..., description="Composite key used for routing identifiers")
    domain: str
    edge: EdgeRouting = Field(default_factory=EdgeRouting)
    content: Dict[str, Any] = Field(default_factory=dict, description="Parsed compose document")

    @property
    def labels(self) -> Dict[str, str]:
        """Labels of the target service as a mapping."""
        service = self.content.get("services", {}).get(self.service, {})
        raw = service.get("labels") or []
        if isinstance(raw, dict):
            return {str(k): str(v) for k, v in raw.items()}
        labels: Dict[str, str] = {}
        for item in raw:
            key, _, value = str(item).partition("=")
            labels[key] = value
        return labels


class TrafficSplit(BaseModel):
    """One weighted routing configuration between the old and new slot."""

    model_config = ConfigDict(frozen=True)

    old_key: str
    new_key: str
    old_weight: int = Field(..., ge=0, le=100)
    new_weight: int = Field(..., ge=0, le=100)

    @model_validator(mode="after")
    def weights_sum_to_100(self) -> "TrafficSplit":
        if self.old_weight + self.new_weight != 100:
            raise ValueError(
                f"Weights must sum to 100, got {self.old_weight} + {self.new_weight}"
            )
        return self
