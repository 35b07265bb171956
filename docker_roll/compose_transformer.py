"""
Per-slot compose file generation.

Derives an isolated copy of the project's compose file for the new slot so
it can run next to the live one: no host port bindings, routing labels
renamed to the slot's composite key, Host rule pinned to the domain, and a
load balancer health check the proxy can evaluate on its own.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from docker_roll.errors import DescriptorError
from docker_roll.logging_config import log_success
from docker_roll.models import SLOT_LABEL, EdgeRouting, ServiceDescriptor, composite_key

logger = logging.getLogger(__name__)

ROLLING_FILE_NAME = "docker-compose.rolling.yml"

ROUTER_LABEL_RE = re.compile(r"^traefik\.http\.routers\.([^.]+)\.(.+)$")
SERVICE_LABEL_RE = re.compile(r"^traefik\.http\.services\.([^.]+)\.(.+)$")
HOST_RULE_RE = re.compile(r"Host\(`[^`]*`\)")

MAX_CHECK_INTERVAL = 5.0
MAX_CHECK_TIMEOUT = 3.0


def format_duration(seconds: float) -> str:
    """Render seconds as a Traefik duration, e.g. ``5s`` or ``500ms``."""
    if float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{int(round(seconds * 1000))}ms"


def proxy_check_timings(gate_timeout: int) -> Tuple[float, float]:
    """
    Interval and timeout for the proxy's own health check.

    Both stay strictly below the gate timeout so the proxy has evaluated the
    new slot at least once before the gate gives up.
    """
    interval = min(MAX_CHECK_INTERVAL, gate_timeout / 2)
    timeout = min(MAX_CHECK_TIMEOUT, gate_timeout / 4)
    return interval, timeout


def parse_labels(raw: Any) -> Dict[str, str]:
    """Accept compose labels as a list of ``k=v`` strings or as a mapping."""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): "" if v is None else str(v) for k, v in raw.items()}
    labels: Dict[str, str] = {}
    for item in raw:
        key, _, value = str(item).partition("=")
        labels[key.strip()] = value.strip()
    return labels


def container_port(entry: Any) -> Optional[str]:
    """Container side of a compose port entry, dropping any host binding."""
    if isinstance(entry, dict):
        target = entry.get("target")
        return str(target) if target is not None else None
    text = str(entry).strip()
    if not text:
        return None
    return text.rsplit(":", 1)[-1]


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class DescriptorTransformer:
    """Generates the compose file for a new slot."""

    def __init__(self, health_timeout: int, output_name: str = ROLLING_FILE_NAME) -> None:
        """
        Initialize the transformer.

        Args:
            health_timeout: Health gate timeout in seconds
            output_name: File name of the generated compose file
        """
        self.health_timeout = health_timeout
        self.output_name = output_name

    def load(self, base_path: Path) -> Dict[str, Any]:
        """Read and sanity check a compose file."""
        base_path = Path(base_path)
        if not base_path.is_file():
            raise DescriptorError(f"Docker Compose file not found: {base_path}")
        try:
            with open(base_path) as f:
                document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise DescriptorError(f"Could not parse {base_path}: {e}") from e
        if not isinstance(document, dict) or not isinstance(document.get("services"), dict):
            raise DescriptorError(f"{base_path} has no 'services' section")
        return document

    def transform(
        self,
        base_path: Path,
        slot: str,
        service: str,
        domain: str,
        port: int,
        health_path: str,
        namespace: str,
    ) -> ServiceDescriptor:
        """
        Write the compose file for a new slot.

        Args:
            base_path: The project's compose file
            slot: Slot identity of the new instance
            service: Service being rolled out
            domain: Domain the router must match
            port: Internal container port
            health_path: Path checked by the health gate
            namespace: Compose project name of the new slot

        Returns:
            The written descriptor
        """
        base_path = Path(base_path)
        document = self.load(base_path)
        services = document["services"]
        if service not in services or not isinstance(services[service], dict):
            raise DescriptorError(f"Service '{service}' not found in {base_path}")

        key = composite_key(namespace, service)
        logger.info(f"Creating temporary compose file for new deployment: {key}")

        for name, definition in services.items():
            if isinstance(definition, dict):
                self._strip_host_ports(definition, port if name == service else None)

        target = services[service]
        target.pop("container_name", None)
        labels, edge = self._rewrite_labels(
            parse_labels(target.get("labels")), key, service, slot, domain, port, health_path
        )
        target["labels"] = [f"{k}={v}" for k, v in labels.items()]

        output_path = base_path.parent / self.output_name
        with open(output_path, "w") as f:
            yaml.safe_dump(document, f, default_flow_style=False, sort_keys=False)

        log_success(logger, "Temporary compose file created")
        return ServiceDescriptor(
            path=output_path,
            slot=slot,
            service=service,
            namespace=namespace,
            key=key,
            domain=domain,
            edge=edge,
            content=document,
        )

    def _strip_host_ports(self, definition: Dict[str, Any], port: Optional[int]) -> None:
        exposed: List[str] = [str(p) for p in definition.get("expose") or []]
        for entry in definition.pop("ports", None) or []:
            cport = container_port(entry)
            if cport and cport not in exposed:
                exposed.append(cport)
        if port is not None:
            exposed = [str(port)] + [p for p in exposed if p != str(port)]
        if exposed:
            definition["expose"] = exposed

    def _rewrite_labels(
        self,
        labels: Dict[str, str],
        key: str,
        service: str,
        slot: str,
        domain: str,
        port: int,
        health_path: str,
    ) -> Tuple[Dict[str, str], EdgeRouting]:
        routers = _group_labels(labels, ROUTER_LABEL_RE)
        services = _group_labels(labels, SERVICE_LABEL_RE)

        edge_router = _edge_router(routers, service)
        primary_router = service if service in routers else edge_router
        if service in services:
            primary_service: Optional[str] = service
        else:
            primary_service = next(iter(services)) if len(services) == 1 else None

        router_names = {n: _slot_name(n, primary_router, service, key) for n in routers}
        service_names = {n: _slot_name(n, primary_service, service, key) for n in services}

        rewritten: Dict[str, str] = {}
        for label, value in labels.items():
            if label == SLOT_LABEL:
                continue
            router = ROUTER_LABEL_RE.match(label)
            svc = SERVICE_LABEL_RE.match(label)
            if router:
                label = f"traefik.http.routers.{router_names[router.group(1)]}.{router.group(2)}"
            elif svc:
                label = f"traefik.http.services.{service_names[svc.group(1)]}.{svc.group(2)}"
            rewritten[label] = value

        # Every router of the slot answers for the domain and targets the slot's service
        for name in dict.fromkeys([key, *router_names.values()]):
            rule_label = f"traefik.http.routers.{name}.rule"
            rule = rewritten.get(rule_label, "")
            if HOST_RULE_RE.search(rule):
                rewritten[rule_label] = HOST_RULE_RE.sub(f"Host(`{domain}`)", rule)
            else:
                rewritten[rule_label] = f"Host(`{domain}`)"
            rewritten[f"traefik.http.routers.{name}.service"] = key

        interval, timeout = proxy_check_timings(self.health_timeout)
        rewritten["traefik.enable"] = "true"
        rewritten[f"traefik.http.services.{key}.loadbalancer.server.port"] = str(port)
        rewritten[f"traefik.http.services.{key}.loadbalancer.healthcheck.path"] = health_path
        rewritten[f"traefik.http.services.{key}.loadbalancer.healthcheck.interval"] = (
            format_duration(interval)
        )
        rewritten[f"traefik.http.services.{key}.loadbalancer.healthcheck.timeout"] = (
            format_duration(timeout)
        )
        rewritten[SLOT_LABEL] = slot

        return rewritten, _edge_routing(routers.get(edge_router or "", {}))


def _group_labels(labels: Dict[str, str], pattern: "re.Pattern[str]") -> Dict[str, Dict[str, str]]:
    """Router or service labels grouped by name, in order of first appearance."""
    grouped: Dict[str, Dict[str, str]] = {}
    for label, value in labels.items():
        match = pattern.match(label)
        if match:
            grouped.setdefault(match.group(1), {})[match.group(2)] = value
    return grouped


def _is_tls(attrs: Dict[str, str]) -> bool:
    return any(attr == "tls" or attr.startswith("tls.") for attr in attrs)


def _edge_router(routers: Dict[str, Dict[str, str]], service: str) -> Optional[str]:
    """
    The router facing clients over TLS.

    A plain HTTP companion router (typically a redirect to HTTPS) is never
    chosen while a TLS router exists.
    """
    secure = [name for name, attrs in routers.items() if _is_tls(attrs)]
    if secure:
        return service if service in secure else secure[0]
    if service in routers:
        return service
    return next(iter(routers), None)


def _slot_name(name: str, primary: Optional[str], service: str, key: str) -> str:
    """
    Slot-scoped name for a router or service.

    The primary one becomes the composite key. Others keep a distinct suffix:
    ``web-http`` becomes ``<key>-http``, an unrelated ``api`` becomes ``<key>-api``.
    """
    if name == primary or name == key:
        return key
    if name.startswith(key):
        return name
    if name.startswith(service):
        return key + name[len(service):]
    return f"{key}-{name}"


def _edge_routing(attrs: Dict[str, str]) -> EdgeRouting:
    values: Dict[str, Any] = {}
    if "entrypoints" in attrs:
        values["entrypoints"] = _split_list(attrs["entrypoints"])
    if "tls.certresolver" in attrs:
        values["cert_resolver"] = attrs["tls.certresolver"]
    if "middlewares" in attrs:
        values["middlewares"] = _split_list(attrs["middlewares"])
    return EdgeRouting(**values)
