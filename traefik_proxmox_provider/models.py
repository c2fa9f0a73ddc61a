"""Pydantic models for Proxmox workloads and Traefik dynamic configuration."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ──────────────────────────── Proxmox Workloads ───────────────────────────────


class WorkloadKind(str, Enum):
    """The Proxmox guest type backing a workload."""

    VM = "qemu"
    CONTAINER = "lxc"


class IPAddress(BaseModel):
    """A network address reported for a workload."""

    address: str
    address_type: str = Field(default="ipv4", description="ipv4 | ipv6 | inet | inet6")


class Workload(BaseModel):
    """A running VM or container discovered on a cluster node."""

    id: int
    name: str
    node: str = ""
    kind: WorkloadKind = WorkloadKind.VM
    status: str = "running"
    labels: dict[str, str] = Field(default_factory=dict)
    ips: list[IPAddress] = Field(default_factory=list)

    @property
    def default_id(self) -> str:
        """Identifier used for routers/services synthesized for this workload."""
        return f"{self.name}-{self.id}"

    @property
    def is_container(self) -> bool:
        return self.kind == WorkloadKind.CONTAINER


# ──────────────────────────── Dynamic Configuration ───────────────────────────


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


CommaList = Annotated[list[str], BeforeValidator(_split_csv)]


class DynamicModel(BaseModel):
    """Base for Traefik configuration elements (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# HTTP


class RouterTLSConfig(DynamicModel):
    options: str | None = None
    cert_resolver: str | None = None


class Router(DynamicModel):
    entry_points: CommaList | None = None
    middlewares: CommaList | None = None
    service: str | None = None
    rule: str | None = None
    priority: int | None = None
    tls: RouterTLSConfig | None = None


class Server(DynamicModel):
    """An HTTP backend.  ``scheme`` and ``port`` are resolution hints only."""

    url: str | None = None
    scheme: str | None = Field(default=None, exclude=True)
    port: str | None = Field(default=None, exclude=True)


class ServersLoadBalancer(DynamicModel):
    servers: list[Server] = Field(
        default_factory=list,
        json_schema_extra={"label": "server"},
    )
    pass_host_header: bool | None = None


class Service(DynamicModel):
    load_balancer: ServersLoadBalancer | None = None


class HTTPConfiguration(DynamicModel):
    routers: dict[str, Router] = Field(default_factory=dict)
    services: dict[str, Service] = Field(default_factory=dict)
    # Opaque: passed through exactly as decoded from labels.
    middlewares: dict[str, dict[str, Any]] = Field(default_factory=dict)


# TCP


class RouterTCPTLSConfig(DynamicModel):
    passthrough: bool | None = None
    options: str | None = None
    cert_resolver: str | None = None


class TCPRouter(DynamicModel):
    entry_points: CommaList | None = None
    middlewares: CommaList | None = None
    service: str | None = None
    rule: str | None = None
    priority: int | None = None
    tls: RouterTCPTLSConfig | None = None


class TCPServer(DynamicModel):
    address: str | None = None
    port: str | None = Field(default=None, exclude=True)


class TCPServersLoadBalancer(DynamicModel):
    servers: list[TCPServer] = Field(
        default_factory=list,
        json_schema_extra={"label": "server"},
    )


class TCPService(DynamicModel):
    load_balancer: TCPServersLoadBalancer | None = None


class TCPConfiguration(DynamicModel):
    routers: dict[str, TCPRouter] = Field(default_factory=dict)
    services: dict[str, TCPService] = Field(default_factory=dict)


# UDP


class UDPRouter(DynamicModel):
    entry_points: CommaList | None = None
    service: str | None = None


class UDPServer(DynamicModel):
    address: str | None = None
    port: str | None = Field(default=None, exclude=True)


class UDPServersLoadBalancer(DynamicModel):
    servers: list[UDPServer] = Field(
        default_factory=list,
        json_schema_extra={"label": "server"},
    )


class UDPService(DynamicModel):
    load_balancer: UDPServersLoadBalancer | None = None


class UDPConfiguration(DynamicModel):
    routers: dict[str, UDPRouter] = Field(default_factory=dict)
    services: dict[str, UDPService] = Field(default_factory=dict)


class Configuration(DynamicModel):
    """The complete dynamic configuration generated for one poll cycle."""

    http: HTTPConfiguration = Field(default_factory=HTTPConfiguration)
    tcp: TCPConfiguration = Field(default_factory=TCPConfiguration)
    udp: UDPConfiguration = Field(default_factory=UDPConfiguration)

    def section(self, protocol: str) -> HTTPConfiguration | TCPConfiguration | UDPConfiguration:
        return getattr(self, protocol)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-serialisable payload handed to Traefik."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def summary(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for protocol in ("http", "tcp", "udp"):
            section = self.section(protocol)
            counts[f"{protocol}_routers"] = len(section.routers)
            counts[f"{protocol}_services"] = len(section.services)
        return counts
