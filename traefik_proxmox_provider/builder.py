"""Build the dynamic configuration from discovered workloads.

Every workload's labels are decoded into a fresh configuration, merged into
the snapshot aggregate, and then enriched per protocol: missing routers and
services are synthesized, unset fields get defaults, and servers without an
endpoint are resolved.

The three protocols share one pipeline, parameterised by a ``ProtocolPolicy``:

========  ===============================  ==================  ========
protocol  defaults created                 rule                priority
========  ===============================  ==================  ========
http      router + service, always         Host(`<name>`)      1
tcp       service, only if routers exist   HostSNI(`*`)        1
udp       service, only if routers exist   (none)              (none)
========  ===============================  ==================  ========
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from traefik_proxmox_provider.labels import (
    PROTOCOLS,
    LabelDecodeError,
    decode_labels,
    get_defined_elements,
)
from traefik_proxmox_provider.models import (
    Configuration,
    HTTPConfiguration,
    Router,
    Server,
    ServersLoadBalancer,
    Service,
    TCPConfiguration,
    TCPRouter,
    TCPServer,
    TCPServersLoadBalancer,
    TCPService,
    UDPConfiguration,
    UDPRouter,
    UDPServer,
    UDPServersLoadBalancer,
    UDPService,
    Workload,
)
from traefik_proxmox_provider.resolver import resolve_http_url, resolve_stream_address

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 1
DEFAULT_PASS_HOST_HEADER = True


class ServiceSynthesis(str, Enum):
    """When a protocol synthesizes default elements for a workload."""

    ALWAYS = "always"
    ONLY_IF_ROUTERS_EXIST = "only-if-routers-exist"


@dataclass(frozen=True)
class ProtocolPolicy:
    """Defaulting rules for one protocol section."""

    protocol: str
    router_factory: Callable[[], Any]
    service_factory: Callable[[], Any]
    load_balancer_factory: Callable[[], Any]
    server_factory: Callable[[], Any]
    service_synthesis: ServiceSynthesis
    resolve_server: Callable[[ProtocolPolicy, Workload, str, str, Any], None]
    default_rule: Callable[[Workload], str] | None = None
    has_priority: bool = False
    pass_host_header: bool | None = None


# ── Server resolution ─────────────────────────────────────────────────────


def _resolve_http_server(
    policy: ProtocolPolicy, workload: Workload, node: str, service_name: str, server: Server
) -> None:
    if not server.url:
        server.url = resolve_http_url(workload, server, node)


def _resolve_stream_server(
    policy: ProtocolPolicy,
    workload: Workload,
    node: str,
    service_name: str,
    server: TCPServer | UDPServer,
) -> None:
    if server.address:
        return
    address = resolve_stream_address(workload, node, server.port)
    if address is None:
        logger.warning(
            "%s server for service %s (workload %s, ID: %d) has no port defined. "
            "Skipping address construction.",
            policy.protocol.upper(),
            service_name,
            workload.name,
            workload.id,
        )
        return
    server.address = address


def _host_rule(workload: Workload) -> str:
    return f"Host(`{workload.name}`)"


def _host_sni_rule(workload: Workload) -> str:
    return "HostSNI(`*`)"


HTTP_POLICY = ProtocolPolicy(
    protocol="http",
    router_factory=Router,
    service_factory=Service,
    load_balancer_factory=ServersLoadBalancer,
    server_factory=Server,
    service_synthesis=ServiceSynthesis.ALWAYS,
    resolve_server=_resolve_http_server,
    default_rule=_host_rule,
    has_priority=True,
    pass_host_header=DEFAULT_PASS_HOST_HEADER,
)

TCP_POLICY = ProtocolPolicy(
    protocol="tcp",
    router_factory=TCPRouter,
    service_factory=TCPService,
    load_balancer_factory=TCPServersLoadBalancer,
    server_factory=TCPServer,
    service_synthesis=ServiceSynthesis.ONLY_IF_ROUTERS_EXIST,
    resolve_server=_resolve_stream_server,
    default_rule=_host_sni_rule,
    has_priority=True,
)

UDP_POLICY = ProtocolPolicy(
    protocol="udp",
    router_factory=UDPRouter,
    service_factory=UDPService,
    load_balancer_factory=UDPServersLoadBalancer,
    server_factory=UDPServer,
    service_synthesis=ServiceSynthesis.ONLY_IF_ROUTERS_EXIST,
    resolve_server=_resolve_stream_server,
)


# ── Per-protocol enrichment ───────────────────────────────────────────────


def enrich_section(section: Any, workload: Workload, node: str, policy: ProtocolPolicy) -> None:
    """Synthesize missing elements and fill defaults for one protocol section."""
    defined_routers = get_defined_elements(workload.labels, policy.protocol, "routers")
    defined_services = get_defined_elements(workload.labels, policy.protocol, "services")
    default_id = workload.default_id

    if policy.service_synthesis is ServiceSynthesis.ALWAYS:
        if not defined_routers:
            section.routers[default_id] = policy.router_factory()
            defined_routers.append(default_id)
        if not defined_services:
            section.services[default_id] = policy.service_factory()
            defined_services.append(default_id)
    elif defined_routers and not defined_services:
        section.services[default_id] = policy.service_factory()
        defined_services.append(default_id)

    for router_name in defined_routers:
        router = section.routers.get(router_name)
        if router is None:
            logger.debug("%s router %s is declared but was not decoded", policy.protocol, router_name)
            continue

        # Link to the first service of this workload when none was given.
        if not router.service and defined_services:
            router.service = defined_services[0]
        if policy.default_rule is not None and not router.rule:
            router.rule = policy.default_rule(workload)
        if policy.has_priority and router.priority is None:
            router.priority = DEFAULT_PRIORITY

    for service_name in defined_services:
        service = section.services.get(service_name)
        if service is None:
            logger.debug("%s service %s is declared but was not decoded", policy.protocol, service_name)
            continue

        if service.load_balancer is None:
            service.load_balancer = policy.load_balancer_factory()
        load_balancer = service.load_balancer
        if policy.pass_host_header is not None and load_balancer.pass_host_header is None:
            load_balancer.pass_host_header = policy.pass_host_header
        if not load_balancer.servers:
            load_balancer.servers.append(policy.server_factory())

        for server in load_balancer.servers:
            policy.resolve_server(policy, workload, node, service_name, server)


def build_http_configuration(http_config: HTTPConfiguration, workload: Workload, node: str) -> None:
    """Create default HTTP routers/services and enrich existing ones."""
    enrich_section(http_config, workload, node, HTTP_POLICY)


def build_tcp_configuration(tcp_config: TCPConfiguration, workload: Workload, node: str) -> None:
    """Enrich TCP routers/services; a default service only backs declared routers."""
    enrich_section(tcp_config, workload, node, TCP_POLICY)


def build_udp_configuration(udp_config: UDPConfiguration, workload: Workload, node: str) -> None:
    """Enrich UDP routers/services; a default service only backs declared routers."""
    enrich_section(udp_config, workload, node, UDP_POLICY)


# ── Assembly ──────────────────────────────────────────────────────────────


def merge_configuration(target: Configuration, source: Configuration, origin: str = "") -> list[str]:
    """Merge *source* into *target*, element by element.

    Identifiers are global across a snapshot.  When *source* redefines an
    identifier already present in *target* the later definition wins; each
    such overwrite is logged and returned as ``protocol.collection.name``.
    """
    conflicts: list[str] = []
    for protocol in PROTOCOLS:
        dst = target.section(protocol)
        src = source.section(protocol)
        for collection in type(src).model_fields:
            existing = getattr(dst, collection)
            for name, element in getattr(src, collection).items():
                if name in existing:
                    ref = f"{protocol}.{collection}.{name}"
                    logger.warning(
                        "Conflicting definition of %s from %s overwrites an earlier workload",
                        ref,
                        origin or "unknown workload",
                    )
                    conflicts.append(ref)
                existing[name] = element
    return conflicts


def generate_configuration(workloads_by_node: dict[str, list[Workload]]) -> Configuration:
    """Create the dynamic configuration for every discovered workload."""
    config = Configuration()

    for node_name, workloads in workloads_by_node.items():
        for workload in workloads:
            logger.info(
                "Processing workload %s (ID: %d) on node %s", workload.name, workload.id, node_name
            )

            try:
                decoded = decode_labels(workload.labels)
            except LabelDecodeError as exc:
                logger.error(
                    "Could not decode labels for workload %s (ID: %d) on node %s: %s",
                    workload.name,
                    workload.id,
                    node_name,
                    exc,
                )
                continue

            merge_configuration(config, decoded, origin=f"{node_name}/{workload.name}")

            build_http_configuration(config.http, workload, node_name)
            build_tcp_configuration(config.tcp, workload, node_name)
            build_udp_configuration(config.udp, workload, node_name)

    logger.info("Generated configuration: %s", config.summary())
    return config
