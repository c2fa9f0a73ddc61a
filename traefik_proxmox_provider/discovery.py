"""Discover Traefik-enabled workloads across a Proxmox cluster.

Failures are scoped as narrowly as possible: a node that cannot be listed
is skipped, a guest whose configuration cannot be read is skipped, and a
guest whose addresses cannot be read is kept with no addresses (it will be
routed by DNS name).  Only failing to enumerate the nodes aborts the scan.
"""

from __future__ import annotations

import logging

import httpx

from traefik_proxmox_provider.labels import is_enabled, parse_labels
from traefik_proxmox_provider.models import IPAddress, Workload, WorkloadKind
from traefik_proxmox_provider.proxmox import ProxmoxClient
from traefik_proxmox_provider.resolver import LOOPBACK_ADDRESS

logger = logging.getLogger(__name__)

RUNNING_STATUS = "running"
IPV4_ADDRESS_TYPES = {"ipv4", "inet"}

# Transport failures and malformed (non-JSON) responses.
_API_ERRORS = (httpx.HTTPError, ValueError)


class DiscoveryError(RuntimeError):
    """Raised when the cluster cannot be enumerated at all."""


def get_workload_ips(
    client: ProxmoxClient, node: str, vmid: int, is_container: bool
) -> list[IPAddress]:
    """Return the usable IPv4 addresses reported for a guest.

    Raises ``httpx.HTTPError`` if the interfaces cannot be read.
    """
    if is_container:
        raw_ips = client.get_container_network_interfaces(node, vmid)
    else:
        raw_ips = client.get_vm_network_interfaces(node, vmid)

    ips = [
        ip
        for ip in raw_ips
        if ip.address_type in IPV4_ADDRESS_TYPES and ip.address != LOOPBACK_ADDRESS
    ]
    if not ips and client.debug:
        logger.debug(
            "No valid IPs found for %s/%d (container: %s). Raw IPs were: %s",
            node,
            vmid,
            is_container,
            [ip.address for ip in raw_ips],
        )
    return ips


def _scan_guests(client: ProxmoxClient, node: str, kind: WorkloadKind) -> list[Workload]:
    is_container = kind == WorkloadKind.CONTAINER
    label = "container" if is_container else "VM"
    guests = client.get_containers(node) if is_container else client.get_virtual_machines(node)

    workloads: list[Workload] = []
    for guest in guests:
        try:
            vmid = int(guest["vmid"])
        except (KeyError, TypeError, ValueError):
            logger.error("Skipping %s entry on node %s without a valid vmid: %s", label, node, guest)
            continue
        name = guest.get("name", "")
        status = guest.get("status", "")
        logger.debug("Scanning %s %s/%s (%d): %s", label, node, name, vmid, status)

        if status != RUNNING_STATUS:
            continue

        try:
            if is_container:
                guest_config = client.get_container_config(node, vmid)
            else:
                guest_config = client.get_vm_config(node, vmid)
        except _API_ERRORS as exc:
            logger.error("Error getting %s config for %s/%d: %s", label, node, vmid, exc)
            continue

        labels = parse_labels(guest_config.get("description"))
        if not is_enabled(labels):
            logger.info(
                "Skipping %s %s (%d) because traefik.enable is not true", label, name, vmid
            )
            continue

        logger.debug("%s %s (%d) traefik labels: %s", label, name, vmid, labels)
        workload = Workload(
            id=vmid,
            name=name,
            node=node,
            kind=kind,
            status=status,
            labels=labels,
        )

        try:
            workload.ips = get_workload_ips(client, node, vmid, is_container)
        except _API_ERRORS as exc:
            logger.debug("Error getting %s network interfaces for %s/%d: %s", label, node, vmid, exc)

        workloads.append(workload)

    return workloads


def scan_workloads(client: ProxmoxClient, node: str) -> list[Workload]:
    """Return the running, Traefik-enabled VMs and containers on *node*.

    Raises ``httpx.HTTPError`` if either guest list cannot be fetched.
    """
    return _scan_guests(client, node, WorkloadKind.VM) + _scan_guests(
        client, node, WorkloadKind.CONTAINER
    )


def get_workload_map(client: ProxmoxClient) -> dict[str, list[Workload]]:
    """Scan every node and return its workloads, keyed by node name."""
    try:
        nodes = client.get_nodes()
    except _API_ERRORS as exc:
        raise DiscoveryError(f"error scanning nodes: {exc}") from exc

    workloads_by_node: dict[str, list[Workload]] = {}
    for node_status in nodes:
        node = node_status.get("node")
        if not node:
            logger.error("Skipping node entry without a name: %s", node_status)
            continue
        try:
            workloads_by_node[node] = scan_workloads(client, node)
        except _API_ERRORS as exc:
            logger.error("Error scanning workloads on node %s: %s", node, exc)
            continue

    return workloads_by_node
