"""Proxmox VE HTTP API client.

Talks to the ``/api2/json`` REST API using an API token.  Only the read
calls needed for workload discovery are implemented:

  • cluster version (startup probe)
  • nodes, QEMU virtual machines and LXC containers per node
  • guest configuration (whose ``description`` carries the Traefik labels)
  • reported network interfaces (QEMU guest agent / LXC interfaces)
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from traefik_proxmox_provider.models import IPAddress

logger = logging.getLogger(__name__)

_TIMEOUT = httpx.Timeout(10.0, connect=5.0)

LOG_LEVEL_DEBUG = "debug"
LOG_LEVEL_INFO = "info"


class ProxmoxClient:
    """Lightweight Proxmox VE API client.

    Parameters
    ----------
    endpoint : str
        API base URL (e.g. ``https://pve.example.com:8006/api2/json``).
    token_id : str
        API token identifier in ``user@realm!name`` form.
    token : str
        API token secret.
    validate_ssl : bool
        Verify the server certificate (default: True).
    log_level : str
        ``debug`` logs every request and extra discovery detail.
    """

    def __init__(
        self,
        endpoint: str,
        token_id: str,
        token: str,
        *,
        validate_ssl: bool = True,
        log_level: str = LOG_LEVEL_INFO,
    ) -> None:
        self.base_url = endpoint.rstrip("/")
        self.log_level = log_level.lower()
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"PVEAPIToken={token_id}={token}"},
            timeout=_TIMEOUT,
            verify=validate_ssl,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ProxmoxClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def debug(self) -> bool:
        return self.log_level == LOG_LEVEL_DEBUG

    # ── Raw helpers ───────────────────────────────────────────────────────

    def _get(self, path: str) -> Any:
        """Execute a GET request and unwrap Proxmox's ``{"data": ...}`` envelope.

        Raises ``httpx.HTTPStatusError`` on non-2xx responses.
        """
        if self.debug:
            logger.debug("GET %s%s", self.base_url, path)
        resp = self._client.get(path)
        resp.raise_for_status()
        return resp.json().get("data")

    # ── Cluster ───────────────────────────────────────────────────────────

    def get_version(self) -> dict[str, Any]:
        """Return ``{"release": ..., "version": ..., "repoid": ...}``."""
        return self._get("/version") or {}

    def get_nodes(self) -> list[dict[str, Any]]:
        """List cluster nodes.  Each entry has at least ``node`` and ``status``."""
        return self._get("/nodes") or []

    # ── Guests ────────────────────────────────────────────────────────────

    def get_virtual_machines(self, node: str) -> list[dict[str, Any]]:
        """List QEMU guests on *node* (``vmid``, ``name``, ``status``)."""
        return self._get(f"/nodes/{node}/qemu") or []

    def get_containers(self, node: str) -> list[dict[str, Any]]:
        """List LXC guests on *node* (``vmid``, ``name``, ``status``)."""
        return self._get(f"/nodes/{node}/lxc") or []

    def get_vm_config(self, node: str, vmid: int) -> dict[str, Any]:
        return self._get(f"/nodes/{node}/qemu/{vmid}/config") or {}

    def get_container_config(self, node: str, vmid: int) -> dict[str, Any]:
        return self._get(f"/nodes/{node}/lxc/{vmid}/config") or {}

    # ── Network ───────────────────────────────────────────────────────────

    def get_vm_network_interfaces(self, node: str, vmid: int) -> list[IPAddress]:
        """Addresses reported by the QEMU guest agent.  Requires a running agent."""
        data = self._get(f"/nodes/{node}/qemu/{vmid}/agent/network-get-interfaces") or {}
        return parse_agent_interfaces(data)

    def get_container_network_interfaces(self, node: str, vmid: int) -> list[IPAddress]:
        """Addresses reported for a running LXC container."""
        data = self._get(f"/nodes/{node}/lxc/{vmid}/interfaces") or []
        return parse_container_interfaces(data)


def _strip_prefix(address: str) -> str:
    return address.split("/", 1)[0]


def parse_agent_interfaces(data: dict[str, Any]) -> list[IPAddress]:
    """Flatten a guest-agent ``network-get-interfaces`` result into addresses."""
    ips: list[IPAddress] = []
    for iface in data.get("result", []):
        for entry in iface.get("ip-addresses", []):
            address = entry.get("ip-address", "")
            if not address:
                continue
            ips.append(
                IPAddress(
                    address=_strip_prefix(address),
                    address_type=entry.get("ip-address-type", ""),
                )
            )
    return ips


def parse_container_interfaces(data: list[dict[str, Any]]) -> list[IPAddress]:
    """Flatten LXC ``interfaces`` entries (``inet``/``inet6`` in CIDR form)."""
    ips: list[IPAddress] = []
    for iface in data:
        for family in ("inet", "inet6"):
            address = iface.get(family, "")
            if address:
                ips.append(IPAddress(address=_strip_prefix(address), address_type=family))
    return ips
