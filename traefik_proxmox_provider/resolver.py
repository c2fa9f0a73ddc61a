"""Resolve concrete network endpoints for workload servers.

Resolution is two-tiered: the first usable address reported by the guest
(agent or container interfaces) wins; failing that, a DNS-style name
``<workload>.<node>`` is used and a warning is logged.  Neither tier raises.
"""

from __future__ import annotations

import logging

from traefik_proxmox_provider.models import Server, Workload

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESS = "127.0.0.1"


def resolve_address(workload: Workload, node: str) -> str:
    """Return the best host for *workload*, falling back to ``<name>.<node>``."""
    for ip in workload.ips:
        if ip.address and ip.address != LOOPBACK_ADDRESS:
            return ip.address

    fallback = f"{workload.name}.{node}"
    logger.warning(
        "No valid IP found for %s (ID: %d) on node %s. "
        "Falling back to hostname '%s'. Ensure DNS is configured.",
        workload.name,
        workload.id,
        node,
        fallback,
    )
    return fallback


def resolve_http_url(workload: Workload, server: Server, node: str) -> str:
    """Build ``scheme://host:port`` for an HTTP server.

    Defaults to ``http`` on port 80.  A scheme hint of exactly ``https``
    switches to ``https`` on 443; any other hint is ignored.  A port hint
    overrides whichever port the scheme picked.
    """
    scheme = "http"
    port = "80"

    if server.scheme == "https":
        scheme = "https"
        port = "443"

    if server.port:
        port = server.port

    return f"{scheme}://{resolve_address(workload, node)}:{port}"


def resolve_stream_address(workload: Workload, node: str, port: str | None) -> str | None:
    """Build ``host:port`` for a TCP/UDP server, or None when no port is known."""
    if not port:
        return None
    return f"{resolve_address(workload, node)}:{port}"
