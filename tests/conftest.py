"""Shared test fixtures."""

from __future__ import annotations

from typing import Callable
from unittest.mock import MagicMock

import pytest

from traefik_proxmox_provider.models import IPAddress, Workload, WorkloadKind
from traefik_proxmox_provider.proxmox import ProxmoxClient


@pytest.fixture()
def make_workload() -> Callable[..., Workload]:
    """Factory for workloads with one live address and the enable gate set."""

    def _make(
        labels: dict[str, str] | None = None,
        *,
        vmid: int = 100,
        name: str = "web",
        node: str = "pve1",
        ips: list[str] | None = None,
        kind: WorkloadKind = WorkloadKind.VM,
    ) -> Workload:
        all_labels = {"traefik.enable": "true"}
        all_labels.update(labels or {})
        addresses = ["10.0.0.5"] if ips is None else ips
        return Workload(
            id=vmid,
            name=name,
            node=node,
            kind=kind,
            labels=all_labels,
            ips=[IPAddress(address=a, address_type="ipv4") for a in addresses],
        )

    return _make


@pytest.fixture()
def mock_proxmox() -> MagicMock:
    """A ProxmoxClient stand-in with an empty cluster."""
    client = MagicMock(spec=ProxmoxClient)
    client.debug = False
    client.get_version.return_value = {"release": "8.1", "version": "8.1.4"}
    client.get_nodes.return_value = []
    client.get_virtual_machines.return_value = []
    client.get_containers.return_value = []
    client.get_vm_network_interfaces.return_value = []
    client.get_container_network_interfaces.return_value = []
    return client
