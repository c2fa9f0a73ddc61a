"""Provider lifecycle: construction checks and the supervised poll loop.

A ``Provider`` owns one background thread.  The thread produces an initial
snapshot, then one snapshot per poll interval, handing each payload to the
``emit`` callable passed to ``provide``.  Generation runs synchronously on
that single thread, so two snapshots are never built at the same time.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from traefik_proxmox_provider.builder import generate_configuration
from traefik_proxmox_provider.config import Settings
from traefik_proxmox_provider.discovery import get_workload_map
from traefik_proxmox_provider.proxmox import ProxmoxClient

logger = logging.getLogger(__name__)

Emitter = Callable[[dict[str, Any]], None]


class ProviderError(RuntimeError):
    """Raised when the provider cannot be started."""


def new_client(settings: Settings) -> ProxmoxClient:
    return ProxmoxClient(
        settings.api_endpoint,
        settings.api_token_id,
        settings.api_token,
        validate_ssl=settings.api_validate_ssl,
        log_level=settings.api_logging,
    )


def log_version(client: ProxmoxClient) -> str:
    """Probe the cluster and log its release.  Raises on any API failure."""
    version = client.get_version()
    release = version.get("release", "unknown")
    logger.info("Connected to Proxmox VE version %s", release)
    return release


class Provider:
    """Polls a Proxmox cluster and emits Traefik dynamic configuration.

    Parameters
    ----------
    settings : Settings
        Connection and polling settings.  Validated immediately.
    name : str
        Provider name, used in log messages.
    client : ProxmoxClient | None
        Pre-built client (mainly for tests).  Built from *settings* if None.
    """

    def __init__(
        self,
        settings: Settings,
        name: str = "proxmox",
        client: ProxmoxClient | None = None,
    ) -> None:
        settings.validate_connection()
        self.poll_interval = settings.validate_poll_interval()
        self.name = name
        owns_client = client is None
        self.client = new_client(settings) if owns_client else client

        try:
            log_version(self.client)
        except Exception as exc:
            if owns_client:
                self.client.close()
            raise ProviderError(f"failed to get Proxmox version: {exc}") from exc

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ── Snapshot ──────────────────────────────────────────────────────────

    def update_configuration(self, emit: Emitter) -> dict[str, Any]:
        """Discover workloads, generate one snapshot and hand it to *emit*.

        Raises ``DiscoveryError`` if the nodes cannot be enumerated; nothing
        is emitted in that case.
        """
        workloads_by_node = get_workload_map(self.client)
        payload = generate_configuration(workloads_by_node).to_payload()
        emit(payload)
        return payload

    def _supervised_update(self, emit: Emitter) -> None:
        def emit_unless_stopped(payload: dict[str, Any]) -> None:
            if self._stop.is_set():
                logger.debug("Provider %s stopped, dropping snapshot", self.name)
                return
            emit(payload)

        try:
            self.update_configuration(emit_unless_stopped)
        except Exception:
            logger.exception("Error updating configuration for provider %s", self.name)

    # ── Poll loop ─────────────────────────────────────────────────────────

    def _run(self, emit: Emitter) -> None:
        self._supervised_update(emit)
        while not self._stop.wait(self.poll_interval):
            self._supervised_update(emit)
        logger.info("Provider %s stopped", self.name)

    def provide(self, emit: Emitter) -> None:
        """Start polling in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            raise ProviderError(f"provider {self.name} is already running")
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(emit,),
            name=f"provider-{self.name}",
            daemon=True,
        )
        self._thread.start()
        logger.info("Provider %s polling every %.0fs", self.name, self.poll_interval)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stop(self) -> None:
        """Signal the poll loop to exit.  Already-emitted snapshots stand."""
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def close(self) -> None:
        self.stop()
        self.join()
        self.client.close()
