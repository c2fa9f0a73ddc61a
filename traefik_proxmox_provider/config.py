"""Provider configuration and settings."""

from __future__ import annotations

import os
import re

from pydantic import BaseModel, Field


DEFAULT_POLL_INTERVAL = "30s"
MIN_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_LOG_LEVEL = "info"

# Go-style duration units, expressed in seconds.
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """Parse a duration string such as ``30s``, ``1m30s`` or ``500ms``.

    Returns the duration in seconds.  A bare ``0`` is accepted; every other
    value needs a unit.  Raises ``ValueError`` for anything unparsable.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    if text == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


class Settings(BaseModel):
    """Runtime settings resolved from env vars and CLI flags."""

    # Polling
    poll_interval: str = Field(
        default_factory=lambda: os.environ.get("PROXMOX_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
        description="How often the cluster is scanned (e.g. 30s, 1m). Minimum 5s.",
    )

    # ── Proxmox API ──────────────────────────────────────────────────
    api_endpoint: str = Field(
        default_factory=lambda: os.environ.get("PROXMOX_API_ENDPOINT", ""),
        description="Proxmox API URL (e.g. https://pve.example.com:8006/api2/json).",
    )
    api_token_id: str = Field(
        default_factory=lambda: os.environ.get("PROXMOX_API_TOKEN_ID", ""),
        description="API token identifier (e.g. traefik@pve!provider).",
    )
    api_token: str = Field(
        default_factory=lambda: os.environ.get("PROXMOX_API_TOKEN", ""),
        description="API token secret.",
    )
    api_validate_ssl: bool = Field(
        default_factory=lambda: os.environ.get("PROXMOX_API_VALIDATE_SSL", "true").lower() != "false",
        description="Verify the TLS certificate presented by the Proxmox API.",
    )
    api_logging: str = Field(
        default_factory=lambda: os.environ.get("PROXMOX_API_LOGGING", DEFAULT_LOG_LEVEL),
        description="Client log verbosity: debug | info.",
    )

    # Output
    output_format: str = "json"  # json | yaml

    # Behaviour
    verbose: bool = False

    @property
    def poll_interval_seconds(self) -> float:
        return parse_duration(self.poll_interval)

    def validate_connection(self) -> None:
        if not self.poll_interval:
            raise ValueError("poll interval must be set")
        if not self.api_endpoint:
            raise ValueError(
                "API endpoint must be set. "
                "Export PROXMOX_API_ENDPOINT or pass --api-endpoint."
            )
        if not self.api_token_id:
            raise ValueError(
                "API token ID must be set. "
                "Export PROXMOX_API_TOKEN_ID or pass --api-token-id."
            )
        if not self.api_token:
            raise ValueError(
                "API token must be set. "
                "Export PROXMOX_API_TOKEN or pass --api-token."
            )

    def validate_poll_interval(self) -> float:
        """Return the poll interval in seconds, enforcing the 5 second minimum."""
        try:
            seconds = self.poll_interval_seconds
        except ValueError as exc:
            raise ValueError(f"invalid poll interval: {exc}") from exc
        if seconds < MIN_POLL_INTERVAL_SECONDS:
            raise ValueError(
                f"poll interval must be at least 5 seconds, got {self.poll_interval}"
            )
        return seconds
