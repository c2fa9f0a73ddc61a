"""Render generated configuration as Traefik file-provider input."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from traefik_proxmox_provider.models import Workload

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("json", "yaml")
FILE_PROVIDER_SUFFIXES = (".yml", ".yaml")


def render_payload(payload: dict[str, Any], fmt: str = "json") -> str:
    """Serialise a configuration payload as JSON or YAML."""
    if fmt == "json":
        return json.dumps(payload, indent=2) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)
    raise ValueError(f"unsupported output format {fmt!r} (expected one of {OUTPUT_FORMATS})")


def write_payload(payload: dict[str, Any], path: Path, fmt: str = "json") -> Path:
    """Write *payload* to *path* atomically so Traefik never reads a partial file."""
    content = render_payload(payload, fmt)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("Wrote %s", path)
    return path


def format_from_path(path: Path, default: str = "json") -> str:
    """Guess the output format from a file suffix."""
    suffix = path.suffix.lower()
    if suffix in (".yml", ".yaml"):
        return "yaml"
    if suffix == ".json":
        return "json"
    return default


def file_provider_format(path: Path) -> str:
    """Pick the format for a file watched by Traefik's file provider.

    The file provider only loads ``.yml``, ``.yaml`` and ``.toml`` files, so
    a ``.json`` target is refused.  Other suffixes get YAML and a warning.
    """
    suffix = path.suffix.lower()
    if suffix == ".json":
        raise ValueError(
            f"Traefik's file provider cannot load {path.name}; use a .yml or .yaml path"
        )
    if suffix not in FILE_PROVIDER_SUFFIXES:
        logger.warning(
            "Traefik's file provider ignores %s (expected %s); writing YAML anyway",
            path.name,
            " or ".join(FILE_PROVIDER_SUFFIXES),
        )
    return "yaml"


def workload_rows(workloads_by_node: dict[str, list[Workload]]) -> list[dict[str, str]]:
    """Flatten a discovery result into display rows (one per workload)."""
    rows: list[dict[str, str]] = []
    for node, workloads in workloads_by_node.items():
        for w in workloads:
            rows.append({
                "node": node,
                "id": str(w.id),
                "name": w.name,
                "kind": w.kind.value,
                "addresses": ", ".join(ip.address for ip in w.ips) or "-",
                "labels": str(len(w.labels)),
            })
    return rows
