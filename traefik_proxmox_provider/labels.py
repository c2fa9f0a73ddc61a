"""Traefik label handling: notes parsing, element discovery and decoding.

Labels live in the workload notes (the Proxmox ``description`` field), one
``key=value`` pair per line::

    traefik.enable=true
    traefik.http.routers.web.rule=Host(`web.example.com`)
    traefik.http.services.web.loadbalancer.server.port=8080

``decode_labels`` turns such a flat mapping into a fresh ``Configuration``.
Field names are matched case-insensitively; router, service and middleware
identifiers keep the case they were written with.
"""

from __future__ import annotations

import logging
import types
from functools import lru_cache
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from traefik_proxmox_provider.models import (
    Configuration,
    Router,
    Service,
    TCPRouter,
    TCPService,
    UDPRouter,
    UDPService,
)

logger = logging.getLogger(__name__)

LABEL_NAMESPACE = "traefik"
ENABLE_LABEL = "traefik.enable"
PROTOCOLS = ("http", "tcp", "udp")

# Typed elements per (protocol, collection).  HTTP middlewares stay opaque.
_ELEMENT_MODELS: dict[tuple[str, str], type[BaseModel]] = {
    ("http", "routers"): Router,
    ("http", "services"): Service,
    ("tcp", "routers"): TCPRouter,
    ("tcp", "services"): TCPService,
    ("udp", "routers"): UDPRouter,
    ("udp", "services"): UDPService,
}
_OPAQUE_COLLECTIONS = {("http", "middlewares")}


class LabelDecodeError(ValueError):
    """Raised when a workload's labels cannot be mapped onto the configuration."""


# ── Notes parsing ─────────────────────────────────────────────────────────


def parse_labels(description: str | None) -> dict[str, str]:
    """Extract ``traefik.*`` labels from a workload's notes.

    Blank lines, ``#`` comments and lines without ``=`` are ignored.  Values
    may themselves contain ``=``.  A key repeated later in the notes wins.
    """
    labels: dict[str, str] = {}
    if not description:
        return labels

    for raw_line in description.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        lowered = key.lower()
        if lowered != LABEL_NAMESPACE and not lowered.startswith(LABEL_NAMESPACE + "."):
            continue
        labels[key] = value.strip()
    return labels


def is_enabled(labels: dict[str, str]) -> bool:
    """True when the gate label is present and exactly ``"true"``."""
    return labels.get(ENABLE_LABEL) == "true"


# ── Element discovery ─────────────────────────────────────────────────────


def get_defined_elements(labels: dict[str, str], protocol: str, element_type: str) -> list[str]:
    """Return the router or service identifiers declared in *labels*.

    Scans for ``traefik.<protocol>.<element_type>.<id>.…`` and collects each
    distinct ``<id>``, regardless of which attributes were set on it.  The
    result is sorted so that "first declared" linkage is reproducible.
    """
    prefix = f"{LABEL_NAMESPACE}.{protocol}.{element_type}.".lower()
    names: set[str] = set()
    for key in labels:
        if not key.lower().startswith(prefix):
            continue
        name = key[len(prefix):].split(".")[0]
        if name:
            names.add(name)
    return sorted(names)


# ── Decoding ──────────────────────────────────────────────────────────────


def _model_type(annotation: Any) -> type[BaseModel] | None:
    """Find the pydantic model inside ``X``, ``X | None`` or ``list[X]``."""
    if (
        get_origin(annotation) is None
        and isinstance(annotation, type)
        and issubclass(annotation, BaseModel)
    ):
        return annotation
    for arg in get_args(annotation):
        found = _model_type(arg)
        if found is not None:
            return found
    return None


def _is_list(annotation: Any) -> bool:
    if get_origin(annotation) is list:
        return True
    if get_origin(annotation) in (Union, types.UnionType):
        return any(_is_list(arg) for arg in get_args(annotation))
    return False


@lru_cache(maxsize=None)
def _label_fields(model_cls: type[BaseModel]) -> dict[str, str]:
    """Map lower-case label segments to field names for *model_cls*."""
    names: dict[str, str] = {}
    for field_name, info in model_cls.model_fields.items():
        names[field_name.replace("_", "")] = field_name
        extra = info.json_schema_extra
        if isinstance(extra, dict) and "label" in extra:
            names[str(extra["label"])] = field_name
    return names


def _to_model_data(model_cls: type[BaseModel], tree: dict[str, Any], path: str) -> dict[str, Any]:
    fields = _label_fields(model_cls)
    data: dict[str, Any] = {}

    for key, value in tree.items():
        field_name = fields.get(key)
        if field_name is None:
            raise LabelDecodeError(f"field not found, node: {path}.{key}")

        annotation = model_cls.model_fields[field_name].annotation
        nested = _model_type(annotation)
        if nested is None:
            if isinstance(value, dict):
                raise LabelDecodeError(f"{path}.{key} expects a value, not nested labels")
            data[field_name] = value
            continue

        if isinstance(value, str):
            # ``tls=true`` enables an empty block, ``tls=false`` leaves it unset.
            flag = value.strip().lower()
            if flag == "false":
                continue
            if flag != "true":
                raise LabelDecodeError(f"{path}.{key} expects nested labels, got {value!r}")
            value = {}

        converted = _to_model_data(nested, value, f"{path}.{key}")
        data[field_name] = [converted] if _is_list(annotation) else converted

    return data


def _insert(node: dict[str, Any], parts: list[str], value: str) -> None:
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            # A bare leaf such as ``tls=true`` turns into a block once it has children.
            child = {}
            node[part] = child
        node = child
    if isinstance(node.get(parts[-1]), dict):
        return
    node[parts[-1]] = value


def _build_tree(labels: dict[str, str]) -> dict[tuple[str, str], dict[str, dict[str, Any]]]:
    """Group labels by (protocol, collection) → identifier → nested attributes."""
    tree: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
    namespace_prefix = LABEL_NAMESPACE + "."

    for key, value in labels.items():
        if not key.lower().startswith(namespace_prefix):
            continue
        parts = key[len(namespace_prefix):].split(".")
        if any(not part for part in parts):
            raise LabelDecodeError(f"malformed label key {key!r}")
        if key.lower() == ENABLE_LABEL:
            continue

        protocol = parts[0].lower()
        if protocol not in PROTOCOLS:
            raise LabelDecodeError(f"field not found, node: {parts[0]}")
        if len(parts) < 4:
            raise LabelDecodeError(f"incomplete label key {key!r}")

        collection = parts[1].lower()
        slot = (protocol, collection)
        if slot not in _ELEMENT_MODELS and slot not in _OPAQUE_COLLECTIONS:
            raise LabelDecodeError(f"field not found, node: {protocol}.{parts[1]}")

        name = parts[2]
        attributes = parts[3:]
        if slot in _ELEMENT_MODELS:
            attributes = [part.lower() for part in attributes]
        element = tree.setdefault(slot, {}).setdefault(name, {})
        _insert(element, attributes, value)

    return tree


def decode_labels(labels: dict[str, str]) -> Configuration:
    """Decode a workload's flat labels into a fresh ``Configuration``.

    Raises ``LabelDecodeError`` for unknown fields, unknown protocols or
    values that do not fit the target field type.
    """
    config = Configuration()

    for (protocol, collection), elements in _build_tree(labels).items():
        target = getattr(config.section(protocol), collection)
        for name, attributes in elements.items():
            path = f"{protocol}.{collection}.{name}"
            if (protocol, collection) in _OPAQUE_COLLECTIONS:
                target[name] = attributes
                continue

            model_cls = _ELEMENT_MODELS[(protocol, collection)]
            data = _to_model_data(model_cls, attributes, path)
            try:
                target[name] = model_cls.model_validate(data)
            except ValidationError as exc:
                raise LabelDecodeError(f"invalid value for {path}: {exc}") from exc

    logger.debug("Decoded labels: %s", config.summary())
    return config
