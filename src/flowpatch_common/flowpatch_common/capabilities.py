# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Read-only per-node-type capability metadata.

A ``CapabilityDescriptor`` tells the validator what a node type can do: which
output branches it declares, which resource/operation vocabulary it accepts,
and whether it may start a workflow, loop back on itself or be invoked as an
AI tool. Descriptors are served by a ``CapabilityProvider``; the bundled
provider is loaded from a YAML catalog.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

import yaml

from .constants import (
    LOOP_DONE_INDEX,
    LOOP_DONE_OUTPUT,
    LOOP_LOOP_INDEX,
    LOOP_LOOP_OUTPUT,
    MAIN_CATEGORY,
    NODE_TYPE_PREFIXES,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = os.path.join(os.path.dirname(__file__), "data", "catalog.yaml")


class CatalogError(ValueError):
    """Raised when a capability catalog cannot be parsed."""


def normalize_node_type(node_type: str) -> str:
    """Map the package-qualified spellings of a node type onto one key.

    ``n8n-nodes-base.webhook`` and ``nodes-base.webhook`` both become
    ``nodes-base.webhook``. Unqualified names are returned unchanged.
    """
    for long_prefix, short_prefix in NODE_TYPE_PREFIXES:
        if node_type.startswith(long_prefix):
            return short_prefix + node_type[len(long_prefix):]
    return node_type


@dataclass(frozen=True)
class OutputSlot:
    name: str
    index: int


@dataclass(frozen=True)
class CapabilityDescriptor:
    """What the validator knows about one node type."""

    node_type: str
    outputs: Tuple[OutputSlot, ...] = (OutputSlot(MAIN_CATEGORY, 0),)
    known_resources: Tuple[str, ...] = ()
    operations_by_resource: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    trigger: bool = False
    loop: bool = False
    tool: bool = False
    max_version: Optional[float] = None

    def output_index(self, name: str) -> Optional[int]:
        for slot in self.outputs:
            if slot.name == name:
                return slot.index
        return None

    @property
    def loop_index(self) -> int:
        idx = self.output_index(LOOP_LOOP_OUTPUT)
        return LOOP_LOOP_INDEX if idx is None else idx

    @property
    def done_index(self) -> int:
        idx = self.output_index(LOOP_DONE_OUTPUT)
        return LOOP_DONE_INDEX if idx is None else idx

    def operations_for(self, resource: Optional[str] = None) -> List[str]:
        """Operations valid for *resource*, or for every resource when it is unknown."""
        if resource is not None and resource in self.operations_by_resource:
            return list(self.operations_by_resource[resource])
        merged: List[str] = []
        for ops in self.operations_by_resource.values():
            for op in ops:
                if op not in merged:
                    merged.append(op)
        return merged


class CapabilityProvider(Protocol):
    def get_capability(self, node_type: str) -> Optional[CapabilityDescriptor]:
        ...

    def node_types(self) -> List[str]:
        ...


class StaticCapabilityProvider:
    """In-memory provider over a fixed set of descriptors."""

    def __init__(self, descriptors: Iterable[CapabilityDescriptor]):
        self._descriptors: Dict[str, CapabilityDescriptor] = {}
        for descriptor in descriptors:
            self._descriptors[normalize_node_type(descriptor.node_type)] = descriptor

    def get_capability(self, node_type: str) -> Optional[CapabilityDescriptor]:
        if not isinstance(node_type, str):
            return None
        return self._descriptors.get(normalize_node_type(node_type))

    def node_types(self) -> List[str]:
        return sorted(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, node_type: object) -> bool:
        return isinstance(node_type, str) and normalize_node_type(node_type) in self._descriptors


# ── Catalog loading ───────────────────────────────────────────────────────────


def _str_list(value: Any, where: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise CatalogError(f"{where} must be a list of strings")
    return tuple(value)


def descriptor_from_dict(node_type: str, entry: Optional[Dict[str, Any]]) -> CapabilityDescriptor:
    """Build a descriptor from one catalog entry.

    Recognised keys: ``outputs`` (list of branch names), ``resources``
    (mapping of resource name to its operations), ``trigger``, ``loop``,
    ``tool`` and ``max_version``.
    """
    entry = entry or {}
    if not isinstance(entry, dict):
        raise CatalogError(f"Catalog entry for '{node_type}' must be a mapping")

    unknown = set(entry) - {"outputs", "resources", "trigger", "loop", "tool", "max_version"}
    if unknown:
        raise CatalogError(
            f"Catalog entry for '{node_type}' has unknown keys: {', '.join(sorted(unknown))}"
        )

    output_names = _str_list(entry.get("outputs"), f"'{node_type}'.outputs")
    outputs = tuple(OutputSlot(name, i) for i, name in enumerate(output_names))
    if not outputs:
        outputs = (OutputSlot(MAIN_CATEGORY, 0),)

    resources = entry.get("resources") or {}
    if not isinstance(resources, dict):
        raise CatalogError(f"'{node_type}'.resources must be a mapping")
    operations_by_resource = {
        str(res): _str_list(ops, f"'{node_type}'.resources.{res}") for res, ops in resources.items()
    }

    flags = {}
    for flag in ("trigger", "loop", "tool"):
        value = entry.get(flag, False)
        if not isinstance(value, bool):
            raise CatalogError(f"'{node_type}'.{flag} must be a boolean")
        flags[flag] = value

    max_version = entry.get("max_version")
    if max_version is not None and (
        isinstance(max_version, bool) or not isinstance(max_version, (int, float))
    ):
        raise CatalogError(f"'{node_type}'.max_version must be a number")

    return CapabilityDescriptor(
        node_type=normalize_node_type(node_type),
        outputs=outputs,
        known_resources=tuple(operations_by_resource),
        operations_by_resource=operations_by_resource,
        max_version=max_version,
        **flags,
    )


def load_catalog(path: str) -> StaticCapabilityProvider:
    """Load a YAML capability catalog into a ``StaticCapabilityProvider``."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid YAML in capability catalog {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("node_types"), dict):
        raise CatalogError(f"Capability catalog {path} must have a 'node_types' mapping")

    descriptors = [descriptor_from_dict(str(k), v) for k, v in data["node_types"].items()]
    LOGGER.debug("Loaded %d node types from %s", len(descriptors), path)
    return StaticCapabilityProvider(descriptors)


_default_provider: Optional[StaticCapabilityProvider] = None


def default_provider() -> StaticCapabilityProvider:
    """Return the provider for the bundled catalog, loading it on first use."""
    global _default_provider
    if _default_provider is None:
        _default_provider = load_catalog(DEFAULT_CATALOG_PATH)
    return _default_provider
