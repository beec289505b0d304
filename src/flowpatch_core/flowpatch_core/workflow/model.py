# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Helpers over the plain-data workflow snapshot.

A workflow is a ``dict`` with ``nodes`` (list of node dicts), ``connections``
(``source name -> category -> [branch] -> [{node, type, index}]``), ``name``,
``settings`` and ``tags``. Nodes are addressed by name; an id is accepted
wherever a reference is expected and falls back to a name lookup.
"""

from typing import Any, Dict, List, Mapping, Optional

from .errors import WorkflowShapeError


def check_shape(workflow: Any) -> None:
    """Raise ``WorkflowShapeError`` unless *workflow* looks like a workflow snapshot."""
    if not isinstance(workflow, Mapping):
        raise WorkflowShapeError(
            f"Workflow must be a mapping, got {type(workflow).__name__}"
        )
    if not isinstance(workflow.get("nodes"), list):
        raise WorkflowShapeError("Workflow must have a nodes array")
    connections = workflow.get("connections")
    if connections is not None and not isinstance(connections, Mapping):
        raise WorkflowShapeError("Workflow must have a connections object")


def get_nodes(workflow: Mapping[str, Any]) -> List[Dict[str, Any]]:
    return [n for n in workflow.get("nodes", []) if isinstance(n, dict)]


def get_connections(workflow: Mapping[str, Any]) -> Dict[str, Any]:
    connections = workflow.get("connections")
    return connections if isinstance(connections, dict) else {}


def find_node(workflow: Mapping[str, Any], ref: Optional[str]) -> Optional[Dict[str, Any]]:
    """Look a node up by id first, then by name."""
    if not ref:
        return None
    nodes = get_nodes(workflow)
    for node in nodes:
        if node.get("id") == ref:
            return node
    for node in nodes:
        if node.get("name") == ref:
            return node
    return None


def node_label(node_name: Optional[str], node_id: Optional[str]) -> str:
    return node_name or node_id or "<unnamed>"


# ── Connection map mutation ───────────────────────────────────────────────────


def add_edge(
    connections: Dict[str, Any],
    source: str,
    target: str,
    source_output: str,
    source_index: int,
    target_input: str,
    target_index: int,
) -> None:
    """Append one target to a branch, padding missing branches with empty lists."""
    branches = connections.setdefault(source, {}).setdefault(source_output, [])
    while len(branches) <= source_index:
        branches.append([])
    if branches[source_index] is None:
        branches[source_index] = []
    branches[source_index].append({"node": target, "type": target_input, "index": target_index})


def has_edge(
    connections: Mapping[str, Any],
    source: str,
    target: str,
    source_output: str,
    source_index: Optional[int] = None,
) -> bool:
    return bool(edge_positions(connections, source, target, source_output, source_index))


def edge_positions(
    connections: Mapping[str, Any],
    source: str,
    target: str,
    source_output: str,
    source_index: Optional[int] = None,
) -> List[int]:
    """Branch indices of *source* that carry an edge to *target*."""
    outputs = connections.get(source)
    if not isinstance(outputs, Mapping):
        return []
    branches = outputs.get(source_output)
    if not isinstance(branches, list):
        return []
    found = []
    for idx, targets in enumerate(branches):
        if source_index is not None and idx != source_index:
            continue
        if isinstance(targets, list) and any(
            isinstance(t, Mapping) and t.get("node") == target for t in targets
        ):
            found.append(idx)
    return found


def remove_edge(
    connections: Dict[str, Any],
    source: str,
    target: str,
    source_output: str,
    source_index: Optional[int] = None,
) -> int:
    """Remove edges from *source* to *target*; returns how many were removed."""
    removed = 0
    branches = connections.get(source, {}).get(source_output, [])
    for idx in edge_positions(connections, source, target, source_output, source_index):
        before = len(branches[idx])
        branches[idx] = [t for t in branches[idx] if not (isinstance(t, Mapping) and t.get("node") == target)]
        removed += before - len(branches[idx])
    prune(connections, source)
    return removed


def prune(connections: Dict[str, Any], source: str) -> None:
    """Drop trailing empty branches, then empty categories, then the empty source entry."""
    outputs = connections.get(source)
    if not isinstance(outputs, dict):
        return
    for category in list(outputs):
        branches = outputs[category]
        if not isinstance(branches, list):
            continue
        while branches and not branches[-1]:
            branches.pop()
        if not branches:
            del outputs[category]
    if not outputs:
        del connections[source]


def drop_node(connections: Dict[str, Any], name: str) -> int:
    """Remove every edge from or to *name*; returns the number of edges dropped."""
    dropped = 0
    outputs = connections.pop(name, None)
    if isinstance(outputs, Mapping):
        for branches in outputs.values():
            if isinstance(branches, list):
                dropped += sum(len(t) for t in branches if isinstance(t, list))
    for source in list(connections):
        outputs = connections[source]
        if not isinstance(outputs, Mapping):
            continue
        touched = False
        for branches in outputs.values():
            if not isinstance(branches, list):
                continue
            for idx, targets in enumerate(branches):
                if not isinstance(targets, list):
                    continue
                kept = [t for t in targets if not (isinstance(t, Mapping) and t.get("node") == name)]
                if len(kept) != len(targets):
                    dropped += len(targets) - len(kept)
                    branches[idx] = kept
                    touched = True
        if touched:
            prune(connections, source)
    return dropped


def rename_node(connections: Dict[str, Any], old: str, new: str) -> None:
    """Rewrite the source key and every target reference from *old* to *new*."""
    if old in connections:
        connections[new] = connections.pop(old)
    for outputs in connections.values():
        if not isinstance(outputs, Mapping):
            continue
        for branches in outputs.values():
            if not isinstance(branches, list):
                continue
            for targets in branches:
                if not isinstance(targets, list):
                    continue
                for target in targets:
                    if isinstance(target, dict) and target.get("node") == old:
                        target["node"] = new
