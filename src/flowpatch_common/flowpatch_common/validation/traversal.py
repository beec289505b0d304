# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Adjacency views and bounded traversal over a workflow connection map.

Connections are stored as ``source name -> category -> [branch] -> [target]``.
The helpers here only read well-formed entries; reporting malformed ones is
the validator's job.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Set


class Edge(NamedTuple):
    source: str
    category: str
    branch: int
    target: str
    target_input: str
    target_index: int


def iter_edges(connections: Any) -> Iterator[Edge]:
    """Yield every well-formed edge of *connections* in storage order."""
    if not isinstance(connections, Mapping):
        return
    for source, outputs in connections.items():
        if not isinstance(outputs, Mapping):
            continue
        for category, branches in outputs.items():
            if not isinstance(branches, list):
                continue
            for branch, targets in enumerate(branches):
                if not isinstance(targets, list):
                    continue
                for target in targets:
                    if not isinstance(target, Mapping) or not isinstance(target.get("node"), str):
                        continue
                    index = target.get("index", 0)
                    yield Edge(
                        source=source,
                        category=category,
                        branch=branch,
                        target=target["node"],
                        target_input=target.get("type", category),
                        target_index=index if isinstance(index, int) else 0,
                    )


def branch_targets(connections: Any, source: str, category: str, branch: int) -> List[str]:
    """Target names on one output branch of *source*, in storage order."""
    if not isinstance(connections, Mapping):
        return []
    return [
        e.target
        for e in iter_edges({source: connections.get(source)})
        if e.category == category and e.branch == branch
    ]


def build_adjacency(
    connections: Any,
    categories: Optional[Iterable[str]] = None,
    skip_self_loops: bool = False,
) -> Dict[str, List[str]]:
    """Return successor names per source, optionally filtered by category."""
    wanted = set(categories) if categories is not None else None
    adjacency: Dict[str, List[str]] = {}
    for edge in iter_edges(connections):
        if wanted is not None and edge.category not in wanted:
            continue
        if skip_self_loops and edge.source == edge.target:
            continue
        successors = adjacency.setdefault(edge.source, [])
        if edge.target not in successors:
            successors.append(edge.target)
    return adjacency


@dataclass(frozen=True)
class SearchOutcome:
    """Result of a bounded search for a path back to a goal node.

    ``depth_exhausted`` is set when some path was cut at the depth limit, so
    a negative answer means "not found within the limit" rather than "no
    such path".
    """

    found: bool
    depth_exhausted: bool = False


def find_path_to(
    adjacency: Mapping[str, Iterable[str]],
    starts: Iterable[str],
    goal: str,
    max_depth: int,
    visited: Optional[Set[str]] = None,
) -> SearchOutcome:
    """Breadth-first search from *starts* for *goal*, at most *max_depth* hops deep.

    The start nodes sit at depth 1. *visited* may be passed in to share the
    seen-set with the caller; it is updated in place.
    """
    seen: Set[str] = visited if visited is not None else set()
    queue = deque()
    for start in starts:
        if start == goal:
            return SearchOutcome(found=True)
        if start not in seen:
            seen.add(start)
            queue.append((start, 1))

    exhausted = False
    while queue:
        node, depth = queue.popleft()
        for nbr in adjacency.get(node, ()):
            if nbr == goal:
                return SearchOutcome(found=True)
            if nbr in seen:
                continue
            if depth >= max_depth:
                exhausted = True
                continue
            seen.add(nbr)
            queue.append((nbr, depth + 1))
    return SearchOutcome(found=False, depth_exhausted=exhausted)


def reachable_from(adjacency: Mapping[str, Iterable[str]], starts: Iterable[str]) -> Set[str]:
    """All nodes reachable from *starts*, the starts included."""
    seen: Set[str] = set()
    queue = deque(starts)
    while queue:
        node = queue.popleft()
        if node in seen:
            continue
        seen.add(node)
        queue.extend(n for n in adjacency.get(node, ()) if n not in seen)
    return seen
