# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Cycle detection for workflow connection graphs.

Unlike a plain ``has_cycle`` check this returns the offending path so the
validator can tell the user which nodes form the cycle.
"""

from typing import Dict, Iterable, List, Optional


def detect_cycle(
    node_names: List[str],
    adjacency: Dict[str, Iterable[str]],
) -> Optional[List[str]]:
    """Return an ordered list of node names forming a cycle, or ``None``.

    Parameters
    ----------
    node_names:
        All node names in the workflow. Iteration starts from these in order,
        so the reported cycle is deterministic.
    adjacency:
        Successor names per node. Successors that are not in *node_names* are
        ignored.
    """
    graph: Dict[str, List[str]] = {name: [] for name in node_names}
    for src, dsts in adjacency.items():
        if src not in graph:
            continue
        for dst in dsts:
            if dst in graph and dst not in graph[src]:
                graph[src].append(dst)

    WHITE, GRAY, BLACK = 0, 1, 2
    color: Dict[str, int] = {n: WHITE for n in graph}
    parent: Dict[str, Optional[str]] = {n: None for n in graph}

    # Iterative DFS; workflow graphs can be deeper than the recursion limit.
    for root in graph:
        if color[root] != WHITE:
            continue
        color[root] = GRAY
        stack = [(root, iter(graph[root]))]
        while stack:
            node, successors = stack[-1]
            nbr = next(successors, None)
            if nbr is None:
                color[node] = BLACK
                stack.pop()
                continue
            if color[nbr] == GRAY:
                # Reconstruct cycle path back to nbr
                cycle = []
                cur: Optional[str] = node
                while cur is not None and cur != nbr:
                    cycle.append(cur)
                    cur = parent[cur]
                cycle.append(nbr)
                cycle.reverse()
                return cycle
            if color[nbr] == WHITE:
                parent[nbr] = node
                color[nbr] = GRAY
                stack.append((nbr, iter(graph[nbr])))
    return None
