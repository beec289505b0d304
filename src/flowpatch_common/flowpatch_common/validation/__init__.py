# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Graph and suggestion helpers shared by the workflow validator and diff engine.

Public API
----------
detect_cycle                  Detect cycles and return the offending path.
iter_edges                    Iterate the well-formed edges of a connection map.
branch_targets                Target names on one output branch of a node.
build_adjacency               Name-keyed successor lists, filtered by category.
find_path_to                  Bounded-depth search for a path back to a node.
reachable_from                Unbounded forward reachability.
looks_like_error_handler      Default error-handler classifier.
looks_like_processing_node    Per-item step heuristic for loop branches.
looks_like_post_processing_node  After-the-loop step heuristic.
ResourceSimilarityService     Ranked corrections for invalid resource values.
OperationSimilarityService    Ranked corrections for invalid operation values.
suggest                       Edit-distance suggestion string for a misspelled reference.
close_matches                 Close matches for a reference with their similarity ratio.
"""

from .cycle_detector import detect_cycle
from .heuristics import (
    ErrorHandlerClassifier,
    looks_like_error_handler,
    looks_like_post_processing_node,
    looks_like_processing_node,
)
from .suggestions import (
    OperationSimilarityService,
    ResourceSimilarityService,
    Suggestion,
    close_matches,
    suggest,
)
from .traversal import (
    Edge,
    SearchOutcome,
    branch_targets,
    build_adjacency,
    find_path_to,
    iter_edges,
    reachable_from,
)

__all__ = [
    "detect_cycle",
    "Edge",
    "SearchOutcome",
    "iter_edges",
    "branch_targets",
    "build_adjacency",
    "find_path_to",
    "reachable_from",
    "ErrorHandlerClassifier",
    "looks_like_error_handler",
    "looks_like_processing_node",
    "looks_like_post_processing_node",
    "ResourceSimilarityService",
    "OperationSimilarityService",
    "Suggestion",
    "suggest",
    "close_matches",
]
