# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Structural validation of workflow graphs.

The validator walks a workflow snapshot and reports every defect it finds as a
``Finding`` instead of raising, so a single call surfaces all problems at once.
Only input that is not workflow-shaped at all raises ``WorkflowShapeError``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from flowpatch_common.capabilities import (
    CapabilityDescriptor,
    CapabilityProvider,
    default_provider,
    load_catalog,
    normalize_node_type,
)
from flowpatch_common.constants import (
    FLOW_CATEGORIES,
    MAIN_CATEGORY,
    AI_TOOL_CATEGORY,
    MAX_RECOMMENDED_TRIES,
    MAX_RECOMMENDED_WAIT_MS,
    NODE_LEVEL_PROPERTIES,
    NODE_TYPE_PREFIXES,
    ON_ERROR_CONTINUE_ERROR_OUTPUT,
    VALID_ON_ERROR_VALUES,
)
from flowpatch_common.validation import (
    Edge,
    ErrorHandlerClassifier,
    OperationSimilarityService,
    ResourceSimilarityService,
    close_matches,
    detect_cycle,
    find_path_to,
    iter_edges,
    looks_like_error_handler,
    looks_like_post_processing_node,
    looks_like_processing_node,
    reachable_from,
)

from ..config import FlowPatchConfig, get_config
from ..logconfig import log_context
from .model import check_shape, get_connections

LOGGER = logging.getLogger(__name__)


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Finding:
    """A validation problem found in a workflow."""

    severity: Severity
    message: str
    node_name: Optional[str] = None
    node_id: Optional[str] = None
    suggestion: Optional[str] = None
    confidence: Optional[float] = None
    details: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)

    def __str__(self) -> str:
        msg = f"{self.severity.value}: {self.message}"
        if self.node_name:
            msg += f" (in {self.node_name})"
        if self.suggestion:
            msg += f". Did you mean '{self.suggestion}'?"
        return msg

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.severity.value, "message": self.message}
        for key, value in (
            ("nodeName", self.node_name),
            ("nodeId", self.node_id),
            ("suggestion", self.suggestion),
            ("confidence", self.confidence),
            ("details", self.details),
        ):
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True)
class ValidationStatistics:
    total_nodes: int = 0
    enabled_nodes: int = 0
    trigger_nodes: int = 0
    total_connections: int = 0
    valid_connections: int = 0
    invalid_connections: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalNodes": self.total_nodes,
            "enabledNodes": self.enabled_nodes,
            "triggerNodes": self.trigger_nodes,
            "totalConnections": self.total_connections,
            "validConnections": self.valid_connections,
            "invalidConnections": self.invalid_connections,
        }


@dataclass(frozen=True)
class ValidationReport:
    """Immutable result of one validation call."""

    valid: bool
    findings: Tuple[Finding, ...] = ()
    statistics: ValidationStatistics = field(default_factory=ValidationStatistics)

    @property
    def errors(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return not self.valid

    @property
    def has_warnings(self) -> bool:
        return any(f.severity == Severity.WARNING for f in self.findings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
            "statistics": self.statistics.to_dict(),
        }


@dataclass
class _Findings:
    """Mutable accumulator, frozen into a ``ValidationReport`` at the end of a run."""

    issues: List[Finding] = field(default_factory=list)

    def add_error(
        self,
        message: str,
        node: Optional[Mapping[str, Any]] = None,
        suggestion: Optional[str] = None,
        confidence: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self._add(Severity.ERROR, message, node, suggestion, confidence, details)

    def add_warning(
        self,
        message: str,
        node: Optional[Mapping[str, Any]] = None,
        suggestion: Optional[str] = None,
        confidence: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self._add(Severity.WARNING, message, node, suggestion, confidence, details)

    def _add(self, severity, message, node, suggestion, confidence, details):
        node_name = node.get("name") if node else None
        node_id = node.get("id") if node else None
        self.issues.append(
            Finding(
                severity=severity,
                message=message,
                node_name=node_name if isinstance(node_name, str) else None,
                node_id=node_id if isinstance(node_id, str) else None,
                suggestion=suggestion,
                confidence=confidence,
                details=details,
            )
        )


@dataclass
class _Walk:
    """Per-call state shared by the individual checks."""

    workflow: Mapping[str, Any]
    connections: Mapping[str, Any]
    findings: _Findings = field(default_factory=_Findings)
    by_name: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    id_to_name: Dict[str, str] = field(default_factory=dict)
    descriptors: Dict[str, Optional[CapabilityDescriptor]] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)
    total_connections: int = 0
    valid_connections: int = 0
    invalid_connections: int = 0

    def is_enabled(self, name: str) -> bool:
        return self.by_name[name].get("disabled") is not True

    def targets(self, source: str, category: str, branch: int) -> List[str]:
        seen: List[str] = []
        for e in self.edges:
            if e.source == source and e.category == category and e.branch == branch:
                if e.target not in seen:
                    seen.append(e.target)
        return seen

    def output_count(self, name: str) -> int:
        descriptor = self.descriptors.get(name)
        return len(descriptor.outputs) if descriptor else 1


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _quoted(names: List[str]) -> str:
    return ", ".join(f'"{n}"' for n in names)


def _qualified(candidate: str, original: str) -> str:
    """Spell catalog key *candidate* the way workflows spell node types, unless *original* used the short form."""
    for long_prefix, short_prefix in NODE_TYPE_PREFIXES:
        if candidate.startswith(short_prefix) and not original.startswith(short_prefix):
            return long_prefix + candidate[len(short_prefix):]
    return candidate


def provider_from_config(cfg: FlowPatchConfig) -> CapabilityProvider:
    """The catalog named by ``catalog_path``, or the bundled one."""
    if cfg.catalog_path:
        return load_catalog(cfg.catalog_path)
    return default_provider()


class StructuralValidator:
    """Check workflow snapshots against structural and semantic invariants.

    ``validate`` runs every check. ``validate_connections_only`` skips the
    checks that look at node settings and parameters, for callers that only
    care about the graph.
    """

    def __init__(
        self,
        provider: Optional[CapabilityProvider] = None,
        resource_suggestions: Optional[ResourceSimilarityService] = None,
        operation_suggestions: Optional[OperationSimilarityService] = None,
        error_handler_classifier: Optional[ErrorHandlerClassifier] = None,
        config: Optional[FlowPatchConfig] = None,
        max_loop_depth: Optional[int] = None,
        suggestion_threshold: Optional[float] = None,
    ):
        cfg = config or get_config()
        self.provider = provider if provider is not None else provider_from_config(cfg)
        self.resource_suggestions = resource_suggestions or ResourceSimilarityService(
            self.provider, cfg.min_suggestion_confidence, cfg.max_suggestions, cfg.suggestion_cache_size
        )
        self.operation_suggestions = operation_suggestions or OperationSimilarityService(
            self.provider, cfg.min_suggestion_confidence, cfg.max_suggestions, cfg.suggestion_cache_size
        )
        self.is_error_handler = error_handler_classifier or looks_like_error_handler
        self.max_loop_depth = max_loop_depth if max_loop_depth is not None else cfg.loop_max_depth
        self.suggestion_threshold = (
            suggestion_threshold
            if suggestion_threshold is not None
            else cfg.suggestion_confidence_threshold
        )

    # ── Public API ─────────────────────────────────────────────────────────

    def validate(self, workflow: Mapping[str, Any]) -> ValidationReport:
        return self._run(workflow, full=True)

    def validate_connections_only(self, workflow: Mapping[str, Any]) -> ValidationReport:
        return self._run(workflow, full=False)

    # ── Driver ─────────────────────────────────────────────────────────────

    def _run(self, workflow: Mapping[str, Any], full: bool) -> ValidationReport:
        check_shape(workflow)
        walk = _Walk(workflow=workflow, connections=get_connections(workflow))
        workflow_id = str(workflow.get("id") or workflow.get("name") or "")

        with log_context(workflow_id=workflow_id, operation="validate" if full else "validate_connections"):
            self._collect_nodes(walk)
            self._check_node_types(walk)
            if full:
                for name in walk.by_name:
                    if walk.is_enabled(name):
                        self._check_node_settings(walk, name)
            self._check_connections(walk)
            trigger_names = self._check_triggers(walk)
            self._check_orphans(walk, trigger_names)
            self._check_error_outputs(walk)
            self._check_loops(walk)
            self._check_self_references(walk)
            self._check_cycles(walk)
            if full:
                for name in walk.by_name:
                    if walk.is_enabled(name):
                        self._check_parameters(walk, name)

            enabled = [n for n in walk.by_name if walk.is_enabled(n)]
            stats = ValidationStatistics(
                total_nodes=len(walk.workflow["nodes"]),
                enabled_nodes=len(enabled),
                trigger_nodes=len(trigger_names),
                total_connections=walk.total_connections,
                valid_connections=walk.valid_connections,
                invalid_connections=walk.invalid_connections,
            )
            findings = tuple(walk.findings.issues)
            valid = not any(f.severity == Severity.ERROR for f in findings)
            LOGGER.debug(
                "Validated workflow: %d errors, %d warnings",
                sum(1 for f in findings if f.severity == Severity.ERROR),
                sum(1 for f in findings if f.severity == Severity.WARNING),
            )
        return ValidationReport(valid=valid, findings=findings, statistics=stats)

    # ── Nodes ──────────────────────────────────────────────────────────────

    def _collect_nodes(self, walk: _Walk):
        nodes = walk.workflow["nodes"]
        if not nodes:
            walk.findings.add_warning("Workflow has no nodes")
            return
        for idx, node in enumerate(nodes):
            if not isinstance(node, dict):
                walk.findings.add_error(f"Node at index {idx} must be an object")
                continue
            name = node.get("name")
            if not isinstance(name, str) or not name.strip():
                walk.findings.add_error(f"Node at index {idx} has no name", node)
                continue
            if name in walk.by_name:
                walk.findings.add_error(f'Duplicate node name: "{name}"', node)
                continue
            walk.by_name[name] = node
            node_id = node.get("id")
            if isinstance(node_id, str) and node_id:
                if node_id in walk.id_to_name:
                    walk.findings.add_error(f'Duplicate node ID: "{node_id}"', node)
                else:
                    walk.id_to_name[node_id] = name

    def _check_node_types(self, walk: _Walk):
        for name, node in walk.by_name.items():
            node_type = node.get("type")
            if not isinstance(node_type, str) or not node_type:
                walk.findings.add_error(f'Node "{name}" has no type', node)
                walk.descriptors[name] = None
                continue
            descriptor = self.provider.get_capability(node_type)
            walk.descriptors[name] = descriptor
            if descriptor is None:
                candidates = self._node_type_candidates(node_type)
                walk.findings.add_error(
                    f'Unknown node type: "{node_type}"',
                    node,
                    suggestion=", ".join(f"'{c}'" for c, _ in candidates) or None,
                    details={
                        "field": "type",
                        "value": node_type,
                        "candidates": [
                            {"type": _qualified(c, node_type), "confidence": round(r, 3)} for c, r in candidates
                        ],
                    },
                )

    def _node_type_candidates(self, node_type: str) -> List[Tuple[str, float]]:
        ref = normalize_node_type(node_type)
        if "." not in ref:
            ref = "nodes-base." + ref
        try:
            return close_matches(ref, self.provider.node_types())
        except Exception:
            LOGGER.debug("Node type suggestion failed for %s", node_type, exc_info=True)
            return []

    def _check_node_settings(self, walk: _Walk, name: str):
        node = walk.by_name[name]
        findings = walk.findings

        params = node.get("parameters")
        if isinstance(params, Mapping):
            misplaced = [p for p in NODE_LEVEL_PROPERTIES if p in params]
            if misplaced:
                findings.add_warning(
                    f"Node-level properties {_quoted(misplaced)} are inside \"parameters\". "
                    "Move them to the node itself, next to \"parameters\".",
                    node,
                    details={"properties": misplaced},
                )

        on_error = node.get("onError")
        if on_error is not None and on_error not in VALID_ON_ERROR_VALUES:
            findings.add_error(
                f'Invalid onError value: "{on_error}". Must be one of: '
                "continueRegularOutput, continueErrorOutput, stopWorkflow",
                node,
            )

        continue_on_fail = node.get("continueOnFail")
        if continue_on_fail is not None:
            if not isinstance(continue_on_fail, bool):
                findings.add_error("continueOnFail must be a boolean value", node)
            elif continue_on_fail:
                findings.add_warning(
                    'Using deprecated "continueOnFail: true". '
                    "Use \"onError: 'continueRegularOutput'\" instead.",
                    node,
                )
            if on_error is not None:
                findings.add_error(
                    'Cannot use both "continueOnFail" and "onError" properties. Use only "onError".',
                    node,
                )

        retry = node.get("retryOnFail")
        if retry is not None and not isinstance(retry, bool):
            findings.add_error("retryOnFail must be a boolean value", node)
        if retry is True:
            max_tries = node.get("maxTries")
            if max_tries is None:
                findings.add_warning(
                    "retryOnFail is enabled but maxTries is not specified. Default is 3 attempts.",
                    node,
                )
            elif not _is_number(max_tries) or max_tries < 1:
                findings.add_error("maxTries must be a positive number when retryOnFail is enabled", node)
            elif max_tries > MAX_RECOMMENDED_TRIES:
                findings.add_warning(
                    f"maxTries is set to {max_tries}. Consider if this many retries is necessary.",
                    node,
                )
            wait = node.get("waitBetweenTries")
            if wait is not None:
                if not _is_number(wait) or wait < 0:
                    findings.add_error(
                        "waitBetweenTries must be a non-negative number (milliseconds)", node
                    )
                elif wait > MAX_RECOMMENDED_WAIT_MS:
                    findings.add_warning(
                        f"waitBetweenTries is set to {wait}ms ({wait / 1000:.1f}s). This seems excessive.",
                        node,
                    )

        always = node.get("alwaysOutputData")
        if always is not None and not isinstance(always, bool):
            findings.add_error("alwaysOutputData must be a boolean value", node)

        version = node.get("typeVersion")
        descriptor = walk.descriptors.get(name)
        if version is not None:
            if not _is_number(version) or version < 1:
                findings.add_error(f"Invalid typeVersion: {version!r}. Must be a number >= 1", node)
            elif descriptor is not None and descriptor.max_version is not None and version > descriptor.max_version:
                findings.add_error(
                    f"typeVersion {version} exceeds the maximum supported version "
                    f"{descriptor.max_version} for \"{node.get('type')}\"",
                    node,
                    details={"field": "typeVersion", "value": version, "maxVersion": descriptor.max_version},
                )

    def _check_parameters(self, walk: _Walk, name: str):
        node = walk.by_name[name]
        descriptor = walk.descriptors.get(name)
        params = node.get("parameters")
        if descriptor is None or not isinstance(params, Mapping):
            return
        node_type = node["type"]

        resource = params.get("resource")
        resource_known = False
        if isinstance(resource, str) and not resource.startswith("="):
            resource_known = resource in descriptor.known_resources
            if descriptor.known_resources and not resource_known:
                suggestions = self.resource_suggestions.suggest_resource(node_type, resource)
                self._report_invalid_value(
                    walk, node, "resource", resource, list(descriptor.known_resources), suggestions
                )

        operation = params.get("operation")
        if isinstance(operation, str) and not operation.startswith("="):
            context = resource if resource_known else None
            valid_ops = descriptor.operations_for(context)
            if valid_ops and operation not in valid_ops:
                suggestions = self.operation_suggestions.suggest_operation(node_type, operation, context)
                self._report_invalid_value(walk, node, "operation", operation, valid_ops, suggestions)

    def _report_invalid_value(self, walk: _Walk, node, kind: str, value: str, valid: List[str], suggestions):
        message = f'Invalid {kind} "{value}" for node type "{node["type"]}"'
        details: Dict[str, Any] = {"field": f"parameters.{kind}", "value": value, "validValues": valid}
        top = suggestions[0] if suggestions else None
        if top is not None and top.confidence >= self.suggestion_threshold:
            details["reason"] = top.reason
            walk.findings.add_error(
                message, node, suggestion=top.value, confidence=round(top.confidence, 3), details=details
            )
        else:
            walk.findings.add_error(message, node, details=details)

    # ── Connections ────────────────────────────────────────────────────────

    def _missing_node_message(self, walk: _Walk, ref: str, source: Optional[str]) -> str:
        if ref in walk.id_to_name:
            where = f" (from {source})" if source else ""
            return (
                f"Connection uses node ID '{ref}' instead of node name "
                f"'{walk.id_to_name[ref]}'{where}. Connections must use node names, not IDs."
            )
        if source is None:
            return f'Connection from non-existent node: "{ref}"'
        return f'Connection to non-existent node: "{ref}" from "{source}"'

    def _check_connections(self, walk: _Walk):
        findings = walk.findings
        for source, outputs in walk.connections.items():
            if source not in walk.by_name:
                findings.add_error(self._missing_node_message(walk, source, None))
                dangling = sum(1 for _ in iter_edges({source: outputs}))
                walk.total_connections += dangling
                walk.invalid_connections += dangling
                continue
            source_node = walk.by_name[source]
            if not isinstance(outputs, Mapping):
                findings.add_error(f'Connections of "{source}" must be an object', source_node)
                continue
            for category, branches in outputs.items():
                if not isinstance(branches, list):
                    findings.add_error(
                        f'Output "{category}" of "{source}" must be an array of branches', source_node
                    )
                    continue
                for branch, targets in enumerate(branches):
                    if targets is None:
                        continue
                    if not isinstance(targets, list):
                        findings.add_error(
                            f'Branch {category}[{branch}] of "{source}" must be an array', source_node
                        )
                        continue
                    for target in targets:
                        walk.total_connections += 1
                        if self._check_edge(walk, source, category, branch, target):
                            walk.valid_connections += 1

    def _check_edge(self, walk: _Walk, source: str, category: str, branch: int, target: Any) -> bool:
        """Check one target entry; returns True when it counts as a valid connection."""
        findings = walk.findings
        source_node = walk.by_name[source]
        if not isinstance(target, Mapping) or not isinstance(target.get("node"), str):
            findings.add_error(f'Invalid connection entry in {category}[{branch}] of "{source}"', source_node)
            walk.invalid_connections += 1
            return False

        name = target["node"]
        if name not in walk.by_name:
            findings.add_error(self._missing_node_message(walk, name, source), source_node)
            walk.invalid_connections += 1
            return False

        index = target.get("index", 0)
        if not isinstance(index, int) or isinstance(index, bool) or index < 0:
            findings.add_error(
                f'Invalid connection index {index} from "{source}" to "{name}". '
                "Input indices must be non-negative integers.",
                source_node,
            )
            walk.invalid_connections += 1
            return False

        target_input = target.get("type", category)
        walk.edges.append(Edge(source, category, branch, name, target_input, index))
        ok = True

        if category == MAIN_CATEGORY and walk.descriptors.get(source) is not None:
            declared = walk.output_count(source)
            # one extra slot past the declared outputs carries the error output
            if branch > declared:
                findings.add_error(
                    f'Output index {branch} of "{source}" exceeds its declared outputs ({declared})',
                    source_node,
                )
                ok = False

        if category == AI_TOOL_CATEGORY:
            target_descriptor = walk.descriptors.get(name)
            if target_descriptor is not None and not target_descriptor.tool:
                findings.add_error(
                    f'Node "{name}" cannot be used as an AI tool (connected from "{source}" via ai_tool)',
                    walk.by_name[name],
                )
                ok = False

        if not walk.is_enabled(name):
            findings.add_warning(f'Connection to disabled node: "{name}" from "{source}"', source_node)
            return False

        if not ok:
            walk.invalid_connections += 1
        return ok

    # ── Graph-level checks ─────────────────────────────────────────────────

    def _check_triggers(self, walk: _Walk) -> List[str]:
        triggers = [
            name
            for name in walk.by_name
            if walk.is_enabled(name) and walk.descriptors.get(name) is not None and walk.descriptors[name].trigger
        ]
        if not triggers and any(walk.is_enabled(n) for n in walk.by_name):
            walk.findings.add_warning("Workflow has no trigger nodes. It can only be executed manually.")
        return triggers

    def _check_orphans(self, walk: _Walk, triggers: List[str]):
        touching: Set[str] = set()
        for e in walk.edges:
            if e.source != e.target:
                touching.add(e.source)
                touching.add(e.target)

        reachable: Set[str] = set()
        if triggers:
            adjacency: Dict[str, List[str]] = {}
            for e in walk.edges:
                adjacency.setdefault(e.source, []).append(e.target)
            reachable = reachable_from(adjacency, triggers)
            # sub-nodes (models, memories, tools) feed into a reachable node
            changed = True
            while changed:
                changed = False
                for e in walk.edges:
                    if e.category not in FLOW_CATEGORIES and e.target in reachable and e.source not in reachable:
                        reachable |= reachable_from(adjacency, [e.source])
                        changed = True

        for name, node in walk.by_name.items():
            if not walk.is_enabled(name) or name in triggers:
                continue
            if name not in touching:
                walk.findings.add_warning(f"Orphaned node: {name} not connected to any other nodes", node)
            elif triggers and name not in reachable:
                walk.findings.add_warning(f'Node "{name}" is not reachable from any trigger node', node)

    def _check_error_outputs(self, walk: _Walk):
        for name, node in walk.by_name.items():
            declared = walk.output_count(name)
            success = walk.targets(name, MAIN_CATEGORY, 0)
            error_branch = walk.targets(name, MAIN_CATEGORY, declared)
            on_error = node.get("onError")

            if on_error == ON_ERROR_CONTINUE_ERROR_OUTPUT:
                if not error_branch:
                    walk.findings.add_error(
                        f"Node \"{name}\" has onError: 'continueErrorOutput' but no error output "
                        f"connections in main[{declared}]. Add error handling connections to "
                        f"main[{declared}] or change onError to 'continueRegularOutput' or 'stopWorkflow'.",
                        node,
                        details={"field": "onError", "value": on_error, "errorOutput": declared},
                    )
            elif error_branch and declared == 1:
                walk.findings.add_warning(
                    f"Node \"{name}\" has error output connections in main[{declared}] but missing "
                    f"onError: 'continueErrorOutput'. Set onError so failures are routed to the "
                    "error output.",
                    node,
                    details={"field": "onError", "value": on_error, "errorOutput": declared},
                )

            if len(success) > 1 and not error_branch:
                handlers = [
                    t for t in success if self.is_error_handler(t, walk.by_name[t].get("type"))
                ]
                if handlers and len(handlers) < len(success):
                    walk.findings.add_error(
                        self._misplaced_handlers_message(name, success, handlers),
                        node,
                        details={"errorHandlers": handlers},
                    )

    @staticmethod
    def _misplaced_handlers_message(name: str, success: List[str], handlers: List[str]) -> str:
        regular = [t for t in success if t not in handlers]
        current = "\n".join(f'      {{"node": "{t}", "type": "main", "index": 0}},' for t in success)
        fixed_ok = "\n".join(f'      {{"node": "{t}", "type": "main", "index": 0}},' for t in regular)
        fixed_err = "\n".join(f'      {{"node": "{t}", "type": "main", "index": 0}},' for t in handlers)
        return (
            f"Incorrect error output configuration. Nodes {_quoted(handlers)} appear to be error "
            "handlers but are in main[0] (success output) along with other nodes.\n\n"
            "INCORRECT (current):\n"
            f'"{name}": {{\n  "main": [\n    [  // main[0] has all nodes mixed together\n{current}\n    ]\n  ]\n}}\n\n'
            "CORRECT (should be):\n"
            f'"{name}": {{\n  "main": [\n    [  // main[0] = success output\n{fixed_ok}\n    ],\n'
            f"    [  // main[1] = error output\n{fixed_err}\n    ]\n  ]\n}}\n\n"
            "Also add \"onError\": \"continueErrorOutput\" to the node."
        )

    def _flow_adjacency(self, walk: _Walk) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {}
        for e in walk.edges:
            if e.category in FLOW_CATEGORIES:
                successors = adjacency.setdefault(e.source, [])
                if e.target not in successors:
                    successors.append(e.target)
        return adjacency

    def _check_loops(self, walk: _Walk):
        adjacency = self._flow_adjacency(walk)
        for name, node in walk.by_name.items():
            descriptor = walk.descriptors.get(name)
            if descriptor is None or not descriptor.loop:
                continue
            done, loop = descriptor.done_index, descriptor.loop_index

            for target in walk.targets(name, MAIN_CATEGORY, done):
                if target == name:
                    continue
                target_node = walk.by_name[target]
                outcome = find_path_to(adjacency, [target], name, self.max_loop_depth)
                if outcome.found:
                    walk.findings.add_error(
                        f'SplitInBatches outputs appear reversed on "{name}": "{target}" is connected '
                        f'to the "done" output (index {done}) but leads back to "{name}". Connect '
                        f'per-item processing to the "loop" output (index {loop}) and steps that '
                        'run after all batches to "done".',
                        node,
                    )
                elif looks_like_processing_node(target, target_node.get("type")):
                    walk.findings.add_warning(
                        f'Node "{target}" is connected to the "done" output (index {done}) of '
                        f'"{name}" but appears to be a processing node. Per-item processing '
                        f'usually belongs on the "loop" output (index {loop}).',
                        target_node,
                    )

            loop_targets = walk.targets(name, MAIN_CATEGORY, loop)
            for target in loop_targets:
                if target == name:
                    continue
                target_node = walk.by_name[target]
                if looks_like_post_processing_node(target, target_node.get("type")):
                    walk.findings.add_warning(
                        f'Node "{target}" is connected to the "loop" output (index {loop}) of '
                        f'"{name}" but appears to be a post-processing node. Steps that run once '
                        f'after all batches usually belong on the "done" output (index {done}).',
                        target_node,
                    )

            if not loop_targets:
                continue
            outcome = find_path_to(adjacency, loop_targets, name, self.max_loop_depth)
            if outcome.found:
                continue
            message = (
                f'The "loop" output of "{name}" doesn\'t connect back to the SplitInBatches node. '
                f'The last node of the loop should connect back to "{name}" to process the next batch.'
            )
            if outcome.depth_exhausted:
                message += (
                    f" The search stopped after {self.max_loop_depth} steps, so a longer path "
                    "back could not be confirmed."
                )
            walk.findings.add_warning(
                message,
                node,
                details={"depthExhausted": outcome.depth_exhausted, "maxDepth": self.max_loop_depth},
            )

    def _check_self_references(self, walk: _Walk):
        reported: Set[str] = set()
        for e in walk.edges:
            if e.source != e.target or e.source in reported:
                continue
            descriptor = walk.descriptors.get(e.source)
            if (
                descriptor is not None
                and descriptor.loop
                and e.category == MAIN_CATEGORY
                and e.branch == descriptor.loop_index
            ):
                continue
            reported.add(e.source)
            walk.findings.add_warning(
                f'Node "{e.source}" has a self-referencing connection on {e.category}[{e.branch}]',
                walk.by_name[e.source],
            )

    def _check_cycles(self, walk: _Walk):
        adjacency = {
            source: [t for t in successors if t != source]
            for source, successors in self._flow_adjacency(walk).items()
            if not (walk.descriptors.get(source) is not None and walk.descriptors[source].loop)
        }
        cycle = detect_cycle(list(walk.by_name), adjacency)
        if cycle:
            path = " -> ".join(cycle + [cycle[0]])
            walk.findings.add_error(
                f"Workflow contains a cycle: {path}. Only loop-capable nodes such as "
                "SplitInBatches may lead back to themselves.",
                walk.by_name[cycle[0]],
                details={"cycle": cycle},
            )


def validate(workflow: Mapping[str, Any], provider: Optional[CapabilityProvider] = None) -> ValidationReport:
    """Validate *workflow* with a default-configured ``StructuralValidator``."""
    return StructuralValidator(provider).validate(workflow)


def validate_connections_only(
    workflow: Mapping[str, Any], provider: Optional[CapabilityProvider] = None
) -> ValidationReport:
    return StructuralValidator(provider).validate_connections_only(workflow)
