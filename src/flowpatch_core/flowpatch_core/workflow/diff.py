# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Apply batches of diff operations to a workflow snapshot.

A batch runs against a private deep copy in two passes: node operations
first, then connection and metadata operations, each pass in submission
order. Every operation is checked against the copy as it stands right before
it is applied, so a connection may name a node that a later ``addNode`` in
the same batch creates.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from flowpatch_common.capabilities import CapabilityProvider
from flowpatch_common.constants import MAIN_CATEGORY, MAX_BRANCH_INDEX

from ..config import get_config
from ..logconfig import log_context
from .errors import DiffInputError
from .model import (
    add_edge,
    drop_node,
    edge_positions,
    find_node,
    get_nodes,
    remove_edge,
    rename_node,
)
from .operations import (
    NODE_OPERATION_TYPES,
    AddConnection,
    AddNode,
    AddTag,
    DiffOperation,
    MoveNode,
    OperationParseError,
    RemoveConnection,
    RemoveNode,
    RemoveTag,
    RenameWorkflow,
    RewireConnection,
    SetEnabled,
    UpdateNode,
    UpdateSettings,
    parse_operation,
)
from .validator import StructuralValidator, ValidationReport, provider_from_config

LOGGER = logging.getLogger(__name__)

VALIDATE_ONLY_MESSAGE = "Validation successful. Operations are valid but not applied."

# Node keys that connections and lookups depend on; they may only be replaced whole.
_IDENTITY_FIELDS = ("name", "id")


@dataclass
class DiffError:
    operation: Optional[int]
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        where = f"operation {self.operation}" if self.operation is not None else "request"
        return f"{where}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"operation": self.operation, "message": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out


@dataclass
class DiffResult:
    """Outcome of one ``apply_diff`` call.

    ``workflow`` is only set when mutations were committed. ``failed`` lists
    the operations skipped under ``continue_on_error``; ``errors`` holds every
    error of the call, including the one that aborted a strict batch.
    """

    success: bool
    workflow: Optional[Dict[str, Any]] = None
    applied_count: int = 0
    applied: List[int] = field(default_factory=list)
    failed: List[DiffError] = field(default_factory=list)
    errors: List[DiffError] = field(default_factory=list)
    message: str = ""
    validation: Optional[ValidationReport] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "appliedCount": self.applied_count,
            "applied": list(self.applied),
            "failed": [e.to_dict() for e in self.failed],
            "errors": [e.to_dict() for e in self.errors],
            "message": self.message,
        }
        if self.workflow is not None:
            out["workflow"] = self.workflow
        if self.validation is not None:
            out["validation"] = self.validation.to_dict()
        return out


def _set_path(target: Dict[str, Any], path: str, value: Any):
    keys = path.split(".")
    current = target
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


class DiffEngine:
    """Validate and apply diff operations as one copy-on-write transform."""

    def __init__(
        self,
        provider: Optional[CapabilityProvider] = None,
        validator: Optional[StructuralValidator] = None,
    ):
        if validator is None and provider is not None:
            validator = StructuralValidator(provider)
        self.validator = validator
        if provider is None:
            provider = validator.provider if validator is not None else provider_from_config(get_config())
        # Only used to bound branch indices of new connections.
        self.provider = provider
        self._handlers: Dict[type, Tuple[Callable, Callable]] = {
            AddNode: (self._check_add_node, self._apply_add_node),
            RemoveNode: (self._check_node_exists, self._apply_remove_node),
            UpdateNode: (self._check_update_node, self._apply_update_node),
            MoveNode: (self._check_node_exists, self._apply_move_node),
            SetEnabled: (self._check_node_exists, self._apply_set_enabled),
            AddConnection: (self._check_add_connection, self._apply_add_connection),
            RemoveConnection: (self._check_remove_connection, self._apply_remove_connection),
            RewireConnection: (self._check_rewire_connection, self._apply_rewire_connection),
            UpdateSettings: (None, self._apply_update_settings),
            RenameWorkflow: (None, self._apply_rename_workflow),
            AddTag: (None, self._apply_add_tag),
            RemoveTag: (None, self._apply_remove_tag),
        }

    def apply_diff(
        self,
        workflow: Mapping[str, Any],
        operations: List[Any],
        validate_only: bool = False,
        continue_on_error: bool = False,
        expected_version: Optional[str] = None,
    ) -> DiffResult:
        if not isinstance(workflow, Mapping):
            raise DiffInputError(f"Workflow must be a mapping, got {type(workflow).__name__}")
        if not isinstance(operations, list):
            raise DiffInputError(f"Operations must be a list, got {type(operations).__name__}")

        workflow_id = str(workflow.get("id") or workflow.get("name") or "")
        with log_context(workflow_id=workflow_id, operation="apply_diff"):
            return self._apply(workflow, operations, validate_only, continue_on_error, expected_version)

    # ── Driver ─────────────────────────────────────────────────────────────

    def _apply(
        self,
        workflow: Mapping[str, Any],
        operations: List[Any],
        validate_only: bool,
        continue_on_error: bool,
        expected_version: Optional[str],
    ) -> DiffResult:
        if expected_version is not None and workflow.get("versionId") != expected_version:
            error = DiffError(
                None,
                f'Workflow version mismatch: expected "{expected_version}", '
                f'found "{workflow.get("versionId")}"',
            )
            LOGGER.info("Rejected diff: %s", error.message)
            return DiffResult(success=False, errors=[error], message=error.message)

        scratch: Dict[str, Any] = copy.deepcopy(dict(workflow))
        if not isinstance(scratch.get("nodes"), list):
            scratch["nodes"] = []
        if not isinstance(scratch.get("connections"), dict):
            scratch["connections"] = {}

        parsed: List[Tuple[int, DiffOperation]] = []
        failed: List[DiffError] = []
        for index, raw in enumerate(operations):
            try:
                parsed.append((index, parse_operation(raw)))
            except OperationParseError as e:
                failed.append(DiffError(index, str(e), dict(raw) if isinstance(raw, Mapping) else None))
        if failed and not continue_on_error:
            return self._aborted(failed)

        first = [(i, op) for i, op in parsed if op.type in NODE_OPERATION_TYPES]
        second = [(i, op) for i, op in parsed if op.type not in NODE_OPERATION_TYPES]

        applied: List[int] = []
        for index, op in first + second:
            try:
                error = self._run_one(scratch, index, op)
            except Exception as e:
                # The scratch copy may be half-mutated; nothing from this batch is kept.
                LOGGER.warning("Failed to apply operation %d (%s)", index, op.type, exc_info=True)
                return self._aborted(
                    [DiffError(index, f"Failed to apply operation: {e}", op.model_dump(by_alias=True, exclude_none=True))]
                )
            if error is None:
                applied.append(index)
                continue
            if not continue_on_error:
                return self._aborted([error])
            LOGGER.info("Skipping operation %d: %s", index, error.message)
            failed.append(error)

        failed.sort(key=lambda e: e.operation if e.operation is not None else -1)
        success = bool(applied) or not failed
        result = DiffResult(
            success=success,
            applied_count=len(applied),
            applied=sorted(applied),
            failed=failed,
            errors=list(failed),
        )

        if validate_only:
            result.message = (
                VALIDATE_ONLY_MESSAGE
                if not failed
                else f"Validation finished: {len(applied)} operations valid, {len(failed)} failed"
            )
        elif success:
            result.workflow = scratch
            done = set(applied)
            result.message = (
                f"Applied {len(applied)} operations "
                f"({sum(1 for i, _ in first if i in done)} node ops, "
                f"{sum(1 for i, _ in second if i in done)} other ops)"
            )
            if failed:
                result.message += f", {len(failed)} failed"
        else:
            result.message = f"No operations applied, {len(failed)} failed"

        if success and self.validator is not None:
            result.validation = self.validator.validate(scratch)

        LOGGER.info("%s", result.message)
        return result

    @staticmethod
    def _aborted(errors: List[DiffError]) -> DiffResult:
        LOGGER.info("Diff aborted: %s", "; ".join(str(e) for e in errors))
        return DiffResult(
            success=False,
            errors=errors,
            message=f"Diff aborted: {errors[0].message}" if errors else "Diff aborted",
        )

    def _run_one(self, workflow: Dict[str, Any], index: int, op: DiffOperation) -> Optional[DiffError]:
        check, apply = self._handlers[type(op)]
        message = check(workflow, op) if check is not None else None
        if message is not None:
            return DiffError(index, message, op.model_dump(by_alias=True, exclude_none=True))
        apply(workflow, op)
        LOGGER.debug("Applied operation %d (%s)", index, op.type)
        return None

    # ── Node operations ────────────────────────────────────────────────────

    @staticmethod
    def _lookup(workflow: Dict[str, Any], op) -> Optional[Dict[str, Any]]:
        return find_node(workflow, op.node_id) or find_node(workflow, op.node_name)

    def _check_node_exists(self, workflow, op) -> Optional[str]:
        if self._lookup(workflow, op) is None:
            return f"Node not found: {op.reference}"
        return None

    def _check_add_node(self, workflow, op: AddNode) -> Optional[str]:
        name = op.node["name"]
        nodes = get_nodes(workflow)
        if any(n.get("name") == name for n in nodes):
            return f'Node with name "{name}" already exists'
        node_id = op.node.get("id")
        if node_id and any(n.get("id") == node_id for n in nodes):
            return f'Node with ID "{node_id}" already exists'
        return None

    def _apply_add_node(self, workflow, op: AddNode):
        node = copy.deepcopy(op.node)
        node.setdefault("parameters", {})
        node.setdefault("typeVersion", 1)
        node.setdefault("position", [0, 0])
        workflow["nodes"].append(node)

    def _apply_remove_node(self, workflow, op: RemoveNode):
        node = self._lookup(workflow, op)
        workflow["nodes"] = [n for n in workflow["nodes"] if n is not node]
        dropped = drop_node(workflow["connections"], node["name"])
        if dropped:
            LOGGER.warning('Removing node "%s" dropped %d connections', node["name"], dropped)

    def _check_update_node(self, workflow, op: UpdateNode) -> Optional[str]:
        node = self._lookup(workflow, op)
        if node is None:
            return f"Node not found: {op.reference}"
        label = node.get("name")
        for path in op.changes:
            parts = path.split(".")
            if not path or any(not part for part in parts):
                return f'Invalid change path "{path}" for node "{label}"'
            if parts[0] in _IDENTITY_FIELDS and len(parts) > 1:
                return f'Invalid change path "{path}" for node "{label}": "{parts[0]}" cannot be nested'
        for key in _IDENTITY_FIELDS:
            if key not in op.changes:
                continue
            value = op.changes[key]
            if not isinstance(value, str) or not value.strip():
                return f'Invalid {key} for node "{label}": {key} must be a non-empty string'
            if value != node.get(key) and any(n.get(key) == value for n in get_nodes(workflow)):
                return f'Node with {"name" if key == "name" else "ID"} "{value}" already exists'
        return None

    def _apply_update_node(self, workflow, op: UpdateNode):
        node = self._lookup(workflow, op)
        old_name = node["name"]
        for path, value in op.changes.items():
            _set_path(node, path, copy.deepcopy(value))
        if node["name"] != old_name:
            rename_node(workflow["connections"], old_name, node["name"])

    def _apply_move_node(self, workflow, op: MoveNode):
        self._lookup(workflow, op)["position"] = list(op.position)

    def _apply_set_enabled(self, workflow, op: SetEnabled):
        self._lookup(workflow, op)["disabled"] = not op.enabled

    # ── Connection operations ──────────────────────────────────────────────

    @staticmethod
    def _endpoints(workflow, source: str, target: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """Resolve both ends to node names; the third value is an error message."""
        source_node = find_node(workflow, source)
        if source_node is None:
            return None, None, f"Source node not found: {source}"
        target_node = find_node(workflow, target)
        if target_node is None:
            return None, None, f"Target node not found: {target}"
        return source_node["name"], target_node["name"], None

    def _check_branch_index(self, workflow, source: str, category: str, index: int) -> Optional[str]:
        node_type = find_node(workflow, source).get("type")
        descriptor = self.provider.get_capability(node_type) if isinstance(node_type, str) else None
        if category == MAIN_CATEGORY and descriptor is not None:
            declared = len(descriptor.outputs)
            # one extra slot past the declared outputs carries the error output
            if index > declared:
                return f'Output index {index} of "{source}" exceeds its declared outputs ({declared})'
        elif index > MAX_BRANCH_INDEX:
            return f'Output index {index} of "{source}" exceeds the maximum branch index ({MAX_BRANCH_INDEX})'
        return None

    def _check_add_connection(self, workflow, op: AddConnection) -> Optional[str]:
        source, target, error = self._endpoints(workflow, op.source, op.target)
        if error:
            return error
        error = self._check_branch_index(workflow, source, op.source_output, op.source_index)
        if error:
            return error
        if edge_positions(workflow["connections"], source, target, op.source_output, op.source_index):
            return f'Connection already exists from "{source}" to "{target}"'
        return None

    def _apply_add_connection(self, workflow, op: AddConnection):
        source, target, _ = self._endpoints(workflow, op.source, op.target)
        add_edge(
            workflow["connections"],
            source,
            target,
            op.source_output,
            op.source_index,
            op.target_input,
            op.target_index,
        )

    def _check_remove_connection(self, workflow, op: RemoveConnection) -> Optional[str]:
        source, target, error = self._endpoints(workflow, op.source, op.target)
        if error:
            return error
        if not edge_positions(workflow["connections"], source, target, op.source_output, op.source_index):
            return f'No connection exists from "{source}" to "{target}"'
        return None

    def _apply_remove_connection(self, workflow, op: RemoveConnection):
        source, target, _ = self._endpoints(workflow, op.source, op.target)
        remove_edge(workflow["connections"], source, target, op.source_output, op.source_index)

    def _check_rewire_connection(self, workflow, op: RewireConnection) -> Optional[str]:
        source, old_target, error = self._endpoints(workflow, op.source, op.from_node)
        if error:
            return error
        _, new_target, error = self._endpoints(workflow, op.source, op.to_node)
        if error:
            return error
        connections = workflow["connections"]
        positions = edge_positions(connections, source, old_target, op.source_output, op.source_index)
        if not positions:
            return f'No connection exists from "{source}" to "{old_target}"'
        if new_target != old_target and any(
            edge_positions(connections, source, new_target, op.source_output, idx) for idx in positions
        ):
            return f'Connection already exists from "{source}" to "{new_target}"'
        return None

    def _apply_rewire_connection(self, workflow, op: RewireConnection):
        source, old_target, _ = self._endpoints(workflow, op.source, op.from_node)
        _, new_target, _ = self._endpoints(workflow, op.source, op.to_node)
        connections = workflow["connections"]
        branches = connections[source][op.source_output]
        for idx in edge_positions(connections, source, old_target, op.source_output, op.source_index):
            for entry in branches[idx]:
                if isinstance(entry, dict) and entry.get("node") == old_target:
                    entry["node"] = new_target

    # ── Metadata operations ────────────────────────────────────────────────

    def _apply_update_settings(self, workflow, op: UpdateSettings):
        if not isinstance(workflow.get("settings"), dict):
            workflow["settings"] = {}
        workflow["settings"].update(copy.deepcopy(op.settings))

    def _apply_rename_workflow(self, workflow, op: RenameWorkflow):
        workflow["name"] = op.name

    def _apply_add_tag(self, workflow, op: AddTag):
        if not isinstance(workflow.get("tags"), list):
            workflow["tags"] = []
        if op.tag not in workflow["tags"]:
            workflow["tags"].append(op.tag)

    def _apply_remove_tag(self, workflow, op: RemoveTag):
        tags = workflow.get("tags")
        if isinstance(tags, list) and op.tag in tags:
            tags.remove(op.tag)


def apply_diff(
    workflow: Mapping[str, Any],
    operations: List[Any],
    validate_only: bool = False,
    continue_on_error: bool = False,
    expected_version: Optional[str] = None,
    validator: Optional[StructuralValidator] = None,
    provider: Optional[CapabilityProvider] = None,
) -> DiffResult:
    """Apply *operations* to a copy of *workflow* with a one-off ``DiffEngine``.

    The result is validated with *validator*, or with a ``StructuralValidator``
    over *provider* (the configured catalog when omitted).
    """
    if validator is None:
        validator = StructuralValidator(provider)
    return DiffEngine(validator=validator).apply_diff(
        workflow,
        operations,
        validate_only=validate_only,
        continue_on_error=continue_on_error,
        expected_version=expected_version,
    )
