# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Turn validation findings into ``updateNode`` operations.

Only findings that name one field and carry a confident replacement value
are fixed: a ``typeVersion`` above the catalog maximum, an ``onError`` mode
that contradicts the node's error output, a misspelled ``resource`` or
``operation`` with a suggestion, and an unknown node type with a close
catalog match. Everything else is left for a person to decide.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from flowpatch_common.constants import ON_ERROR_CONTINUE_ERROR_OUTPUT, ON_ERROR_STOP

from ..config import get_config
from ..logconfig import log_context
from .diff import DiffEngine, DiffResult
from .model import get_nodes
from .validator import Finding, Severity, StructuralValidator, ValidationReport

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_FIXES = 50
TYPE_VERSION_CONFIDENCE = 0.9
ERROR_OUTPUT_CONFIDENCE = 0.9
# Node types are only replaced on a near-exact match, whatever the threshold.
NODE_TYPE_MIN_CONFIDENCE = 0.9


class FixType(str, Enum):
    TYPE_VERSION = "typeversion-correction"
    ERROR_OUTPUT = "error-output-config"
    ENUM_VALUE = "enum-value"
    NODE_TYPE = "node-type-correction"


_SUMMARY_NOUNS = {
    FixType.TYPE_VERSION: ("version issue", "version issues"),
    FixType.ERROR_OUTPUT: ("error output configuration", "error output configurations"),
    FixType.ENUM_VALUE: ("invalid value", "invalid values"),
    FixType.NODE_TYPE: ("unknown node type", "unknown node types"),
}


@dataclass(frozen=True)
class FixProposal:
    fix_type: FixType
    node_name: str
    field: str
    before: Any
    after: Any
    confidence: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.fix_type.value,
            "node": self.node_name,
            "field": self.field,
            "before": self.before,
            "after": self.after,
            "confidence": self.confidence,
            "description": self.description,
        }


@dataclass
class AutoFixResult:
    """Fixes found for one workflow and, when they were run, the diff outcome."""

    fixes: List[FixProposal] = field(default_factory=list)
    operations: List[Dict[str, Any]] = field(default_factory=list)
    summary: str = ""
    diff: Optional[DiffResult] = None

    @property
    def workflow(self) -> Optional[Dict[str, Any]]:
        return self.diff.workflow if self.diff is not None else None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "summary": self.summary,
            "fixes": [f.to_dict() for f in self.fixes],
            "operations": list(self.operations),
        }
        if self.diff is not None:
            out["diff"] = self.diff.to_dict()
        return out


def summarize(fixes: Iterable[FixProposal]) -> str:
    counts = Counter(f.fix_type for f in fixes)
    if not counts:
        return "No fixes available"
    parts = []
    for fix_type in FixType:
        n = counts.get(fix_type, 0)
        if n:
            singular, plural = _SUMMARY_NOUNS[fix_type]
            parts.append(f"{n} {singular if n == 1 else plural}")
    return "Fixed " + ", ".join(parts)


class WorkflowAutoFixer:
    """Propose and apply corrections for confidently fixable findings.

    ``fix_types`` restricts the kinds of fixes considered, ``confidence_threshold``
    (the configured suggestion threshold by default) drops uncertain ones and
    ``max_fixes`` caps how many are kept, in report order. Operations run
    through a ``DiffEngine`` with ``continue_on_error`` so one stale fix does
    not block the others.
    """

    def __init__(
        self,
        validator: Optional[StructuralValidator] = None,
        engine: Optional[DiffEngine] = None,
        confidence_threshold: Optional[float] = None,
        fix_types: Optional[Iterable[str]] = None,
        max_fixes: Optional[int] = DEFAULT_MAX_FIXES,
    ):
        if validator is None:
            if engine is not None and engine.validator is not None:
                validator = engine.validator
            else:
                validator = StructuralValidator(engine.provider if engine is not None else None)
        self.validator = validator
        self.engine = engine if engine is not None else DiffEngine(validator=validator)
        self.confidence_threshold = (
            confidence_threshold
            if confidence_threshold is not None
            else get_config().suggestion_confidence_threshold
        )
        self.fix_types = frozenset(FixType(t) for t in fix_types) if fix_types is not None else frozenset(FixType)
        if max_fixes is not None and max_fixes < 0:
            raise ValueError(f"max_fixes must be >= 0, got {max_fixes}")
        self.max_fixes = max_fixes

    def propose(self, workflow: Mapping[str, Any], report: Optional[ValidationReport] = None) -> List[FixProposal]:
        """Fixes for *workflow*, at most one per node and field.

        *report* is reused when given; otherwise the workflow is validated.
        """
        if report is None:
            report = self.validator.validate(workflow)
        nodes = {n.get("name"): n for n in get_nodes(workflow) if isinstance(n.get("name"), str)}
        fixes: List[FixProposal] = []
        seen = set()
        for finding in report.findings:
            fix = self._fix_for(finding, nodes)
            if fix is None or fix.fix_type not in self.fix_types or fix.confidence < self.confidence_threshold:
                continue
            key = (fix.node_name, fix.field)
            if key in seen:
                continue
            seen.add(key)
            fixes.append(fix)
        if self.max_fixes is not None:
            fixes = fixes[: self.max_fixes]
        return fixes

    @staticmethod
    def operations_for(fixes: Iterable[FixProposal]) -> List[Dict[str, Any]]:
        """One ``updateNode`` per node, with every fixed field as a change path."""
        changes: Dict[str, Dict[str, Any]] = {}
        for fix in fixes:
            changes.setdefault(fix.node_name, {})[fix.field] = fix.after
        return [{"type": "updateNode", "nodeName": name, "changes": c} for name, c in changes.items()]

    def fix(
        self,
        workflow: Mapping[str, Any],
        report: Optional[ValidationReport] = None,
        apply: bool = True,
    ) -> AutoFixResult:
        """Propose fixes and run them through the diff engine.

        With ``apply=False`` the operations are only checked, and the result
        carries no workflow.
        """
        workflow_id = str(workflow.get("id") or workflow.get("name") or "") if isinstance(workflow, Mapping) else ""
        with log_context(workflow_id=workflow_id, operation="auto_fix"):
            fixes = self.propose(workflow, report)
            operations = self.operations_for(fixes)
            result = AutoFixResult(fixes=fixes, operations=operations, summary=summarize(fixes))
            if operations:
                result.diff = self.engine.apply_diff(
                    workflow, operations, validate_only=not apply, continue_on_error=True
                )
            LOGGER.info("%s", result.summary)
            return result

    # ── Per-finding fixes ──────────────────────────────────────────────────

    def _fix_for(self, finding: Finding, nodes: Dict[str, Dict[str, Any]]) -> Optional[FixProposal]:
        details = finding.details or {}
        field_name = details.get("field")
        name = finding.node_name
        if not isinstance(field_name, str) or name not in nodes:
            return None
        if field_name == "typeVersion":
            return self._type_version_fix(name, details)
        if field_name == "onError":
            return self._error_output_fix(finding, name, details)
        if field_name.startswith("parameters."):
            return self._enum_value_fix(finding, name, field_name, details)
        if field_name == "type":
            return self._node_type_fix(name, details)
        return None

    @staticmethod
    def _type_version_fix(name: str, details: Mapping[str, Any]) -> Optional[FixProposal]:
        if details.get("maxVersion") is None:
            return None
        before, after = details.get("value"), details["maxVersion"]
        return FixProposal(
            FixType.TYPE_VERSION,
            name,
            "typeVersion",
            before,
            after,
            TYPE_VERSION_CONFIDENCE,
            f"Corrected typeVersion from {before} to maximum supported {after}",
        )

    @staticmethod
    def _error_output_fix(finding: Finding, name: str, details: Mapping[str, Any]) -> Optional[FixProposal]:
        before = details.get("value")
        if finding.severity == Severity.ERROR and before == ON_ERROR_CONTINUE_ERROR_OUTPUT:
            after = ON_ERROR_STOP
            description = f"Changed onError to '{after}' because the node has no error output connections"
        elif finding.severity == Severity.WARNING and before != ON_ERROR_CONTINUE_ERROR_OUTPUT:
            after = ON_ERROR_CONTINUE_ERROR_OUTPUT
            description = f"Set onError to '{after}' so failures reach the connected error output"
        else:
            return None
        return FixProposal(FixType.ERROR_OUTPUT, name, "onError", before, after, ERROR_OUTPUT_CONFIDENCE, description)

    @staticmethod
    def _enum_value_fix(
        finding: Finding, name: str, field_name: str, details: Mapping[str, Any]
    ) -> Optional[FixProposal]:
        if not finding.suggestion or finding.confidence is None:
            return None
        before, after = details.get("value"), finding.suggestion
        kind = field_name.rsplit(".", 1)[-1]
        description = f'Changed {kind} "{before}" to "{after}"'
        if details.get("reason"):
            description += f" ({details['reason']})"
        return FixProposal(FixType.ENUM_VALUE, name, field_name, before, after, finding.confidence, description)

    @staticmethod
    def _node_type_fix(name: str, details: Mapping[str, Any]) -> Optional[FixProposal]:
        candidates = details.get("candidates") or []
        if not candidates:
            return None
        best = candidates[0]
        if best["confidence"] < NODE_TYPE_MIN_CONFIDENCE:
            return None
        before, after = details.get("value"), best["type"]
        return FixProposal(
            FixType.NODE_TYPE,
            name,
            "type",
            before,
            after,
            best["confidence"],
            f'Fix node type: "{before}" to "{after}"',
        )


def auto_fix(
    workflow: Mapping[str, Any],
    apply: bool = True,
    fix_types: Optional[Iterable[str]] = None,
    confidence_threshold: Optional[float] = None,
    max_fixes: Optional[int] = DEFAULT_MAX_FIXES,
) -> AutoFixResult:
    """Fix *workflow* with a one-off ``WorkflowAutoFixer`` over the configured catalog."""
    fixer = WorkflowAutoFixer(confidence_threshold=confidence_threshold, fix_types=fix_types, max_fixes=max_fixes)
    return fixer.fix(workflow, apply=apply)
