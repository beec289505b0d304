# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Workflow validation and diff application."""

from .autofix import AutoFixResult, FixProposal, FixType, WorkflowAutoFixer, auto_fix
from .diff import DiffEngine, DiffError, DiffResult, apply_diff
from .errors import DiffInputError, WorkflowShapeError
from .operations import DiffOperation, OperationParseError, parse_operation
from .validator import (
    Finding,
    Severity,
    StructuralValidator,
    ValidationReport,
    ValidationStatistics,
    validate,
    validate_connections_only,
)

__all__ = [
    "AutoFixResult",
    "FixProposal",
    "FixType",
    "WorkflowAutoFixer",
    "auto_fix",
    "DiffEngine",
    "DiffError",
    "DiffResult",
    "apply_diff",
    "DiffInputError",
    "WorkflowShapeError",
    "DiffOperation",
    "OperationParseError",
    "parse_operation",
    "Finding",
    "Severity",
    "StructuralValidator",
    "ValidationReport",
    "ValidationStatistics",
    "validate",
    "validate_connections_only",
]
