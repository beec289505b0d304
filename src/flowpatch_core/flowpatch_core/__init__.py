# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Structural validation and incremental editing of workflow graphs."""

from .workflow import (
    AutoFixResult,
    DiffEngine,
    DiffResult,
    StructuralValidator,
    ValidationReport,
    WorkflowAutoFixer,
    apply_diff,
    auto_fix,
    validate,
)

__all__ = [
    "AutoFixResult",
    "DiffEngine",
    "DiffResult",
    "StructuralValidator",
    "ValidationReport",
    "WorkflowAutoFixer",
    "apply_diff",
    "auto_fix",
    "validate",
]
