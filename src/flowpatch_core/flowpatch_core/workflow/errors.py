# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Exceptions for input that is not workflow-shaped at all.

Everything short of that is reported as data: findings in a
``ValidationReport`` or ``DiffError`` entries in a ``DiffResult``.
"""


class WorkflowShapeError(ValueError):
    """The snapshot is not a workflow (not a mapping, or nodes/connections of the wrong kind)."""


class DiffInputError(ValueError):
    """The diff request cannot be interpreted (workflow or operation list of the wrong kind)."""
