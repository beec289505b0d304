# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Node capability metadata and graph helpers shared across flowpatch packages."""
