# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

import pytest

from flowpatch_common.capabilities import default_provider
from flowpatch_core.config import reset_config
from flowpatch_core.workflow.diff import DiffEngine
from flowpatch_core.workflow.validator import StructuralValidator


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def provider():
    return default_provider()


@pytest.fixture
def validator(provider):
    return StructuralValidator(provider)


@pytest.fixture
def engine(provider):
    return DiffEngine(provider)
