# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Logging setup with per-call context.

The validator and the diff engine record which workflow and which entry point
a log line belongs to in context variables. :class:`LogContextFilter` copies
those values onto every record so they can appear in the format string.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from .config import get_config

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
workflow_id_var: ContextVar[str] = ContextVar("workflow_id", default="")
operation_var: ContextVar[str] = ContextVar("operation", default="")

TEXT_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s "
    "[request_id=%(request_id)s workflow=%(workflow_id)s op=%(operation)s] %(message)s"
)
JSON_FORMAT = (
    '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"request_id": "%(request_id)s", "workflow_id": "%(workflow_id)s", '
    '"operation": "%(operation)s", "message": "%(message)s"}'
)

_HANDLER_NAME = "flowpatch"


class LogContext:
    """Set and clear the context fields injected into log records."""

    @staticmethod
    def set(request_id: str = "", workflow_id: str = "", operation: str = ""):
        request_id_var.set(request_id)
        workflow_id_var.set(workflow_id)
        operation_var.set(operation)

    @staticmethod
    def clear():
        request_id_var.set("")
        workflow_id_var.set("")
        operation_var.set("")


@contextmanager
def log_context(workflow_id: str = "", operation: str = "", request_id: Optional[str] = None) -> Iterator[None]:
    """Scope workflow and operation fields to a block, restoring the previous values after."""
    tokens = [(workflow_id_var, workflow_id_var.set(workflow_id)), (operation_var, operation_var.set(operation))]
    if request_id is not None:
        tokens.append((request_id_var, request_id_var.set(request_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class LogContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        record.workflow_id = workflow_id_var.get()
        record.operation = operation_var.get()
        return True


def configure_logging(level: Optional[str] = None, json_format: Optional[bool] = None) -> logging.Logger:
    """Attach one context-aware stream handler to the ``flowpatch`` loggers.

    Defaults come from ``FlowPatchConfig``. Calling this again replaces the
    handler instead of adding a second one.
    """
    cfg = get_config()
    level = (level or cfg.log_level).upper()
    if json_format is None:
        json_format = cfg.log_format == "json"

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.addFilter(LogContextFilter())
    handler.setFormatter(logging.Formatter(JSON_FORMAT if json_format else TEXT_FORMAT))

    root = logging.getLogger("flowpatch_core")
    for name in ("flowpatch_core", "flowpatch_common"):
        logger = logging.getLogger(name)
        for existing in [h for h in logger.handlers if h.get_name() == _HANDLER_NAME]:
            logger.removeHandler(existing)
        logger.addHandler(handler)
        logger.setLevel(level)
    return root
