# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Name/type heuristics used to spot miswired branches.

The validator never matches node names itself; it asks one of the
classifiers below. ``ErrorHandlerClassifier`` is the pluggable seam: pass a
different callable to the validator to tune what counts as an error handler.
"""

import re
from typing import Callable, Optional

from ..capabilities import normalize_node_type

ErrorHandlerClassifier = Callable[[str, Optional[str]], bool]

_ERROR_HANDLER_NAME_RE = re.compile(r"error|fail|catch|exception|handle|respond|fallback", re.IGNORECASE)
_ERROR_HANDLER_TYPES = frozenset({"nodes-base.respondtowebhook", "nodes-base.stopanderror"})

_PROCESSING_NAME_RE = re.compile(
    r"process|transform|handle|update|modify|each|iterate|enrich|convert|format|map|edit",
    re.IGNORECASE,
)
_POST_PROCESSING_NAME_RE = re.compile(
    r"final|summar|report|email|complete|aggregate|notify|result|after|total",
    re.IGNORECASE,
)


def _type_key(node_type: Optional[str]) -> str:
    return normalize_node_type(node_type).lower() if isinstance(node_type, str) else ""


def looks_like_error_handler(name: str, node_type: Optional[str] = None) -> bool:
    """Default classifier: error/catch/handle/respond style names, or responder types."""
    if _type_key(node_type) in _ERROR_HANDLER_TYPES:
        return True
    return bool(_ERROR_HANDLER_NAME_RE.search(name or ""))


def looks_like_processing_node(name: str, node_type: Optional[str] = None) -> bool:
    """A per-item step that belongs on a loop branch."""
    return bool(_PROCESSING_NAME_RE.search(name or ""))


def looks_like_post_processing_node(name: str, node_type: Optional[str] = None) -> bool:
    """A step that should run once after a loop finished."""
    if _type_key(node_type) in ("nodes-base.emailsend", "nodes-base.aggregate"):
        return True
    return bool(_POST_PROCESSING_NAME_RE.search(name or ""))
