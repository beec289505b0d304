# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

from typing import Final, FrozenSet, Tuple

MAIN_CATEGORY: Final[str] = "main"
ERROR_CATEGORY: Final[str] = "error"
AI_TOOL_CATEGORY: Final[str] = "ai_tool"

# Categories that carry data between steps and take part in cycle detection.
FLOW_CATEGORIES: Final[Tuple[str, ...]] = (MAIN_CATEGORY, ERROR_CATEGORY)

ON_ERROR_STOP: Final[str] = "stopWorkflow"
ON_ERROR_CONTINUE_REGULAR: Final[str] = "continueRegularOutput"
ON_ERROR_CONTINUE_ERROR_OUTPUT: Final[str] = "continueErrorOutput"
VALID_ON_ERROR_VALUES: Final[FrozenSet[str]] = frozenset(
    {"stop", ON_ERROR_STOP, ON_ERROR_CONTINUE_REGULAR, ON_ERROR_CONTINUE_ERROR_OUTPUT}
)

LOOP_DONE_OUTPUT: Final[str] = "done"
LOOP_LOOP_OUTPUT: Final[str] = "loop"
LOOP_DONE_INDEX: Final[int] = 0
LOOP_LOOP_INDEX: Final[int] = 1

DEFAULT_LOOP_MAX_DEPTH: Final[int] = 50
DEFAULT_SUGGESTION_THRESHOLD: Final[float] = 0.7
DEFAULT_MIN_CONFIDENCE: Final[float] = 0.3
DEFAULT_MAX_SUGGESTIONS: Final[int] = 5
DEFAULT_SUGGESTION_CACHE_SIZE: Final[int] = 100

# Upper bound for a branch index when the source declares no outputs to check against.
MAX_BRANCH_INDEX: Final[int] = 100

MAX_RECOMMENDED_TRIES: Final[int] = 10
MAX_RECOMMENDED_WAIT_MS: Final[int] = 300_000

# Node-level settings that belong beside "parameters", never inside it.
NODE_LEVEL_PROPERTIES: Final[Tuple[str, ...]] = (
    "onError",
    "continueOnFail",
    "retryOnFail",
    "maxTries",
    "waitBetweenTries",
    "alwaysOutputData",
    "executeOnce",
    "disabled",
    "notesInFlow",
)

NODE_TYPE_PREFIXES: Final[Tuple[Tuple[str, str], ...]] = (
    ("n8n-nodes-base.", "nodes-base."),
    ("@n8n/n8n-nodes-langchain.", "nodes-langchain."),
)
