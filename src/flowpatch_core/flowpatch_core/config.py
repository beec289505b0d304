# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Central flowpatch configuration.

All values have sensible defaults and can be overridden via environment variables
using the ``FLOWPATCH_`` prefix:

  FLOWPATCH_SUGGESTION_CONFIDENCE_THRESHOLD  Minimum confidence for a suggestion
                                             to be attached to a finding
                                             (default: 0.7)
  FLOWPATCH_MIN_SUGGESTION_CONFIDENCE        Candidates scoring below this are
                                             never suggested (default: 0.3)
  FLOWPATCH_MAX_SUGGESTIONS                  Suggestions returned per lookup
                                             (default: 5)
  FLOWPATCH_SUGGESTION_CACHE_SIZE            Suggestion lookups kept per service
                                             (default: 100)
  FLOWPATCH_LOOP_MAX_DEPTH                   Hop limit of the loop-back search
                                             (default: 50)
  FLOWPATCH_LOG_LEVEL                        Log level (default: INFO)
  FLOWPATCH_LOG_FORMAT                       ``text`` or ``json`` (default: text)
  FLOWPATCH_CATALOG_PATH                     YAML capability catalog replacing the
                                             bundled one (optional)
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flowpatch_common.constants import (
    DEFAULT_LOOP_MAX_DEPTH,
    DEFAULT_MAX_SUGGESTIONS,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_SUGGESTION_CACHE_SIZE,
    DEFAULT_SUGGESTION_THRESHOLD,
)

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"})
_VALID_LOG_FORMATS = frozenset({"text", "json"})


class FlowPatchConfig(BaseSettings):
    """Central flowpatch configuration.

    Instantiate with ``FlowPatchConfig()`` to read defaults and any
    ``FLOWPATCH_*`` environment variable overrides automatically.
    """

    model_config = SettingsConfigDict(env_prefix="FLOWPATCH_")

    # ── Suggestion configuration ───────────────────────────────────────────
    suggestion_confidence_threshold: float = DEFAULT_SUGGESTION_THRESHOLD
    min_suggestion_confidence: float = DEFAULT_MIN_CONFIDENCE
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS
    suggestion_cache_size: int = DEFAULT_SUGGESTION_CACHE_SIZE

    # ── Traversal configuration ────────────────────────────────────────────
    loop_max_depth: int = DEFAULT_LOOP_MAX_DEPTH

    # ── Catalog configuration ──────────────────────────────────────────────
    catalog_path: Optional[str] = None

    # ── Logging configuration ──────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "text"

    # ── Validators ─────────────────────────────────────────────────────────

    @field_validator("suggestion_confidence_threshold", "min_suggestion_confidence")
    @classmethod
    def _valid_confidence(cls, v: float, info: ValidationInfo) -> float:
        if not (0.0 <= v <= 1.0):
            raise ValueError(f"{info.field_name}={v} is outside the valid range (0.0-1.0)")
        return v

    @field_validator("max_suggestions", "suggestion_cache_size", "loop_max_depth")
    @classmethod
    def _valid_positive(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name}={v} must be >= 1")
        return v

    @field_validator("catalog_path")
    @classmethod
    def _valid_catalog_path(cls, v: Optional[str]) -> Optional[str]:
        # Empty string means "use the bundled catalog"
        if not v:
            return None
        if not os.path.isfile(v):
            raise ValueError(f"catalog_path={v!r} does not point to a file")
        return v

    @field_validator("log_level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        if v.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level={v!r} is not a valid log level. "
                f"Valid values: {', '.join(sorted(_VALID_LOG_LEVELS))}"
            )
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def _valid_log_format(cls, v: str) -> str:
        if v.lower() not in _VALID_LOG_FORMATS:
            raise ValueError(
                f"log_format={v!r} is not a valid log format. "
                f"Valid values: {', '.join(sorted(_VALID_LOG_FORMATS))}"
            )
        return v.lower()


# ── Module-level singleton ─────────────────────────────────────────────────────

_config: Optional[FlowPatchConfig] = None


def get_config() -> FlowPatchConfig:
    """Return the process-wide config singleton.

    Creates a fresh ``FlowPatchConfig`` on first call (reading env vars).
    Subsequent calls return the cached instance.
    """
    global _config
    if _config is None:
        _config = FlowPatchConfig()
    return _config


def load_and_validate_config() -> FlowPatchConfig:
    """Build, validate, cache and return the config.

    Raises ``pydantic.ValidationError`` with a clear message if any value is
    invalid. Call this once at service startup to surface config errors before
    the first workflow is validated.
    """
    global _config
    cfg = FlowPatchConfig()
    _config = cfg
    return cfg


def reset_config():
    """Drop the cached singleton so the next ``get_config()`` re-reads the environment."""
    global _config
    _config = None
