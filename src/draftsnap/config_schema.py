"""Typed schema for draftsnap config files.

Each top-level YAML section maps onto one frozen pydantic model; every
field has a default, so an empty file (or no file) is valid.

Usage:
    from draftsnap.config_schema import build_config, flatten_config

    unified = build_config(load_hierarchical_config())
    config = load_config(yaml_fallbacks=flatten_config(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SidecarConfig(BaseModel):
    """Where the sidecar store and scratch directory live."""

    scratch_dir: str = Field(
        default="scratch",
        description="Scratch directory, relative to the working tree",
    )
    git_dir: str = Field(
        default=".git-scratch",
        description="Sidecar git directory, relative to the working tree",
    )

    model_config = {"frozen": True}


class LockConfig(BaseModel):
    timeout: float = Field(
        default=5.0, ge=0, description="Seconds to wait for the operation lock"
    )

    model_config = {"frozen": True}


class WatchConfig(BaseModel):
    """Defaults for ``draftsnap watch``.

    Attributes:
        pattern: Glob of files to snapshot (must stay inside the scratch dir).
        debounce_ms: Quiet period per file before it is committed.
        include_delete: Commit deletions too.
        initial_snap: Capture matching files already present at startup.
    """

    pattern: str = Field(default="scratch/**/*.md")
    debounce_ms: float = Field(default=500, ge=0)
    include_delete: bool = False
    initial_snap: bool = True

    model_config = {"frozen": True}


class PruneConfig(BaseModel):
    keep: int = Field(default=100, ge=1, description="Commits kept by prune")

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    sidecar: SidecarConfig = Field(default_factory=SidecarConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    prune: PruneConfig = Field(default_factory=PruneConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict[str, Any] | None) -> UnifiedConfig:
    """Validate the merged dict from ``load_hierarchical_config()``.

    Missing sections get defaults; ``None`` sections (an empty YAML key)
    are treated as missing.

    Raises:
        pydantic.ValidationError: On out-of-range or mistyped values.
    """
    if not raw_data:
        return UnifiedConfig()
    sections = {key: value for key, value in raw_data.items() if value is not None}
    return UnifiedConfig(**sections)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config fallbacks
# ---------------------------------------------------------------------------


def flatten_config(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into the keyword names ``load_config`` uses."""
    return {
        "scratch_dir": unified.sidecar.scratch_dir,
        "git_dir": unified.sidecar.git_dir,
        "lock_timeout": unified.lock.timeout,
        "watch_pattern": unified.watch.pattern,
        "debounce_ms": unified.watch.debounce_ms,
        "include_delete": unified.watch.include_delete,
        "initial_snap": unified.watch.initial_snap,
        "prune_keep": unified.prune.keep,
        "log_level": unified.logging.level,
        "log_file": unified.logging.file,
    }

