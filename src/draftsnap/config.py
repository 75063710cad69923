"""Runtime configuration for draftsnap.

Each setting comes from the first source that provides it.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    DRAFTSNAP_SCRATCH: Scratch directory (default: scratch)
    DRAFTSNAP_GIT_DIR: Sidecar git directory (default: .git-scratch)
    DRAFTSNAP_LOCK_TIMEOUT: Seconds to wait for the operation lock (default: 5)
    DRAFTSNAP_DEBOUNCE_MS: Watch debounce window (default: 500)
    DRAFTSNAP_INCLUDE_DELETE: Watch commits deletions (default: false)
    DRAFTSNAP_DEBUG: Debug logging (default: false)
    LOG_LEVEL: Log level name (default: INFO)
"""

import logging
import math
import os
import posixpath
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv

from .config_loader import load_hierarchical_config
from .config_schema import build_config, flatten_config

logger = logging.getLogger(__name__)


@dataclass
class Config:
    scratch_dir: str = "scratch"
    git_dir: str = ".git-scratch"
    lock_timeout: float = 5.0
    watch_pattern: str = "scratch/**/*.md"
    debounce_ms: float = 500
    include_delete: bool = False
    initial_snap: bool = True
    prune_keep: int = 100
    log_level: str = "INFO"
    log_file: str | None = None
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the scratch directory escapes the working tree or a
            number is out of range.
    """
    config.scratch_dir = config.scratch_dir.strip().replace("\\", "/").rstrip("/")

    if not config.scratch_dir:
        raise ValueError("Scratch directory cannot be empty.")
    if posixpath.isabs(config.scratch_dir) or os.path.isabs(config.scratch_dir):
        raise ValueError(
            f"Invalid scratch directory '{config.scratch_dir}': must be relative to the working tree"
        )
    if ".." in config.scratch_dir.split("/"):
        raise ValueError(
            f"Invalid scratch directory '{config.scratch_dir}': must not contain '..'"
        )

    if not config.git_dir.strip():
        raise ValueError("Sidecar git directory cannot be empty.")

    if not math.isfinite(config.lock_timeout) or config.lock_timeout < 0:
        raise ValueError(
            f"Invalid lock timeout '{config.lock_timeout}': must be >= 0"
        )
    if not math.isfinite(config.debounce_ms) or config.debounce_ms < 0:
        raise ValueError(
            f"Invalid debounce '{config.debounce_ms}': must be >= 0"
        )
    if config.prune_keep < 1:
        raise ValueError(f"Invalid prune keep '{config.prune_keep}': must be >= 1")


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_float_env(key: str) -> float | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be a number") from None


def load_config(
    scratch_dir: str | None = None,
    git_dir: str | None = None,
    lock_timeout: float | None = None,
    debounce_ms: float | None = None,
    include_delete: bool = False,
    debug: bool = False,
    log_file: str | None = None,
    yaml_fallbacks: dict[str, Any] | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        scratch_dir: Override scratch directory.
        git_dir: Override sidecar git directory.
        lock_timeout: Override lock timeout in seconds.
        debounce_ms: Override watch debounce.
        include_delete: Watch commits deletions (CLI flag).
        debug: Enable debug logging (CLI flag).
        log_file: Append logs to this file.
        yaml_fallbacks: Flattened config file values
            (see ``config_schema.flatten_config``).

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed or out of range.
    """
    fb = yaml_fallbacks or {}
    defaults = Config()

    # --- String fields: CLI > env > YAML > default ---

    final_scratch = (
        scratch_dir
        or os.getenv("DRAFTSNAP_SCRATCH")
        or fb.get("scratch_dir")
        or defaults.scratch_dir
    )
    final_git_dir = (
        git_dir
        or os.getenv("DRAFTSNAP_GIT_DIR")
        or fb.get("git_dir")
        or defaults.git_dir
    )

    # --- Numeric fields: CLI > env > YAML > default ---

    def pick_number(cli: float | None, env_key: str, fb_key: str, default: float) -> float:
        if cli is not None:
            return float(cli)
        env_value = _get_float_env(env_key)
        if env_value is not None:
            return env_value
        if fb.get(fb_key) is not None:
            return float(fb[fb_key])
        return default

    final_timeout = pick_number(
        lock_timeout, "DRAFTSNAP_LOCK_TIMEOUT", "lock_timeout", defaults.lock_timeout
    )
    final_debounce = pick_number(
        debounce_ms, "DRAFTSNAP_DEBOUNCE_MS", "debounce_ms", defaults.debounce_ms
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if include_delete:
        final_include_delete = True
    else:
        env_include = _get_bool_env("DRAFTSNAP_INCLUDE_DELETE")
        if env_include is not None:
            final_include_delete = env_include
        else:
            final_include_delete = bool(fb.get("include_delete", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("DRAFTSNAP_DEBUG")
        final_debug = env_debug if env_debug is not None else False

    # --- File-only fields ---

    config = Config(
        scratch_dir=final_scratch,
        git_dir=final_git_dir,
        lock_timeout=final_timeout,
        watch_pattern=fb.get("watch_pattern") or defaults.watch_pattern,
        debounce_ms=final_debounce,
        include_delete=final_include_delete,
        initial_snap=bool(fb.get("initial_snap", defaults.initial_snap)),
        prune_keep=int(fb.get("prune_keep", defaults.prune_keep)),
        log_level=(os.getenv("LOG_LEVEL") or fb.get("log_level") or defaults.log_level).upper(),
        log_file=log_file or fb.get("log_file"),
        debug=final_debug,
    )

    validate_config(config)

    return config


def load_settings(
    work_tree: str | None = None, overrides: dict[str, Any] | None = None
) -> Config:
    """Load ``.env``, config files and environment into a validated Config.

    Args:
        work_tree: Project root for config discovery (default: CWD).
        overrides: CLI values keyed by ``load_config`` argument names.
    """
    load_dotenv(os.path.join(work_tree or os.getcwd(), ".env"))
    unified = build_config(load_hierarchical_config(work_tree))
    return load_config(
        yaml_fallbacks=flatten_config(unified), **(overrides or {})
    )
