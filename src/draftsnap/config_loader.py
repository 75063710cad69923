"""
Config file discovery and loading for draftsnap.

Settings files are YAML. A file may pull in other files with ``!include``
and reference environment variables as ``${VAR}`` or ``${VAR:-default}``.
When several files exist, top-level sections from the file closest to the
project replace those from more global ones.

Usage:
    from draftsnap.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(work_tree)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DRAFTSNAP_CONFIG"
PROJECT_CONFIG_DIR = ".draftsnap"

# ---------------------------------------------------------------------------
# Environment variable interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` / ``${VAR:-default}`` references in ``value``.

    An unset or empty variable expands to its default, or to ``""`` when
    no default is given. An unterminated ``${`` is kept as-is.
    """

    def _expand(match: re.Match) -> str:
        current = os.environ.get(match.group(1))
        if current:
            return current
        return match.group(2) or ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_tree(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, list):
        return [_interpolate_tree(item) for item in node]
    if isinstance(node, dict):
        return {key: _interpolate_tree(item) for key, item in node.items()}
    return node


# ---------------------------------------------------------------------------
# YAML with !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``yaml.SafeLoader`` that understands ``!include <path>``.

    A subclass keeps the tag off the global ``SafeLoader``. Each loader
    carries the chain of files being loaded so include cycles are reported
    instead of recursing forever.
    """

    include_chain: tuple[Path, ...] = ()


def _construct_include(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    reference = Path(loader.construct_scalar(node)).expanduser()
    if not reference.is_absolute():
        reference = Path(loader.name).resolve().parent / reference
    reference = reference.resolve()

    if reference in loader.include_chain:
        cycle = " -> ".join(str(p) for p in (*loader.include_chain, reference))
        raise ValueError(f"Circular include detected: {cycle}")
    if not reference.exists():
        raise FileNotFoundError(
            f"Include file not found: {reference} "
            f"(referenced from {Path(loader.name).resolve()})"
        )
    return load_yaml_file(reference, _chain=(*loader.include_chain, reference))


ConfigLoader.add_constructor("!include", _construct_include)


def load_yaml_file(path: Path, *, _chain: tuple[Path, ...] | None = None) -> Any:
    """Parse one YAML file, resolving ``!include`` relative to it."""
    path = Path(path).resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = _chain or (path,)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def candidate_config_files(work_tree: str | os.PathLike | None = None) -> list[Path]:
    """Return every place a config file may live, highest precedence first.

    1. ``$DRAFTSNAP_CONFIG``
    2. ``<work_tree>/.draftsnap/config.yml``
    3. ``<work_tree>/.draftsnap/config.yaml``
    4. ``~/.config/draftsnap/config.yml``
    """
    root = Path(work_tree) if work_tree else Path.cwd()
    candidates: list[Path] = []

    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())

    candidates.append(root / PROJECT_CONFIG_DIR / "config.yml")
    candidates.append(root / PROJECT_CONFIG_DIR / "config.yaml")
    candidates.append(Path.home() / ".config" / "draftsnap" / "config.yml")
    return candidates


def discover_config_files(work_tree: str | os.PathLike | None = None) -> list[Path]:
    """Existing config files, highest precedence first."""
    return [p for p in candidate_config_files(work_tree) if p.exists()]


# ---------------------------------------------------------------------------
# Starter file
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# draftsnap configuration
#
# Environment variables override these values:
#   DRAFTSNAP_SCRATCH, DRAFTSNAP_GIT_DIR, DRAFTSNAP_LOCK_TIMEOUT,
#   DRAFTSNAP_DEBOUNCE_MS, DRAFTSNAP_INCLUDE_DELETE, DRAFTSNAP_DEBUG
#
# sidecar:
#   scratch_dir: scratch
#   git_dir: .git-scratch
#
# lock:
#   timeout: 5.0
#
# watch:
#   pattern: "scratch/**/*.md"
#   debounce_ms: 500
#   include_delete: false
#   initial_snap: true
#
# prune:
#   keep: 100
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(
    target: Path | None = None, work_tree: str | os.PathLike | None = None
) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to create the starter (default:
            ``<work_tree>/.draftsnap/config.yml``).
        work_tree: Project root used for discovery.
    """
    existing = discover_config_files(work_tree)
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    root = Path(work_tree) if work_tree else Path.cwd()
    config_path = target or root / PROJECT_CONFIG_DIR / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config(
    work_tree: str | os.PathLike | None = None,
) -> dict[str, Any]:
    """Load every discovered config file into one dict.

    Files are applied from the most global to the most local; a later
    file's top-level keys replace earlier ones wholesale. Environment
    references are expanded after merging. No files means ``{}``.
    """
    paths = discover_config_files(work_tree)
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
