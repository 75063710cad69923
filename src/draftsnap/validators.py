"""
Input validation for draftsnap.

Every user-supplied path passes through ``sanitize_target_path`` before it
reaches the sidecar store; the remaining helpers validate numeric options
and watch patterns before any command touches the filesystem.
"""

import math
import os
import posixpath

from .errors import InvalidArgsError

# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Option or argument name (e.g., "--keep")
        reason: Description of validation failure (e.g., "must be >= 1")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def normalize_separators(value: str) -> str:
    """Convert backslash separators to forward slashes."""
    return value.replace("\\", "/")


# ---------------------------------------------------------------------------
# Path sanitizer
# ---------------------------------------------------------------------------


def sanitize_target_path(
    candidate: str, work_tree: str, scratch_dir: str
) -> str | None:
    """
    Map a user-supplied path onto the scratch directory.

    Args:
        candidate: Relative (to ``work_tree``) or absolute path
        work_tree: Working-tree root
        scratch_dir: Scratch directory name, relative to ``work_tree``

    Returns:
        ``"<scratch_dir>/<suffix>"`` with forward slashes, or ``None`` when
        the candidate is the scratch root itself or lies outside it.

    Resolution is lexical (``os.path.normpath``); symlinks are not followed.
    """
    work_root = os.path.abspath(work_tree)
    scratch_root = os.path.normpath(os.path.join(work_root, scratch_dir))
    if os.path.isabs(candidate):
        target = os.path.normpath(candidate)
    else:
        target = os.path.normpath(os.path.join(work_root, candidate))

    try:
        rel = os.path.relpath(target, scratch_root)
    except ValueError:
        # Different drives on Windows
        return None

    if not rel or rel == os.curdir:
        return None

    segments = rel.split(os.sep)
    if segments[0] == os.pardir:
        return None
    if any(segment in (os.pardir, "") for segment in segments):
        return None

    prefix = normalize_separators(scratch_dir).rstrip("/")
    return f"{prefix}/{'/'.join(segments)}"


def sanitize_filter_path(candidate: str, work_tree: str, scratch_dir: str) -> str:
    """Validate a history filter (``log``/``diff`` pathspec).

    Like :func:`sanitize_target_path` but the scratch root itself is allowed.

    Raises:
        InvalidArgsError: If the path lies outside the scratch directory.
    """
    target = sanitize_target_path(candidate, work_tree, scratch_dir)
    if target:
        return target
    scratch_root = os.path.normpath(os.path.join(os.path.abspath(work_tree), scratch_dir))
    if os.path.isabs(candidate):
        resolved = os.path.normpath(candidate)
    else:
        resolved = os.path.normpath(os.path.join(os.path.abspath(work_tree), candidate))
    if resolved == scratch_root:
        return normalize_separators(scratch_dir).rstrip("/")
    raise InvalidArgsError("path must be within scratch directory")


def resolve_target_path(
    path: str, scratch_dir: str, space: str | None = None
) -> str:
    """
    Place a bare snap target under the scratch directory.

    Absolute paths and paths already starting with the scratch directory are
    returned unchanged (apart from separator normalization); anything else
    is joined under ``scratch_dir`` (or ``scratch_dir/space``).
    """
    normalized = normalize_separators(path)
    if os.path.isabs(path):
        return path

    scratch = normalize_separators(scratch_dir).rstrip("/")
    if normalized == scratch or normalized.startswith(f"{scratch}/"):
        return normalized
    if space:
        return posixpath.join(scratch, space, normalized)
    return posixpath.join(scratch, normalized)


# ---------------------------------------------------------------------------
# Option validators
# ---------------------------------------------------------------------------


def validate_keep(keep: object) -> int:
    """
    Validate a prune retention count.

    Raises:
        InvalidArgsError: If ``keep`` is not an integer >= 1.
    """
    if isinstance(keep, bool) or not isinstance(keep, int) or keep < 1:
        raise InvalidArgsError(format_validation_error("--keep", "must be >= 1"))
    return keep


def validate_debounce(debounce_ms: object) -> float:
    """
    Validate a debounce window in milliseconds.

    Raises:
        InvalidArgsError: If the value is not a finite number >= 0.
    """
    if isinstance(debounce_ms, bool) or not isinstance(
        debounce_ms, (int, float)
    ):
        raise InvalidArgsError(
            format_validation_error("--debounce", "must be >= 0")
        )
    if not math.isfinite(debounce_ms) or debounce_ms < 0:
        raise InvalidArgsError(
            format_validation_error("--debounce", "must be >= 0")
        )
    return float(debounce_ms)


def resolve_watch_pattern(
    pattern: str, work_tree: str, scratch_dir: str
) -> str:
    """
    Validate a watch glob and express it relative to the working tree.

    Validation rules:
        - No ``..`` segments
        - Absolute patterns must lie inside the working tree
        - Cannot be empty
        - Must target the scratch directory

    Returns:
        The pattern as a forward-slash path relative to ``work_tree``.
    """
    normalized = normalize_separators(pattern).strip()
    if any(segment == ".." for segment in normalized.split("/")):
        raise InvalidArgsError(
            "pattern must not traverse outside the working tree"
        )

    if os.path.isabs(normalized):
        rel = normalize_separators(
            os.path.relpath(normalized, os.path.abspath(work_tree))
        )
        if not rel or rel == "." or rel.split("/")[0] == "..":
            raise InvalidArgsError("pattern must be within the working tree")
        normalized = rel

    if not normalized:
        raise InvalidArgsError("pattern is required")

    scratch = normalize_separators(scratch_dir).rstrip("/")
    if normalized != scratch and not normalized.startswith(f"{scratch}/"):
        raise InvalidArgsError("pattern must target the scratch directory")
    return normalized
