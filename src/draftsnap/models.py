"""Pydantic result models for draftsnap commands.

Every command returns one of these. ``to_payload()`` produces the JSON
envelope written by the CLI::

    {"status": "ok", "code": 0, "data": {...}}

All models are frozen (immutable).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from .errors import ExitCode


class CommandResult(BaseModel):
    """Base for command results.

    Attributes:
        code: Result code; ``NO_CHANGES`` still counts as success.
    """

    code: ExitCode = ExitCode.OK

    model_config = {"frozen": True}

    @property
    def changed(self) -> bool:
        return self.code == ExitCode.OK

    def data(self) -> dict[str, Any]:
        """Return the result fields (everything except ``code``)."""
        return self.model_dump(mode="json", exclude={"code"})

    def to_payload(self) -> dict[str, Any]:
        return {"status": "ok", "code": int(self.code), "data": self.data()}


class EnsureResult(CommandResult):
    """Outcome of bootstrapping the sidecar.

    Attributes:
        initialized: True if this call created the store.
        git_dir: Absolute store directory.
        scratch_dir: Scratch directory name.
        files: Files under the scratch directory, prefixed with its name.
    """

    initialized: bool
    git_dir: str
    scratch_dir: str
    files: list[str] = Field(default_factory=list)


class SnapResult(CommandResult):
    """Outcome of one snapshot.

    Attributes:
        commit: New commit id, ``None`` when nothing changed.
        path: Sanitized target path (``None`` for ``--all``).
        paths: Staged paths included in the commit.
        files_count: Number of staged paths.
        bytes: Total size of staged files still present on disk.
    """

    commit: str | None = None
    path: str | None = None
    paths: list[str] = Field(default_factory=list)
    files_count: int = 0
    bytes: int = 0


class RestoreResult(CommandResult):
    path: str
    bytes: int
    revision: str
    backup: str | None = None


class PruneResult(CommandResult):
    """Outcome of a history truncation.

    Attributes:
        kept: Commits remaining.
        removed: Commits dropped.
        removed_commits: Dropped commit ids, oldest first.
    """

    kept: int = 0
    removed: int = 0
    removed_commits: list[str] = Field(default_factory=list)


class LogEntry(BaseModel):
    commit: str
    timestamp: str
    message: str = ""

    model_config = {"frozen": True}


class TimelineHighlight(BaseModel):
    type: Literal["add", "del", "context"]
    text: str

    model_config = {"frozen": True}


class TimelineEntry(BaseModel):
    commit: str
    timestamp: str = ""
    message: str = ""
    additions: int = 0
    deletions: int = 0
    highlights: list[TimelineHighlight] = Field(default_factory=list)

    model_config = {"frozen": True}


class TimelineSummary(BaseModel):
    commits: int = 0
    total_additions: int = 0
    total_deletions: int = 0
    net: int = 0

    model_config = {"frozen": True}


class TimelineBar(BaseModel):
    scale: int
    filled: int

    model_config = {"frozen": True}


class Timeline(BaseModel):
    summary: TimelineSummary
    bars: TimelineBar
    entries: list[TimelineEntry] = Field(default_factory=list)
    path: str

    model_config = {"frozen": True}


class LogResult(CommandResult):
    entries: list[LogEntry] = Field(default_factory=list)
    timeline: Timeline | None = None


class DiffResult(CommandResult):
    """Patch text between two snapshots, or HEAD and the working tree.

    Attributes:
        patch: Unified diff (empty when there is nothing to compare).
        base: Base commit id, ``None`` when there is no parent.
        target: Target commit id, ``"HEAD"`` or ``"working-tree"``.
    """

    patch: str = ""
    base: str | None = None
    target: str = "HEAD"


class HostExcludeStatus(BaseModel):
    git_dir: bool = False
    scratch_dir: bool = False

    model_config = {"frozen": True}


class SidecarExcludeStatus(BaseModel):
    wildcard: bool = False
    scratch_dir: bool = False
    scratch_glob: bool = False

    model_config = {"frozen": True}


class ExcludeStatus(BaseModel):
    main: HostExcludeStatus = Field(default_factory=HostExcludeStatus)
    sidecar: SidecarExcludeStatus = Field(
        default_factory=SidecarExcludeStatus
    )

    model_config = {"frozen": True}


class WorkingTreeStatus(BaseModel):
    """Uncommitted changes under the scratch directory.

    Paths are sorted and each appears in at most one bucket per kind.
    """

    has_uncommitted_changes: bool = False
    modified: list[str] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class StatusResult(CommandResult):
    """Read-only report on the sidecar store.

    Attributes:
        initialized: Store has a ``HEAD``.
        locked: The operation lock directory exists.
        watch_pid: PID recorded by a running watch session, if any.
        git_dir: Absolute store directory.
        scratch_dir: Scratch directory name.
        exclude: Which exclusion rules are in place.
        working_tree: Uncommitted scratch changes (empty before the first
            commit).
    """

    initialized: bool
    locked: bool
    watch_pid: int | None = None
    git_dir: str
    scratch_dir: str
    exclude: ExcludeStatus = Field(default_factory=ExcludeStatus)
    working_tree: WorkingTreeStatus = Field(default_factory=WorkingTreeStatus)


class WatchResult(CommandResult):
    snaps_count: int = 0
    pattern: str
    debounce: float
