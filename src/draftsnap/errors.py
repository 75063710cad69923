"""Error taxonomy and exit codes shared by every draftsnap command.

Each error carries a small integer ``code`` that the CLI surfaces as the
process exit status, so callers can branch without parsing text.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ExitCode(IntEnum):
    """Exit/result codes surfaced to callers."""

    OK = 0
    NO_CHANGES = 10
    NOT_INITIALIZED = 11
    LOCKED = 12
    PRECONDITION_FAILED = 13
    INVALID_ARGS = 14


class DraftsnapError(Exception):
    """Base class for expected, code-carrying failures."""

    default_code = ExitCode.PRECONDITION_FAILED

    def __init__(
        self,
        message: str,
        code: ExitCode | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.context = context


class InvalidArgsError(DraftsnapError):
    """Bad user input. Never retried."""

    default_code = ExitCode.INVALID_ARGS


class LockError(DraftsnapError):
    """Mutual exclusion could not be obtained before the deadline."""

    default_code = ExitCode.LOCKED

    def __init__(
        self, message: str = "another process holds the lock"
    ) -> None:
        super().__init__(message)


class NoChangesError(DraftsnapError):
    default_code = ExitCode.NO_CHANGES

    def __init__(self, message: str = "no changes to snapshot") -> None:
        super().__init__(message)


class NotInitializedError(DraftsnapError):
    default_code = ExitCode.NOT_INITIALIZED

    def __init__(
        self, message: str = "sidecar repository not initialized"
    ) -> None:
        super().__init__(message)


class PreconditionFailedError(DraftsnapError):
    default_code = ExitCode.PRECONDITION_FAILED


# Substrings git prints when a ref or revision does not exist yet.
_MISSING_REVISION_MARKERS = (
    "unknown revision",
    "bad revision",
    "ambiguous argument",
    "does not have any commits yet",
    "needed a single revision",
    "invalid object name",
    "bad default revision",
)


class GitError(DraftsnapError):
    """The git executable exited non-zero (or could not be started).

    Attributes:
        git_args: Arguments passed to git (without the --git-dir/--work-tree prefix).
        exit_code: Process exit status, or ``None`` if git never ran.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    default_code = ExitCode.PRECONDITION_FAILED

    def __init__(
        self,
        args: list[str] | tuple[str, ...],
        exit_code: int | None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        status = exit_code if exit_code is not None else "unknown"
        message = f"git {' '.join(args)} (exit code {status})"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(
            message,
            context={
                "args": list(args),
                "exit_code": exit_code,
                "stderr": stderr,
            },
        )
        self.git_args = tuple(args)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    def is_missing_revision(self) -> bool:
        """Return ``True`` if git failed because a revision does not exist."""
        text = f"{self.stderr}\n{self.stdout}".lower()
        return any(marker in text for marker in _MISSING_REVISION_MARKERS)
