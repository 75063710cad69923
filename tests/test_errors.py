"""Tests for draftsnap.errors and the result envelopes in draftsnap.models."""

import pytest
from pydantic import ValidationError

from draftsnap.errors import (
    DraftsnapError,
    ExitCode,
    GitError,
    InvalidArgsError,
    LockError,
    NoChangesError,
    NotInitializedError,
    PreconditionFailedError,
)
from draftsnap.models import (
    PruneResult,
    SnapResult,
    StatusResult,
    WatchResult,
)


class TestExitCodes:
    def test_values_are_stable(self):
        assert ExitCode.OK == 0
        assert ExitCode.NO_CHANGES == 10
        assert ExitCode.NOT_INITIALIZED == 11
        assert ExitCode.LOCKED == 12
        assert ExitCode.PRECONDITION_FAILED == 13
        assert ExitCode.INVALID_ARGS == 14

    @pytest.mark.parametrize(
        "error, code",
        [
            (InvalidArgsError("bad"), ExitCode.INVALID_ARGS),
            (LockError(), ExitCode.LOCKED),
            (NoChangesError(), ExitCode.NO_CHANGES),
            (NotInitializedError(), ExitCode.NOT_INITIALIZED),
            (PreconditionFailedError("nope"), ExitCode.PRECONDITION_FAILED),
        ],
    )
    def test_subclass_default_codes(self, error, code):
        assert isinstance(error, DraftsnapError)
        assert error.code == code

    def test_explicit_code_overrides_default(self):
        error = DraftsnapError("custom", code=ExitCode.LOCKED)
        assert error.code == ExitCode.LOCKED
        assert error.message == "custom"


class TestGitError:
    def test_message_includes_args_and_stderr(self):
        error = GitError(["log", "-1"], 128, "", "fatal: bad thing\n")
        assert str(error) == "git log -1 (exit code 128): fatal: bad thing"
        assert error.git_args == ("log", "-1")
        assert error.exit_code == 128
        assert error.code == ExitCode.PRECONDITION_FAILED

    def test_unknown_exit_code(self):
        error = GitError(["status"], None, "", "")
        assert str(error) == "git status (exit code unknown)"

    @pytest.mark.parametrize(
        "stderr",
        [
            "fatal: ambiguous argument 'HEAD': unknown revision or path",
            "fatal: your current branch 'main' does not have any commits yet",
            "fatal: Needed a single revision",
            "fatal: bad revision 'HEAD^'",
        ],
    )
    def test_missing_revision_detected(self, stderr):
        assert GitError(["rev-parse"], 128, "", stderr).is_missing_revision()

    def test_other_failures_not_missing_revision(self):
        error = GitError(["commit"], 1, "", "error: unable to write index")
        assert not error.is_missing_revision()


class TestResultPayloads:
    def test_snap_payload_envelope(self):
        result = SnapResult(
            commit="abc", path="scratch/a.md", paths=["scratch/a.md"],
            files_count=1, bytes=5,
        )
        assert result.to_payload() == {
            "status": "ok",
            "code": 0,
            "data": {
                "commit": "abc",
                "path": "scratch/a.md",
                "paths": ["scratch/a.md"],
                "files_count": 1,
                "bytes": 5,
            },
        }

    def test_no_changes_is_still_ok(self):
        payload = PruneResult(code=ExitCode.NO_CHANGES, kept=2).to_payload()
        assert payload["status"] == "ok"
        assert payload["code"] == 10
        assert payload["data"]["removed_commits"] == []

    def test_nested_models_serialized(self):
        payload = StatusResult(
            initialized=True, locked=False, git_dir="/x/.git-scratch",
            scratch_dir="scratch",
        ).to_payload()
        assert payload["data"]["exclude"]["sidecar"]["wildcard"] is False
        assert payload["data"]["working_tree"]["has_uncommitted_changes"] is False

    def test_results_are_frozen(self):
        result = WatchResult(snaps_count=1, pattern="scratch/*.md", debounce=500)
        with pytest.raises(ValidationError):
            result.snaps_count = 2
