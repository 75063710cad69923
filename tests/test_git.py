"""Tests for draftsnap.core.git: the pinned git client."""

from unittest.mock import patch

import pytest

from draftsnap.core.git import GitClient, clean_git_env, resolve_main_git_dir, run_git
from draftsnap.errors import GitError

pytestmark = pytest.mark.git


class TestGitClient:
    def test_exec_runs_against_sidecar(self, ready_sidecar):
        result = ready_sidecar.git().exec(["rev-parse", "--absolute-git-dir"])
        assert result.stdout == ready_sidecar.git_dir

    def test_trailing_newline_trimmed(self, ready_sidecar):
        result = ready_sidecar.git().exec(["config", "user.name"])
        assert not result.stdout.endswith("\n")

    def test_untrimmed_output(self, ready_sidecar):
        result = ready_sidecar.git().exec(["config", "user.name"], trim=False)
        assert result.stdout.endswith("\n")

    def test_failure_raises_git_error(self, ready_sidecar):
        with pytest.raises(GitError) as exc:
            ready_sidecar.git().exec(["rev-parse", "--verify", "HEAD"])
        assert exc.value.exit_code != 0
        assert exc.value.git_args == ("rev-parse", "--verify", "HEAD")
        assert exc.value.is_missing_revision()

    def test_missing_executable_raises_git_error(self, ready_sidecar):
        with patch(
            "draftsnap.core.git.subprocess.run",
            side_effect=FileNotFoundError("git"),
        ):
            with pytest.raises(GitError) as exc:
                ready_sidecar.git().exec(["status"])
        assert exc.value.exit_code is None

    def test_environment_overrides_ignored(self, ready_sidecar, tmp_path, monkeypatch):
        """A stray GIT_DIR never redirects the client."""
        monkeypatch.setenv("GIT_DIR", str(tmp_path / "elsewhere"))
        result = ready_sidecar.git().exec(["rev-parse", "--absolute-git-dir"])
        assert result.stdout == ready_sidecar.git_dir

    async def test_head_is_none_before_first_commit(self, ready_sidecar):
        assert await ready_sidecar.git().head() is None

    def test_exec_bytes_returns_raw_stdout(self, ready_sidecar):
        out = ready_sidecar.git().exec_bytes(["config", "user.name"])
        assert isinstance(out, bytes)
        assert out.endswith(b"\n")

    async def test_aexec_bytes_failure_raises_git_error(self, ready_sidecar):
        with pytest.raises(GitError) as exc:
            await ready_sidecar.git().aexec_bytes(["show", "HEAD:missing.md"])
        assert exc.value.exit_code != 0
        assert exc.value.stderr

    async def test_aexec_matches_exec(self, ready_sidecar):
        git: GitClient = ready_sidecar.git()
        assert (await git.aexec(["config", "user.email"])).stdout == git.exec(
            ["config", "user.email"]
        ).stdout


def test_clean_git_env_strips_location_vars(monkeypatch):
    monkeypatch.setenv("GIT_DIR", "/x")
    monkeypatch.setenv("GIT_INDEX_FILE", "/x/index")
    env = clean_git_env()
    assert "GIT_DIR" not in env
    assert "GIT_INDEX_FILE" not in env


def test_run_git_failure(tmp_path):
    with pytest.raises(GitError):
        run_git(["rev-parse", "HEAD"], cwd=str(tmp_path))


def test_resolve_main_git_dir(work_tree, host_repo):
    assert resolve_main_git_dir(str(work_tree)) == str(host_repo.resolve())


def test_resolve_main_git_dir_outside_repo(work_tree):
    assert resolve_main_git_dir(str(work_tree)) is None
