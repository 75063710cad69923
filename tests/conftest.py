"""Shared pytest fixtures for draftsnap tests."""

import shutil
from pathlib import Path

import pytest

from draftsnap.core import lock as lock_module
from draftsnap.core.git import run_git
from draftsnap.core.repository import Sidecar, ensure_sidecar_sync

GIT_AVAILABLE = shutil.which("git") is not None

_ENV_VARS = (
    "DRAFTSNAP_CONFIG",
    "DRAFTSNAP_SCRATCH",
    "DRAFTSNAP_GIT_DIR",
    "DRAFTSNAP_LOCK_TIMEOUT",
    "DRAFTSNAP_DEBOUNCE_MS",
    "DRAFTSNAP_INCLUDE_DELETE",
    "DRAFTSNAP_DEBUG",
    "LOG_LEVEL",
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_AUTHOR_NAME",
    "GIT_AUTHOR_EMAIL",
    "GIT_COMMITTER_NAME",
    "GIT_COMMITTER_EMAIL",
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "git: mark test as requiring the git executable"
    )


def pytest_collection_modifyitems(config, items):
    """Skip git tests when git is not installed."""
    if GIT_AVAILABLE:
        return
    skip_git = pytest.mark.skip(reason="git executable not available")
    for item in items:
        if "git" in item.keywords:
            item.add_marker(skip_git)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep user config (git and draftsnap) out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    lock_module.release_all()


@pytest.fixture
def work_tree(tmp_path) -> Path:
    """An empty project directory (not a git repository)."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def sidecar(work_tree) -> Sidecar:
    return Sidecar.resolve(work_tree)


@pytest.fixture
def ready_sidecar(sidecar) -> Sidecar:
    """A sidecar whose store has been bootstrapped."""
    ensure_sidecar_sync(sidecar)
    return sidecar


@pytest.fixture
def host_repo(work_tree) -> Path:
    """Turn the work tree into a host git repository; return its git dir."""
    run_git(["init", "--quiet"], cwd=str(work_tree))
    return work_tree / ".git"


@pytest.fixture
def write_scratch(sidecar):
    """Factory writing a file below the scratch directory."""

    def _write(relative: str, content: str = "") -> Path:
        path = Path(sidecar.scratch_root) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def commit_count():
    """Return the number of commits reachable from a sidecar's HEAD."""

    def _count(target: Sidecar) -> int:
        result = target.git().exec(["rev-list", "--count", "HEAD"])
        return int(result.stdout.strip())

    return _count
