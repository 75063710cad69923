"""Tests for the draftsnap command line: parsing, payloads and exit codes."""

import io
import json
from unittest.mock import MagicMock

import pytest

from draftsnap import __version__
from draftsnap.cli import DEFAULT_HINT, build_parser, main
from draftsnap.commands import PROMPT_TEXT
from draftsnap.core.lock import LOCK_DIRNAME
from draftsnap.errors import ExitCode


@pytest.fixture(autouse=True)
def project(work_tree, monkeypatch):
    """Run every command from inside the project directory."""
    monkeypatch.chdir(work_tree)
    return work_tree


@pytest.fixture(autouse=True)
def logging_setup(monkeypatch):
    """Keep setup_logging from replacing pytest's log handlers."""
    mock = MagicMock()
    monkeypatch.setattr("draftsnap.cli.setup_logging", mock)
    return mock


def payloads(capsys):
    out = capsys.readouterr().out
    return [json.loads(line) for line in out.splitlines() if line.strip()]


class TestParser:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_snap_options(self):
        args = build_parser().parse_args(
            ["--json", "snap", "a.md", "-m", "purpose: x", "--space", "research"]
        )
        assert args.command == "snap"
        assert args.path == "a.md"
        assert args.message == "purpose: x"
        assert args.space == "research"
        assert args.json is True

    def test_watch_options(self):
        args = build_parser().parse_args(
            ["watch", "--pattern", "scratch/*.md", "--debounce", "250", "--include-delete"]
        )
        assert args.debounce == 250.0
        assert args.include_delete is True
        assert args.no_initial_snap is False


class TestStorelessCommands:
    """Commands that never touch the sidecar store."""

    def test_no_command_prints_hint(self, capsys, project):
        assert main([]) == ExitCode.OK
        assert DEFAULT_HINT in capsys.readouterr().out
        assert not (project / ".git-scratch").exists()

    def test_no_command_json(self, capsys):
        assert main(["--json"]) == ExitCode.OK
        assert payloads(capsys) == [{"status": "ok", "code": 0, "message": DEFAULT_HINT}]

    def test_prompt(self, capsys):
        assert main(["prompt"]) == ExitCode.OK
        assert PROMPT_TEXT.strip() in capsys.readouterr().out

    def test_prompt_json(self, capsys):
        main(["--json", "prompt"])
        assert payloads(capsys) == [{"status": "ok", "code": 0, "message": PROMPT_TEXT}]

    def test_config_creates_starter(self, capsys, project):
        assert main(["--json", "config"]) == ExitCode.OK
        path = project / ".draftsnap" / "config.yml"
        assert path.exists()
        assert payloads(capsys) == [
            {"status": "ok", "code": 0, "data": {"path": str(path)}}
        ]

    def test_invalid_config_is_invalid_args(self, capsys, project):
        (project / ".draftsnap").mkdir()
        (project / ".draftsnap" / "config.yml").write_text("prune:\n  keep: 0\n")
        assert main(["--json", "status"]) == ExitCode.INVALID_ARGS
        payload = payloads(capsys)[0]
        assert payload["status"] == "error"
        assert payload["code"] == int(ExitCode.INVALID_ARGS)

    def test_absolute_scratch_rejected(self, capsys):
        assert main(["--scratch", "/abs", "status"]) == ExitCode.INVALID_ARGS
        assert "must be relative" in capsys.readouterr().err


@pytest.mark.git
class TestStoreCommands:
    def test_ensure_json(self, capsys, project):
        assert main(["--json", "ensure"]) == ExitCode.OK
        payload = payloads(capsys)[0]
        assert payload["status"] == "ok"
        assert payload["code"] == 0
        assert payload["data"]["initialized"] is True
        assert payload["data"]["git_dir"] == str(project / ".git-scratch")
        assert payload["data"]["scratch_dir"] == "scratch"

    def test_json_mode_configures_quiet_logging(self, logging_setup):
        main(["--json", "ensure"])
        assert logging_setup.call_args.kwargs["json_output"] is True

    def test_custom_locations(self, capsys, project):
        main(["--json", "--scratch", "notes", "--git-dir", ".snaps", "ensure"])
        data = payloads(capsys)[0]["data"]
        assert data["scratch_dir"] == "notes"
        assert (project / ".snaps" / "HEAD").exists()
        assert (project / "notes").is_dir()

    def test_snap_then_no_changes(self, capsys, project):
        (project / "scratch").mkdir()
        (project / "scratch" / "a.md").write_text("hello")
        assert main(["--json", "snap", "scratch/a.md", "-m", "purpose: first"]) == ExitCode.OK
        first = payloads(capsys)[0]
        assert first["data"]["path"] == "scratch/a.md"
        assert first["data"]["bytes"] == 5
        assert len(first["data"]["commit"]) == 40

        assert main(["--json", "snap", "scratch/a.md"]) == ExitCode.NO_CHANGES
        second = payloads(capsys)[0]
        assert second["status"] == "ok"
        assert second["code"] == int(ExitCode.NO_CHANGES)
        assert second["data"]["commit"] is None

    def test_snap_stdin(self, capsys, project, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("piped\n"))
        assert main(["--json", "snap", "notes.md", "--stdin"]) == ExitCode.OK
        assert (project / "scratch" / "notes.md").read_text() == "piped\n"

    def test_snap_outside_scratch(self, capsys):
        assert main(["--json", "snap", "../escape.md"]) == ExitCode.INVALID_ARGS
        payload = payloads(capsys)[0]
        assert payload == {
            "status": "error",
            "code": int(ExitCode.INVALID_ARGS),
            "message": "path must be within scratch directory",
        }

    def test_locked(self, capsys, project, monkeypatch):
        monkeypatch.setenv("DRAFTSNAP_LOCK_TIMEOUT", "0.1")
        main(["ensure"])
        capsys.readouterr()
        (project / ".git-scratch" / LOCK_DIRNAME).mkdir()
        (project / "scratch" / "a.md").write_text("x")
        code = main(["--json", "snap", "scratch/a.md"])
        assert code == ExitCode.LOCKED
        assert payloads(capsys)[0]["code"] == int(ExitCode.LOCKED)

    def test_restore_requires_path(self, capsys):
        assert main(["--json", "restore", "HEAD"]) == ExitCode.INVALID_ARGS
        assert payloads(capsys)[0]["message"] == "path is required"

    def test_restore_before_any_snapshot(self, capsys, project):
        code = main(["--json", "restore", "HEAD", "scratch/a.md"])
        assert code == ExitCode.NOT_INITIALIZED
        assert payloads(capsys)[0]["message"] == "no snapshots to restore from"

    def test_log_and_status(self, capsys, project):
        (project / "scratch").mkdir()
        (project / "scratch" / "a.md").write_text("x")
        main(["snap", "scratch/a.md", "-m", "purpose: one"])
        capsys.readouterr()

        assert main(["--json", "log"]) == ExitCode.OK
        entries = payloads(capsys)[0]["data"]["entries"]
        assert [e["message"] for e in entries] == ["purpose: one"]

        assert main(["--json", "status"]) == ExitCode.OK
        status = payloads(capsys)[0]["data"]
        assert status["initialized"] is True
        assert status["locked"] is False
        assert status["working_tree"]["has_uncommitted_changes"] is False

    def test_prune_keep_from_cli(self, capsys, project):
        path = project / "scratch" / "a.md"
        path.parent.mkdir()
        for index in range(3):
            path.write_text(str(index))
            main(["snap", "scratch/a.md"])
        capsys.readouterr()

        assert main(["--json", "prune", "--keep", "1"]) == ExitCode.OK
        data = payloads(capsys)[0]["data"]
        assert data["kept"] == 1
        assert data["removed"] == 2

    def test_prune_invalid_keep(self, capsys):
        assert main(["--json", "prune", "--keep", "0"]) == ExitCode.INVALID_ARGS
