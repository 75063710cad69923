"""Tests for draftsnap status."""

import os

import pytest

from draftsnap.commands import parse_git_status, snap_command, status_command
from draftsnap.core.lock import LOCK_DIRNAME
from draftsnap.core.watch_lock import WATCH_PID_FILENAME


class TestParseGitStatus:
    def test_empty(self):
        result = parse_git_status("")
        assert result.has_uncommitted_changes is False
        assert result.modified == result.added == result.deleted == []

    def test_modified_in_either_column(self):
        result = parse_git_status(" M scratch/a.md\0M  scratch/b.md\0MM scratch/c.md\0")
        assert result.modified == ["scratch/a.md", "scratch/b.md", "scratch/c.md"]
        assert result.has_uncommitted_changes is True

    def test_untracked_and_staged_added(self):
        result = parse_git_status("?? scratch/new.md\0A  scratch/staged.md\0")
        assert result.added == ["scratch/new.md", "scratch/staged.md"]

    def test_deleted(self):
        result = parse_git_status(" D scratch/a.md\0D  scratch/b.md\0")
        assert result.deleted == ["scratch/a.md", "scratch/b.md"]

    def test_rename_uses_new_name_and_skips_source(self):
        result = parse_git_status("R  scratch/new.md\0scratch/old.md\0 M scratch/c.md\0")
        assert result.modified == ["scratch/c.md", "scratch/new.md"]
        assert result.added == result.deleted == []

    def test_paths_kept_verbatim(self):
        """Spaces, quotes and non-ASCII names are not quoted in -z output."""
        result = parse_git_status(' D scratch/my notes.md\0 D scratch/メモ.md\0?? scratch/"q".md\0')
        assert result.deleted == ["scratch/my notes.md", "scratch/メモ.md"]
        assert result.added == ['scratch/"q".md']

    def test_directories_and_short_records_skipped(self):
        result = parse_git_status("?? scratch/dir/\0x\0")
        assert result.has_uncommitted_changes is False

    def test_sorted_without_duplicates(self):
        result = parse_git_status(" M scratch/b.md\0 M scratch/a.md\0 M scratch/b.md\0")
        assert result.modified == ["scratch/a.md", "scratch/b.md"]


class TestStatusCommand:
    async def test_uninitialized_is_read_only(self, sidecar):
        result = await status_command(sidecar)
        assert result.initialized is False
        assert result.locked is False
        assert result.watch_pid is None
        assert result.exclude.sidecar.wildcard is False
        assert not os.path.exists(sidecar.git_dir)
        assert not os.path.exists(sidecar.scratch_root)

    @pytest.mark.git
    async def test_initialized_reports_excludes(self, ready_sidecar):
        result = await status_command(ready_sidecar)
        assert result.initialized is True
        assert result.git_dir == ready_sidecar.git_dir
        assert result.scratch_dir == "scratch"
        side = result.exclude.sidecar
        assert side.wildcard and side.scratch_dir and side.scratch_glob
        assert result.exclude.main.git_dir is False

    @pytest.mark.git
    async def test_host_excludes(self, host_repo, sidecar):
        from draftsnap.core.repository import ensure_sidecar_sync

        ensure_sidecar_sync(sidecar)
        result = await status_command(sidecar)
        assert result.exclude.main.git_dir is True
        assert result.exclude.main.scratch_dir is True

    @pytest.mark.git
    async def test_lock_and_watch_markers(self, ready_sidecar):
        os.mkdir(os.path.join(ready_sidecar.git_dir, LOCK_DIRNAME))
        with open(os.path.join(ready_sidecar.git_dir, WATCH_PID_FILENAME), "w") as fh:
            fh.write("4242\n")
        result = await status_command(ready_sidecar)
        assert result.locked is True
        assert result.watch_pid == 4242

    @pytest.mark.git
    async def test_working_tree_changes(self, sidecar, write_scratch):
        kept = write_scratch("kept.md", "1")
        gone = write_scratch("gone.md", "1")
        await snap_command(sidecar, all_files=True)
        kept.write_text("2", encoding="utf-8")
        gone.unlink()
        write_scratch("sub/new.md", "n")

        result = await status_command(sidecar)
        changes = result.working_tree
        assert changes.has_uncommitted_changes is True
        assert changes.modified == ["scratch/kept.md"]
        assert changes.deleted == ["scratch/gone.md"]
        assert changes.added == ["scratch/sub/new.md"]

    @pytest.mark.git
    async def test_deleted_names_with_spaces_and_unicode(self, sidecar, write_scratch):
        spaced = write_scratch("my notes.md", "1")
        unicode_name = write_scratch("メモ.md", "1")
        await snap_command(sidecar, all_files=True)
        spaced.unlink()
        unicode_name.unlink()

        result = await status_command(sidecar)
        assert result.working_tree.deleted == ["scratch/my notes.md", "scratch/メモ.md"]
        assert result.working_tree.modified == []
