"""Tests for draftsnap diff."""

import pytest

from draftsnap.commands import diff_command, snap_command
from draftsnap.errors import InvalidArgsError

pytestmark = pytest.mark.git


class TestDiff:
    async def test_no_commits(self, sidecar):
        result = await diff_command(sidecar)
        assert result.patch == ""
        assert result.base is None
        assert result.target == "HEAD"

    async def test_single_commit_has_no_base(self, sidecar, write_scratch):
        write_scratch("a.md", "one\n")
        snap = await snap_command(sidecar, "scratch/a.md")
        result = await diff_command(sidecar)
        assert result.patch == ""
        assert result.base is None
        assert result.target == snap.commit

    async def test_last_two_snapshots(self, sidecar, write_scratch):
        path = write_scratch("a.md", "one\n")
        first = await snap_command(sidecar, "scratch/a.md")
        path.write_text("two\n", encoding="utf-8")
        second = await snap_command(sidecar, "scratch/a.md")

        result = await diff_command(sidecar)
        assert result.base == first.commit
        assert result.target == second.commit
        assert "-one" in result.patch
        assert "+two" in result.patch

    async def test_path_filter(self, sidecar, write_scratch):
        a = write_scratch("a.md", "a1\n")
        b = write_scratch("b.md", "b1\n")
        await snap_command(sidecar, all_files=True)
        a.write_text("a2\n", encoding="utf-8")
        b.write_text("b2\n", encoding="utf-8")
        await snap_command(sidecar, all_files=True)

        result = await diff_command(sidecar, "scratch/b.md")
        assert "+b2" in result.patch
        assert "a2" not in result.patch

    async def test_current_working_tree(self, sidecar, write_scratch):
        path = write_scratch("a.md", "saved\n")
        await snap_command(sidecar, "scratch/a.md")
        path.write_text("editing\n", encoding="utf-8")

        result = await diff_command(sidecar, current=True)
        assert result.target == "working-tree"
        assert result.base is None
        assert "+editing" in result.patch

    @pytest.mark.parametrize("path", ["../outside.md", "README.md", "/etc/passwd"])
    async def test_path_outside_scratch_rejected(self, sidecar, path):
        with pytest.raises(InvalidArgsError):
            await diff_command(sidecar, path)
        with pytest.raises(InvalidArgsError):
            await diff_command(sidecar, path, current=True)

    async def test_scratch_root_filter_allowed(self, sidecar, write_scratch):
        path = write_scratch("a.md", "one\n")
        await snap_command(sidecar, "scratch/a.md")
        path.write_text("two\n", encoding="utf-8")
        result = await diff_command(sidecar, "scratch", current=True)
        assert "+two" in result.patch
