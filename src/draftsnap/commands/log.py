"""``draftsnap log``: list snapshots, optionally as a per-file timeline."""

from __future__ import annotations

import logging
import re

from ..core.repository import Sidecar, ensure_sidecar
from ..errors import InvalidArgsError
from ..models import (
    LogEntry,
    LogResult,
    Timeline,
    TimelineBar,
    TimelineEntry,
    TimelineHighlight,
    TimelineSummary,
)
from ..validators import sanitize_filter_path, sanitize_target_path

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\x1f"
_NUMSTAT_PATTERN = re.compile(r"^(\d+|-)\t(\d+|-)\t(.+)$")
MAX_HIGHLIGHTS = 2


def parse_pretty_log(output: str) -> list[LogEntry]:
    """Parse ``--pretty=%H<US>%ad<US>%s`` output."""
    entries: list[LogEntry] = []
    for line in output.split("\n"):
        if not line.strip():
            continue
        parts = line.split(FIELD_SEPARATOR)
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        message = parts[2] if len(parts) > 2 else ""
        entries.append(
            LogEntry(commit=parts[0], timestamp=parts[1], message=message)
        )
    return entries


def parse_numstat(
    output: str, target_path: str
) -> tuple[list[TimelineEntry], TimelineSummary]:
    """Parse ``commit/date/message`` headers followed by ``--numstat`` rows.

    Only rows for ``target_path`` count toward additions and deletions.
    """
    raw: list[dict] = []
    current: dict | None = None
    total_additions = 0
    total_deletions = 0

    for line in output.split("\n"):
        if not line.strip():
            continue
        if line.startswith("commit "):
            current = {
                "commit": line.split(" ", 1)[1].strip(),
                "timestamp": "",
                "message": "",
                "additions": 0,
                "deletions": 0,
                "highlights": [],
            }
            raw.append(current)
            continue
        if current is None:
            continue
        if line.startswith("date "):
            current["timestamp"] = line[5:]
            continue
        if line.startswith("message "):
            current["message"] = line[8:]
            continue

        match = _NUMSTAT_PATTERN.match(line)
        if not match:
            continue
        add_str, del_str, file_name = match.groups()
        if file_name != target_path:
            continue
        additions = 0 if add_str == "-" else int(add_str)
        deletions = 0 if del_str == "-" else int(del_str)
        current["additions"] += additions
        current["deletions"] += deletions
        total_additions += additions
        total_deletions += deletions
        if additions > 0:
            current["highlights"].append(
                TimelineHighlight(type="add", text=f"+{additions} lines")
            )
        if deletions > 0:
            current["highlights"].append(
                TimelineHighlight(type="del", text=f"-{deletions} lines")
            )

    entries = [
        TimelineEntry(
            **{**item, "highlights": item["highlights"][:MAX_HIGHLIGHTS]}
        )
        for item in raw
        if item["additions"] > 0 or item["deletions"] > 0 or item["message"]
    ]
    summary = TimelineSummary(
        commits=len(entries),
        total_additions=total_additions,
        total_deletions=total_deletions,
        net=total_additions - total_deletions,
    )
    return entries, summary


def compute_timeline_bar(
    commits: int, scale: int = 10, max_commits: int = 1
) -> TimelineBar:
    """Return how many of ``scale`` cells a commit count fills."""
    scale = max(1, scale)
    max_commits = max(1, max_commits)
    ratio = min(1.0, commits / max_commits)
    filled = round(ratio * scale)
    return TimelineBar(scale=scale, filled=min(scale, max(0, filled)))


async def log_command(
    sidecar: Sidecar,
    path: str | None = None,
    *,
    since: int | None = None,
    timeline: bool = False,
) -> LogResult:
    """List snapshots, newest first.

    Args:
        sidecar: Store locations.
        path: Optional path filter.
        since: Limit to the newest ``since`` commits.
        timeline: Summarize additions/deletions for ``path``.

    Raises:
        InvalidArgsError: Timeline mode without a path, or a path outside
            the scratch dir.
    """
    pathspec = None
    if path and not timeline:
        pathspec = sanitize_filter_path(path, sidecar.work_tree, sidecar.scratch_dir)

    await ensure_sidecar(sidecar)
    git = sidecar.git()

    if await git.head() is None:
        return LogResult()

    if timeline:
        if not path:
            raise InvalidArgsError("timeline mode requires -- <path>")
        target = sanitize_target_path(
            path, sidecar.work_tree, sidecar.scratch_dir
        )
        if not target:
            raise InvalidArgsError("path must be within scratch directory")

        args = [
            "log",
            "--follow",
            "--date=iso-strict",
            "--pretty=commit %H%ndate %ad%nmessage %s",
            "--numstat",
        ]
        if since and since > 0:
            args.append(f"-{since}")
        args += ["--", target]
        result = await git.aexec(args)
        entries, summary = parse_numstat(result.stdout, target)

        if not entries:
            logger.info("no timeline entries for %s", target)
        else:
            logger.info("timeline for %s", target)
            for entry in entries:
                logger.info(
                    "%s %s +%d/-%d",
                    entry.timestamp,
                    entry.message,
                    entry.additions,
                    entry.deletions,
                )

        bars = compute_timeline_bar(
            len(entries), scale=10, max_commits=max(1, len(entries))
        )
        return LogResult(
            timeline=Timeline(
                summary=summary, bars=bars, entries=entries, path=target
            )
        )

    sep = FIELD_SEPARATOR
    args = ["log", "--date=iso-strict", f"--pretty=%H{sep}%ad{sep}%s"]
    if since and since > 0:
        args.append(f"-{since}")
    if pathspec:
        args += ["--", pathspec]
    result = await git.aexec(args)
    entries = parse_pretty_log(result.stdout)

    if not entries:
        logger.info("no log entries")
    for entry in entries:
        logger.info("%s %s %s", entry.commit[:7], entry.timestamp, entry.message)

    return LogResult(entries=entries)
