"""``draftsnap prompt``: usage guidance for coding agents."""

from __future__ import annotations

from typing import Any

from ..errors import ExitCode

PROMPT_TEXT = """\
You may use a CLI tool named "draftsnap" to manage temporary drafts (e.g., Markdown notes, outlines, experiments) in a sidecar Git repository. It is a safety net for scratch files: earlier versions can always be restored.

Basic workflow:
1) Once per session, run `draftsnap ensure --json`. It idempotently prepares a local sidecar repo, creates the scratch directory and sets `.git/info/exclude`. Proceed only if it returns JSON with code 0.

2) When working with files in the scratch directory (default: `scratch/`), snapshot changes with:
   `draftsnap snap <path> -m "<short reason>" --json`
   `draftsnap snap --all -m "<short reason>" --json` to commit every modified scratch file together.
   Treat exit code 0 as committed. Treat exit code 10 as "no changes" (still a success).

   Optional: run `draftsnap watch` to snapshot automatically on file changes (stop with Ctrl+C).

3) Parse only STDOUT as JSON (`--json`). Never parse STDERR; it carries human-oriented logs.

4) To review or roll back:
   - `draftsnap log --json [<path>]` lists history,
   - `draftsnap diff --json [<path>]` shows the latest change,
   - `draftsnap restore <revision> <path> --json` writes an earlier version back.

5) For periodic cleanup, run `draftsnap prune --keep 200 --json`. Use it sparingly.

6) Do not modify `.gitignore`; drafts are excluded locally via `.git/info/exclude`. The tool never pushes to any remote.

7) If `draftsnap` is unavailable, continue your task without it; do not block.

When to snapshot:
- After creating a new file in scratch/
- After substantial changes (structural edits, more than 10 lines, or significant content changes)
- Before potentially destructive operations (large refactors, deletions)
- When the user says "try this", "experiment with", or similar exploratory language

Don't snapshot for:
- Formatting-only changes (whitespace, indentation)
- Small typo fixes
- When the user says "don't snap" or "no need to snap"

The user can adjust frequency:
- "snap every edit": snapshot after every change
- "snap less" or "only snap when I say": snapshot only on request
- "snap more often": snapshot more aggressively

Message convention for `-m`: a terse "purpose: summary" style, e.g. `purpose: tighten outline`, so commits are searchable.

Return handling:
- Success with commit: `{"status":"ok","code":0,...}`
- Success with no changes: `{"status":"ok","code":10,...}`
- Lock (12) or precondition (13) errors are non-fatal to your overall task; you may retry later.

Examples:
- Start: `draftsnap ensure --json`
- After writing `scratch/idea.md`: `draftsnap snap scratch/idea.md -m "purpose: initial draft" --json`
- After touching several files: `draftsnap snap --all -m "purpose: checkpoint session work" --json`
- Before a risky refactor: `draftsnap snap scratch/code.md -m "purpose: pre-refactor checkpoint" --json`
"""


def prompt_payload() -> dict[str, Any]:
    return {"status": "ok", "code": int(ExitCode.OK), "message": PROMPT_TEXT}
