"""Command-line entry point for draftsnap.

Results are printed to stdout as one JSON document per line when
``--json`` is given; human-oriented logs always go to stderr. The exit
status is the result's code (see :class:`~draftsnap.errors.ExitCode`), or
1 for unexpected failures.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

import yaml

from . import __version__
from .commands import (
    PROMPT_TEXT,
    diff_command,
    ensure_command,
    log_command,
    prompt_payload,
    prune_command,
    restore_command,
    snap_command,
    status_command,
    watch_command,
)
from .commands.watch import emit_json_line
from .config import Config, load_settings
from .config_loader import ensure_config
from .core.repository import Sidecar
from .errors import (
    DraftsnapError,
    ExitCode,
    InvalidArgsError,
    PreconditionFailedError,
)
from .logger import setup_logging
from .models import CommandResult

logger = logging.getLogger(__name__)

DEFAULT_HINT = (
    "draftsnap: run `draftsnap --help` for commands or "
    "`draftsnap prompt` for agent guidance."
)


def print_json(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload) + "\n")
    sys.stdout.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="draftsnap",
        description="Snapshot scratch files into a sidecar git repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Prepare the sidecar once per session
  draftsnap ensure --json

  # Snapshot one file, or every pending change
  draftsnap snap scratch/idea.md -m "purpose: initial draft"
  draftsnap snap --all -m "purpose: checkpoint"

  # Pipe content into a new draft
  echo "# Notes" | draftsnap snap notes.md --stdin

  # Review and roll back
  draftsnap log scratch/idea.md --timeline
  draftsnap restore HEAD~1 scratch/idea.md

  # Snapshot automatically while editing
  draftsnap watch --pattern "scratch/**/*.md" --debounce 500

Exit codes: 0 ok, 10 no changes, 11 not initialized, 12 locked,
13 precondition failed, 14 invalid arguments, 1 unexpected error.
        """,
    )
    parser.add_argument(
        "--scratch",
        help="Scratch directory (default: scratch, or DRAFTSNAP_SCRATCH / config file)",
    )
    parser.add_argument(
        "--git-dir",
        help="Sidecar git directory (default: .git-scratch, or DRAFTSNAP_GIT_DIR / config file)",
    )
    parser.add_argument(
        "--json", action="store_true", help="Print results as JSON on stdout"
    )
    parser.add_argument(
        "--quiet", action="store_true", help="Only log warnings and errors"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append logs to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"draftsnap version {__version__}",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("ensure", help="Initialize or verify the sidecar")

    snap = sub.add_parser("snap", help="Capture a snapshot from a file or stdin")
    snap.add_argument("path", nargs="?")
    snap.add_argument("-m", "--message", help="Commit message")
    snap.add_argument(
        "--all", action="store_true", help="Snapshot all pending changes"
    )
    snap.add_argument(
        "--stdin", action="store_true", help="Read content from stdin"
    )
    snap.add_argument("--space", help="Sub-directory of the scratch dir")

    restore = sub.add_parser(
        "restore", help="Restore a file from a prior snapshot"
    )
    restore.add_argument("revision")
    restore.add_argument("path", nargs="?")

    prune = sub.add_parser(
        "prune", help="Trim old snapshots, keeping the latest N commits"
    )
    prune.add_argument("--keep", type=int, help="Number of commits to keep")

    log = sub.add_parser("log", help="List snapshots with metadata")
    log.add_argument("path", nargs="?")
    log.add_argument(
        "--timeline",
        action="store_true",
        help="Summarize additions and deletions for one file",
    )
    log.add_argument("--since", type=int, help="Number of commits to include")

    diff = sub.add_parser(
        "diff", help="Compare recent snapshots or the working tree"
    )
    diff.add_argument("path", nargs="?")
    diff.add_argument(
        "--current", action="store_true", help="Compare against working tree"
    )

    sub.add_parser("status", help="Report initialization and lock status")

    watch = sub.add_parser("watch", help="Snapshot files as they change")
    watch.add_argument("--pattern", help="Glob of files to snapshot")
    watch.add_argument(
        "--debounce", type=float, help="Quiet period per file, in milliseconds"
    )
    watch.add_argument(
        "--include-delete", action="store_true", help="Commit deletions too"
    )
    watch.add_argument(
        "--no-initial-snap",
        action="store_true",
        help="Ignore files that already exist at startup",
    )
    watch.add_argument(
        "--verbose", action="store_true", help="Log every scheduling decision"
    )

    sub.add_parser("prompt", help="Display guidance for using draftsnap safely")
    sub.add_parser(
        "config", help="Show the active config file, creating a starter if needed"
    )
    return parser


async def dispatch(args: argparse.Namespace, config: Config) -> CommandResult:
    """Run the selected subcommand and return its result."""
    sidecar = Sidecar.resolve(
        work_tree=os.getcwd(),
        git_dir=config.git_dir,
        scratch_dir=config.scratch_dir,
    )
    command = args.command

    if command == "ensure":
        return await ensure_command(sidecar)

    if command == "snap":
        stdin_content = sys.stdin.read() if args.stdin else None
        return await snap_command(
            sidecar,
            None if args.all else args.path,
            message=args.message,
            all_files=args.all,
            space=args.space,
            stdin_content=stdin_content,
            lock_timeout=config.lock_timeout,
        )

    if command == "restore":
        if not args.path:
            raise InvalidArgsError("path is required")
        return await restore_command(
            sidecar, args.revision, args.path, lock_timeout=config.lock_timeout
        )

    if command == "prune":
        keep = args.keep if args.keep is not None else config.prune_keep
        return await prune_command(
            sidecar, keep, lock_timeout=config.lock_timeout
        )

    if command == "log":
        return await log_command(
            sidecar, args.path, since=args.since, timeline=args.timeline
        )

    if command == "diff":
        return await diff_command(sidecar, args.path, current=args.current)

    if command == "status":
        return await status_command(sidecar)

    if command == "watch":
        return await watch_command(
            sidecar,
            pattern=args.pattern or config.watch_pattern,
            debounce_ms=(
                args.debounce if args.debounce is not None else config.debounce_ms
            ),
            include_delete=config.include_delete,
            initial_snap=config.initial_snap and not args.no_initial_snap,
            emit=emit_json_line if args.json else None,
            verbose=args.verbose,
            lock_timeout=config.lock_timeout,
        )

    raise InvalidArgsError(f"unknown command: {command}")


def report_error(error: DraftsnapError, json_output: bool) -> None:
    if json_output:
        status = "ok" if error.code == ExitCode.NO_CHANGES else "error"
        print_json(
            {"status": status, "code": int(error.code), "message": error.message}
        )
    else:
        print(error.message, file=sys.stderr)


def show_config(json_output: bool) -> int:
    """Print the active config file path, writing a starter file if none exists."""
    try:
        path = ensure_config(work_tree=os.getcwd())
    except OSError as exc:
        report_error(PreconditionFailedError(str(exc)), json_output)
        return ExitCode.PRECONDITION_FAILED
    if json_output:
        print_json(
            {"status": "ok", "code": int(ExitCode.OK), "data": {"path": str(path)}}
        )
    else:
        print(path)
    return ExitCode.OK


def main(argv: list[str] | None = None) -> int:
    """Parse ``argv``, run one command, and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        if args.json:
            print_json({"status": "ok", "code": int(ExitCode.OK), "message": DEFAULT_HINT})
        else:
            print(DEFAULT_HINT)
        return ExitCode.OK

    if args.command == "prompt":
        if args.json:
            print_json(prompt_payload())
        else:
            print(PROMPT_TEXT)
        return ExitCode.OK

    if args.command == "config":
        return show_config(args.json)

    overrides: dict[str, Any] = {
        "scratch_dir": args.scratch,
        "git_dir": args.git_dir,
        "debug": args.debug,
        "log_file": args.log_file,
    }
    if args.command == "watch":
        overrides["include_delete"] = args.include_delete

    try:
        config = load_settings(os.getcwd(), overrides)
    except (ValueError, OSError, yaml.YAMLError) as exc:
        report_error(InvalidArgsError(str(exc)), args.json)
        return ExitCode.INVALID_ARGS

    setup_logging(
        debug=config.debug,
        quiet=args.quiet,
        json_output=args.json,
        log_file=config.log_file,
        level=config.log_level,
    )

    try:
        result = asyncio.run(dispatch(args, config))
    except DraftsnapError as exc:
        logger.debug("%s failed: %s", args.command, exc, exc_info=True)
        report_error(exc, args.json)
        return exc.code
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return ExitCode.OK
    except Exception as exc:
        logger.debug("%s crashed", args.command, exc_info=True)
        print(f"draftsnap: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print_json(result.to_payload())
    return result.code


def run() -> None:
    """Console-script entry point."""
    sys.exit(int(main()))


if __name__ == "__main__":
    run()
