"""Command implementations; each returns a result model from ``draftsnap.models``."""

from .diff import diff_command
from .ensure import ensure_command
from .log import log_command
from .prompt import PROMPT_TEXT, prompt_payload
from .prune import prune_command
from .restore import restore_command
from .snap import snap_command
from .status import parse_git_status, status_command
from .watch import WatchSession, watch_command

__all__ = [
    "PROMPT_TEXT",
    "WatchSession",
    "diff_command",
    "ensure_command",
    "log_command",
    "parse_git_status",
    "prompt_payload",
    "prune_command",
    "restore_command",
    "snap_command",
    "status_command",
    "watch_command",
]
