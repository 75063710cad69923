import json
import logging
import os
import sys

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured log output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(debug_format: str, text_format: str) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    return logging.Formatter(text_format, datefmt=DATE_FORMAT)


def setup_logging(
    debug: bool = False,
    quiet: bool = False,
    json_output: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure stderr (and optional file) logging for the CLI.

    Stdout is never used: it carries the JSON payloads of ``--json`` mode.

    Args:
        debug: If True, overrides LOG_LEVEL to DEBUG.
        quiet: Only show warnings and errors.
        json_output: Command results go to stdout as JSON; keep stderr to
            warnings and errors unless ``debug`` is set.
        log_file: Also append log records to this file.
        debug_format: "text" (default) or "json" for structured output.
        level: Level name used instead of LOG_LEVEL (e.g. from a config file).

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO.
    """
    env_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    # debug parameter overrides environment and quiet
    if debug:
        log_level = logging.DEBUG
    elif quiet or json_output:
        log_level = logging.WARNING
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        _formatter(debug_format, "[%(asctime)s] [%(levelname)s] %(message)s")
    )
    handlers.append(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(
            _formatter(
                debug_format, "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
            )
        )
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # watchfiles logs every batch of changes at INFO
    if log_level != logging.DEBUG:
        logging.getLogger("watchfiles").setLevel(logging.WARNING)
