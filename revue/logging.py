"""
Logging for revue.

Everything logs under the ``revue`` logger. Records about a specific
target or comment carry ``target_id``/``comment_id`` in ``extra``; the
formatter prints them as a short ``[target/comment]`` tag so a line can
be matched to the pin it is about.
"""

import logging
import sys
from typing import Optional

ROOT = "revue"

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
RESET = "\033[0m"

CONSOLE_FORMAT = "%(levelname)s:%(context)s %(message)s"
DETAILED_FORMAT = "%(asctime)s [%(levelname)s] %(name)s%(context)s: %(message)s"


def short_id(value: Optional[str]) -> str:
    """Abbreviate an id for log lines."""
    return (value or "-")[:8]


def log_context(target_id: Optional[str] = None, comment_id: Optional[str] = None) -> dict:
    """``extra`` mapping tagging a record with the target and comment it concerns."""
    return {"target_id": target_id, "comment_id": comment_id}


class RevueFormatter(logging.Formatter):
    """Adds the id tag and, on a terminal, a coloured level name."""

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: bool = False):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the record unchanged
        record = logging.makeLogRecord(record.__dict__)
        target_id = getattr(record, "target_id", None)
        comment_id = getattr(record, "comment_id", None)
        if comment_id:
            record.context = f" [{short_id(target_id)}/{short_id(comment_id)}]"
        elif target_id:
            record.context = f" [{short_id(target_id)}]"
        else:
            record.context = ""
        if self.use_colors:
            color = LEVEL_COLORS.get(record.levelno, "")
            record.levelname = f"{color}{record.levelname}{RESET}"
        return super().format(record)


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: Optional[str] = None,
    use_colors: bool = True,
) -> None:
    """Configure the revue logger.

    Args:
        verbose: Log DEBUG and use the detailed console format
        quiet: Only log errors to the console
        log_file: Also write everything (DEBUG and up) to this file
        use_colors: Colour level names when stderr is a terminal
    """
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.INFO

    logger = logging.getLogger(ROOT)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(RevueFormatter(
        DETAILED_FORMAT if verbose else CONSOLE_FORMAT,
        datefmt="%H:%M:%S",
        use_colors=use_colors and sys.stderr.isatty(),
    ))
    logger.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(RevueFormatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Logger for a revue module (typically called with ``__name__``)."""
    return logging.getLogger(f"{ROOT}.{name.split('.')[-1]}")
