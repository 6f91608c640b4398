"""
Logging configuration for chaos-fleet.

Every module logs through ``get_logger(__name__)``. ``setup_logging`` wires a
console handler (colored on a TTY) and an append-only log file.
"""
import logging
import sys
from typing import Optional

# Mutations (break, heal, restart) are logged one notch above INFO
ACTION = 25
logging.addLevelName(ACTION, "ACTION")

DEFAULT_LOG_FILE = "/tmp/chaos-fleet.log"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[0;32m",
    ACTION: "\033[0;36m",
    logging.WARNING: "\033[1;33m",
    logging.ERROR: "\033[0;31m",
    logging.CRITICAL: "\033[0;31m",
}
_RESET = "\033[0m"


class ChaosFleetFormatter(logging.Formatter):
    """Formatter that renders WARNING as WARN and optionally colors lines."""

    def __init__(self, use_color: bool = False) -> None:
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if record.levelno == logging.WARNING:
            record.levelname = "WARN"
        try:
            line = super().format(record)
        finally:
            record.levelname = levelname
        if self.use_color:
            color = _COLORS.get(record.levelno, "")
            return f"{color}{line}{_RESET}"
        return line


class ActionLogger(logging.Logger):
    def action(self, msg, *args, **kwargs) -> None:
        if self.isEnabledFor(ACTION):
            self._log(ACTION, msg, args, **kwargs)


logging.setLoggerClass(ActionLogger)


def setup_logging(
    verbose: bool = False,
    log_file: Optional[str] = DEFAULT_LOG_FILE
) -> logging.Logger:
    """
    Configure the ``chaos_fleet`` logger hierarchy.

    Args:
        verbose: Emit DEBUG records to the console and the log file
        log_file: Path of the append-only log file, or None to disable it

    Returns:
        The configured package logger
    """
    root = logging.getLogger("chaos_fleet")
    root.handlers.clear()
    level = logging.DEBUG if verbose else logging.INFO
    root.setLevel(level)
    root.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(ChaosFleetFormatter(use_color=sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            root.warning(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(ChaosFleetFormatter(use_color=False))
            root.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    return root


def get_logger(name: str) -> ActionLogger:
    return logging.getLogger(name)
