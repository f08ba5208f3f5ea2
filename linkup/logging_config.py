"""
Logging for LinkUp.

Everything under the ``linkup`` logger goes to <data_dir>/linkup.log
(rotated, DEBUG and up) and to stderr (WARNING and up unless --debug).
Session, transition, tool and storage lines share a pipe-separated shape
so one group's history can be grepped out of the file:

    grep "| The Besties |" data/linkup.log
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


LOG_FILE_NAME = "linkup.log"
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s"
CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(message)s"

# HTTP clients under the Anthropic SDK log every request at DEBUG
QUIET_LOGGERS = ("httpx", "httpcore", "anthropic")


def _file_handler(log_path: Path, level: int) -> logging.Handler:
    handler = RotatingFileHandler(log_path, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    return handler


def setup_logging(
    data_dir: Path | str,
    log_level: int = logging.DEBUG,
    console_level: int = logging.WARNING,
) -> Path:
    """
    Install the file and console handlers. Safe to call more than once.

    Returns:
        Path to the log file
    """
    data_path = Path(data_dir)
    data_path.mkdir(parents=True, exist_ok=True)
    log_path = data_path / LOG_FILE_NAME

    logger = logging.getLogger("linkup")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.addHandler(_file_handler(log_path, log_level))
    logger.addHandler(_console_handler(console_level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging to {log_path.absolute()}")
    return log_path


# =============================================================================
# Structured Logging Helpers
# =============================================================================


def log_session(
    logger: logging.Logger,
    group: str,
    action: str,
    details: str | None = None,
) -> None:
    """Log session-level activity for a group."""
    details_str = f" | {details}" if details else ""
    logger.info(f"SESSION | {group} | {action}{details_str}")


def log_transition(
    logger: logging.Logger,
    group: str,
    from_state: str,
    to_state: str,
    reason: str | None = None,
) -> None:
    """Log a session state transition."""
    reason_str = f" | {reason}" if reason else ""
    logger.info(f"TRANSITION | {group} | {from_state} -> {to_state}{reason_str}")


def log_tool_call(
    logger: logging.Logger,
    agent: str,
    tool_name: str,
    args: dict | None = None,
    status: str = "CALL",
) -> None:
    """Log a tool invocation requested by a decision service."""
    args_str = f" | args={args}" if args else ""
    logger.debug(f"TOOL | {agent} | {tool_name} | {status}{args_str}")


def log_storage(
    logger: logging.Logger,
    operation: str,
    path: Path | str | None = None,
    success: bool = True,
    details: str | None = None,
) -> None:
    """Log storage operations (session state, memory, threads)."""
    status = "OK" if success else "FAILED"
    path_str = f" | {path}" if path else ""
    details_str = f" | {details}" if details else ""
    logger.debug(f"STORAGE | {operation}{path_str} | {status}{details_str}")
